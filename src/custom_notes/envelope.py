"""Authenticated encryption envelope for note content.

Note content is sealed with ChaCha20-Poly1305 before it reaches either
store. Every seal draws a fresh 12-byte nonce; the nonce is persisted next
to the ciphertext (as a column locally, as object metadata in the cloud)
and both are always read back together.
"""
import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from custom_notes.exceptions import (
    CorruptEnvelopeError,
    DecryptionFailedError,
    InvalidNonceError,
)

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
KEY_SIZE = 32

# SECURITY DEFECT: every note on every installation is sealed with this
# all-zero key, so the envelope gives integrity but no confidentiality.
# Existing ciphertext in local databases and buckets depends on it; replacing
# it needs a key management step plus a re-encryption migration.
STATIC_KEY = bytes(KEY_SIZE)


@dataclass(frozen=True)
class SealedContent:
    """Ciphertext (with the 16-byte tag appended) and the nonce it was sealed with."""

    ciphertext: bytes
    nonce: bytes

    def encode(self) -> "EncodedContent":
        """Encode both parts as base64 text for storage."""
        return EncodedContent(
            ciphertext=encode_field(self.ciphertext),
            nonce=encode_field(self.nonce),
        )


@dataclass(frozen=True)
class EncodedContent:
    """Base64 text form of a SealedContent, as stored in the notes table."""

    ciphertext: str
    nonce: str

    def decode(self) -> SealedContent:
        """Inverse of SealedContent.encode()."""
        return SealedContent(
            ciphertext=decode_field(self.ciphertext, "content"),
            nonce=decode_field(self.nonce, "nonce"),
        )


def encode_field(raw: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(raw).decode("ascii")


def decode_field(text: Optional[str], field: str = "value") -> bytes:
    """Decode standard base64 text, rejecting anything malformed.

    Raises:
        CorruptEnvelopeError: If the value is missing or not valid base64.
    """
    if text is None:
        raise CorruptEnvelopeError(f"Missing {field}", field=field)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptEnvelopeError(f"Malformed base64 in {field}: {e}", field=field) from e


class CipherEnvelope:
    """Seals and opens note content with ChaCha20-Poly1305.

    Args:
        key: 32-byte key. Defaults to STATIC_KEY, which all stored notes
            are sealed with.
    """

    def __init__(self, key: bytes = STATIC_KEY) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = ChaCha20Poly1305(key)

    def seal(self, plaintext: str) -> SealedContent:
        """Encrypt plaintext under a freshly drawn random nonce."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return SealedContent(ciphertext=ciphertext, nonce=nonce)

    def open(self, ciphertext: bytes, nonce: bytes) -> str:
        """Decrypt and authenticate ciphertext produced by seal().

        Raises:
            InvalidNonceError: If the nonce is not exactly 12 bytes.
            DecryptionFailedError: If authentication fails or the plaintext
                is not UTF-8.
        """
        if len(nonce) != NONCE_SIZE:
            raise InvalidNonceError(len(nonce))
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionFailedError("Ciphertext failed authentication") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailedError("Decrypted content is not valid UTF-8") from e

    def seal_encoded(self, plaintext: str) -> EncodedContent:
        """seal() followed by base64 encoding of both parts."""
        return self.seal(plaintext).encode()

    def open_encoded(self, ciphertext: Optional[str], nonce: Optional[str]) -> str:
        """Decode a base64 (ciphertext, nonce) pair and open it."""
        sealed = EncodedContent(ciphertext=ciphertext, nonce=nonce).decode()
        return self.open(sealed.ciphertext, sealed.nonce)


# Shared envelope used by both stores
cipher = CipherEnvelope()
