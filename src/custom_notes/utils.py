"""Utility functions for Custom Notes."""

OBJECT_SUFFIX = ".txt"


def object_key_for_title(title: str) -> str:
    """Build the bucket object key for a note title.

    Examples:
        "Groceries" -> "Groceries.txt"
    """
    return f"{title}{OBJECT_SUFFIX}"


def title_from_object_key(key: str) -> str:
    """Recover a note title from a bucket object key.

    Keys that were not written by this package are returned unchanged.
    """
    if key.endswith(OBJECT_SUFFIX):
        return key[: -len(OBJECT_SUFFIX)]
    return key


def strip_quotes(value: str) -> str:
    """Remove surrounding double quotes from a bucket name.

    The desktop front end sometimes sends JSON-encoded strings through
    unchanged, e.g. '"my-bucket"'.
    """
    return value.strip('"')


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\% complete'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
