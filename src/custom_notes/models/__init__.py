"""Data models for Custom Notes."""
