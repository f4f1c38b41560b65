"""Service layer for Custom Notes."""
