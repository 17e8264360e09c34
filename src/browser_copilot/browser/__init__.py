"""Browser capability implementations."""
