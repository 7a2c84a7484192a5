"""Core relay services."""
