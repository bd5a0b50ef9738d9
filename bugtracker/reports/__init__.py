"""Report use cases and entry pagination."""
