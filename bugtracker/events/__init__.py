"""Event bus and subscribers."""
