"""In-memory report storage."""
