"""Bug tracker — reports, comments, signed attachment downloads and an audit trail."""

__version__ = "0.1.0"
