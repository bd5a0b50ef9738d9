"""Attachment byte storage."""
