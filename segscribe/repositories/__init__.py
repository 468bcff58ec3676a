"""Data access layer."""

from segscribe.repositories.segments import SegmentRepository

__all__ = ["SegmentRepository"]
