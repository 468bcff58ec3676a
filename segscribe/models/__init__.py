"""Database models package."""

from segscribe.models.segment import SpeechSegment

__all__ = ["SpeechSegment"]
