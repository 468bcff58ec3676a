"""Speech segment upload and asynchronous transcription service."""

__version__ = "0.1.0"
