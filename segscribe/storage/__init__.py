"""Blob storage for uploaded audio."""

from segscribe.storage.blob_store import LocalBlobStore, build_segment_path, uuid7

__all__ = ["LocalBlobStore", "build_segment_path", "uuid7"]
