"""Request-scoped access to the collaborators held on ``app.state``."""

from fastapi import Request

from segscribe.services.job_queue import TranscriptionJobQueue
from segscribe.services.sweeper import ResubmissionSweeper
from segscribe.storage.blob_store import LocalBlobStore


def get_blob_store(request: Request) -> LocalBlobStore:
    return request.app.state.blob_store


def get_queue(request: Request) -> TranscriptionJobQueue:
    return request.app.state.queue


def get_sweeper(request: Request) -> ResubmissionSweeper:
    return request.app.state.sweeper
