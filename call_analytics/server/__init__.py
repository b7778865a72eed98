"""Handlers for the remote speech analytics services."""

from .common.batch_client import BatchJobClient, construct_batch_job_client
from .common.prerecorded_client import PrerecordedClient
from .services import BaseServerHandler, BatchJobHandler, PrerecordedHandler

__all__ = [
    "BaseServerHandler",
    "BatchJobHandler",
    "PrerecordedHandler",
    "BatchJobClient",
    "PrerecordedClient",
    "construct_batch_job_client",
]
