"""Common job model shared by the services."""

from call_analytics.services.common.job import (
    Job,
    JobParameters,
    JobState,
    OutputFile,
    Question,
    StatusResponse,
)

__all__ = ["Job", "JobParameters", "JobState", "OutputFile", "Question", "StatusResponse"]
