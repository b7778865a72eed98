"""
Job model for batch call analytics.

This module provides:
- JobState: closed enumeration of remote job states
- Question / JobParameters: immutable job configuration sent at start time
- Job: per-job lifecycle state owned by a single client
- StatusResponse / OutputFile: transient views of service responses
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from call_analytics.utils import get_current_timestamp_utc


class JobState(enum.Enum):
    """State of a job as reported by the remote service."""

    ACCEPTED = "Accepted"
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def from_wire(cls, value: Any) -> "JobState":
        """
        Translate a wire-format state string into a JobState.

        Matching is case-insensitive. Anything unrecognised, including a
        missing value, maps to UNKNOWN.
        """
        if not isinstance(value, str):
            return cls.UNKNOWN

        normalized = value.strip().lower()
        for state in cls:
            if state is not cls.UNKNOWN and state.value.lower() == normalized:
                return state
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        """True for states after which polling stops."""
        return self in (JobState.COMPLETED, JobState.FAILED)


# -------------------------------------------------------------- #
# Job Parameters
# -------------------------------------------------------------- #


@dataclass(frozen=True)
class Question:
    """An analytic question answered by the service over the call."""

    id: str
    type: str
    text: str
    description: str = ""

    def to_payload(self) -> dict[str, str]:
        return {
            "id": self.id,
            "type": self.type,
            "text": self.text,
            "description": self.description,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Question":
        return cls(
            id=str(payload["id"]),
            type=str(payload["type"]),
            text=str(payload["text"]),
            description=str(payload.get("description", "")),
        )


DEFAULT_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="1",
        type="short answer",
        text="What is the main topic of the call?",
        description="Identify the primary subject discussed",
    ),
    Question(
        id="2",
        type="short answer",
        text="What is the sentiment of the customer?",
        description="Analyze the customer emotional tone",
    ),
)


@dataclass(frozen=True)
class JobParameters:
    """Configuration bundle submitted when a job is started."""

    model: str = "saaras:v2"
    with_diarization: bool = True
    num_speakers: int = 2
    questions: tuple[Question, ...] = DEFAULT_QUESTIONS

    def to_payload(self) -> dict[str, Any]:
        """Render the job_parameters object of the start request."""
        return {
            "model": self.model,
            "with_diarization": self.with_diarization,
            "num_speakers": self.num_speakers,
            "questions": [question.to_payload() for question in self.questions],
        }


# -------------------------------------------------------------- #
# Status / Listing Responses
# -------------------------------------------------------------- #


@dataclass(frozen=True)
class StatusResponse:
    """A single status check result."""

    state: JobState
    raw_state: str | None = None
    error_message: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "StatusResponse":
        raw_state = payload.get("job_state")
        return cls(
            state=JobState.from_wire(raw_state),
            raw_state=raw_state if isinstance(raw_state, str) else None,
            error_message=payload.get("error_message"),
        )


@dataclass(frozen=True)
class OutputFile:
    """One artifact listed at a job's output storage location."""

    name: str
    size: int | None = None


# -------------------------------------------------------------- #
# Job
# -------------------------------------------------------------- #

_IDENTITY_FIELDS = ("job_id", "input_storage_path", "output_storage_path")


@dataclass
class Job:
    """
    Lifecycle state of one remote job.

    The identifier and both storage locations are assigned once, when the
    service initializes the job, and cannot be reassigned afterwards.

    Attributes:
        job_id: Opaque identifier assigned by the service
        input_storage_path: Upload prefix for the job's audio
        output_storage_path: Listing/download prefix for the job's artifacts
        state: Last state observed from a status check
        error_message: Service error message when the job failed
        uploaded_files: Names successfully uploaded to input storage
        created_at: When the job was initialized
        started_at: When the job was started (None if not started)
        finished_at: When a terminal state was observed (None otherwise)
    """

    job_id: str
    input_storage_path: str
    output_storage_path: str
    state: JobState = JobState.PENDING
    error_message: str | None = None
    uploaded_files: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=get_current_timestamp_utc)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _IDENTITY_FIELDS and name in self.__dict__:
            raise AttributeError(f"'{name}' is fixed for the lifetime of a job")
        super().__setattr__(name, value)

    @classmethod
    def from_init_payload(cls, payload: dict[str, Any]) -> "Job":
        """
        Build a Job from the service's init response.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a required field is empty
        """
        values = {name: payload[name] for name in _IDENTITY_FIELDS}
        for name, value in values.items():
            if not isinstance(value, str) or not value:
                raise ValueError(f"init response field '{name}' is empty or not a string")

        return cls(
            job_id=values["job_id"],
            input_storage_path=values["input_storage_path"].rstrip("/"),
            output_storage_path=values["output_storage_path"].rstrip("/"),
        )

    @property
    def is_uploaded(self) -> bool:
        return bool(self.uploaded_files)

    @property
    def is_started(self) -> bool:
        return self.started_at is not None

    def mark_uploaded(self, name: str) -> None:
        """Record a successful upload. Re-uploading the same name is a no-op."""
        if name not in self.uploaded_files:
            self.uploaded_files.append(name)

    def mark_started(self) -> None:
        """Mark the job as started."""
        self.started_at = get_current_timestamp_utc()

    def apply_status(self, status: StatusResponse) -> None:
        """Update the job from a status check response."""
        self.state = status.state
        if status.state is JobState.FAILED:
            self.error_message = status.error_message
        if status.state.is_terminal and self.finished_at is None:
            self.finished_at = get_current_timestamp_utc()
