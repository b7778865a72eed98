"""Normalization of synchronous transcription responses."""

from call_analytics.services.transcript.formatter import (
    DEFAULT_PRERECORDED_OPTIONS,
    TranscriptResult,
    Utterance,
    format_timestamp,
    format_transcript,
    speaker_label,
)

__all__ = [
    "DEFAULT_PRERECORDED_OPTIONS",
    "TranscriptResult",
    "Utterance",
    "format_timestamp",
    "format_transcript",
    "speaker_label",
]
