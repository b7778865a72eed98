"""
Normalization of a synchronous transcription response.

Each utterance becomes a line "[H:MM:SS -> H:MM:SS] SPEAKERnn: text" in the
raw transcript and a {start, end, text, speaker} record in the structured
transcript.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from call_analytics.exceptions import TranscriptionError
from call_analytics.utils import round_half_up

DEFAULT_LANGUAGE = "hi"

DEFAULT_PRERECORDED_OPTIONS: dict[str, Any] = {
    "model": "general",
    "tier": "enhanced",
    "punctuate": True,
    "diarize": True,
    "utterances": True,
    "detect_language": True,
    "language": DEFAULT_LANGUAGE,
}


@dataclass(frozen=True)
class Utterance:
    start: str
    end: str
    text: str
    speaker: str


@dataclass
class TranscriptResult:
    raw_transcript: str
    transcript: list[Utterance] = field(default_factory=list)
    language: str = DEFAULT_LANGUAGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_transcript": self.raw_transcript,
            "transcript": [asdict(utterance) for utterance in self.transcript],
            "language": self.language,
        }


def format_timestamp(seconds: float) -> str:
    """Format seconds as H:MM:SS, rounded to the nearest second."""
    total = round_half_up(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def speaker_label(speaker: Any) -> str:
    """Render a speaker index as SPEAKERnn."""
    return f"SPEAKER{str(speaker).zfill(2)}"


def detect_language(response: dict[str, Any], default: str = DEFAULT_LANGUAGE) -> str:
    """Pick the detected or forced language code out of a response."""
    language = (response.get("metadata") or {}).get("language")
    if isinstance(language, dict):
        language = language.get("code")
    if isinstance(language, str) and language:
        return language

    channels = (response.get("results") or {}).get("channels") or []
    if channels and isinstance(channels[0], dict):
        detected = channels[0].get("detected_language")
        if isinstance(detected, str) and detected:
            return detected

    return default


def format_transcript(
    response: dict[str, Any], default_language: str = DEFAULT_LANGUAGE
) -> TranscriptResult:
    """
    Build the raw and structured transcript from a response.

    Raises:
        TranscriptionError: If the response carries no utterances
    """
    utterances = (response.get("results") or {}).get("utterances")
    if not isinstance(utterances, list):
        raise TranscriptionError(
            "Response has no utterances; was utterance segmentation enabled?", payload=response
        )

    records = []
    for item in utterances:
        try:
            records.append(
                Utterance(
                    start=format_timestamp(float(item["start"])),
                    end=format_timestamp(float(item["end"])),
                    text=str(item.get("transcript", "")),
                    speaker=speaker_label(item.get("speaker", 0)),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TranscriptionError(f"Malformed utterance {item!r}: {e}", payload=response) from e

    raw = "\n".join(f"[{u.start} -> {u.end}] {u.speaker}: {u.text}" for u in records)
    return TranscriptResult(
        raw_transcript=raw,
        transcript=records,
        language=detect_language(response, default_language),
    )
