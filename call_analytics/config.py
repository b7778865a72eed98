"""
Configuration loader for the call analytics client.

Loads environment variables from .env.local (python-dotenv) and builds a
single Config instance that is passed explicitly to the workflow and the
clients. Nothing below the CLI reads the environment directly.
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from call_analytics.exceptions import ConfigurationError
from call_analytics.services.common.job import DEFAULT_QUESTIONS, JobParameters, Question

logger = logging.getLogger(__name__)

# -------------------------------------------------------------- #
# Defaults
# -------------------------------------------------------------- #

DEFAULT_BASE_URL = "https://api.sarvam.ai/call-analytics/"
DEFAULT_AUDIO_SOURCE = (
    "https://oriserve-speech-analytics.s3.amazonaws.com/SIGMA/2024-08-21/"
    "7898345058_Pre_Team_Pre_Team_Sumit_K_1004_predictive__20240816081801-stereo.wav"
)
DEFAULT_DESTINATION_DIR = "./output"
DEFAULT_POLL_INTERVAL_S = 10.0
DEFAULT_MAX_POLL_ATTEMPTS = 60
DEFAULT_REQUEST_TIMEOUT_S = 60.0
DEFAULT_ENV_FILE = ".env.local"


@dataclass
class Config:
    """Process-wide configuration, constructed once at start-up."""

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    audio_source: str = DEFAULT_AUDIO_SOURCE
    destination_dir: str = DEFAULT_DESTINATION_DIR
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    job_parameters: JobParameters = field(default_factory=JobParameters)

    # Synchronous (prerecorded) variant
    deepgram_api_key: str | None = None
    audio_url: str | None = None

    def validate(self, require: tuple[str, ...] = ("api_key",)) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        for name in require:
            if not getattr(self, name):
                errors.append(f"Missing required setting: {name}")

        if self.poll_interval_s < 0:
            errors.append(f"poll_interval_s must not be negative (got {self.poll_interval_s})")

        if self.max_poll_attempts < 1:
            errors.append(f"max_poll_attempts must be at least 1 (got {self.max_poll_attempts})")

        if self.request_timeout_s <= 0:
            errors.append(f"request_timeout_s must be positive (got {self.request_timeout_s})")

        if self.job_parameters.num_speakers < 1:
            errors.append(
                f"num_speakers must be at least 1 (got {self.job_parameters.num_speakers})"
            )

        return errors


# -------------------------------------------------------------- #
# Environment Parsing
# -------------------------------------------------------------- #


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number (got {raw!r})") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer (got {raw!r})") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default

    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean (got {raw!r})")


def load_questions(path: str | Path) -> tuple[Question, ...]:
    """
    Load analytic questions from a JSON file.

    The file must contain a JSON array of objects with id, type, text and
    (optionally) description.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read questions file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Questions file {path} is not valid JSON: {e}") from e

    if not isinstance(data, list) or not data:
        raise ConfigurationError(f"Questions file {path} must contain a non-empty JSON array")

    try:
        return tuple(Question.from_payload(item) for item in data)
    except (KeyError, TypeError, AttributeError) as e:
        raise ConfigurationError(f"Malformed question in {path}: {e}") from e


def load_job_parameters(questions_file: str | None = None) -> JobParameters:
    """Build job parameters from the environment and an optional questions file."""
    questions_file = questions_file or os.getenv("QUESTIONS_FILE")
    questions = load_questions(questions_file) if questions_file else DEFAULT_QUESTIONS

    return JobParameters(
        model=os.getenv("SARVAM_MODEL", "saaras:v2"),
        with_diarization=_env_bool("WITH_DIARIZATION", True),
        num_speakers=_env_int("NUM_SPEAKERS", 2),
        questions=questions,
    )


def load_config(
    env_file: str | Path | None = DEFAULT_ENV_FILE,
    questions_file: str | None = None,
    **overrides: Any,
) -> Config:
    """
    Load configuration from the environment.

    Args:
        env_file: dotenv file loaded first; values already in the environment win
        questions_file: Optional JSON file with the analytic questions
        **overrides: Config fields to override (None values are ignored)

    Returns:
        A Config instance

    Raises:
        ConfigurationError: If an environment value is malformed
    """
    if env_file and Path(env_file).exists():
        logger.info(f"Loading environment from: {env_file}")
        load_dotenv(dotenv_path=env_file)

    config = Config(
        api_key=os.getenv("SARVAM_API_KEY") or None,
        base_url=os.getenv("SARVAM_BASE_URL", DEFAULT_BASE_URL),
        audio_source=os.getenv("AUDIO_SOURCE", DEFAULT_AUDIO_SOURCE),
        destination_dir=os.getenv("DESTINATION_DIR", DEFAULT_DESTINATION_DIR),
        poll_interval_s=_env_float("POLL_INTERVAL_S", DEFAULT_POLL_INTERVAL_S),
        max_poll_attempts=_env_int("MAX_POLL_ATTEMPTS", DEFAULT_MAX_POLL_ATTEMPTS),
        request_timeout_s=_env_float("REQUEST_TIMEOUT_S", DEFAULT_REQUEST_TIMEOUT_S),
        job_parameters=load_job_parameters(questions_file),
        deepgram_api_key=os.getenv("DEEPGRAM_API_KEY") or None,
        audio_url=os.getenv("AUDIO_URL") or None,
    )

    overrides = {key: value for key, value in overrides.items() if value is not None}
    if overrides:
        config = replace(config, **overrides)

    return config
