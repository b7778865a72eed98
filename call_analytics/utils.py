import math
from datetime import datetime, timezone
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse


# -------------------------------------------------------------- #
# Constants
# -------------------------------------------------------------- #


DEFAULT_AUDIO_NAME = "audio.wav"

REMOTE_SCHEMES = ("http", "https")


# -------------------------------------------------------------- #
# Util Functions
# -------------------------------------------------------------- #


def get_current_timestamp_utc() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(timezone.utc)


def is_remote_source(specifier: str) -> bool:
    """Check whether an audio specifier points at an HTTP(S) location."""
    return urlparse(specifier).scheme.lower() in REMOTE_SCHEMES


def infer_file_name(specifier: str, default: str = DEFAULT_AUDIO_NAME) -> str:
    """
    Infer the file name of an audio source.

    Args:
        specifier: Absolute URI or local path
        default: Name used when the specifier has no final path segment

    Returns:
        The last path segment (percent-decoded for URIs), or the default
    """
    if is_remote_source(specifier):
        path = unquote(urlparse(specifier).path)
    else:
        path = specifier.replace("\\", "/")

    if path.endswith("/"):
        return default

    name = PurePosixPath(path).name
    return name or default


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive input."""
    return int(math.floor(value + 0.5))


def is_safe_artifact_name(name: str) -> bool:
    """Check that a remote artifact name stays inside its destination directory."""
    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name
