"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides
fixtures and configuration that can be used across all tests.
"""

import pytest

from call_analytics.config import Config
from call_analytics.server.testing.batch_client import MockBatchJobClient
from call_analytics.services.common.job import JobState, StatusResponse

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)

# Environment variables read by load_config; cleared for every test
CONFIG_ENV_VARS = (
    "SARVAM_API_KEY",
    "SARVAM_BASE_URL",
    "AUDIO_SOURCE",
    "DESTINATION_DIR",
    "POLL_INTERVAL_S",
    "MAX_POLL_ATTEMPTS",
    "REQUEST_TIMEOUT_S",
    "SARVAM_MODEL",
    "WITH_DIARIZATION",
    "NUM_SPEAKERS",
    "QUESTIONS_FILE",
    "DEEPGRAM_API_KEY",
    "AUDIO_URL",
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings and markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Apply a timeout to all tests except those marked as slow."""
    for item in items:
        if "slow" not in item.keywords:
            item.add_marker(pytest.mark.timeout(30))


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove configuration variables so tests never see the developer's .env.local."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays instead of waiting."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


# ============================================================================
# Workflow Fixtures
# ============================================================================


@pytest.fixture
def audio_file(tmp_path) -> str:
    """Create a small local audio file."""
    path = tmp_path / "call.wav"
    path.write_bytes(b"RIFF" + bytes(range(256)) * 8)
    return str(path)


@pytest.fixture
def config(tmp_path, audio_file: str) -> Config:
    """Provide a configuration pointing at local test paths."""
    return Config(
        api_key="test-key",
        audio_source=audio_file,
        destination_dir=str(tmp_path / "output"),
        poll_interval_s=10.0,
        max_poll_attempts=5,
    )


@pytest.fixture
def completed_status() -> StatusResponse:
    return StatusResponse(JobState.COMPLETED, "Completed")


@pytest.fixture
def running_status() -> StatusResponse:
    return StatusResponse(JobState.RUNNING, "Running")


@pytest.fixture
def mock_client() -> MockBatchJobClient:
    """Create a mock batch job client with two output artifacts."""
    return MockBatchJobClient(
        artifacts={
            "a.json": b'{"answers": ["billing", "neutral"]}',
            "b.txt": b"SPEAKER00: hello\nSPEAKER01: hi\n",
        }
    )
