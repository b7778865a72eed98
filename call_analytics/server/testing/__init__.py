"""In-memory service handlers for tests."""

from call_analytics.server.testing.batch_client import MockBatchJobClient

__all__ = ["MockBatchJobClient"]
