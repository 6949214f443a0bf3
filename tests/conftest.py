from datetime import datetime, timezone

import pytest
from prometheus_client import CollectorRegistry


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def now() -> "datetime":
    """
    fixed reference instant for status and time-remaining checks.
    """
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
