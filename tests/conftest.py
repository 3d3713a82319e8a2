"""Pytest fixtures shared across the test suite."""

import pytest
from helpers import FakeToolSession, text_result


@pytest.fixture
def tool_session() -> FakeToolSession:
    """A tool server exposing get_alerts, which reports a heat advisory."""
    return FakeToolSession(results={"get_alerts": text_result("Active alerts for CA:\n\nEvent: Heat Advisory")})
