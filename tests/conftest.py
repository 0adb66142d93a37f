# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from flowbot.core.engine.domain import InboundMessage, Priority  # noqa: E402
from flowbot.infra.metrics import get_metrics_collector  # noqa: E402


class FakeSender:
    """Records outbound messages instead of delivering them"""

    def __init__(self):
        self.sent = []

    async def send_message(self, recipient_id, content, *, priority=Priority.NORMAL):
        self.sent.append((recipient_id, content, priority))

    def texts(self) -> list:
        return [content.get("text") for _, content, _ in self.sent]

    def last_text(self):
        return self.sent[-1][1].get("text") if self.sent else None


@pytest.fixture(autouse=True)
def reset_metrics():
    """Each test starts with empty counters"""
    get_metrics_collector().reset()
    yield


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def user_id():
    """Default chat ID for tests"""
    return "5511999990000"


@pytest.fixture
def make_message(user_id):
    def _make(text=None, *, sender_id=None, **kwargs) -> InboundMessage:
        return InboundMessage(sender_id=user_id if sender_id is None else sender_id, text=text, **kwargs)
    return _make
