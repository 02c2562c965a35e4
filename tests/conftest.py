"""
Pytest configuration and fixtures for Commandless tests.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep test log files out of the working tree; must be set before any
# commandless module creates its loggers.
os.environ.setdefault("COMMANDLESS_LOG_DIR", tempfile.mkdtemp(prefix="commandless-logs-"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def make_config_payload(**overrides):
    """Full camelCase config body as served by the relay."""
    payload = {
        "version": 1,
        "enabled": True,
        "channelMode": "all",
        "enabledChannels": [],
        "disabledChannels": [],
        "permissionMode": "all",
        "enabledRoles": [],
        "disabledRoles": [],
        "enabledUsers": [],
        "disabledUsers": [],
        "premiumRoleIds": [],
        "premiumUserIds": [],
        "enabledCommandCategories": ["moderation", "utility"],
        "disabledCommands": [],
        "commandMode": "all",
        "mentionRequired": True,
        "customPrefix": None,
        "triggerMode": "mention",
        "freeRateLimit": 10,
        "premiumRateLimit": 50,
        "serverRateLimit": 100,
        "confidenceThreshold": 0.7,
        "requireConfirmation": False,
        "dangerousCommands": ["ban"],
        "responseStyle": "friendly",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def config_payload():
    return make_config_payload
