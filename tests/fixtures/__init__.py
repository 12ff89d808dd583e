"""
Test fixtures for the share daemon.

Provides reusable share configs and fake worker processes.
"""

from .share_fixtures import (
    ShareFixtures,
    FakeShareProcess,
    FakeProcessFactory,
    PRIVATE_KEY,
    NODE_ID,
)

__all__ = [
    "ShareFixtures",
    "FakeShareProcess",
    "FakeProcessFactory",
    "PRIVATE_KEY",
    "NODE_ID",
]
