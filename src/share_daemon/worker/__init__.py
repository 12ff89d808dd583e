"""Helpers for worker programs supervised by the share daemon."""

from .ipc import IPCReporter

__all__ = [
    "IPCReporter",
]
