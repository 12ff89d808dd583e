"""
Share Daemon - supervisor for storage farming worker processes.

This package provides a daemon that manages storage farming shares with:
- Share config validation and node identity derivation
- Worker process supervision with IPC status reporting
- Snapshot based recovery of running shares
- A JSON-RPC control interface and command line client
"""

__version__ = "0.1.0"
__author__ = "Share Daemon Team"

__all__ = [
    '__version__',
]
