#!/usr/bin/env python3
"""
Share Daemon - Main entry point for python -m share_daemon
"""

from share_daemon.cli import main


if __name__ == "__main__":
    main()
