"""
Graceful shutdown handling for the share daemon.

This module provides:
- Signal handling (SIGTERM, SIGINT, SIGHUP)
- Ordered shutdown handlers with timeouts
- Unconditional process termination for killall
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import Callable, Awaitable, List, Optional

from .logging import get_logger


logger = get_logger("share-daemon.shutdown")

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)


def terminate_process(exit_code: int = 0) -> None:
    """Flush log handlers and exit the daemon without unwinding the loop."""
    logger.info("terminating_process", exit_code=exit_code, pid=os.getpid())
    logging.shutdown()
    os._exit(exit_code)


@dataclass
class ShutdownHandler:
    """Registered shutdown step."""
    name: str
    handler: Callable[[], Awaitable[None]]
    timeout: float = 30.0


class ShutdownCoordinator:
    """Runs registered shutdown handlers once, in registration order."""

    def __init__(self) -> None:
        self._handlers: List[ShutdownHandler] = []
        self._shutdown_event = asyncio.Event()
        self._shutdown_task: Optional[asyncio.Task] = None
        self._installed: List[int] = []

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_task is not None

    def register(
        self,
        name: str,
        handler: Callable[[], Awaitable[None]],
        timeout: float = 30.0
    ) -> None:
        """Register an async shutdown handler."""
        self._handlers.append(ShutdownHandler(name=name, handler=handler, timeout=timeout))
        logger.debug("shutdown_handler_registered", handler=name, timeout=timeout)

    def install_signal_handlers(self) -> None:
        """Route termination signals on the running loop to shutdown()."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self._on_signal, sig)
            self._installed.append(sig)
        logger.info("signal_handlers_installed")

    def remove_signal_handlers(self) -> None:
        """Restore default signal dispositions."""
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def _on_signal(self, signum: int) -> None:
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        self.trigger(reason=signal.Signals(signum).name)

    def trigger(self, reason: str = "requested") -> asyncio.Task:
        """Start shutdown in the background; repeated calls return the same task."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._run(reason))
        return self._shutdown_task

    async def shutdown(self, reason: str = "requested") -> None:
        """Run the shutdown sequence and wait for it to finish."""
        await self.trigger(reason)

    async def wait(self) -> None:
        """Block until a shutdown sequence has completed."""
        await self._shutdown_event.wait()

    async def _run(self, reason: str) -> None:
        logger.info("shutdown_initiated", reason=reason, handlers=len(self._handlers))
        for item in self._handlers:
            try:
                await asyncio.wait_for(item.handler(), timeout=item.timeout)
            except asyncio.TimeoutError:
                logger.error("shutdown_handler_timeout", handler=item.name, timeout=item.timeout)
            except Exception as e:
                logger.error(
                    "shutdown_handler_error",
                    handler=item.name,
                    error=str(e),
                    exc_info=True
                )
        self._shutdown_event.set()
        logger.info("shutdown_complete", reason=reason)


__all__ = [
    'ShutdownCoordinator',
    'ShutdownHandler',
    'terminate_process',
]
