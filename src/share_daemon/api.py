"""
Share daemon RPC surface.

ShareDaemon ties the config loader, registry, supervisor and snapshot store
together and exposes its operations through ``methods``, a fixed mapping of
name to coroutine that never raises: every call resolves to an RPCResult.
"""

import asyncio
import functools
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .shares.config_loader import ShareConfigLoader
from .shares.process import ShareProcess, ShareSupervisor
from .shares.registry import ShareRegistry
from .shares.snapshot import SnapshotStore
from .utils.config import DaemonConfig
from .utils.errors import InternalError, NotRunningError, ShareDaemonError
from .utils.logging import get_logger, log_function_call
from .utils.shutdown import terminate_process
from .utils.validators import validate_allocation, validate_share_config


logger = get_logger("share-daemon.api")

RESTART_ALL = "*"


@dataclass
class RPCResult:
    """Outcome of a method table call: exactly one of error or result."""
    error: Optional[ShareDaemonError] = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ShareDaemon:
    """Supervisor for storage farming shares."""

    def __init__(
        self,
        config: Optional[DaemonConfig] = None,
        process_factory: Callable[..., ShareProcess] = ShareProcess,
        validate: Callable[[Dict[str, Any]], None] = validate_share_config,
        validate_allocation: Callable = validate_allocation,
        exit_hook: Callable[[], None] = terminate_process
    ):
        self.config = config or DaemonConfig()
        self.registry = ShareRegistry()
        self.loader = ShareConfigLoader(
            self.registry,
            validate=validate,
            validate_allocation=validate_allocation
        )
        self.supervisor = ShareSupervisor(
            self.registry,
            self.config.supervisor,
            process_factory=process_factory
        )
        self.snapshots = SnapshotStore()
        self.exit_hook = exit_hook

        self.methods: Mapping[str, Callable[..., Any]] = MappingProxyType({
            name: self._expose(name, getattr(self, name))
            for name in (
                "start", "stop", "restart", "destroy",
                "status", "killall", "save", "load",
            )
        })

    def _expose(self, name: str, operation: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(operation)
        async def call(*args, **kwargs) -> RPCResult:
            try:
                result = await operation(*args, **kwargs)
            except ShareDaemonError as e:
                logger.warning("rpc_call_failed", method=name, code=e.code, error=e.message)
                return RPCResult(error=e)
            except Exception as e:
                logger.error("rpc_call_crashed", method=name, error=str(e), exc_info=True)
                return RPCResult(error=InternalError(str(e) or None, cause=e))
            return RPCResult(result=result)

        return call

    @log_function_call(logger, expected=(ShareDaemonError,))
    async def start(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """Validate a share config and launch its worker."""
        loaded = await self.loader.load(config_path)
        previous = self.registry.get(loaded.share_id)
        try:
            record = await self.supervisor.launch(
                loaded.share_id,
                loaded.config,
                loaded.path,
                previous=previous
            )
            await self.registry.insert(record, loaded.reservation)
        finally:
            loaded.reservation.release()
        return record.to_status()

    async def stop(self, share_id: str) -> None:
        """Interrupt a share; it is marked stopped once the worker exits."""
        await self.supervisor.stop(share_id)

    async def destroy(self, share_id: str) -> None:
        """Interrupt a share and remove it from the registry."""
        await self.supervisor.destroy(share_id)

    @log_function_call(logger, expected=(ShareDaemonError,))
    async def restart(self, share_id: str) -> None:
        """Restart one share, or every share for ``*``."""
        if share_id != RESTART_ALL:
            await self._restart_one(share_id)
            return

        results = await asyncio.gather(
            *(self._restart_one(i) for i in self.registry.ids()),
            return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise errors[0]

    async def _restart_one(self, share_id: str) -> None:
        record = self.registry.get(share_id)
        if record is None:
            raise NotRunningError(share_id)

        await self.supervisor.stop(share_id)
        if record.process is not None:
            try:
                await record.process.wait_closed(
                    timeout=self.config.supervisor.restart_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "restart_exit_timeout",
                    share_id=share_id,
                    timeout=self.config.supervisor.restart_timeout
                )
        await self.start(record.config_path)

    async def status(self) -> List[Dict[str, Any]]:
        """Report every share in the registry."""
        return [record.to_status() for record in self.registry.records()]

    async def killall(self, callback: Optional[Callable[[], None]] = None) -> None:
        """Destroy every share, then terminate the daemon after a grace period."""
        await self._destroy_all()
        try:
            if callback is not None:
                callback()
        finally:
            delay = self.config.supervisor.kill_grace_period
            logger.warning("daemon_exit_scheduled", delay=delay)
            asyncio.get_running_loop().call_later(delay, self.exit_hook)

    async def save(self, path: Optional[Union[str, Path]] = None) -> List[Dict[str, Any]]:
        """Write a snapshot of the running shares."""
        entries = await self.snapshots.save(
            path or self.config.supervisor.snapshot_path,
            self.registry.records()
        )
        return [e.to_dict() for e in entries]

    async def load(self, path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """Start every share recorded in a snapshot, continuing past failures."""
        entries = await self.snapshots.load(path or self.config.supervisor.snapshot_path)

        started: List[str] = []
        failed: Dict[str, str] = {}
        for entry in entries:
            try:
                status = await self.start(entry.path)
            except ShareDaemonError as e:
                logger.warning("snapshot_entry_failed", path=entry.path, error=e.message)
                failed[entry.path] = e.message
            else:
                started.append(status["id"])

        return {"started": started, "failed": failed}

    async def shutdown(self) -> None:
        """Interrupt every share without terminating the daemon."""
        await self._destroy_all()

    async def _destroy_all(self) -> None:
        results = await asyncio.gather(
            *(self.supervisor.destroy(i) for i in self.registry.ids()),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("destroy_failed", error=str(result))


__all__ = [
    'ShareDaemon',
    'RPCResult',
    'RESTART_ALL',
]
