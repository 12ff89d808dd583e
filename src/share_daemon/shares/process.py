"""
Share process supervision.

A ShareProcess owns one worker OS process: its log sink, its IPC pipe and the
watch task that turns child activity into callbacks. The ShareSupervisor
creates records around those handles and drives their state machine.
"""

import asyncio
import json
import os
import signal
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from .models import ShareEvent, ShareRecord, merge_farmer_state
from .registry import ShareRegistry
from ..utils.config import SupervisorConfig
from ..utils.errors import NotRunningError
from ..utils.logging import get_logger
from ..worker.ipc import IPC_FD_ENV


logger = get_logger("share-daemon.process")

IPC_LINE_LIMIT = 1024 * 1024  # 1MB per status message

# Watch tasks outlive destroyed records; keep them referenced until done.
_watch_tasks: Set[asyncio.Task] = set()

MessageCallback = Callable[[Dict[str, Any]], None]
ExitCallback = Callable[[Optional[int]], None]
ErrorCallback = Callable[[BaseException], None]


class ShareProcess:
    """Handle for a single worker process."""

    def __init__(
        self,
        share_id: str,
        command: List[str],
        log_path: Path,
        on_message: MessageCallback,
        on_exit: ExitCallback,
        on_error: ErrorCallback
    ):
        self.share_id = share_id
        self.command = command
        self.log_path = log_path
        self.on_message = on_message
        self.on_exit = on_exit
        self.on_error = on_error
        self._process: Optional[asyncio.subprocess.Process] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._log_file = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def spawn(self) -> None:
        """
        Start the worker and its watch task.

        Raises:
            OSError: If the log sink, the IPC pipe or the process cannot be created
        """
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log_file = open(self.log_path, 'ab')
        try:
            read_fd, write_fd = os.pipe()
        except OSError:
            self._close_log()
            raise

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=self._log_file,
                stderr=asyncio.subprocess.STDOUT,
                pass_fds=(write_fd,),
                env={**os.environ, IPC_FD_ENV: str(write_fd)},
                start_new_session=True
            )
        except BaseException:
            os.close(read_fd)
            self._close_log()
            raise
        finally:
            os.close(write_fd)

        try:
            reader = await self._open_ipc_reader(read_fd)
        except BaseException as e:
            logger.error("share_ipc_attach_failed", share_id=self.share_id, error=str(e))
            self._close_log()
            self.interrupt()
            raise

        logger.info(
            "share_process_spawned",
            share_id=self.share_id,
            pid=self._process.pid,
            log_path=str(self.log_path)
        )
        self._watch_task = asyncio.create_task(self._watch(reader))
        _watch_tasks.add(self._watch_task)
        self._watch_task.add_done_callback(_watch_tasks.discard)

    async def _open_ipc_reader(self, read_fd: int) -> asyncio.StreamReader:
        """Attach a stream reader to the pipe; the fd is closed on failure."""
        try:
            pipe = os.fdopen(read_fd, 'rb', 0)
        except BaseException:
            os.close(read_fd)
            raise

        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=IPC_LINE_LIMIT)
        protocol = asyncio.StreamReaderProtocol(reader)
        try:
            await loop.connect_read_pipe(lambda: protocol, pipe)
        except BaseException:
            pipe.close()
            raise
        return reader

    async def _watch(self, reader: asyncio.StreamReader) -> None:
        try:
            await self._read_messages(reader)
            returncode = await self._process.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("share_process_fault", share_id=self.share_id, error=str(e))
            self.on_error(e)
            return
        finally:
            self._close_log()

        logger.info("share_process_exited", share_id=self.share_id, returncode=returncode)
        self.on_exit(returncode)

    async def _read_messages(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                logger.warning("ipc_message_too_large", share_id=self.share_id)
                continue
            if not line:
                return

            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                logger.warning("ipc_message_malformed", share_id=self.share_id)
                continue
            if isinstance(message, dict):
                self.on_message(message)
            else:
                logger.warning("ipc_message_not_object", share_id=self.share_id)

    def _close_log(self) -> None:
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None

    def interrupt(self) -> None:
        """Ask the worker to shut down gracefully."""
        if not self.running:
            return
        try:
            self._process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            pass
        logger.debug("share_process_interrupted", share_id=self.share_id, pid=self.pid)

    async def wait_closed(self, timeout: Optional[float] = None) -> None:
        """Wait until the watch task has delivered the exit event."""
        if self._watch_task is None:
            return
        await asyncio.wait_for(asyncio.shield(self._watch_task), timeout=timeout)


ProcessFactory = Callable[..., ShareProcess]


class ShareSupervisor:
    """Launches share processes and wires their events into records."""

    def __init__(
        self,
        registry: ShareRegistry,
        config: SupervisorConfig,
        process_factory: ProcessFactory = ShareProcess
    ):
        self.registry = registry
        self.config = config
        self.process_factory = process_factory

    def log_path_for(self, share_id: str, config: Dict[str, Any]) -> Path:
        output = config.get("loggerOutputFile")
        if output:
            return Path(output).expanduser()
        return Path(self.config.share_log_dir).expanduser() / f"{share_id}.log"

    async def launch(
        self,
        share_id: str,
        config: Dict[str, Any],
        config_path: Path,
        previous: Optional[ShareRecord] = None
    ) -> ShareRecord:
        """
        Spawn a worker for a validated config.

        A spawn failure still yields a record, in the ERRORED state with its
        handle kept for diagnostics.
        """
        record = ShareRecord(
            id=share_id,
            config_path=Path(config_path),
            config=config,
            log_path=self.log_path_for(share_id, config)
        )
        if previous is not None:
            record.meta.num_restarts = previous.meta.num_restarts + 1

        handle = self.process_factory(
            share_id,
            [*self.config.worker_command, "--config", str(config_path)],
            record.log_path,
            on_message=partial(merge_farmer_state, record),
            on_exit=partial(self._on_exit, record),
            on_error=partial(self._on_error, record)
        )
        record.process = handle

        try:
            await handle.spawn()
        except OSError as e:
            logger.error("share_spawn_failed", share_id=share_id, error=str(e))
            record.apply(ShareEvent.ERROR)
            return record

        record.apply(ShareEvent.LAUNCHED)
        return record

    def _on_exit(self, record: ShareRecord, returncode: Optional[int]) -> None:
        state = record.apply(ShareEvent.EXIT)
        logger.info("share_stopped", share_id=record.id, returncode=returncode, state=state.value)

    def _on_error(self, record: ShareRecord, error: BaseException) -> None:
        record.apply(ShareEvent.ERROR)
        logger.error("share_errored", share_id=record.id, error=str(error))

    async def stop(self, share_id: str) -> None:
        """Interrupt a share; its state changes when the exit arrives."""
        record = self.registry.get(share_id)
        if record is None:
            raise NotRunningError(share_id)
        if record.process is not None:
            record.process.interrupt()
        logger.info("share_stop_requested", share_id=share_id)

    async def destroy(self, share_id: str) -> None:
        """Interrupt a share and drop its record without waiting for exit."""
        record = self.registry.get(share_id)
        if record is None or record.process is None:
            raise NotRunningError(share_id)
        record.process.interrupt()
        record.process = None
        await self.registry.remove(share_id, record)
        logger.info("share_destroyed", share_id=share_id)


__all__ = [
    'ShareProcess',
    'ShareSupervisor',
    'IPC_FD_ENV',
]
