"""
Share configuration loading pipeline.

Each stage short-circuits on failure:

1. read the file
2. parse it (JSON, or YAML/TOML by suffix)
3. run the field validator
4. derive the node id from the network private key
5. reserve the id in the registry
6. run the asynchronous allocation validator
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Union

import aiofiles
import toml
import yaml

from .registry import Reservation, ShareRegistry
from ..identity import derive_node_id
from ..utils.errors import (
    AllocationError, ConfigParseError, ConfigReadError, ErrorContext,
    ShareDaemonError, ValidationError
)
from ..utils.logging import get_logger
from ..utils.validators import validate_allocation, validate_share_config


logger = get_logger("share-daemon.config-loader")

FieldValidator = Callable[[Dict[str, Any]], None]
AllocationValidator = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class LoadedShareConfig:
    """A validated share config with its id reserved in the registry."""
    config: Dict[str, Any]
    share_id: str
    path: Path
    reservation: Reservation


def _lower_first(message: str) -> str:
    return message[:1].lower() + message[1:]


class ShareConfigLoader:
    """Reads and validates share configuration files."""

    def __init__(
        self,
        registry: ShareRegistry,
        validate: FieldValidator = validate_share_config,
        validate_allocation: AllocationValidator = validate_allocation
    ):
        self.registry = registry
        self.validate = validate
        self.validate_allocation = validate_allocation

    async def load(self, path: Union[str, Path]) -> LoadedShareConfig:
        """
        Run the pipeline for one config file.

        On success the caller owns the returned reservation and must either
        insert a record with it or release it.
        """
        source = path
        path = Path(path).expanduser().resolve()

        try:
            async with aiofiles.open(path, 'r') as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigReadError(source, cause=e) from e

        config = self._parse(path, content, source)

        try:
            self.validate(config)
        except ShareDaemonError:
            raise
        except Exception as e:
            raise ValidationError(str(e), cause=e) from e

        try:
            share_id = derive_node_id(config.get("networkPrivateKey"))
        except ValueError as e:
            raise ValidationError(str(e), field="networkPrivateKey", cause=e) from e
        reservation = await self.registry.reserve(share_id)

        try:
            # TODO: bound the allocation check with a timeout; a validator that
            # never returns stalls this start indefinitely.
            await self.validate_allocation(config)
        except Exception as e:
            reservation.release()
            raise AllocationError(
                _lower_first(getattr(e, "message", None) or str(e)),
                context=ErrorContext(share_id=share_id, operation="validate_allocation"),
                cause=e
            ) from e
        except BaseException:
            reservation.release()
            raise

        logger.info("share_config_loaded", share_id=share_id, path=str(path))
        return LoadedShareConfig(
            config=config,
            share_id=share_id,
            path=path,
            reservation=reservation
        )

    def _parse(self, path: Path, content: str, source: Union[str, Path]) -> Dict[str, Any]:
        """Parse by suffix of the resolved path; errors name the path as given."""
        suffix = path.suffix.lower()
        try:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content)
            elif suffix == ".toml":
                data = toml.loads(content)
            else:
                data = json.loads(content)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigParseError(source, cause=e) from e

        if not isinstance(data, dict):
            raise ConfigParseError(source)
        return data


__all__ = [
    'ShareConfigLoader',
    'LoadedShareConfig',
]
