"""
Error handling framework for the share daemon.

This module provides:
- A hierarchical exception tree rooted at ShareDaemonError
- Error context preservation
- Structured error payloads for the RPC transport
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    SYSTEM = "system"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    PROCESS = "process"
    STORAGE = "storage"
    PROTOCOL = "protocol"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    share_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ShareDaemonError(Exception):
    """Base exception for all share daemon errors."""

    code: str = "SHARE_DAEMON_ERROR"
    default_message: str = "An error occurred in the share daemon"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ):
        """Initialize share daemon error."""
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "suggestions": self.get_suggestions(),
            "context": {
                "timestamp": self.context.timestamp.isoformat(),
                "share_id": self.context.share_id,
                "component": self.context.component,
                "operation": self.context.operation,
                "metadata": self.context.metadata,
            },
        }


# Daemon configuration

class ConfigurationError(ShareDaemonError):
    """Daemon configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Ensure all required configuration values are set",
        ]


# Share configuration pipeline

class ShareConfigError(ShareDaemonError):
    """Base class for failures while loading a share configuration."""
    code = "SHARE_CONFIG_ERROR"
    default_message = "Share configuration error"
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.WARNING


class ConfigReadError(ShareConfigError):
    """Share config file is missing or inaccessible."""
    code = "CONFIG_READ_ERROR"

    def __init__(self, path: Any, **kwargs):
        self.path = str(path)
        super().__init__(f"failed to read config at {path}", **kwargs)

    def get_suggestions(self) -> List[str]:
        return [f"Verify that {self.path} exists and is readable"]


class ConfigParseError(ShareConfigError):
    """Share config file is not valid structured data."""
    code = "CONFIG_PARSE_ERROR"

    def __init__(self, path: Any, **kwargs):
        self.path = str(path)
        super().__init__(f"failed to parse config at {path}", **kwargs)


class ValidationError(ShareConfigError):
    """A required share config field failed semantic validation."""
    code = "VALIDATION_ERROR"
    default_message = "invalid share configuration"
    category = ErrorCategory.VALIDATION

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None, **kwargs):
        self.field = field
        super().__init__(message, **kwargs)


class AllocationError(ShareConfigError):
    """Storage allocation was rejected by the allocation validator."""
    code = "ALLOCATION_ERROR"
    default_message = "invalid storage allocation"
    category = ErrorCategory.VALIDATION


# Share lifecycle

class DuplicateShareError(ShareDaemonError):
    """A share with the same id is already active."""
    code = "DUPLICATE_SHARE"
    category = ErrorCategory.PROCESS
    severity = ErrorSeverity.WARNING

    def __init__(self, share_id: str, **kwargs):
        self.share_id = share_id
        super().__init__(f"share {share_id} is already running", **kwargs)


class NotRunningError(ShareDaemonError):
    """stop/destroy targeted a share that is absent or has no process."""
    code = "SHARE_NOT_RUNNING"
    category = ErrorCategory.PROCESS
    severity = ErrorSeverity.WARNING

    def __init__(self, share_id: str, **kwargs):
        self.share_id = share_id
        super().__init__(f"share {share_id} is not running", **kwargs)


# Snapshots

class SnapshotError(ShareDaemonError):
    """Base class for snapshot persistence failures."""
    code = "SNAPSHOT_ERROR"
    default_message = "Snapshot error"
    category = ErrorCategory.STORAGE


class SnapshotReadError(SnapshotError):
    """Snapshot file could not be read."""
    code = "SNAPSHOT_READ_ERROR"

    def __init__(self, reason: str, **kwargs):
        self.reason = reason
        super().__init__(f"failed to read snapshot, reason: {reason}", **kwargs)


class SnapshotParseError(SnapshotError):
    """Snapshot file is not a valid snapshot document."""
    code = "SNAPSHOT_PARSE_ERROR"
    default_message = "failed to parse snapshot"


class SnapshotWriteError(SnapshotError):
    """Snapshot file could not be written."""
    code = "SNAPSHOT_WRITE_ERROR"

    def __init__(self, reason: str, **kwargs):
        self.reason = reason
        super().__init__(f"failed to write snapshot, reason: {reason}", **kwargs)


# RPC boundary

class RPCError(ShareDaemonError):
    """Malformed request at the RPC boundary."""
    code = "RPC_ERROR"
    default_message = "Invalid request"
    category = ErrorCategory.PROTOCOL


class MethodNotFoundError(RPCError):
    """Requested method is not part of the method table."""
    code = "METHOD_NOT_FOUND"

    def __init__(self, method: str, **kwargs):
        self.method = method
        super().__init__(f"method {method} does not exist", **kwargs)


class RemoteCallError(RPCError):
    """The daemon answered a call with a JSON-RPC error."""
    code = "REMOTE_CALL_ERROR"

    def __init__(self, message: str, rpc_code: int, data: Optional[Dict[str, Any]] = None, **kwargs):
        self.rpc_code = rpc_code
        self.data = data or {}
        super().__init__(message, **kwargs)


class InternalError(ShareDaemonError):
    """Unexpected failure wrapped at the RPC boundary."""
    code = "INTERNAL_ERROR"
    default_message = "Internal daemon error"
    category = ErrorCategory.INTERNAL
    severity = ErrorSeverity.CRITICAL


__all__ = [
    'ShareDaemonError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'ShareConfigError',
    'ConfigReadError',
    'ConfigParseError',
    'ValidationError',
    'AllocationError',
    'DuplicateShareError',
    'NotRunningError',
    'SnapshotError',
    'SnapshotReadError',
    'SnapshotParseError',
    'SnapshotWriteError',
    'RPCError',
    'MethodNotFoundError',
    'RemoteCallError',
    'InternalError',
]
