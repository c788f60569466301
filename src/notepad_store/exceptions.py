"""Custom exceptions for the notepad store.

Provides a structured exception hierarchy with error codes and
machine-readable error information for the boundary layer.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Lookup errors (1xxx)
    NODE_NOT_FOUND = 1001

    # Conflict errors (2xxx)
    NAME_CONFLICT = 2001
    NODE_DELETED = 2002

    # Argument errors (3xxx)
    INVALID_ARGUMENT = 3001
    TITLE_REQUIRED = 3002
    INVALID_PARENT = 3003
    CYCLE_DETECTED = 3004
    PATH_REQUIRED = 3005
    UNSUPPORTED_ENCODING = 3006

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    INTEGRITY_REPAIR_FAILED = 4005

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


class NotepadError(Exception):
    """Base exception for all notepad store errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_ARGUMENT,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NotFoundError(NotepadError):
    """Raised when a node is absent or soft-deleted."""

    def __init__(self, node_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Node with ID '{node_id}' not found",
            code=ErrorCode.NODE_NOT_FOUND,
            details={"node_id": node_id}
        )
        self.node_id = node_id


class ConflictError(NotepadError):
    """Raised on a sibling name collision or an edit to a deleted node."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        title: Optional[str] = None,
        code: ErrorCode = ErrorCode.NAME_CONFLICT
    ):
        details = {}
        if node_id:
            details["node_id"] = node_id
        if parent_id is not None:
            details["parent_id"] = parent_id
        if title is not None:
            details["title"] = title[:100]

        super().__init__(message, code=code, details=details)
        self.node_id = node_id
        self.parent_id = parent_id
        self.title = title


class InvalidArgumentError(NotepadError):
    """Raised for malformed input coming from the boundary layer."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.INVALID_ARGUMENT
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(NotepadError):
    """Raised when the storage engine fails (I/O, constraint, transaction)."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.replace("\\", "/").split("/")[-1]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ConfigurationError(NotepadError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
