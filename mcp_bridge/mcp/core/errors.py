# mcp_bridge/mcp/core/errors.py
"""
MCP Errors
==========
Error taxonomy cho tool orchestration layer.

Mỗi error mang một `kind` tag. Execution engine dùng tag này để
điền `ExecutionResult.error_kind`, còn API layer dùng nó để chọn
HTTP status code.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the core"""
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    DISABLED = "disabled"
    CONNECTION = "connection"
    UNSUPPORTED = "unsupported"
    EXECUTION = "execution"


class MCPBridgeError(Exception):
    """
    Base error.

    Attributes:
        message: Human-readable description
        details: Optional structured context (field, provider id, cause...)
    """
    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self):
        data = {"kind": self.kind.value, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class NotFoundError(MCPBridgeError):
    """Unknown tool or provider identifier"""
    kind = ErrorKind.NOT_FOUND


class ValidationError(MCPBridgeError):
    """
    Input or definition failed validation.

    Example:
        ValidationError("Invalid tool input", field="action",
                        reason="value outside declared enum")
    """
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None,
                 reason: Optional[str] = None, errors: Optional[list] = None):
        self.field = field
        self.reason = reason
        self.errors = errors or ([{"field": field, "reason": reason}] if field else [])
        super().__init__(message, details=self.errors or None)

    def __str__(self) -> str:
        if self.field and self.reason:
            return f"{self.message}: {self.field}: {self.reason}"
        return self.message


class DisabledError(MCPBridgeError):
    """Operation attempted on a disabled tool or provider"""
    kind = ErrorKind.DISABLED


class ProviderConnectionError(MCPBridgeError):
    """Reachability probe or discovery transport failure"""
    kind = ErrorKind.CONNECTION

    def __init__(self, message: str, provider_id: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        self.provider_id = provider_id
        self.cause = cause
        super().__init__(message, details={"provider_id": provider_id} if provider_id else None)


class UnsupportedOperationError(MCPBridgeError):
    """Connection type cannot carry the requested operation"""
    kind = ErrorKind.UNSUPPORTED


class ExecutionError(MCPBridgeError):
    """Tool invocation failed at the provider or internally"""
    kind = ErrorKind.EXECUTION
    timed_out = False

    def __init__(self, message: str, tool_id: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        self.tool_id = tool_id
        self.cause = cause
        super().__init__(message, details={"tool_id": tool_id} if tool_id else None)


class ToolTimeoutError(ExecutionError):
    """A provider call exceeded its timeout"""
    timed_out = True
