# mcp_bridge/mcp/core/tool.py
"""
Tool Definition
===============
Định nghĩa cấu trúc chuẩn cho các MCP tools.
Mỗi tool có:
- id: immutable identifier
- name, description: hiển thị cho LLM và admin
- signature: validated call signature (từ Schema Translator)
- channels: channel scope, rỗng = mọi channel
- provider_id: provider sở hữu tool, None = built-in
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

from mcp_bridge.core.constants import DEFAULT_TOOL_VERSION, INTERNAL_ENDPOINT_SCHEME
from mcp_bridge.mcp.core.errors import ErrorKind
from mcp_bridge.mcp.core.schema import ValidatedSignature, translate


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Tool:
    """
    Một callable capability trong registry.

    Instances are immutable; registry updates swap in a new record via
    `with_changes()` so readers never observe a half-applied update.
    """
    id: str
    name: str
    description: str
    version: str = DEFAULT_TOOL_VERSION
    enabled: bool = True
    permissions: Tuple[str, ...] = ()
    channels: FrozenSet[str] = frozenset()
    provider_id: Optional[str] = None
    endpoint: Optional[str] = None
    input_schema: Optional[Dict[str, Any]] = None
    timeout: Optional[float] = None
    signature: ValidatedSignature = field(default=None, compare=False, repr=False)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.signature is None:
            object.__setattr__(self, "signature", translate(self.input_schema, name=_model_name(self.name)))

    @property
    def is_internal(self) -> bool:
        """Built-in tools have no provider"""
        return self.provider_id is None

    @property
    def handler_name(self) -> Optional[str]:
        """Built-in handler key from an `internal://<name>` endpoint"""
        if self.endpoint and self.endpoint.startswith(INTERNAL_ENDPOINT_SCHEME):
            return self.endpoint[len(INTERNAL_ENDPOINT_SCHEME):]
        return None

    def visible_in(self, channel_id: str) -> bool:
        return self.enabled and (not self.channels or channel_id in self.channels)

    def with_changes(self, **changes) -> "Tool":
        if "input_schema" in changes or "name" in changes:
            changes.setdefault("signature", None)
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "enabled": self.enabled,
            "permissions": list(self.permissions),
            "channels": sorted(self.channels),
            "providerId": self.provider_id,
            "endpoint": self.endpoint,
            "inputSchema": self.input_schema,
            "timeout": self.timeout,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<Tool: {self.id} ({self.name})>"


def _model_name(tool_name: str) -> str:
    base = "".join(ch if ch.isalnum() else "_" for ch in (tool_name or "tool"))
    return f"{base}Input"


@dataclass
class ExecutionResult:
    """
    Kết quả trả về từ tool execution.

    Attributes:
        tool_id: Tool đã được gọi
        success: True nếu tool chạy thành công
        output: Dữ liệu trả về (opaque)
        error_kind: Loại lỗi nếu có
        message: Error message nếu có lỗi
        timed_out: True nếu lỗi do hết timeout
        duration_ms: Wall-clock từ dispatch đến khi xong
    """
    tool_id: str
    success: bool
    output: Any = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    timed_out: bool = False
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, tool_id: str, output: Any, duration_ms: float = 0.0) -> "ExecutionResult":
        return cls(tool_id=tool_id, success=True, output=output, duration_ms=duration_ms)

    @classmethod
    def fail(cls, tool_id: str, kind: ErrorKind, message: str,
             timed_out: bool = False, duration_ms: float = 0.0) -> "ExecutionResult":
        return cls(
            tool_id=tool_id,
            success=False,
            error_kind=kind,
            message=message,
            timed_out=timed_out,
            duration_ms=duration_ms
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"toolId": self.tool_id, "success": True, "output": self.output,
                    "durationMs": self.duration_ms}
        return {
            "toolId": self.tool_id,
            "success": False,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "timedOut": self.timed_out,
            "durationMs": self.duration_ms
        }


@dataclass(frozen=True)
class ToolExecution:
    """Immutable audit record of one invocation attempt"""
    tool_id: str
    input: Dict[str, Any]
    output: Any
    success: bool
    error: Optional[str]
    execution_time_ms: float
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def from_result(cls, tool_input: Dict[str, Any], result: ExecutionResult) -> "ToolExecution":
        return cls(
            tool_id=result.tool_id,
            input=tool_input,
            output=result.output,
            success=result.success,
            error=result.message,
            execution_time_ms=result.duration_ms
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolId": self.tool_id,
            "input": self.input,
            "output": self.output,
            "success": self.success,
            "error": self.error,
            "executionTime": self.execution_time_ms,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass(frozen=True)
class ToolFunction:
    """
    Tool exposed to the model-invocation layer.

    `invoke(input)` never raises; it returns an ExecutionResult.
    """
    name: str
    description: str
    signature: ValidatedSignature
    invoke: Callable[[Dict[str, Any]], Awaitable[ExecutionResult]]

    @property
    def parameters(self) -> Dict[str, Any]:
        return self.signature.to_json_schema()
