# mcp_bridge/mcp/core/tool_registry.py
"""
Tool Registry
=============
Central registry để quản lý tất cả MCP tools.
Tools được đăng ký tại đây (built-in lúc bootstrap, hoặc từ provider
discovery) và được expose theo channel scope.

Features:
- Register / update / remove với validation
- Channel-scope visibility queries
- Cascade removal theo provider
- Idempotent upsert cho discovered tools
- Cache các callable exports, invalidate khi tool thay đổi
"""

import time
import uuid
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

from mcp_bridge.core.constants import DEFAULT_TOOL_VERSION, INTERNAL_ENDPOINT_SCHEME
from mcp_bridge.core.logging import logger
from mcp_bridge.mcp.core.errors import NotFoundError, ValidationError
from mcp_bridge.mcp.core.locks import KeyedLock
from mcp_bridge.mcp.core.tool import Tool

# Accepted definition keys -> Tool field names
_FIELD_ALIASES = {
    "id": "id",
    "name": "name",
    "description": "description",
    "version": "version",
    "enabled": "enabled",
    "permissions": "permissions",
    "channels": "channels",
    "providerId": "provider_id",
    "provider_id": "provider_id",
    "endpoint": "endpoint",
    "inputSchema": "input_schema",
    "input_schema": "input_schema",
    "timeout": "timeout",
}

# Fields an update payload may not override
_IMMUTABLE_FIELDS = {"id", "provider_id"}

# Fields owned by the MCP server for discovered tools
_PROVIDER_OWNED_FIELDS = ("name", "input_schema")


def generate_tool_id() -> str:
    return f"tool_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _normalize(definition: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(definition, Mapping):
        raise ValidationError("Tool definition must be an object", field="$", reason="wrong type")

    values: Dict[str, Any] = {}
    for key, value in definition.items():
        field_name = _FIELD_ALIASES.get(key)
        if field_name:
            values[field_name] = value

    if "channels" in values:
        values["channels"] = _normalize_str_set("channels", values["channels"])
    if "permissions" in values:
        values["permissions"] = tuple(sorted(_normalize_str_set("permissions", values["permissions"])))
    return values


def _check_provider_owned(existing: Tool, values: Mapping[str, Any]) -> None:
    for field in _PROVIDER_OWNED_FIELDS:
        if field in values and values[field] != getattr(existing, field):
            raise ValidationError(
                "Discovered tools cannot be renamed or re-typed",
                field="inputSchema" if field == "input_schema" else field,
                reason="set by the MCP server"
            )


def _normalize_str_set(field: str, value: Any) -> frozenset:
    if value is None:
        return frozenset()
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ValidationError("Invalid tool definition", field=field, reason="expected a list of strings")
    items = list(value)
    if not all(isinstance(v, str) for v in items):
        raise ValidationError("Invalid tool definition", field=field, reason="expected a list of strings")
    return frozenset(items)


def _validate(values: Mapping[str, Any]) -> None:
    for field in ("name", "description"):
        value = values.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                "Tool name and description are required",
                field=field,
                reason="missing required field"
            )

    endpoint = values.get("endpoint")
    if endpoint is not None and not is_valid_endpoint(endpoint):
        raise ValidationError("Invalid tool endpoint URL", field="endpoint", reason="not a valid address")

    timeout = values.get("timeout")
    if timeout is not None and (
        isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
    ):
        raise ValidationError("Invalid tool definition", field="timeout", reason="expected a positive number")

    if not isinstance(values.get("enabled", True), bool):
        raise ValidationError("Invalid tool definition", field="enabled", reason="expected a boolean")

    schema = values.get("input_schema")
    if schema is not None and not isinstance(schema, Mapping):
        raise ValidationError("Invalid tool definition", field="inputSchema", reason="expected an object")


def is_valid_endpoint(endpoint: Any) -> bool:
    if not isinstance(endpoint, str) or not endpoint:
        return False
    if endpoint.startswith(INTERNAL_ENDPOINT_SCHEME):
        return len(endpoint) > len(INTERNAL_ENDPOINT_SCHEME)
    parsed = urlparse(endpoint)
    return bool(parsed.scheme and parsed.netloc)


class ToolRegistry:
    """
    Central registry cho MCP tools.

    Usage:
        registry = ToolRegistry()

        # Register a tool
        tool = await registry.register({
            "name": "web-search",
            "description": "Search the web for information",
            "endpoint": "internal://web-search",
        })

        # Tools visible in a channel
        tools = registry.list_for_channel("C123")

        # Disable a tool
        await registry.update(tool.id, {"enabled": False})
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}
        self._exports: Dict[str, Any] = {}
        self._locks = KeyedLock()

    async def register(self, definition: Mapping[str, Any]) -> Tool:
        """
        Register a tool from a definition.

        Args:
            definition: name, description (required), id, version, enabled,
                channels, permissions, providerId, endpoint, inputSchema, timeout

        Raises:
            ValidationError: name/description missing or a field is malformed
        """
        values = _normalize(definition)
        values.setdefault("id", None)
        if not values["id"]:
            values["id"] = generate_tool_id()
        if not values.get("version"):
            values["version"] = DEFAULT_TOOL_VERSION
        _validate(values)

        tool_id = values["id"]
        async with self._locks.hold(tool_id):
            if tool_id in self._tools:
                logger.warning(f"Tool '{tool_id}' is being re-registered")
            tool = Tool(**values)
            self._tools[tool_id] = tool
            self._exports.pop(tool_id, None)

        logger.info(f"Registered tool: {tool.name} [id={tool_id}, provider={tool.provider_id or 'internal'}]")
        return tool

    async def update(self, tool_id: str, changes: Mapping[str, Any]) -> Tool:
        """
        Merge changes over an existing tool.

        The identifier in the payload (if any) is ignored.

        Raises:
            NotFoundError: unknown tool id
            ValidationError: merged record is invalid
                or it renames a discovered tool or replaces its inputSchema
        """
        values = _normalize(changes)
        for field in _IMMUTABLE_FIELDS:
            values.pop(field, None)

        async with self._locks.hold(tool_id):
            existing = self._tools.get(tool_id)
            if existing is None:
                raise NotFoundError(f"Tool {tool_id} not found")

            if existing.provider_id:
                _check_provider_owned(existing, values)

            merged = {
                "name": existing.name,
                "description": existing.description,
                "endpoint": existing.endpoint,
                "timeout": existing.timeout,
                "enabled": existing.enabled,
                "input_schema": existing.input_schema,
            }
            merged.update(values)
            _validate(merged)

            if "version" in values and not values["version"]:
                values["version"] = existing.version

            updated = existing.with_changes(**values)
            self._tools[tool_id] = updated
            self._exports.pop(tool_id, None)

        logger.info(f"Updated tool: {tool_id} [{', '.join(sorted(values)) or 'no changes'}]")
        return updated

    async def remove(self, tool_id: str) -> None:
        """
        Remove a tool and release its cached exports.

        Raises:
            NotFoundError: unknown tool id
        """
        async with self._locks.hold(tool_id):
            if tool_id not in self._tools:
                raise NotFoundError(f"Tool {tool_id} not found")
            self._tools.pop(tool_id)
            self._exports.pop(tool_id, None)

        logger.info(f"Unregistered tool: {tool_id}")

    async def remove_by_provider(self, provider_id: str) -> List[str]:
        """Remove every tool owned by a provider. Built-ins are untouched."""
        tool_ids = [t.id for t in self.list_by_provider(provider_id)]
        async with AsyncExitStack() as stack:
            for tool_id in sorted(tool_ids):
                await stack.enter_async_context(self._locks.hold(tool_id))
            for tool_id in tool_ids:
                self._tools.pop(tool_id, None)
                self._exports.pop(tool_id, None)

        if tool_ids:
            logger.info(f"Removed {len(tool_ids)} tools of provider {provider_id}")
        return tool_ids

    async def replace_provider_tools(
        self,
        provider_id: str,
        definitions: Iterable[Mapping[str, Any]]
    ) -> List[Tool]:
        """
        Upsert discovered tool definitions for one provider.

        Tool id = `<provider_id>_<tool name>`. Re-running with the same
        definitions is idempotent. Admin-set enabled/channels/permissions
        survive rediscovery; tools the provider no longer lists are removed.
        """
        incoming: Dict[str, Tool] = {}
        for definition in definitions:
            name = definition.get("name") if isinstance(definition, Mapping) else None
            if not isinstance(name, str) or not name:
                logger.warning(f"Skipping discovered tool without a name from provider {provider_id}")
                continue
            input_schema = definition.get("inputSchema")
            tool_id = f"{provider_id}_{name}"
            incoming[tool_id] = Tool(
                id=tool_id,
                name=name,
                description=definition.get("description") or name,
                provider_id=provider_id,
                endpoint=f"mcp://{provider_id}",
                input_schema=input_schema if isinstance(input_schema, Mapping) else None,
            )

        stale = [t.id for t in self.list_by_provider(provider_id) if t.id not in incoming]

        async with AsyncExitStack() as stack:
            for tool_id in sorted(set(incoming) | set(stale)):
                await stack.enter_async_context(self._locks.hold(tool_id))

            for tool_id in stale:
                self._tools.pop(tool_id, None)
                self._exports.pop(tool_id, None)

            for tool_id, tool in incoming.items():
                existing = self._tools.get(tool_id)
                if existing is not None:
                    tool = tool.with_changes(
                        enabled=existing.enabled,
                        channels=existing.channels,
                        permissions=existing.permissions,
                        timeout=existing.timeout,
                        created_at=existing.created_at,
                    )
                self._tools[tool_id] = tool
                self._exports.pop(tool_id, None)
                incoming[tool_id] = tool

        logger.info(
            f"Provider {provider_id}: {len(incoming)} tools registered, {len(stale)} stale tools removed"
        )
        return list(incoming.values())

    def get(self, tool_id: str) -> Optional[Tool]:
        """Get tool by id"""
        return self._tools.get(tool_id)

    def get_by_name(self, name: str) -> Optional[Tool]:
        """First registered tool with this name"""
        for tool in self._tools.values():
            if tool.name == name:
                return tool
        return None

    def list_all(self) -> List[Tool]:
        """All tools, in insertion order"""
        return list(self._tools.values())

    def list_for_channel(self, channel_id: str) -> List[Tool]:
        """Enabled tools whose channel scope is empty or contains channel_id"""
        return [t for t in self._tools.values() if t.visible_in(channel_id)]

    def list_enabled(self) -> List[Tool]:
        return [t for t in self._tools.values() if t.enabled]

    def list_by_provider(self, provider_id: str) -> List[Tool]:
        return [t for t in self._tools.values() if t.provider_id == provider_id]

    def cached_export(self, tool_id: str, factory: Callable[[Tool], Any]) -> Any:
        """
        Return the cached export for a tool, building it on first use.

        The cache entry is dropped whenever the tool is updated, removed
        or rediscovered.
        """
        tool = self._tools.get(tool_id)
        if tool is None:
            raise NotFoundError(f"Tool {tool_id} not found")
        if tool_id not in self._exports:
            self._exports[tool_id] = factory(tool)
        return self._exports[tool_id]

    @property
    def count(self) -> int:
        """Number of registered tools"""
        return len(self._tools)

    @property
    def enabled_count(self) -> int:
        return len(self.list_enabled())

    def __contains__(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"<ToolRegistry: {self.count} tools, {self.enabled_count} enabled>"
