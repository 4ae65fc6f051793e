# mcp_bridge/mcp/core/provider_registry.py
"""
Provider Registry
=================
Central registry để quản lý tất cả MCP servers (providers).
Mỗi provider có state machine riêng:

    disconnected --connect+discover OK--> connected
    disconnected --any failure----------> error

Features:
- Best-effort add: provider record luôn được tạo, kể cả khi connect fail
- Reconnect + rediscover khi endpoint / credential / connection type đổi
- Cascade removal của tools khi xóa provider
- refresh_all(): concurrent discovery, mỗi provider là một failure domain
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from pydantic import SecretStr

from mcp_bridge.core.logging import logger
from mcp_bridge.mcp.core.errors import (
    MCPBridgeError,
    NotFoundError,
    ProviderConnectionError,
    ValidationError,
)
from mcp_bridge.mcp.core.locks import KeyedLock
from mcp_bridge.mcp.core.mcp_client import MCPClient
from mcp_bridge.mcp.core.provider import ConnectionStatus, ConnectionType, Provider
from mcp_bridge.mcp.core.tool import utcnow
from mcp_bridge.mcp.core.tool_registry import ToolRegistry

# Changing any of these triggers reconnect + rediscovery
_CONNECTION_FIELDS = ("endpoint", "api_key", "connection_type")

_FIELD_ALIASES = {
    "name": "name",
    "description": "description",
    "endpoint": "endpoint",
    "apiKey": "api_key",
    "api_key": "api_key",
    "connectionType": "connection_type",
    "connection_type": "connection_type",
    "enabled": "enabled",
}

_ENDPOINT_SCHEMES = {
    ConnectionType.HTTP: ("http", "https"),
    ConnectionType.WEBSOCKET: ("ws", "wss"),
}


def generate_provider_id() -> str:
    return f"server_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _normalize(spec: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(spec, Mapping):
        raise ValidationError("Provider definition must be an object", field="$", reason="wrong type")

    values: Dict[str, Any] = {}
    for key, value in spec.items():
        field_name = _FIELD_ALIASES.get(key)
        if field_name:
            values[field_name] = value

    if "connection_type" in values:
        raw = values["connection_type"] or ConnectionType.HTTP.value
        try:
            values["connection_type"] = ConnectionType(raw)
        except ValueError:
            raise ValidationError(
                "Invalid provider definition",
                field="connectionType",
                reason=f"expected one of {[t.value for t in ConnectionType]}"
            )

    if "api_key" in values:
        key = values["api_key"]
        if isinstance(key, SecretStr):
            key = key.get_secret_value()
        if key is not None and not isinstance(key, str):
            raise ValidationError("Invalid provider definition", field="apiKey", reason="expected a string")
        values["api_key"] = SecretStr(key) if key else None

    if "enabled" in values and not isinstance(values["enabled"], bool):
        raise ValidationError("Invalid provider definition", field="enabled", reason="expected a boolean")

    if "description" in values and values["description"] is None:
        values["description"] = ""

    return values


def _validate(values: Mapping[str, Any]) -> None:
    name = values.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name and endpoint are required", field="name", reason="missing required field")

    endpoint = values.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ValidationError("Name and endpoint are required", field="endpoint", reason="missing required field")

    connection_type = values.get("connection_type", ConnectionType.HTTP)
    schemes = _ENDPOINT_SCHEMES.get(connection_type)
    if schemes is not None:
        parsed = urlparse(endpoint)
        if parsed.scheme not in schemes or not parsed.netloc:
            raise ValidationError(
                "Invalid provider endpoint",
                field="endpoint",
                reason=f"expected a {'/'.join(schemes)} URL"
            )


class ProviderRegistry:
    """
    Central registry cho MCP providers.

    Usage:
        registry = ProviderRegistry(tool_registry, MCPClient())

        # Add a provider (connect + discover immediately)
        provider = await registry.add({
            "name": "search",
            "endpoint": "https://mcp.example.com/rpc",
        })

        # Rediscover one provider
        definitions = await registry.discover(provider.id)

        # Rediscover everything, concurrently
        results = await registry.refresh_all()
    """

    def __init__(self, tool_registry: ToolRegistry, client: MCPClient):
        self._tool_registry = tool_registry
        self._client = client
        self._providers: Dict[str, Provider] = {}
        self._locks = KeyedLock()

    @property
    def client(self) -> MCPClient:
        return self._client

    # --- Lifecycle ---

    async def add(self, spec: Mapping[str, Any]) -> Provider:
        """
        Create a provider record and immediately connect + discover.

        A failed connect or discovery still creates the record, in
        `error` status with the cause recorded, so it can be inspected
        and retried.

        Raises:
            ValidationError: name or endpoint missing/invalid (no record created)
        """
        values = _normalize(spec)
        values.setdefault("connection_type", ConnectionType.HTTP)
        _validate(values)

        provider = Provider(id=generate_provider_id(), **values)

        async with self._locks.hold(provider.id):
            self._providers[provider.id] = provider
            logger.info(f"Registered provider: {provider.name} [id={provider.id}]")
            provider = await self._connect_and_discover(provider)

        return provider

    async def update(self, provider_id: str, changes: Mapping[str, Any]) -> Provider:
        """
        Apply changes; reconnect + rediscover if connection details changed.

        Raises:
            NotFoundError: unknown provider id
            ValidationError: merged record is invalid
        """
        values = _normalize(changes)

        async with self._locks.hold(provider_id):
            existing = self._require(provider_id)

            merged = {
                "name": existing.name,
                "endpoint": existing.endpoint,
                "connection_type": existing.connection_type,
            }
            merged.update(values)
            _validate(merged)

            reconnect = any(
                field in values and values[field] != getattr(existing, field)
                for field in _CONNECTION_FIELDS
            )

            updated = existing.with_changes(**values)
            self._providers[provider_id] = updated
            logger.info(f"Updated provider: {provider_id} [{', '.join(sorted(values)) or 'no changes'}]")

            if reconnect:
                updated = await self._connect_and_discover(updated, drop_tools_on_failure=True)

        return updated

    async def remove(self, provider_id: str) -> None:
        """
        Remove a provider and every tool it owns.

        Raises:
            NotFoundError: unknown provider id
        """
        async with self._locks.hold(provider_id):
            provider = self._require(provider_id)
            removed = await self._tool_registry.remove_by_provider(provider_id)
            self._providers.pop(provider_id, None)

        logger.info(f"Unregistered provider: {provider.name} [id={provider_id}, {len(removed)} tools removed]")

    # --- Discovery ---

    async def discover(self, provider_id: str) -> List[Dict[str, Any]]:
        """
        One discovery round-trip (`tools/list`) for a provider.

        Updates last discovery timestamp and connection status on both
        paths, then upserts the discovered tools.

        Raises:
            NotFoundError: unknown provider id
            ProviderConnectionError: transport failure or error reply
            UnsupportedOperationError: connection type not implemented
        """
        async with self._locks.hold(provider_id):
            provider = self._require(provider_id)
            return await self._discover_locked(provider)

    async def refresh_all(self) -> Dict[str, bool]:
        """
        Rediscover all enabled providers concurrently.

        A single provider's failure never aborts the others.

        Returns:
            Dict mapping provider id to discovery success
        """
        providers = [p for p in self._providers.values() if p.enabled]

        async def _refresh(provider: Provider) -> bool:
            try:
                await self.discover(provider.id)
                return True
            except NotFoundError:
                # Removed while the refresh was in flight
                return False
            except MCPBridgeError as e:
                logger.error(f"Failed to refresh MCP server {provider.name}: {e}")
                return False

        outcomes = await asyncio.gather(*(_refresh(p) for p in providers))
        results = {p.id: ok for p, ok in zip(providers, outcomes)}
        logger.info(f"Refreshed {len(results)} providers, {sum(results.values())} succeeded")
        return results

    async def _connect_and_discover(
        self,
        provider: Provider,
        drop_tools_on_failure: bool = False
    ) -> Provider:
        try:
            await self._client.probe(provider)
            await self._discover_locked(provider)
        except MCPBridgeError as e:
            logger.error(f"Failed to connect to MCP server {provider.name}: {e}")
            if drop_tools_on_failure:
                await self._tool_registry.remove_by_provider(provider.id)
            current = self._providers.get(provider.id, provider)
            failed = current.with_changes(
                connection_status=ConnectionStatus.ERROR,
                last_error=e.message or "Connection failed",
                discovered_tools=()
            )
            self._providers[provider.id] = failed
            return failed

        return self._providers[provider.id]

    async def _discover_locked(self, provider: Provider) -> List[Dict[str, Any]]:
        try:
            definitions = await self._client.list_tools(provider)
        except MCPBridgeError as e:
            prefix = "" if isinstance(e, ProviderConnectionError) else "Tool discovery failed: "
            self._providers[provider.id] = provider.with_changes(
                connection_status=ConnectionStatus.ERROR,
                last_error=f"{prefix}{e.message}",
                last_discovery=utcnow()
            )
            raise

        await self._tool_registry.replace_provider_tools(provider.id, definitions)
        self._providers[provider.id] = provider.with_changes(
            connection_status=ConnectionStatus.CONNECTED,
            last_error=None,
            discovered_tools=tuple(definitions),
            last_discovery=utcnow()
        )
        logger.info(f"Discovered {len(definitions)} tools from {provider.name}")
        return definitions

    # --- Queries ---

    def _require(self, provider_id: str) -> Provider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise NotFoundError(f"MCP server {provider_id} not found")
        return provider

    def get(self, provider_id: str) -> Optional[Provider]:
        """Get provider by id"""
        return self._providers.get(provider_id)

    def list_all(self) -> List[Provider]:
        """Get all registered providers"""
        return list(self._providers.values())

    def status_counts(self) -> Dict[str, int]:
        """Number of providers per connection status"""
        counts = {status.value: 0 for status in ConnectionStatus}
        for provider in self._providers.values():
            counts[provider.connection_status.value] += 1
        return counts

    async def shutdown(self) -> None:
        """Release connection resources"""
        await self._client.close()

    @property
    def count(self) -> int:
        """Number of registered providers"""
        return len(self._providers)

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        connected = self.status_counts()[ConnectionStatus.CONNECTED.value]
        return f"<ProviderRegistry: {self.count} providers, {connected} connected>"
