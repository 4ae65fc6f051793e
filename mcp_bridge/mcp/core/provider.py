# mcp_bridge/mcp/core/provider.py
"""
Provider Definition
===================
Providers (MCP servers) là các nguồn tools bên ngoài.
Mỗi provider có endpoint, credential tùy chọn và connection type;
tools của nó được discover qua `tools/list`.

Connection types:
- http: request/response qua HTTP POST (implemented)
- websocket: persistent socket (declared, chưa implement)
- stdio: local process pipe (declared, chưa implement)
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import SecretStr

from mcp_bridge.mcp.core.tool import utcnow


class ConnectionType(str, Enum):
    """How the bridge talks to a provider"""
    HTTP = "http"
    WEBSOCKET = "websocket"
    STDIO = "stdio"


class ConnectionStatus(str, Enum):
    """Provider connection state"""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True)
class Provider:
    """
    Connection record for one MCP server.

    Attributes:
        id: Immutable identifier
        endpoint: Server address (JSON-RPC POST target for http)
        api_key: Optional bearer credential, never serialized
        connection_status: Driven only by connect/discover attempts
        discovered_tools: Raw definitions from the last successful discovery
    """
    id: str
    name: str
    endpoint: str
    description: str = ""
    api_key: Optional[SecretStr] = None
    connection_type: ConnectionType = ConnectionType.HTTP
    enabled: bool = True
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    discovered_tools: Tuple[Dict[str, Any], ...] = ()
    last_discovery: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def credential(self) -> Optional[str]:
        if self.api_key is None:
            return None
        return self.api_key.get_secret_value() or None

    def auth_headers(self) -> Dict[str, str]:
        token = self.credential
        return {"Authorization": f"Bearer {token}"} if token else {}

    def with_changes(self, **changes) -> "Provider":
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "endpoint": self.endpoint,
            "hasApiKey": self.credential is not None,
            "enabled": self.enabled,
            "connectionType": self.connection_type.value,
            "connectionStatus": self.connection_status.value,
            "discoveredTools": list(self.discovered_tools),
            "lastDiscovery": self.last_discovery.isoformat() if self.last_discovery else None,
            "error": self.last_error,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<Provider: {self.name} [{self.connection_status.value}]>"
