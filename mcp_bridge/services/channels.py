# mcp_bridge/services/channels.py
"""
Channel Registry
================
Cấu hình theo từng chat channel, dùng để gate inbound messages:
- enabled: channel có được bot xử lý không
- auto_respond: trả lời mọi message (không cần mention)
- trigger_words: nếu khai báo, message phải chứa ít nhất một từ
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.mcp.core.errors import NotFoundError, ValidationError

_FIELD_ALIASES = {
    "channelName": "channel_name",
    "channel_name": "channel_name",
    "enabled": "enabled",
    "autoRespond": "auto_respond",
    "auto_respond": "auto_respond",
    "triggerWords": "trigger_words",
    "trigger_words": "trigger_words",
}


@dataclass(frozen=True)
class ChannelConfig:
    channel_id: str
    channel_name: str = ""
    enabled: bool = True
    auto_respond: bool = False
    trigger_words: Tuple[str, ...] = ()

    def should_trigger(self, text: str) -> bool:
        """True when no trigger words are set or one appears in text"""
        if not self.trigger_words:
            return True
        lowered = (text or "").lower()
        return any(word.lower() in lowered for word in self.trigger_words)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "channelName": self.channel_name,
            "enabled": self.enabled,
            "autoRespond": self.auto_respond,
            "triggerWords": list(self.trigger_words),
        }


def _normalize(changes: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(changes, Mapping):
        raise ValidationError("Channel configuration must be an object", field="$", reason="wrong type")

    values: Dict[str, Any] = {}
    for key, value in changes.items():
        field_name = _FIELD_ALIASES.get(key)
        if field_name:
            values[field_name] = value

    for flag in ("enabled", "auto_respond"):
        if flag in values and not isinstance(values[flag], bool):
            raise ValidationError("Invalid channel configuration", field=flag, reason="expected a boolean")

    if "trigger_words" in values:
        words = values["trigger_words"] or []
        if isinstance(words, str) or not all(isinstance(w, str) for w in words):
            raise ValidationError(
                "Invalid channel configuration", field="triggerWords", reason="expected a list of strings"
            )
        values["trigger_words"] = tuple(w for w in words if w.strip())

    if "channel_name" in values and not isinstance(values["channel_name"], str):
        raise ValidationError("Invalid channel configuration", field="channelName", reason="expected a string")

    return values


class ChannelRegistry:
    """
    In-memory channel configuration store.

    Channels without an explicit configuration fall back to a default
    (enabled, auto-respond from settings, no trigger words).
    """

    def __init__(self, default_auto_respond: Optional[bool] = None):
        self._channels: Dict[str, ChannelConfig] = {}
        self._default_auto_respond = (
            settings.DEFAULT_CHANNEL_AUTO_RESPOND if default_auto_respond is None else default_auto_respond
        )

    def get(self, channel_id: str) -> Optional[ChannelConfig]:
        return self._channels.get(channel_id)

    def resolve(self, channel_id: str) -> ChannelConfig:
        """Explicit configuration or the default for this channel"""
        config = self._channels.get(channel_id)
        if config is None:
            config = ChannelConfig(channel_id=channel_id, auto_respond=self._default_auto_respond)
        return config

    def upsert(self, channel_id: str, changes: Mapping[str, Any]) -> ChannelConfig:
        if not channel_id:
            raise ValidationError("Channel ID is required", field="channelId", reason="missing required field")

        values = _normalize(changes)
        config = replace(self.resolve(channel_id), **values)
        self._channels[channel_id] = config
        logger.info(f"Channel {channel_id} configured: {config.to_dict()}")
        return config

    def remove(self, channel_id: str) -> None:
        if channel_id not in self._channels:
            raise NotFoundError(f"Channel configuration for {channel_id} not found")
        del self._channels[channel_id]
        logger.info(f"Channel {channel_id} configuration removed")

    def list_all(self) -> List[ChannelConfig]:
        return list(self._channels.values())

    def list_enabled(self) -> List[ChannelConfig]:
        return [c for c in self._channels.values() if c.enabled]

    @property
    def count(self) -> int:
        return len(self._channels)

    def __len__(self) -> int:
        return self.count
