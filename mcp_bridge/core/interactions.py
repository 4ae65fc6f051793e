# mcp_bridge/core/interactions.py
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings


class InteractionLog:
    """
    Persists one entry per handled chat turn.
    Only used to compute the admin stats counters.
    """

    def __init__(self, path: Optional[str] = None, in_memory: bool = False):
        if in_memory:
            self._db = TinyDB(storage=MemoryStorage)
        else:
            self._db = TinyDB(path or settings.INTERACTIONS_DB_PATH)

    def record_interaction(
        self,
        channel_id: str,
        user_id: str,
        success: bool,
        response_time_ms: float,
        tools_used: Optional[List[str]] = None,
        response_length: int = 0
    ) -> None:
        """Log the interaction for analytics and debugging."""
        entry = {
            'channel_id': channel_id,
            'user_id': user_id,
            'success': success,
            'response_time_ms': response_time_ms,
            'tools_used': list(tools_used or []),
            'response_length': response_length,
            'timestamp': time.time()
        }
        self._db.insert(entry)
        logger.info(
            f"Chat interaction: channel={channel_id}, user={user_id}, "
            f"tools={entry['tools_used']}, success={success}, {response_time_ms:.0f}ms"
        )

    def get_stats(self) -> Dict[str, object]:
        """
        Aggregate counters over all logged interactions.

        errorRate is a percentage, avgResponseTime is in seconds.
        """
        entries = self._db.all()
        total = len(entries)
        failures = sum(1 for e in entries if not e.get('success'))
        total_time_ms = sum(e.get('response_time_ms', 0) for e in entries)

        return {
            'totalMessages': total,
            'totalChannels': len({e.get('channel_id') for e in entries}),
            'errorRate': round(failures * 100 / total, 1) if total else 0.0,
            'avgResponseTime': round(total_time_ms / total / 1000, 2) if total else 0.0,
            'lastUpdated': datetime.now(timezone.utc).isoformat()
        }

    def close(self) -> None:
        self._db.close()

    def __len__(self) -> int:
        return len(self._db)
