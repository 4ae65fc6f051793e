# mcp_bridge/mcp/core/selector.py
"""
Relevance Selector
==================
Heuristic chọn tools liên quan tới một message.

Một tool được chọn khi ít nhất một keyword gắn với *tên* của tool
xuất hiện (substring) trong message đã lower-case. Tools có tên không
nằm trong bảng keyword không bao giờ được chọn ở đây; chúng chỉ gọi
được qua đường explicit (API execute, model function calling).
"""

from typing import Iterable, List, Mapping, Sequence

from mcp_bridge.core.constants import TOOL_KEYWORDS
from mcp_bridge.mcp.core.tool import Tool


class RelevanceSelector:
    """
    Usage:
        selector = RelevanceSelector()
        relevant = selector.select("please check the git log", tools)
    """

    def __init__(self, keywords: Mapping[str, Sequence[str]] = TOOL_KEYWORDS):
        self._keywords = {name: tuple(k.lower() for k in words) for name, words in keywords.items()}

    @property
    def keywords(self) -> Mapping[str, Sequence[str]]:
        return dict(self._keywords)

    def keywords_for(self, tool: Tool) -> Sequence[str]:
        return self._keywords.get(tool.name, ())

    def select(self, message_text: str, tools: Iterable[Tool]) -> List[Tool]:
        """Tools whose keyword list matches the message, in candidate order"""
        text = (message_text or "").lower()
        return [
            tool for tool in tools
            if any(keyword in text for keyword in self.keywords_for(tool))
        ]

    def __repr__(self) -> str:
        return f"<RelevanceSelector: {len(self._keywords)} tool names>"
