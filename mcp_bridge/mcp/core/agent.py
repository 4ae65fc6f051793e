# mcp_bridge/mcp/core/agent.py
"""
Agent Orchestrator
==================
Điều phối một lượt chat:
1. Lấy tools visible trong channel
2. Relevance Selector chọn tools liên quan
3. Build input cho từng tool từ message
4. Thực thi song song, mỗi tool độc lập
5. Trả về TurnResult (structured) cho model layer

Orchestrator không tự bịa câu trả lời; việc viết reply bằng ngôn ngữ
tự nhiên thuộc về Responder được inject vào `process_message`.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from mcp_bridge.core.constants import (
    GENERIC_APOLOGY,
    NO_REPLY_FALLBACK,
    SEARCH_PREFIX_PATTERN,
    SEARCH_SUFFIX_PATTERN,
)
from mcp_bridge.core.logging import logger
from mcp_bridge.mcp.core.executor import ToolExecutor
from mcp_bridge.mcp.core.selector import RelevanceSelector
from mcp_bridge.mcp.core.tool import Tool, ToolExecution, utcnow
from mcp_bridge.mcp.core.tool_registry import ToolRegistry

_FILE_PATH_PATTERN = re.compile(r"[/\w\-.]+\.\w+")
_SQL_FENCE_PATTERN = re.compile(r"```sql\n([\s\S]*?)\n```")
_SQL_INLINE_PATTERN = re.compile(r"SELECT[\s\S]*?(?:;|$)", re.IGNORECASE)


@dataclass
class ChatMessage:
    """
    Normalized inbound chat message.

    Attributes:
        content: Message text (mentions already stripped)
        channel_id: Originating channel
        user_id: Sender
        thread_id: Thread to reply into, if any
    """
    content: str
    channel_id: str
    user_id: str = ""
    thread_id: Optional[str] = None
    id: str = field(default_factory=lambda: f"msg_{int(time.time() * 1000)}")
    timestamp: datetime = field(default_factory=utcnow)

    def context(self) -> Dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "userId": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TurnResult:
    """
    Kết quả structured của một lượt xử lý.

    Attributes:
        records: Một ToolExecution cho mỗi tool đã thử (success lẫn failure)
        relevant_tool_ids: Tools mà selector đã chọn
    """
    records: List[ToolExecution] = field(default_factory=list)
    relevant_tool_ids: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[ToolExecution]:
        return [r for r in self.records if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relevantToolIds": list(self.relevant_tool_ids),
            "executions": [r.to_dict() for r in self.records],
        }


@dataclass
class AgentResponse:
    """
    Response từ Agent.

    Attributes:
        message: Message text trả về user
        success: False khi cả lượt thất bại (message là câu xin lỗi chung)
        turn: TurnResult của lượt, nếu đã chạy tới bước đó
    """
    message: str
    success: bool = True
    turn: Optional[TurnResult] = None

    @property
    def tools_used(self) -> List[str]:
        return [r.tool_id for r in self.turn.records] if self.turn else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "success": self.success,
            "mcpToolsUsed": self.tools_used,
            "turn": self.turn.to_dict() if self.turn else None,
        }


class Responder(Protocol):
    """Model-invocation layer that writes the reply for a turn"""

    async def generate(self, message: ChatMessage, turn: TurnResult) -> str:
        ...


class AgentOrchestrator:
    """
    Orchestration façade.

    Flow:
    1. Resolve tools visible in the message's channel
    2. Select relevant tools by keyword
    3. Build per-tool input and execute concurrently
    4. Return the structured TurnResult

    Usage:
        agent = AgentOrchestrator(tool_registry, executor, responder=responder)

        turn = await agent.handle(ChatMessage("check the git log", "C1"))
        response = await agent.process_message(ChatMessage("check the git log", "C1"))
        print(response.message)
    """

    def __init__(
        self,
        tool_registry: ToolRegistry,
        executor: ToolExecutor,
        selector: Optional[RelevanceSelector] = None,
        responder: Optional[Responder] = None
    ):
        self._tool_registry = tool_registry
        self._executor = executor
        self._selector = selector or RelevanceSelector()
        self._responder = responder

    async def handle(self, message: ChatMessage, channel_id: Optional[str] = None) -> TurnResult:
        """
        Run tool selection and execution for one message.

        A failing tool never aborts its siblings; every attempt is
        recorded.
        """
        channel_id = channel_id or message.channel_id
        tools = self._tool_registry.list_for_channel(channel_id)
        relevant = self._selector.select(message.content, tools)

        if not relevant:
            logger.debug(f"No relevant tools for message in {channel_id}")
            return TurnResult()

        logger.info(f"Selected tools for {channel_id}: {[t.name for t in relevant]}")

        inputs = [build_tool_input(message, tool) for tool in relevant]
        results = await asyncio.gather(*(
            self._executor.execute(tool.id, tool_input)
            for tool, tool_input in zip(relevant, inputs)
        ))

        records = [
            ToolExecution.from_result(tool_input, result)
            for tool_input, result in zip(inputs, results)
        ]
        for record in records:
            if not record.success:
                logger.warning(f"Tool {record.tool_id} failed: {record.error}")

        return TurnResult(records=records, relevant_tool_ids=[t.id for t in relevant])

    async def process_message(self, message: ChatMessage) -> AgentResponse:
        """
        Handle a message and let the responder write the reply.

        Any turn-level failure degrades to the generic apology.
        """
        turn = None
        try:
            turn = await self.handle(message)
            if self._responder is None:
                logger.warning("No responder configured, returning fallback reply")
                return AgentResponse(message=NO_REPLY_FALLBACK, success=False, turn=turn)

            reply = await self._responder.generate(message, turn)
            return AgentResponse(message=reply or NO_REPLY_FALLBACK, turn=turn)

        except Exception as e:
            logger.error(f"Error processing message with AI: {e}", exc_info=True)
            return AgentResponse(message=GENERIC_APOLOGY, success=False, turn=turn)

    def __repr__(self) -> str:
        return f"<AgentOrchestrator: {self._tool_registry!r}>"


# --- Per-tool input extraction ---

def build_tool_input(message: ChatMessage, tool: Tool) -> Dict[str, Any]:
    """
    Build the raw input for a tool from the message.

    Every input carries `query` and `context`; the tool's signature
    drops whatever it does not declare.
    """
    content = message.content
    tool_input: Dict[str, Any] = {
        "query": content,
        "context": message.context(),
    }

    if tool.name == "file-system":
        tool_input["action"] = extract_file_action(content)
        tool_input["path"] = extract_file_path(content)
    elif tool.name == "web-search":
        tool_input["query"] = extract_search_query(content)
        tool_input["maxResults"] = 5
    elif tool.name == "database":
        tool_input["query"] = extract_sql_query(content)
    elif tool.name == "git":
        tool_input["action"] = extract_git_action(content)

    return tool_input


def extract_file_action(content: str) -> str:
    if any(verb in content for verb in ("read", "show", "get")):
        return "read"
    if any(verb in content for verb in ("write", "save", "create")):
        return "write"
    if any(verb in content for verb in ("list", "directory")):
        return "list"
    return "read"


def extract_file_path(content: str) -> str:
    match = _FILE_PATH_PATTERN.search(content)
    return match.group(0) if match else "./"


def extract_search_query(content: str) -> str:
    query = re.sub(SEARCH_PREFIX_PATTERN, "", content, flags=re.IGNORECASE)
    query = re.sub(SEARCH_SUFFIX_PATTERN, "", query, flags=re.IGNORECASE)
    return query.strip()


def extract_sql_query(content: str) -> str:
    match = _SQL_FENCE_PATTERN.search(content)
    if match:
        return match.group(1)
    match = _SQL_INLINE_PATTERN.search(content)
    return match.group(0) if match else ""


def extract_git_action(content: str) -> str:
    lowered = content.lower()
    if any(word in lowered for word in ("log", "history", "commit")):
        return "log"
    return "status"
