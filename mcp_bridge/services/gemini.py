# mcp_bridge/services/gemini.py
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

import google.generativeai as genai
from google.generativeai.types import FunctionDeclaration, Tool

from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.mcp.core.agent import ChatMessage, TurnResult
from mcp_bridge.mcp.core.executor import ToolExecutor
from mcp_bridge.mcp.core.tool import ExecutionResult, ToolFunction

# JSON Schema type -> Gemini Schema type
_GEMINI_TYPES = {
    "string": "STRING",
    "integer": "INTEGER",
    "number": "NUMBER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
}


def build_system_prompt(turn: TurnResult) -> str:
    prompt = (
        "You are a helpful AI assistant integrated with Slack. "
        "You have access to various tools through the Model Context Protocol (MCP)."
    )

    if turn.records:
        prompt += "\n\nThe following tools were executed for this request:\n"
        for record in turn.records:
            if record.success:
                prompt += f"- {record.tool_id}: Successfully executed with result\n"
            else:
                prompt += f"- {record.tool_id}: Failed with error: {record.error}\n"

    prompt += "\nProvide helpful, concise responses. Use the tool results to inform your answer when relevant."
    return prompt


def build_user_prompt(message: ChatMessage, turn: TurnResult) -> str:
    prompt = message.content

    successful = [r for r in turn.records if r.success and r.output]
    if successful:
        prompt += "\n\nTool Results:\n"
        for record in successful:
            output = json.dumps(record.output, indent=2, ensure_ascii=False, default=str)
            prompt += f"\n{record.tool_id} result:\n{output}\n"

    return prompt


def build_function_declaration(function: ToolFunction) -> FunctionDeclaration:
    """
    Convert an exported tool to a Gemini FunctionDeclaration.

    Gemini's Schema covers only part of JSON Schema: untyped properties
    are left out and enums are declared for strings only.
    """
    properties = {}
    required = []

    for spec in function.signature.fields:
        gemini_type = _GEMINI_TYPES.get(spec.type_name)
        if gemini_type is None:
            continue

        param_schema: Dict[str, Any] = {"type": gemini_type}
        if spec.description:
            param_schema["description"] = spec.description
        if spec.enum and gemini_type == "STRING":
            param_schema["enum"] = [str(v) for v in spec.enum]
        if gemini_type == "ARRAY":
            # Item schemas are not kept on the signature
            param_schema["items"] = {"type": "STRING"}

        properties[spec.name] = param_schema
        if spec.required:
            required.append(spec.name)

    return FunctionDeclaration(
        name=function.name,
        description=function.description,
        parameters={
            "type": "OBJECT",
            "properties": properties,
            "required": required
        } if properties else None
    )


def _plain(value: Any) -> Any:
    """Proto map/repeated composites to plain dicts and lists"""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_plain(v) for v in value]
    # Struct carries every number as a double
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _function_calls(response) -> List[Any]:
    calls = []
    for candidate in response.candidates:
        for part in candidate.content.parts:
            fc = getattr(part, "function_call", None)
            if fc and fc.name:
                calls.append(fc)
    return calls


def _response_text(response) -> str:
    texts = []
    for candidate in response.candidates[:1]:
        for part in candidate.content.parts:
            text = getattr(part, "text", None)
            if text:
                texts.append(text)
    return "".join(texts).strip()


def _function_response(result: ExecutionResult) -> Dict[str, Any]:
    if result.success:
        payload = {"success": True, "output": result.output}
    else:
        payload = {
            "success": False,
            "error": result.message,
            "errorKind": result.error_kind.value if result.error_kind else None,
        }
    # Struct only holds JSON values
    return json.loads(json.dumps(payload, ensure_ascii=False, default=str))


class GeminiResponder:
    """
    Writes the natural-language reply for a turn using Gemini.

    The model is created lazily so the service can boot without a
    GOOGLE_API_KEY for admin-only use.

    With an executor, the tools visible in the message's channel are
    declared to the model as functions. Calls the model makes are run
    through `ToolFunction.invoke` and answered with function responses,
    for at most `max_tool_roundtrips` rounds; the final request asks for
    text only.
    """

    def __init__(
        self,
        model: Optional[genai.GenerativeModel] = None,
        temperature: Optional[float] = None,
        executor: Optional[ToolExecutor] = None,
        max_tool_roundtrips: Optional[int] = None
    ):
        self._model = model
        self._temperature = settings.GEMINI_TEMPERATURE if temperature is None else temperature
        self._executor = executor
        self._max_tool_roundtrips = (
            settings.GEMINI_MAX_TOOL_ROUNDTRIPS if max_tool_roundtrips is None else max_tool_roundtrips
        )

    def _get_model(self) -> genai.GenerativeModel:
        if self._model is None:
            genai.configure(api_key=settings.GOOGLE_API_KEY.get_secret_value())
            self._model = genai.GenerativeModel(settings.GEMINI_MODEL)
            logger.info(f"Gemini initialized with model: {settings.GEMINI_MODEL}")
        return self._model

    def _functions_for(self, message: ChatMessage) -> List[ToolFunction]:
        if self._executor is None or self._max_tool_roundtrips <= 0:
            return []
        return self._executor.as_functions(message.channel_id)

    async def generate(self, message: ChatMessage, turn: TurnResult) -> str:
        prompt = f"{build_system_prompt(turn)}\n\n{build_user_prompt(message, turn)}"
        generation_config = {"temperature": self._temperature}

        functions = self._functions_for(message)
        if not functions:
            response = await self._get_model().generate_content_async(
                prompt,
                generation_config=generation_config
            )
            return response.text.strip()

        return await self._generate_with_functions(prompt, functions, generation_config)

    async def _generate_with_functions(
        self,
        prompt: str,
        functions: List[ToolFunction],
        generation_config: Dict[str, Any]
    ) -> str:
        model = self._get_model()
        by_name = {f.name: f for f in functions}
        tools = [Tool(function_declarations=[build_function_declaration(f) for f in functions])]
        contents: List[Any] = [{"role": "user", "parts": [prompt]}]

        for roundtrip in range(self._max_tool_roundtrips + 1):
            last_round = roundtrip == self._max_tool_roundtrips
            response = await model.generate_content_async(
                contents,
                generation_config=generation_config,
                tools=tools,
                tool_config={"function_calling_config": {"mode": "NONE" if last_round else "AUTO"}}
            )

            calls = _function_calls(response)
            if not calls or last_round:
                break

            contents.append(response.candidates[0].content)
            contents.append({"role": "user", "parts": [await self._call_function(by_name, fc) for fc in calls]})

        return _response_text(response)

    async def _call_function(self, by_name: Dict[str, ToolFunction], fc: Any) -> genai.protos.Part:
        args = _plain(fc.args) if fc.args else {}
        function = by_name.get(fc.name)

        if function is None:
            logger.warning(f"Model called unknown function: {fc.name}")
            payload = {"success": False, "error": f"Unknown function: {fc.name}"}
        else:
            logger.info(f"Model called {fc.name} with args: {args}")
            payload = _function_response(await function.invoke(args))

        return genai.protos.Part(
            function_response=genai.protos.FunctionResponse(name=fc.name, response=payload)
        )
