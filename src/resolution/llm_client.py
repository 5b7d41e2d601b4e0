"""Provider-neutral tool-use client.

The resolution loop speaks one small vocabulary: a request is a system
prompt, a list of Messages and the tool schemas; a response is a ModelTurn
of ordered TextBlock / ToolUseBlock items plus a stop reason. Adapters
translate that vocabulary to the Anthropic Messages API and to OpenAI chat
completions with function calling.

SDK imports are deferred to first use so a missing or unused provider never
breaks import time. Every call goes through a per-provider CircuitBreaker.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Union

from src.resolution.circuit_breaker import CircuitBreaker
from src.resolution.config import ResolutionConfig

logger = logging.getLogger(__name__)

# Stop reasons, Anthropic spelling
STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"
STOP_MAX_TOKENS = "max_tokens"

_OPENAI_STOP_REASONS = {
    "stop": STOP_END_TURN,
    "tool_calls": STOP_TOOL_USE,
    "function_call": STOP_TOOL_USE,
    "length": STOP_MAX_TOKENS,
}


class LLMError(Exception):
    """Provider call failed or the provider is not configured."""


@dataclass
class TextBlock:
    text: str


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    tool_use_id: str
    content: str


ContentBlock = Union[TextBlock, ToolUseBlock]


@dataclass
class Message:
    """One conversation turn. User turns carry text or tool results."""

    role: str
    content: str | list[ContentBlock] | list[ToolResult]


@dataclass
class ModelTurn:
    content: list[ContentBlock]
    stop_reason: str

    @property
    def tool_calls(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def texts(self) -> list[str]:
        return [b.text for b in self.content if isinstance(b, TextBlock)]


class ToolUseClient(ABC):
    """One model invocation with tools."""

    def __init__(self, config: ResolutionConfig, name: str) -> None:
        self._config = config
        self._breaker = CircuitBreaker(
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout=config.circuit_recovery_timeout,
            name=name,
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def create(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        """Invoke the model once.

        Raises:
            CircuitOpenError: The provider circuit is open
            LLMError: The provider call failed
        """
        return await self._breaker.call(self._create, system, messages, tools)

    @abstractmethod
    async def _create(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class AnthropicToolClient(ToolUseClient):
    """Anthropic Messages API adapter."""

    def __init__(self, config: ResolutionConfig) -> None:
        super().__init__(config, name="anthropic")
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize the Anthropic async client."""
        if self._client is None:
            import anthropic

            api_key = self._config.anthropic_api_key
            if api_key is None:
                raise LLMError("RESOLUTION_ANTHROPIC_API_KEY is not set")
            self._client = anthropic.AsyncAnthropic(
                api_key=api_key.get_secret_value(),
                timeout=self._config.llm_timeout,
            )
        return self._client

    @staticmethod
    def _to_wire(message: Message) -> dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}

        blocks: list[dict[str, Any]] = []
        for item in message.content:
            if isinstance(item, TextBlock):
                blocks.append({"type": "text", "text": item.text})
            elif isinstance(item, ToolUseBlock):
                blocks.append(
                    {"type": "tool_use", "id": item.id, "name": item.name, "input": item.input}
                )
            else:
                blocks.append(
                    {"type": "tool_result", "tool_use_id": item.tool_use_id, "content": item.content}
                )
        return {"role": message.role, "content": blocks}

    async def _create(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        import anthropic

        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self._config.anthropic_model,
                max_tokens=self._config.max_tokens,
                system=system,
                messages=[self._to_wire(m) for m in messages],
                tools=tools,
            )
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic call failed: {e}") from e

        content: list[ContentBlock] = []
        for block in response.content:
            if block.type == "text":
                content.append(TextBlock(text=block.text))
            elif block.type == "tool_use":
                content.append(ToolUseBlock(id=block.id, name=block.name, input=dict(block.input)))

        return ModelTurn(content=content, stop_reason=response.stop_reason or STOP_END_TURN)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class OpenAIToolClient(ToolUseClient):
    """OpenAI chat completions adapter using function calling."""

    def __init__(self, config: ResolutionConfig) -> None:
        super().__init__(config, name="openai")
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize the OpenAI async client."""
        if self._client is None:
            import openai

            api_key = self._config.openai_api_key
            if api_key is None:
                raise LLMError("RESOLUTION_OPENAI_API_KEY is not set")
            self._client = openai.AsyncOpenAI(
                api_key=api_key.get_secret_value(),
                timeout=self._config.llm_timeout,
            )
        return self._client

    @staticmethod
    def _tools_to_wire(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t["name"],
                    "description": t.get("description", ""),
                    "parameters": t["input_schema"],
                },
            }
            for t in tools
        ]

    @staticmethod
    def _messages_to_wire(system: str, messages: list[Message]) -> list[dict[str, Any]]:
        wire: list[dict[str, Any]] = [{"role": "system", "content": system}]

        for message in messages:
            if isinstance(message.content, str):
                wire.append({"role": message.role, "content": message.content})
                continue

            if message.role == "assistant":
                text = "\n".join(b.text for b in message.content if isinstance(b, TextBlock))
                calls = [
                    {
                        "id": b.id,
                        "type": "function",
                        "function": {"name": b.name, "arguments": json.dumps(b.input)},
                    }
                    for b in message.content
                    if isinstance(b, ToolUseBlock)
                ]
                entry: dict[str, Any] = {"role": "assistant", "content": text or None}
                if calls:
                    entry["tool_calls"] = calls
                wire.append(entry)
            else:
                # Each tool result is its own "tool" message
                for result in message.content:
                    wire.append(
                        {
                            "role": "tool",
                            "tool_call_id": result.tool_use_id,
                            "content": result.content,
                        }
                    )
        return wire

    async def _create(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        import openai

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self._config.openai_model,
                max_tokens=self._config.max_tokens,
                messages=self._messages_to_wire(system, messages),
                tools=self._tools_to_wire(tools),
            )
        except openai.APIError as e:
            raise LLMError(f"OpenAI call failed: {e}") from e

        choice = response.choices[0]
        content: list[ContentBlock] = []
        if choice.message.content:
            content.append(TextBlock(text=choice.message.content))

        for call in choice.message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Unparseable arguments for tool call {call.function.name}")
                arguments = {}
            if not isinstance(arguments, dict):
                logger.warning(f"Non-object arguments for tool call {call.function.name}")
                arguments = {}
            content.append(ToolUseBlock(id=call.id, name=call.function.name, input=arguments))

        stop_reason = _OPENAI_STOP_REASONS.get(choice.finish_reason or "stop", STOP_END_TURN)
        return ModelTurn(content=content, stop_reason=stop_reason)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def build_llm_client(config: ResolutionConfig) -> ToolUseClient:
    """Client for the configured provider."""
    if config.provider == "openai":
        return OpenAIToolClient(config)
    return AnthropicToolClient(config)
