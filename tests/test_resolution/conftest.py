"""Shared fixtures for resolution tests."""

from typing import Any

import pytest

from src.resolution.config import ResolutionConfig
from src.resolution.llm_client import (
    STOP_END_TURN,
    STOP_TOOL_USE,
    Message,
    ModelTurn,
    TextBlock,
    ToolUseBlock,
    ToolUseClient,
)


class ScriptedClient(ToolUseClient):
    """ToolUseClient that replays a fixed list of turns.

    Once the script runs out it keeps returning the last turn.
    """

    def __init__(self, turns: list[ModelTurn], config: ResolutionConfig | None = None):
        super().__init__(config or ResolutionConfig(), name="scripted")
        self._turns = turns
        self.requests: list[list[Message]] = []
        self.closed = False

    async def _create(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        self.requests.append(list(messages))
        index = min(len(self.requests), len(self._turns)) - 1
        return self._turns[index]

    async def close(self) -> None:
        self.closed = True


def tool_turn(*calls: tuple[str, dict[str, Any]], text: str | None = None) -> ModelTurn:
    content: list = [TextBlock(text=text)] if text else []
    content += [
        ToolUseBlock(id=f"toolu_{i}", name=name, input=tool_input)
        for i, (name, tool_input) in enumerate(calls)
    ]
    return ModelTurn(content=content, stop_reason=STOP_TOOL_USE)


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(content=[TextBlock(text=text)], stop_reason=STOP_END_TURN)


REPORT = (
    "report_analysis",
    {
        "sentiment": "positive",
        "event_type": "product",
        "reasoning": "Uniswap shipped v4",
        "key_insights": ["hooks", "singleton pool"],
        "identified_projects": [{"entity_id": "uniswap", "name": "Uniswap", "confidence": 0.95}],
    },
)


@pytest.fixture
def resolution_config() -> ResolutionConfig:
    return ResolutionConfig(max_rounds=5, max_concurrency=2)
