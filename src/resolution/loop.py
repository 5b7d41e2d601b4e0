"""
Bounded tool-use conversation.

Each round invokes the model once. Every tool call in the reply gets
exactly one acknowledgement in the next user turn:

- report_analysis: stored as the analysis, acknowledged with success
- an operation tool with valid input: converted to an EntityOperation
- an unknown tool or invalid input: {"success": false, "error": ...}
  and no operation

The conversation stops when the model makes no tool calls, reports its
analysis, stops with end_turn, or the round cap is reached. Hitting the cap
without a report still returns the operations collected so far.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from src.resolution.llm_client import (
    STOP_END_TURN,
    Message,
    ToolResult,
    ToolUseBlock,
    ToolUseClient,
)
from src.resolution.prompts import SYSTEM_PROMPT
from src.resolution.schemas import AnalysisReport, ResolutionOutput
from src.resolution.tools import REPORT_TOOL, TOOL_SCHEMAS, UnknownToolError, tool_call_to_operation

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5


def _ack(payload: dict[str, Any]) -> str:
    return json.dumps(payload)


def _describe_errors(error: ValidationError) -> str:
    parts = [
        f"{'.'.join(str(p) for p in e['loc']) or 'input'}: {e['msg']}"
        for e in error.errors()
    ]
    return "Invalid input: " + "; ".join(parts)


class ToolUseLoop:
    """Drive one record's conversation with a ToolUseClient."""

    def __init__(
        self,
        client: ToolUseClient,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        tools: list[dict[str, Any]] | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._max_rounds = max_rounds
        self._tools = tools if tools is not None else TOOL_SCHEMAS
        self._system_prompt = system_prompt

    async def run(self, user_prompt: str) -> ResolutionOutput:
        output = ResolutionOutput()
        messages = [Message(role="user", content=user_prompt)]

        for round_number in range(1, self._max_rounds + 1):
            turn = await self._client.create(self._system_prompt, messages, self._tools)
            output.rounds = round_number

            for text in turn.texts:
                logger.debug(f"Model text (round {round_number}): {text[:500]}")

            calls = turn.tool_calls
            if not calls:
                break

            results = [self._handle_call(call, output) for call in calls]
            messages.append(Message(role="assistant", content=turn.content))
            messages.append(Message(role="user", content=results))

            if output.completed or turn.stop_reason == STOP_END_TURN:
                break

        if not output.completed:
            logger.warning(
                f"Conversation ended after {output.rounds} rounds without {REPORT_TOOL}, "
                f"keeping {len(output.operations)} operations"
            )
        return output

    def _handle_call(self, call: ToolUseBlock, output: ResolutionOutput) -> ToolResult:
        logger.debug(f"Tool call {call.name}: {json.dumps(call.input, default=str)[:500]}")

        if call.name == REPORT_TOOL:
            try:
                report = AnalysisReport.model_validate(call.input)
            except ValidationError as e:
                output.rejected_calls += 1
                return ToolResult(call.id, _ack({"success": False, "error": _describe_errors(e)}))

            output.analysis = report
            output.reasoning = report.reasoning
            return ToolResult(call.id, _ack({"success": True, "message": "Analysis report received"}))

        try:
            operation = tool_call_to_operation(call.name, call.input)
        except UnknownToolError:
            output.rejected_calls += 1
            logger.warning(f"Model called unknown tool {call.name}")
            return ToolResult(call.id, _ack({"success": False, "error": "Unknown tool"}))
        except ValidationError as e:
            output.rejected_calls += 1
            logger.warning(f"Rejected {call.name} call: {e.error_count()} validation errors")
            return ToolResult(call.id, _ack({"success": False, "error": _describe_errors(e)}))

        output.operations.append(operation)
        return ToolResult(
            call.id, _ack({"success": True, "message": f"Operation recorded: {call.name}"})
        )
