"""Resolution: bounded LLM tool-use conversations that turn raw records into entity operations."""

from src.resolution.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from src.resolution.config import ResolutionConfig
from src.resolution.llm_client import (
    LLMError,
    Message,
    ModelTurn,
    TextBlock,
    ToolResult,
    ToolUseBlock,
    ToolUseClient,
    build_llm_client,
)
from src.resolution.loop import ToolUseLoop
from src.resolution.queue import ResolutionJob, ResolutionQueue
from src.resolution.schemas import AnalysisReport, IdentifiedProject, ResolutionOutput
from src.resolution.service import ResolutionService, importance_score
from src.resolution.tools import TOOL_SCHEMAS, tool_call_to_operation
from src.resolution.worker import ResolutionWorker

__all__ = [
    "AnalysisReport",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "IdentifiedProject",
    "LLMError",
    "Message",
    "ModelTurn",
    "ResolutionConfig",
    "ResolutionJob",
    "ResolutionOutput",
    "ResolutionQueue",
    "ResolutionService",
    "ResolutionWorker",
    "TOOL_SCHEMAS",
    "TextBlock",
    "ToolResult",
    "ToolUseBlock",
    "ToolUseClient",
    "build_llm_client",
    "importance_score",
    "tool_call_to_operation",
]
