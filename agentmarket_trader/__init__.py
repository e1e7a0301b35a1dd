"""Autonomous market agent: LLM decisions gated by strict validation and risk preflight."""

from .config import AgentConfig, GatewayConfig, LLMConfig, RiskConfig, load_config
from .decision import Action, ActionKind, ActionValidationError, DecisionParseError
from .engine import AgentRunner, CycleOutcome
from .gateway import GatewayError, MarketGateway
from .llm import (
    CompletionClient,
    CompletionError,
    LLMConfigError,
    OllamaChatClient,
    OpenAIResponsesClient,
    Prompt,
    create_completion_client,
)
from .memory import DecisionMemory, MemoryEntry
from .risk import PreflightResult, RiskManager
from .state import MarketSnapshot, RunnerState
from .strict import DecisionError, StrictDecisionEngine

__all__ = [
    "AgentConfig",
    "GatewayConfig",
    "LLMConfig",
    "RiskConfig",
    "load_config",
    "Action",
    "ActionKind",
    "ActionValidationError",
    "DecisionParseError",
    "AgentRunner",
    "CycleOutcome",
    "GatewayError",
    "MarketGateway",
    "CompletionClient",
    "CompletionError",
    "LLMConfigError",
    "OllamaChatClient",
    "OpenAIResponsesClient",
    "Prompt",
    "create_completion_client",
    "DecisionMemory",
    "MemoryEntry",
    "PreflightResult",
    "RiskManager",
    "MarketSnapshot",
    "RunnerState",
    "DecisionError",
    "StrictDecisionEngine",
]
