"""Strict decision engine: turns free-form completions into one valid action."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping, Optional, Tuple

from .decision import (
    Action,
    ActionValidationError,
    DecisionParseError,
    normalize_action,
    parse_action,
    repair_action,
    validate_action,
)
from .llm import CompletionClient, CompletionError, Prompt

logger = logging.getLogger(__name__)

DECISION_MAX_ATTEMPTS = 3


class DecisionError(RuntimeError):
    """Raised when no valid action was produced within the attempt budget."""

    def __init__(self, reason: str, raw: str = "", attempts: int = DECISION_MAX_ATTEMPTS):
        super().__init__(f"failed to produce strict action after {attempts} attempts: {reason}")
        self.reason = reason
        self.raw = raw
        self.attempts = attempts


@dataclass(frozen=True, slots=True)
class AttemptState:
    """Progress through the attempt budget.

    ``attempt`` counts completed attempts; provider failures and rejected
    outputs both consume one.
    """

    attempt: int = 0
    last_error: str = "no decision produced"
    last_raw: str = ""

    def failed(self, error: str, raw: Optional[str] = None) -> "AttemptState":
        return replace(
            self,
            attempt=self.attempt + 1,
            last_error=error,
            last_raw=self.last_raw if raw is None else raw,
        )

    def exhausted(self, max_attempts: int) -> bool:
        return self.attempt >= max_attempts


@dataclass(frozen=True, slots=True)
class RepairContext:
    """Read-only view of the runner state used to fill missing fields."""

    settlement: str
    balances: Optional[Mapping[str, int]] = None
    prices: Mapping[str, float] = field(default_factory=dict)
    allowed: Iterable[str] = ()


@dataclass(frozen=True, slots=True)
class StrictDecision:
    action: Action
    raw: str
    attempts: int


def retry_prompt(base: Prompt, reason: str, attempt: int, max_attempts: int) -> Prompt:
    """Append the rejection reason to the base prompt for the next attempt."""

    addendum = (
        f"\nPrevious output was rejected ({reason.strip()}). Attempt {attempt + 1}/{max_attempts}. "
        "Return exactly one JSON object with action in ['post_offer','create_rfq','trade','wait']. "
        "For wait, provide next_check_sec (1-60). For trade, include side. No noop, no markdown."
    )
    return base.with_user_suffix(addendum)


class StrictDecisionEngine:
    """Drives a :class:`CompletionClient` through parse, repair and validate."""

    def __init__(self, client: CompletionClient, max_attempts: int = DECISION_MAX_ATTEMPTS) -> None:
        self.client = client
        self.max_attempts = max_attempts

    def interpret(self, raw: str, context: RepairContext) -> Action:
        """Convert one raw completion into a validated action or raise."""

        action = normalize_action(parse_action(raw))
        action = repair_action(
            action,
            context.balances,
            context.prices,
            context.allowed,
            context.settlement,
        )
        return validate_action(action, context.settlement)

    def step(
        self, state: AttemptState, prompt: Prompt, context: RepairContext
    ) -> Tuple[Optional[StrictDecision], AttemptState]:
        """Run a single attempt.

        Returns ``(StrictDecision, state)`` on success or ``(None, state)``
        with the failure folded into ``state``.
        """

        try:
            response = self.client.generate(prompt)
        except CompletionError as exc:
            return None, state.failed(f"llm error: {exc}")

        raw = (response or "").strip()
        logger.info(
            "llm decision attempt %d (%s/%s): %s",
            state.attempt + 1,
            self.client.provider,
            self.client.model,
            raw,
        )
        try:
            action = self.interpret(raw, context)
        except ActionValidationError as exc:
            return None, state.failed(str(exc), raw)
        except DecisionParseError as exc:
            return None, state.failed(f"parse error: {exc}", raw)
        return StrictDecision(action=action, raw=raw, attempts=state.attempt + 1), state

    def decide(self, base_prompt: Prompt, context: RepairContext) -> StrictDecision:
        state = AttemptState()
        prompt = base_prompt
        while not state.exhausted(self.max_attempts):
            decision, state = self.step(state, prompt, context)
            if decision is not None:
                return decision
            if not state.exhausted(self.max_attempts):
                prompt = retry_prompt(base_prompt, state.last_error, state.attempt, self.max_attempts)
        raise DecisionError(state.last_error, raw=state.last_raw, attempts=self.max_attempts)


__all__ = [
    "AttemptState",
    "DECISION_MAX_ATTEMPTS",
    "DecisionError",
    "RepairContext",
    "StrictDecision",
    "StrictDecisionEngine",
    "retry_prompt",
]
