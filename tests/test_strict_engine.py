"""Tests for the retrying strict decision engine."""

from __future__ import annotations

from typing import List, Union

import pytest

from agentmarket_trader.llm import CompletionClient, CompletionError, Prompt
from agentmarket_trader.strict import (
    AttemptState,
    DecisionError,
    RepairContext,
    StrictDecisionEngine,
    retry_prompt,
)


class ScriptedLLM(CompletionClient):
    provider = "scripted"
    model = "test-model"

    def __init__(self, responses: List[Union[str, Exception]]) -> None:
        self._responses = list(responses)
        self.prompts: List[Prompt] = []

    def generate(self, prompt: Prompt) -> str:  # type: ignore[override]
        self.prompts.append(prompt)
        if not self._responses:
            raise AssertionError("No scripted responses remaining")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def context():
    return RepairContext(
        settlement="AGC",
        balances={"AGC": 100, "XYZ": 3},
        prices={"XYZ": 2.5},
        allowed=(),
    )


BASE = Prompt(system="system text", user="user text")


def test_first_valid_answer_wins(context):
    llm = ScriptedLLM(['{"action":"trade","asset_symbol":"xyz","side":"sell","qty":1}'])
    decision = StrictDecisionEngine(llm).decide(BASE, context)

    assert decision.action.kind == "trade"
    assert decision.action.asset == "XYZ"
    assert decision.action.price == pytest.approx(2.5)  # repaired from last price
    assert decision.attempts == 1
    assert llm.prompts == [BASE]


def test_invalid_kind_advances_to_next_attempt_with_reason(context):
    llm = ScriptedLLM(
        [
            '{"action":"long","asset_symbol":"XYZ","qty":1}',
            '{"action":"wait","next_check_sec":12}',
        ]
    )
    decision = StrictDecisionEngine(llm).decide(BASE, context)

    assert decision.action.kind == "wait"
    assert decision.attempts == 2
    retry = llm.prompts[1]
    assert retry.system == BASE.system
    assert retry.user.startswith(BASE.user)
    assert "rejected (invalid action: long)" in retry.user
    assert "Attempt 2/3" in retry.user


def test_noop_is_rejected_then_retried(context):
    llm = ScriptedLLM(['{"action":"noop"}', '{"action":"hold"}'])
    decision = StrictDecisionEngine(llm).decide(BASE, context)
    assert decision.action.kind == "wait"
    assert "noop is not allowed" in llm.prompts[1].user


def test_provider_errors_consume_attempts(context):
    llm = ScriptedLLM(
        [
            CompletionError("timeout"),
            "not json at all",
            CompletionError("boom"),
        ]
    )
    with pytest.raises(DecisionError) as excinfo:
        StrictDecisionEngine(llm).decide(BASE, context)

    error = excinfo.value
    assert error.reason == "llm error: boom"
    assert error.raw == "not json at all"  # last raw text survives provider failures
    assert "after 3 attempts" in str(error)
    assert len(llm.prompts) == 3


def test_parse_failures_are_labelled(context):
    llm = ScriptedLLM(["{broken", "{broken", "{broken"])
    with pytest.raises(DecisionError) as excinfo:
        StrictDecisionEngine(llm).decide(BASE, context)
    assert excinfo.value.reason.startswith("parse error:")


def test_retry_prompts_always_extend_the_base_prompt(context):
    llm = ScriptedLLM(['{"action":"x"}', '{"action":"y"}', '{"action":"z"}'])
    with pytest.raises(DecisionError):
        StrictDecisionEngine(llm).decide(BASE, context)
    third = llm.prompts[2].user
    assert "invalid action: y" in third
    assert "invalid action: x" not in third
    assert "Attempt 3/3" in third


def test_attempt_state_transitions():
    state = AttemptState()
    assert not state.exhausted(3)
    state = state.failed("llm error: x")
    state = state.failed("parse error: y", raw="raw-2")
    state = state.failed("llm error: z")
    assert state.attempt == 3
    assert state.exhausted(3)
    assert state.last_error == "llm error: z"
    assert state.last_raw == "raw-2"


def test_retry_prompt_text():
    prompt = retry_prompt(BASE, " qty must be > 0 ", 1, 3)
    assert prompt.user.endswith("No noop, no markdown.")
    assert "Previous output was rejected (qty must be > 0). Attempt 2/3." in prompt.user
