"""Agent runner orchestrating gateway calls, model decisions and risk controls."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from .config import AgentConfig
from .decision import Action, normalize_wait_seconds
from .gateway import ActionRequest, DecisionReport, GatewayError, Heartbeat, MarketGateway
from .llm import CompletionClient, Prompt
from .prompts import build_prompt, resolve_profile
from .risk import RiskManager
from .state import MarketSnapshot, RunnerState
from .strict import DecisionError, StrictDecisionEngine
from .utils import clean_symbol

logger = logging.getLogger(__name__)

HEARTBEAT_TIMEOUT = 2.0
AGENT_SYNC_TIMEOUT = 2.0
HISTORY_TIMEOUT = 2.0
BALANCES_TIMEOUT = 3.0
SNAPSHOT_TIMEOUT = 3.0
REPORT_TIMEOUT = 3.0
SUBMIT_TIMEOUT = 5.0

AGENT_SYNC_INTERVAL = 5.0
DECISION_ERROR_BACKOFF = 3.0
NO_PROVIDER_BACKOFF = 5.0


@dataclass(frozen=True, slots=True)
class CycleOutcome:
    """What a single tick did; ``status`` is ``skipped`` inside a wait window."""

    cycle: int
    status: str
    action: Optional[Action] = None
    error: str = ""
    next_decision_at: float = 0.0


class AgentRunner:
    """Coordinates the per-tick decide / preflight / submit cycle for one agent.

    All cross-tick state lives in :attr:`state`, which only this runner
    mutates; ticks never overlap.
    """

    def __init__(
        self,
        config: AgentConfig,
        gateway: Optional[MarketGateway],
        client: Optional[CompletionClient],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.client = client
        self.clock = clock
        self.agent_id = config.agent_id.strip()
        self.profile = resolve_profile(self.agent_id, config.profile)
        self.state = RunnerState(settlement=clean_symbol(config.settlement_symbol) or "AGC")
        self.risk_manager = RiskManager(config.risk, agent_id=self.agent_id)
        self.decision_engine = StrictDecisionEngine(client) if client is not None else None
        self.next_decision_at = clock()

    # ------------------------------------------------------------------
    def run(self, stop_event: Optional[threading.Event] = None, max_cycles: Optional[int] = None) -> int:
        """Tick until ``stop_event`` is set (or ``max_cycles`` ticks ran).

        Returns the number of ticks executed.
        """

        stop_event = stop_event or threading.Event()
        self.post_heartbeat()
        self.next_decision_at = self.clock()
        ticks = 0
        while max_cycles is None or ticks < max_cycles:
            if stop_event.wait(self.config.tick_seconds):
                logger.info("Agent %s stopping after %d cycles", self.agent_id or "-", self.state.cycle)
                break
            self.run_cycle()
            ticks += 1
        return ticks

    def run_cycle(self) -> CycleOutcome:
        self.state.cycle += 1
        cycle = self.state.cycle
        self.post_heartbeat()
        now = self.clock()
        if now < self.next_decision_at:
            return CycleOutcome(cycle, "skipped", next_decision_at=self.next_decision_at)

        if self.decision_engine is None:
            action = Action(kind="invalid", reason="no_llm")
            self.post_decision(action, "rejected", "no llm configured")
            self.next_decision_at = now + NO_PROVIDER_BACKOFF
            return CycleOutcome(cycle, "rejected", action, "no llm configured", self.next_decision_at)

        self.refresh_balances()
        self.seed_memory()
        prompt = self.build_prompt()
        try:
            decision = self.decision_engine.decide(prompt, self.state.repair_context())
        except DecisionError as exc:
            logger.warning(
                "strict decision error (%s/%s): %s", self.client.provider, self.client.model, exc
            )
            action = Action(kind="invalid", reason="decision_error")
            self.post_decision(action, "rejected", str(exc), exc.raw)
            self.next_decision_at = self.clock() + DECISION_ERROR_BACKOFF
            return CycleOutcome(cycle, "rejected", action, str(exc), self.next_decision_at)

        action = decision.action
        if action.is_wait:
            if not action.reason:
                action = replace(action, reason="model_wait")
            self.post_decision(action, "wait", "", decision.raw)
            self.next_decision_at = self.clock() + normalize_wait_seconds(action.wait_seconds)
            return CycleOutcome(cycle, "wait", action, "", self.next_decision_at)

        status, error = self.execute_action(action, decision.raw)
        self.next_decision_at = self.clock() + self.config.tick_seconds
        return CycleOutcome(cycle, status, action, error, self.next_decision_at)

    # ------------------------------------------------------------------
    # Action executor
    # ------------------------------------------------------------------
    def execute_action(self, action: Action, raw: str = "") -> Tuple[str, str]:
        """Preflight and submit ``action``; returns ``(status, error)``."""

        result = self.risk_manager.preflight(action, self.state)
        if not result.allowed:
            logger.info("Action %s %s blocked: %s", action.kind, action.asset, result.reason)
            self.post_decision(action, result.status, result.reason, raw)
            return result.status, result.reason
        if self.gateway is None:
            logger.error("no gateway configured for action execution")
            self.post_decision(action, "rejected", "no gateway configured", raw)
            return "rejected", "no gateway configured"

        request = ActionRequest(
            action=action.kind,
            agent_id=self.agent_id,
            asset_symbol=clean_symbol(action.asset),
            price_agc=action.price,
            qty=action.qty,
            side=action.side.strip().lower(),
            reason=action.reason.strip(),
            category=action.category.strip(),
        )
        try:
            self.gateway.post_action(request, timeout=SUBMIT_TIMEOUT)
        except GatewayError as exc:
            logger.error("action failed: %s", exc)
            self.post_decision(action, "rejected", str(exc), raw)
            return "rejected", str(exc)
        logger.info("action executed: %s %s", request.action, request.asset_symbol)
        self.post_decision(action, "executed", "", raw)
        return "executed", ""

    # ------------------------------------------------------------------
    # Gateway interactions
    # ------------------------------------------------------------------
    def post_decision(self, action: Action, status: str, error: str = "", raw: str = "") -> None:
        """Record the outcome in memory, then report it to the gateway."""

        self.state.memory.record(action, status, error)
        if self.gateway is None:
            return
        report = DecisionReport(
            agent_id=self.agent_id,
            action=action.kind.strip().lower(),
            asset_symbol=clean_symbol(action.asset),
            price_agc=action.price,
            qty=action.qty,
            side=action.side.strip().lower(),
            reason=action.reason.strip(),
            raw=raw.strip(),
            status=status,
            error=error.strip(),
        )
        try:
            self.gateway.post_decision(report, timeout=REPORT_TIMEOUT)
        except GatewayError as exc:
            logger.debug("decision report failed: %s", exc)

    def post_heartbeat(self) -> None:
        if self.gateway is None or not self.agent_id:
            return
        heartbeat = Heartbeat(
            agent_id=self.agent_id,
            profile=self.profile,
            user_addr=self.config.user_addr.strip(),
        )
        try:
            self.gateway.post_heartbeat(heartbeat, timeout=HEARTBEAT_TIMEOUT)
        except GatewayError as exc:
            logger.debug("heartbeat failed: %s", exc)

    def refresh_balances(self) -> None:
        if self.gateway is None or not self.agent_id:
            return
        try:
            self.state.balances = self.gateway.get_balances(self.agent_id, timeout=BALANCES_TIMEOUT)
        except GatewayError as exc:
            logger.debug("balance refresh failed: %s", exc)

    def refresh_agent_config(self) -> None:
        """Pull strategy prompt and allowed assets, at most every few seconds."""

        if self.gateway is None or not self.agent_id:
            return
        now = self.clock()
        last = self.state.last_agent_sync
        if last is not None and now - last < AGENT_SYNC_INTERVAL:
            return
        self.state.last_agent_sync = now
        try:
            record = self.gateway.get_agent(self.agent_id, timeout=AGENT_SYNC_TIMEOUT)
        except GatewayError as exc:
            logger.debug("agent config sync failed: %s", exc)
            return
        self.state.strategy_prompt = record.strategy_prompt.strip()
        self.state.set_allowed_assets(record.allowed_tokens)

    def seed_memory(self) -> None:
        """Load recent history into memory once per process."""

        if self.state.memory_seeded or self.gateway is None or not self.agent_id:
            return
        self.state.memory_seeded = True
        try:
            history = self.gateway.get_agent_history(self.agent_id, timeout=HISTORY_TIMEOUT)
        except GatewayError as exc:
            logger.debug("memory seeding failed: %s", exc)
            return
        seeded = self.state.memory.seed(history)
        logger.info("Seeded decision memory with %d past decisions", seeded)

    def fetch_snapshot(self) -> Optional[MarketSnapshot]:
        if self.gateway is None:
            return None
        try:
            tokens = self.gateway.get_tokens(timeout=SNAPSHOT_TIMEOUT)
        except GatewayError as exc:
            logger.debug("token fetch failed: %s", exc)
            return None
        try:
            offers = self.gateway.get_offers(timeout=SNAPSHOT_TIMEOUT)
        except GatewayError as exc:
            logger.debug("offer fetch failed: %s", exc)
            offers = []
        try:
            rfqs = self.gateway.get_rfqs(timeout=SNAPSHOT_TIMEOUT)
        except GatewayError as exc:
            logger.debug("rfq fetch failed: %s", exc)
            rfqs = []
        return MarketSnapshot(tokens=tokens, offers=offers, rfqs=rfqs)

    def build_prompt(self) -> Prompt:
        self.refresh_agent_config()
        snapshot = self.fetch_snapshot()
        if snapshot is not None:
            self.state.apply_snapshot(snapshot, self.agent_id)
        return build_prompt(
            self.state,
            snapshot,
            self.agent_id,
            self.profile,
            max_open_offers=self.config.risk.max_open_offers_per_agent,
            max_open_rfqs=self.config.risk.max_open_rfqs_per_agent,
        )


__all__ = ["AgentRunner", "CycleOutcome"]
