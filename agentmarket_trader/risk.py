"""Pre-submission risk checks for validated actions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .config import RiskConfig
from .decision import Action, ActionKind
from .gateway import RFQ, Offer
from .state import RunnerState, is_open_status
from .utils import clean_symbol, round_half_away

LIQUIDITY_EPSILON = 1e-9
BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class PreflightResult:
    """Outcome of :meth:`RiskManager.preflight`; an empty status means proceed."""

    status: str = ""
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return not self.status

    @classmethod
    def blocked(cls, reason: str) -> "PreflightResult":
        return cls(status=BLOCKED, reason=reason)


PROCEED = PreflightResult()


def calc_trade_fee(notional: int, fee_bps: int) -> int:
    if fee_bps <= 0 or notional <= 0:
        return 0
    return (notional * fee_bps) // 10000


def has_trade_liquidity(
    side: str,
    asset: str,
    price: float,
    qty: float,
    offers: Iterable[Offer],
    rfqs: Iterable[RFQ],
    agent_id: str,
) -> bool:
    """Whether resting counter-orders from other agents plausibly cover ``qty``.

    Buys walk offers priced at or below ``price``; sells walk RFQs whose max
    price is at or above ``price``. Nothing is reserved.
    """

    if qty <= 0:
        return False
    asset = clean_symbol(asset)
    side = (side or "").strip().lower()
    if not asset or side not in ("buy", "sell"):
        return False

    remaining = float(qty)
    if side == "buy":
        for offer in offers:
            if offer.agent_id == agent_id or not is_open_status(offer.status):
                continue
            if clean_symbol(offer.asset) != asset or offer.price > price + LIQUIDITY_EPSILON:
                continue
            remaining -= offer.qty
            if remaining <= LIQUIDITY_EPSILON:
                return True
        return False

    for rfq in rfqs:
        if rfq.agent_id == agent_id or not is_open_status(rfq.status):
            continue
        if clean_symbol(rfq.asset) != asset or rfq.max_price + LIQUIDITY_EPSILON < price:
            continue
        remaining -= rfq.qty
        if remaining <= LIQUIDITY_EPSILON:
            return True
    return False


@dataclass(slots=True)
class RiskManager:
    """Checks balances, open-order limits and liquidity before submission."""

    config: RiskConfig
    agent_id: str = ""

    def preflight(self, action: Action, state: RunnerState) -> PreflightResult:
        if not state.balances:
            return PreflightResult.blocked("balances unavailable")
        settlement = state.settlement
        asset = clean_symbol(action.asset)
        qty = round_half_away(action.qty)
        if qty <= 0:
            return PreflightResult.blocked("qty must be positive")
        if not asset:
            return PreflightResult.blocked("asset symbol missing")
        if asset == settlement:
            return PreflightResult.blocked(f"{settlement} is settlement asset")

        kind = (action.kind or "").strip().lower()
        if kind == ActionKind.POST_OFFER.value:
            return self._assess_offer(action, state, asset, qty)
        if kind == ActionKind.CREATE_RFQ.value:
            return self._assess_rfq(action, state, asset, qty)
        if kind == ActionKind.TRADE.value:
            return self._assess_trade(action, state, asset, qty)
        return PreflightResult.blocked("invalid action")

    # ------------------------------------------------------------------
    def _assess_offer(
        self, action: Action, state: RunnerState, asset: str, qty: int
    ) -> PreflightResult:
        if state.open_offers >= self.config.max_open_offers_per_agent:
            return PreflightResult.blocked("open offer limit reached")
        if state.open_offers_by_asset.get(asset, 0) >= self.config.max_open_offers_per_asset:
            return PreflightResult.blocked("asset offer limit reached")
        if action.price <= 0:
            return PreflightResult.blocked("price must be positive")
        mint_qty = max(0, qty - state.balance(asset))
        required = self.config.offer_fee + mint_qty * self.config.mint_fee_per_unit
        if state.balance(state.settlement) < required:
            return PreflightResult.blocked(f"insufficient {state.settlement} for offer fee/mint")
        return PROCEED

    def _assess_rfq(
        self, action: Action, state: RunnerState, asset: str, qty: int
    ) -> PreflightResult:
        if state.open_rfqs >= self.config.max_open_rfqs_per_agent:
            return PreflightResult.blocked("open rfq limit reached")
        price = self._resolve_price(action, state, asset)
        if price <= 0:
            return PreflightResult.blocked("price unavailable")
        cost = round_half_away(price * qty)
        if state.balance(state.settlement) < cost + self.config.rfq_fee:
            return PreflightResult.blocked(f"insufficient {state.settlement} balance")
        return PROCEED

    def _assess_trade(
        self, action: Action, state: RunnerState, asset: str, qty: int
    ) -> PreflightResult:
        side = (action.side or "").strip().lower()
        if side not in ("buy", "sell"):
            return PreflightResult.blocked("side must be buy or sell")
        price = self._resolve_price(action, state, asset)
        if price <= 0:
            return PreflightResult.blocked("price unavailable")
        notional = round_half_away(price * qty)
        fee = calc_trade_fee(notional, self.config.trade_fee_bps)
        settlement_balance = state.balance(state.settlement)

        if side == "sell":
            if state.balance(asset) < qty:
                return PreflightResult.blocked("insufficient asset balance")
            if settlement_balance < fee:
                return PreflightResult.blocked(f"insufficient {state.settlement} for fee")
            if not has_trade_liquidity(side, asset, price, qty, state.offers, state.rfqs, self.agent_id):
                return PreflightResult.blocked("no matching rfq liquidity")
            return PROCEED

        if settlement_balance < notional + fee:
            return PreflightResult.blocked(f"insufficient {state.settlement} balance")
        if not has_trade_liquidity(side, asset, price, qty, state.offers, state.rfqs, self.agent_id):
            return PreflightResult.blocked("no matching offer liquidity")
        return PROCEED

    def _resolve_price(self, action: Action, state: RunnerState, asset: str) -> float:
        if action.price > 0:
            return action.price
        return state.prices.get(asset, 0.0)


__all__ = [
    "PreflightResult",
    "RiskManager",
    "calc_trade_fee",
    "has_trade_liquidity",
]
