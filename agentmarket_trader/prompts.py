"""Prompt templates used to instruct the completion provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .gateway import RFQ, Offer, Token
from .llm import Prompt
from .state import MarketSnapshot, RunnerState, is_open_status
from .utils import clean_symbol, fnv1a_32

PROFILES = ("market_maker", "taker", "momentum")

PROFILE_GUIDES = {
    "market_maker": "You are a market maker. Post tight offers near current price with small qty to earn spread.",
    "taker": "You are a taker. Prefer trades or RFQs over posting many offers.",
    "momentum": "You are momentum-biased. If change_24h is positive, prefer buy; if negative, prefer sell.",
}
DEFAULT_PROFILE_GUIDE = "Be cautious and prefer small actions."

SYSTEM_PROMPT = (
    "You are an autonomous market agent. Reply with a single JSON object only. "
    "Schema: {action: 'post_offer' | 'create_rfq' | 'trade' | 'wait', asset_symbol?: string, "
    "price_agc?: number, qty?: number, side?: 'buy' | 'sell', next_check_sec?: number, reason?: string}. "
    "Never return noop. If waiting, set action='wait' with next_check_sec (1-60)."
)

MARKET_UNAVAILABLE_PROMPT = (
    'No market snapshot available. Return {"action":"wait","next_check_sec":5,"reason":"market_unavailable"}.'
)

TOKEN_ROWS = 6
ORDERBOOK_ROWS = 5
NEAR_LAST_PCT = 0.03


def resolve_profile(agent_id: str, requested: str = "") -> str:
    """Pick the agent's trading persona, stable per agent id."""

    requested = (requested or "").strip().lower()
    if requested:
        return requested
    if not agent_id:
        return "market_maker"
    return PROFILES[fnv1a_32(agent_id) % len(PROFILES)]


def profile_prompt(profile: str) -> str:
    return PROFILE_GUIDES.get(profile, DEFAULT_PROFILE_GUIDE)


def format_holdings(balances: Optional[Dict[str, int]]) -> str:
    if not balances:
        return "unknown"
    return ", ".join(sorted(f"{denom} {amount}" for denom, amount in balances.items()))


def format_tokens(tokens: Sequence[Token], limit: int = TOKEN_ROWS) -> str:
    return ", ".join(
        f"{token.symbol} {token.price:.2f} ({token.change_24h:+.2f}%)" for token in tokens[:limit]
    )


@dataclass(slots=True)
class _MarketRow:
    symbol: str
    last: float = 0.0
    best_ask: float = 0.0
    best_bid: float = 0.0

    @property
    def score(self) -> int:
        score = 0
        if self.best_ask > 0 and self.best_bid > 0:
            score += 3
            if self.best_bid >= self.best_ask:
                score += 3
        if self.last > 0 and self.best_ask > 0 and self.best_ask <= self.last * (1 + NEAR_LAST_PCT):
            score += 1
        if self.last > 0 and self.best_bid > 0 and self.best_bid >= self.last * (1 - NEAR_LAST_PCT):
            score += 1
        return score

    @property
    def signal(self) -> str:
        if self.best_bid > 0 and self.best_ask > 0 and self.best_bid >= self.best_ask:
            return "cross"
        if self.best_bid > 0 and self.last > 0 and self.best_bid >= self.last:
            return "strong_bid"
        if self.best_ask > 0 and self.last > 0 and self.best_ask <= self.last:
            return "cheap_ask"
        return "watch"

    def render(self) -> str:
        def fmt(value: float) -> str:
            return f"{value:.2f}" if value > 0 else "n/a"

        return (
            f"{self.symbol} last={fmt(self.last)} bid={fmt(self.best_bid)} "
            f"ask={fmt(self.best_ask)} {self.signal}"
        )


def summarize_orderbook(
    tokens: Iterable[Token],
    offers: Iterable[Offer],
    rfqs: Iterable[RFQ],
    self_agent: str,
    allowed: Iterable[str],
    settlement: str,
    limit: int = ORDERBOOK_ROWS,
) -> str:
    """Rank the most actionable books from other agents' resting orders."""

    allowed_set = {clean_symbol(symbol) for symbol in allowed} - {"", settlement}

    def accept(symbol: str) -> bool:
        if not symbol or symbol == settlement:
            return False
        return not allowed_set or symbol in allowed_set

    rows: Dict[str, _MarketRow] = {}

    def row(symbol: str) -> _MarketRow:
        if symbol not in rows:
            rows[symbol] = _MarketRow(symbol=symbol)
        return rows[symbol]

    for token in tokens:
        symbol = clean_symbol(token.symbol)
        if accept(symbol):
            row(symbol).last = token.price
    for offer in offers:
        symbol = clean_symbol(offer.asset)
        if offer.agent_id.strip() == self_agent.strip() or not is_open_status(offer.status):
            continue
        if offer.qty <= 0 or not accept(symbol):
            continue
        current = row(symbol)
        if current.best_ask <= 0 or offer.price < current.best_ask:
            current.best_ask = offer.price
    for rfq in rfqs:
        symbol = clean_symbol(rfq.asset)
        if rfq.agent_id.strip() == self_agent.strip() or not is_open_status(rfq.status):
            continue
        if rfq.qty <= 0 or not accept(symbol):
            continue
        current = row(symbol)
        if rfq.max_price > current.best_bid:
            current.best_bid = rfq.max_price

    if not rows:
        return "no visible liquidity"
    ranked = sorted(rows.values(), key=lambda item: (-item.score, item.symbol))
    return "; ".join(item.render() for item in ranked[:limit])


def build_prompt(
    state: RunnerState,
    snapshot: Optional[MarketSnapshot],
    agent_id: str,
    profile: str,
    max_open_offers: int = 5,
    max_open_rfqs: int = 3,
) -> Prompt:
    """Compose the system and user text for one decision."""

    system = SYSTEM_PROMPT
    if state.strategy_prompt.strip():
        system += " Custom strategy instructions from user: " + state.strategy_prompt.strip()
    if snapshot is None:
        return Prompt(system=system, user=MARKET_UNAVAILABLE_PROMPT)

    settlement = state.settlement
    allowed_summary = (
        ", ".join(state.allowed_assets)
        if state.allowed_assets
        else f"any listed token except {settlement}"
    )
    orderbook = summarize_orderbook(
        snapshot.tokens, snapshot.offers, snapshot.rfqs, agent_id, state.allowed_assets, settlement
    )
    sections: List[str] = [
        f"Agent {agent_id} ({profile}). Market snapshot: tokens [{format_tokens(snapshot.tokens)}]. "
        f"Offers: {len(snapshot.offers)}. RFQs: {len(snapshot.rfqs)}. Holdings: {format_holdings(state.balances)}.",
        f"You currently have {state.open_offers} open offers and {state.open_rfqs} open RFQs. "
        f"Do not exceed {max_open_offers} offers or {max_open_rfqs} RFQs.",
        f"Allowed asset symbols: [{allowed_summary}].",
        f"Never use {settlement} as asset_symbol; {settlement} is settlement only.",
        f"Do not post offers for assets you don't own. If you only hold {settlement}, start with trade buy or RFQ.",
        f"Orderbook lens: {orderbook}.",
        f"Recent decision memory: {state.memory.summary()}.",
        f"Learning hints: {state.memory.lessons()}.",
        "You must decide one JSON action now: either execute (post_offer/create_rfq/trade) "
        f"or wait with next_check_sec. {profile_prompt(profile)} Choose one action.",
    ]
    return Prompt(system=system, user=" ".join(sections))


__all__ = [
    "MARKET_UNAVAILABLE_PROMPT",
    "SYSTEM_PROMPT",
    "build_prompt",
    "format_holdings",
    "profile_prompt",
    "resolve_profile",
    "summarize_orderbook",
]
