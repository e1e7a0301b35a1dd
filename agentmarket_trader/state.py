"""Cross-cycle runner state and market snapshot bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .gateway import RFQ, Offer, Token
from .memory import DecisionMemory
from .strict import RepairContext
from .utils import clean_symbol


def is_open_status(status: str) -> bool:
    return (status or "").strip().lower() in ("", "open")


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Tokens, offers and RFQs fetched together for one prompt build."""

    tokens: Sequence[Token] = ()
    offers: Sequence[Offer] = ()
    rfqs: Sequence[RFQ] = ()


@dataclass(slots=True)
class RunnerState:
    """Mutable state owned by a single :class:`~agentmarket_trader.engine.AgentRunner`.

    ``balances`` is ``None`` until the first successful refresh.
    """

    settlement: str = "AGC"
    balances: Optional[Dict[str, int]] = None
    prices: Dict[str, float] = field(default_factory=dict)
    offers: List[Offer] = field(default_factory=list)
    rfqs: List[RFQ] = field(default_factory=list)
    open_offers: int = 0
    open_rfqs: int = 0
    open_offers_by_asset: Dict[str, int] = field(default_factory=dict)
    allowed_assets: List[str] = field(default_factory=list)
    strategy_prompt: str = ""
    last_agent_sync: Optional[float] = None
    cycle: int = 0
    memory: DecisionMemory = field(default_factory=DecisionMemory)
    memory_seeded: bool = False

    def set_allowed_assets(self, symbols: Iterable[str]) -> None:
        allowed = []
        for symbol in symbols:
            clean = clean_symbol(symbol)
            if not clean or clean == self.settlement:
                continue
            allowed.append(clean)
        self.allowed_assets = allowed

    def apply_snapshot(self, snapshot: MarketSnapshot, agent_id: str) -> None:
        """Store the latest book and recount this agent's open orders."""

        for token in snapshot.tokens:
            self.prices[clean_symbol(token.symbol)] = token.price
        self.offers = list(snapshot.offers)
        self.rfqs = list(snapshot.rfqs)

        open_offers = 0
        by_asset: Dict[str, int] = {}
        for offer in self.offers:
            if offer.agent_id == agent_id and is_open_status(offer.status):
                open_offers += 1
                symbol = clean_symbol(offer.asset)
                if symbol:
                    by_asset[symbol] = by_asset.get(symbol, 0) + 1
        self.open_offers = open_offers
        self.open_offers_by_asset = by_asset
        self.open_rfqs = sum(
            1 for rfq in self.rfqs if rfq.agent_id == agent_id and is_open_status(rfq.status)
        )

    def balance(self, denom: str) -> int:
        return (self.balances or {}).get(denom, 0)

    def repair_context(self) -> RepairContext:
        return RepairContext(
            settlement=self.settlement,
            balances=dict(self.balances) if self.balances is not None else None,
            prices=dict(self.prices),
            allowed=tuple(self.allowed_assets),
        )


__all__ = ["MarketSnapshot", "RunnerState", "is_open_status"]
