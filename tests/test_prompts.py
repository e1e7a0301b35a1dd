"""Tests for prompt construction and the orderbook lens."""

from __future__ import annotations

from agentmarket_trader.decision import Action
from agentmarket_trader.gateway import RFQ, Offer, Token
from agentmarket_trader.prompts import (
    MARKET_UNAVAILABLE_PROMPT,
    SYSTEM_PROMPT,
    build_prompt,
    format_holdings,
    profile_prompt,
    resolve_profile,
    summarize_orderbook,
)
from agentmarket_trader.state import MarketSnapshot, RunnerState

SELF = "agent-self"


def make_offer(asset, price, qty=1.0, agent="other"):
    return Offer(offer_id="o", agent_id=agent, asset=asset, price=price, qty=qty, status="open")


def make_rfq(asset, max_price, qty=1.0, agent="other"):
    return RFQ(rfq_id="r", agent_id=agent, asset=asset, max_price=max_price, qty=qty, status="open")


def test_orderbook_ranks_cross_first_then_alphabetical():
    tokens = [Token(symbol="AAA", price=10), Token(symbol="BBB", price=10), Token(symbol="CCC", price=10)]
    offers = [make_offer("BBB", 9), make_offer("AAA", 20), make_offer("CCC", 10.2)]
    rfqs = [make_rfq("BBB", 9.5), make_rfq("AAA", 9.8)]

    summary = summarize_orderbook(tokens, offers, rfqs, SELF, [], "AGC")
    rows = summary.split("; ")
    # BBB: both sides (3) + crossed (3) + ask near last (1) = 7
    assert rows[0] == "BBB last=10.00 bid=9.50 ask=9.00 cross"
    # AAA: both sides (3) + bid near last (1) = 4; CCC: ask near last = 1
    assert rows[1] == "AAA last=10.00 bid=9.80 ask=20.00 watch"
    assert rows[2] == "CCC last=10.00 bid=n/a ask=10.20 watch"


def test_orderbook_classifications_and_tie_break():
    tokens = [Token(symbol="ZED", price=10), Token(symbol="ABC", price=10)]
    offers = [make_offer("ABC", 9)]
    rfqs = [make_rfq("ZED", 11)]
    rows = summarize_orderbook(tokens, offers, rfqs, SELF, [], "AGC").split("; ")
    assert rows == [
        "ABC last=10.00 bid=n/a ask=9.00 cheap_ask",
        "ZED last=10.00 bid=11.00 ask=n/a strong_bid",
    ]


def test_orderbook_filters_self_settlement_policy_and_limits_rows():
    tokens = [Token(symbol=f"T{index}", price=1) for index in range(8)] + [Token(symbol="AGC", price=1)]
    offers = [make_offer("T1", 0.5, agent=SELF), make_offer("T2", 1, qty=0)]
    summary = summarize_orderbook(tokens, offers, [], SELF, [], "AGC")
    rows = summary.split("; ")
    assert len(rows) == 5
    assert all("ask=n/a" in row for row in rows)
    assert "AGC" not in summary

    restricted = summarize_orderbook(tokens, [], [], SELF, ["t3"], "AGC")
    assert restricted == "T3 last=1.00 bid=n/a ask=n/a watch"


def test_orderbook_without_rows():
    assert summarize_orderbook([], [], [], SELF, [], "AGC") == "no visible liquidity"


def test_resolve_profile():
    assert resolve_profile("any", " Taker ") == "taker"
    assert resolve_profile("", "") == "market_maker"
    profile = resolve_profile("agent-123")
    assert profile in ("market_maker", "taker", "momentum")
    assert resolve_profile("agent-123") == profile
    assert profile_prompt("unknown") == "Be cautious and prefer small actions."


def test_format_holdings():
    assert format_holdings(None) == "unknown"
    assert format_holdings({"XYZ": 3, "AGC": 100}) == "AGC 100, XYZ 3"


def test_build_prompt_without_snapshot_asks_to_wait():
    state = RunnerState(strategy_prompt="Only trade XYZ.")
    prompt = build_prompt(state, None, SELF, "taker")
    assert prompt.user == MARKET_UNAVAILABLE_PROMPT
    assert prompt.system == SYSTEM_PROMPT + " Custom strategy instructions from user: Only trade XYZ."


def test_build_prompt_includes_market_memory_and_policy():
    state = RunnerState(balances={"AGC": 100, "XYZ": 2}, open_offers=1, open_rfqs=2)
    state.set_allowed_assets(["xyz", "AGC", ""])
    state.memory.record(Action(kind="trade", asset="XYZ", qty=1, price=2, side="buy"), "executed")
    snapshot = MarketSnapshot(
        tokens=[Token(symbol="XYZ", price=2.5, change_24h=1.25), Token(symbol="ABC", price=1, change_24h=-3)],
        offers=[make_offer("XYZ", 2.4)],
        rfqs=[],
    )

    prompt = build_prompt(state, snapshot, SELF, "momentum")

    assert prompt.system == SYSTEM_PROMPT
    user = prompt.user
    assert user.startswith(f"Agent {SELF} (momentum).")
    assert "tokens [XYZ 2.50 (+1.25%), ABC 1.00 (-3.00%)]" in user
    assert "Offers: 1. RFQs: 0. Holdings: AGC 100, XYZ 2." in user
    assert "You currently have 1 open offers and 2 open RFQs." in user
    assert "Allowed asset symbols: [XYZ]." in user
    assert "Orderbook lens: XYZ last=2.50 bid=n/a ask=2.40 cheap_ask." in user
    assert "Recent decision memory: trade XYZ buy q=1.00 p=2.00 => executed (0.8)." in user
    assert "reuse similar valid sizing" in user
    assert "If change_24h is positive, prefer buy" in user
