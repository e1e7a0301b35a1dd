"""Parsing, normalization, repair and validation of model-proposed actions."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from .utils import clean_symbol, safe_float, safe_int

DEFAULT_WAIT_SECONDS = 6
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 60


class DecisionParseError(ValueError):
    """Raised when the model output cannot be converted into an action."""


class ActionValidationError(DecisionParseError):
    """Raised when a decoded action violates the strict action grammar."""


class ActionKind(str, Enum):
    """Canonical action kinds accepted by the market."""

    POST_OFFER = "post_offer"
    CREATE_RFQ = "create_rfq"
    TRADE = "trade"
    WAIT = "wait"


ACTIONABLE_KINDS = frozenset({ActionKind.POST_OFFER, ActionKind.CREATE_RFQ, ActionKind.TRADE})
CANONICAL_KINDS = frozenset(kind.value for kind in ActionKind)
TRADE_SIDES = ("buy", "sell")

# Variant phrasings emitted by models, keyed after lowercasing and folding
# spaces/hyphens to underscores.
ACTION_SYNONYMS: Mapping[str, str] = {
    "offer": "post_offer",
    "list": "post_offer",
    "postoffer": "post_offer",
    "post_offer": "post_offer",
    "make_offer": "post_offer",
    "rfq": "create_rfq",
    "create_rfq": "create_rfq",
    "request_quote": "create_rfq",
    "request_rfq": "create_rfq",
    "create_r_fq": "create_rfq",
    "trade": "trade",
    "buy": "trade",
    "sell": "trade",
    "wait": "wait",
    "hold": "wait",
    "observe": "wait",
    "pause": "wait",
    "noop": "noop",
    "no_op": "noop",
}

# Synonyms that also carry the trade side.
SIDE_SYNONYMS: Mapping[str, str] = {"buy": "buy", "sell": "sell"}


@dataclass(frozen=True, slots=True)
class Action:
    """A single proposed market action."""

    kind: str
    asset: str = ""
    price: float = 0.0
    qty: float = 0.0
    side: str = ""
    reason: str = ""
    wait_seconds: int = 0
    category: str = ""

    @property
    def is_wait(self) -> bool:
        return self.kind == ActionKind.WAIT.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        return cls(
            kind=str(data.get("action") or ""),
            asset=str(data.get("asset_symbol") or ""),
            price=safe_float(data.get("price_agc")),
            qty=safe_float(data.get("qty")),
            side=str(data.get("side") or ""),
            reason=str(data.get("reason") or ""),
            wait_seconds=safe_int(data.get("next_check_sec")),
            category=str(data.get("category") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.kind,
            "asset_symbol": self.asset,
            "price_agc": self.price,
            "qty": self.qty,
            "side": self.side,
            "reason": self.reason,
            "next_check_sec": self.wait_seconds,
        }


def extract_json_object(text: str) -> str:
    """Strip code fences and surrounding prose from a single JSON object."""

    clean = (text or "").strip()
    if clean.startswith("```"):
        clean = clean[3:]
        if clean.endswith("```"):
            clean = clean[:-3]
        clean = clean.strip()
    if not clean.startswith("{"):
        start = clean.find("{")
        end = clean.rfind("}")
        if start >= 0 and end > start:
            clean = clean[start : end + 1]
    return clean


def parse_action(text: str) -> Action:
    """Decode model text into an un-normalized :class:`Action`."""

    candidate = extract_json_object(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise DecisionParseError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise DecisionParseError("decision JSON must be an object")
    return Action.from_dict(data)


_UNDERSCORE_RUN = re.compile(r"_+")


def _fold_kind(value: str) -> str:
    clean = (value or "").strip().lower().replace(" ", "_").replace("-", "_")
    return _UNDERSCORE_RUN.sub("_", clean).strip("_")


def normalize_action(action: Action) -> Action:
    """Map synonyms to canonical kinds and tidy up field casing."""

    folded = _fold_kind(action.kind)
    side = SIDE_SYNONYMS.get(folded, action.side)
    return replace(
        action,
        kind=ACTION_SYNONYMS.get(folded, folded),
        asset=clean_symbol(action.asset),
        side=(side or "").strip().lower(),
        reason=(action.reason or "").strip(),
        category=(action.category or "").strip(),
        wait_seconds=max(0, action.wait_seconds),
    )


def pick_action_asset(
    kind: str,
    balances: Optional[Mapping[str, int]],
    prices: Mapping[str, float],
    allowed: Iterable[str],
    settlement: str,
) -> str:
    """Choose an asset for an actionable kind the model left blank."""

    allowed_set = {clean_symbol(symbol) for symbol in allowed}
    allowed_set.discard("")
    allowed_set.discard(settlement)

    def accept(symbol: str) -> bool:
        clean = clean_symbol(symbol)
        if not clean or clean == settlement:
            return False
        return not allowed_set or clean in allowed_set

    if kind in (ActionKind.POST_OFFER.value, ActionKind.TRADE.value):
        best, best_qty = "", 0
        for symbol, amount in sorted((balances or {}).items()):
            if accept(symbol) and amount > best_qty:
                best, best_qty = clean_symbol(symbol), amount
        if best:
            return best

    for symbol in sorted(prices):
        if accept(symbol):
            return clean_symbol(symbol)
    if allowed_set:
        return min(allowed_set)
    return ""


def repair_action(
    action: Action,
    balances: Optional[Mapping[str, int]],
    prices: Mapping[str, float],
    allowed: Iterable[str],
    settlement: str,
) -> Action:
    """Fill fields a model commonly omits on otherwise actionable kinds."""

    if action.kind not in {kind.value for kind in ACTIONABLE_KINDS}:
        return action

    asset = action.asset or pick_action_asset(action.kind, balances, prices, allowed, settlement)
    if not asset:
        return action
    held = (balances or {}).get(asset, 0)

    qty = action.qty
    if qty <= 0:
        qty = float(max(1, min(5, held))) if held > 0 else 1.0

    price = action.price
    if price <= 0:
        last = prices.get(asset, 0.0)
        price = last if last > 0 else 1.0

    side = action.side
    if action.kind == ActionKind.TRADE.value and side not in TRADE_SIDES:
        side = "sell" if held > 0 else "buy"

    return replace(action, asset=asset, qty=qty, price=price, side=side)


def validate_action(action: Action, settlement: str) -> Action:
    """Enforce the strict action grammar, raising on the first violation."""

    kind = (action.kind or "").strip().lower()
    if kind not in CANONICAL_KINDS:
        if not kind:
            raise ActionValidationError("missing action")
        if kind == "noop":
            raise ActionValidationError("noop is not allowed")
        raise ActionValidationError(f"invalid action: {action.kind}")

    if kind == ActionKind.WAIT.value:
        if action.wait_seconds < 0:
            raise ActionValidationError("next_check_sec must be >= 0")
        return action

    asset = clean_symbol(action.asset)
    if not asset:
        raise ActionValidationError("asset_symbol is required")
    if asset == settlement:
        raise ActionValidationError(f"asset_symbol must not be {settlement}")
    if action.qty <= 0:
        raise ActionValidationError("qty must be > 0")
    if kind == ActionKind.TRADE.value and action.side.strip().lower() not in TRADE_SIDES:
        raise ActionValidationError("trade side must be buy or sell")
    if kind in (ActionKind.POST_OFFER.value, ActionKind.CREATE_RFQ.value) and action.price <= 0:
        raise ActionValidationError("price_agc must be > 0")
    return action


def normalize_wait_seconds(hint: int) -> int:
    """Clamp a model wait hint into the schedulable range.

    A zero hint means "no preference" and maps to the default; any other
    value is clamped into ``[MIN_WAIT_SECONDS, MAX_WAIT_SECONDS]``. Negative
    hints from direct callers therefore clamp to the minimum rather than the
    default; model output never reaches here negative because
    :func:`normalize_action` floors ``wait_seconds`` at zero.
    """

    seconds = DEFAULT_WAIT_SECONDS if hint == 0 else hint
    return max(MIN_WAIT_SECONDS, min(MAX_WAIT_SECONDS, seconds))


__all__ = [
    "ACTION_SYNONYMS",
    "Action",
    "ActionKind",
    "ActionValidationError",
    "DecisionParseError",
    "extract_json_object",
    "normalize_action",
    "normalize_wait_seconds",
    "parse_action",
    "pick_action_asset",
    "repair_action",
    "validate_action",
]
