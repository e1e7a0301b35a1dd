"""Bounded decision memory that feeds outcome hints back into prompts."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, Iterable, Iterator, List, Optional

from .decision import Action
from .gateway import HistoryDecision
from .utils import clean_symbol, trim_for_prompt, utc_now_iso

MEMORY_LIMIT = 12
SEED_LIMIT = 8
SUMMARY_ROWS = 6

STATUS_REWARDS = {
    "executed": 0.8,
    "wait": 0.2,
    "blocked": -0.3,
    "rejected": -0.7,
}
DEFAULT_REWARD = -0.1

# (substrings, penalty). Every matching category applies.
ERROR_PENALTIES = (
    (("decision_error", "parse error"), 0.5),
    (("asset_symbol is required", "invalid action"), 0.4),
    (("insufficient",), 0.2),
    (("no matching", "liquidity"), 0.1),
)

EMPTY_MEMORY_HINT = "keep sizes small, prefer liquid symbols, and avoid invalid schema"
STABLE_MEMORY_HINT = "execution quality stable; continue with small, policy-safe actions"


def score_decision_outcome(status: str, error: str) -> float:
    """Reward for an outcome: base by status, minus stacked error penalties."""

    score = STATUS_REWARDS.get((status or "").strip().lower(), DEFAULT_REWARD)
    lowered = (error or "").strip().lower()
    if not lowered:
        return score
    for needles, penalty in ERROR_PENALTIES:
        if any(needle in lowered for needle in needles):
            score -= penalty
    return score


@dataclass(frozen=True, slots=True)
class MemoryEntry:
    kind: str
    asset: str = ""
    side: str = ""
    price: float = 0.0
    qty: float = 0.0
    status: str = ""
    error: str = ""
    reason: str = ""
    timestamp: str = ""
    reward: float = 0.0

    @classmethod
    def from_action(cls, action: Action, status: str, error: str = "") -> "MemoryEntry":
        return cls(
            kind=(action.kind or "").strip().lower(),
            asset=clean_symbol(action.asset),
            side=(action.side or "").strip().lower(),
            price=action.price,
            qty=action.qty,
            status=(status or "").strip().lower(),
            error=(error or "").strip(),
            reason=(action.reason or "").strip(),
            timestamp=utc_now_iso(),
            reward=score_decision_outcome(status, error),
        )

    @classmethod
    def from_history(cls, item: HistoryDecision) -> "MemoryEntry":
        return cls(
            kind=item.action.strip().lower(),
            asset=clean_symbol(item.asset),
            side=item.side.strip().lower(),
            price=item.price,
            qty=item.qty,
            status=item.status.strip().lower(),
            error=item.error.strip(),
            reason=item.reason.strip(),
            timestamp=item.created_at.strip(),
            reward=score_decision_outcome(item.status, item.error),
        )

    def render(self) -> str:
        text = (
            f"{self.kind or 'unknown'} {self.asset or '-'} {self.side or '-'} "
            f"q={self.qty:.2f} p={self.price:.2f} => {self.status or 'logged'} ({self.reward:.1f})"
        )
        if self.error:
            text += " err=" + trim_for_prompt(self.error, 52)
        return text


class DecisionMemory:
    """FIFO-bounded buffer of recent decision outcomes."""

    def __init__(self, limit: int = MEMORY_LIMIT) -> None:
        self._entries: Deque[MemoryEntry] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MemoryEntry]:
        return iter(self._entries)

    @property
    def limit(self) -> int:
        return self._entries.maxlen or 0

    def entries(self) -> List[MemoryEntry]:
        return list(self._entries)

    def push(self, entry: MemoryEntry) -> Optional[MemoryEntry]:
        """Append ``entry``; entries without a kind are ignored."""

        if not entry.kind.strip():
            return None
        if not entry.status.strip():
            entry = replace(entry, status="logged")
        if not entry.timestamp.strip():
            entry = replace(entry, timestamp=utc_now_iso())
        self._entries.append(entry)
        return entry

    def record(self, action: Action, status: str, error: str = "") -> Optional[MemoryEntry]:
        return self.push(MemoryEntry.from_action(action, status, error))

    def seed(self, history: Iterable[HistoryDecision], limit: int = SEED_LIMIT) -> int:
        """Load the most recent meaningful decisions from gateway history."""

        decisions = [
            item for item in history if item.action.strip().lower() not in ("", "noop")
        ]
        decisions.sort(key=lambda item: (item.created_at.strip(), item.decision_id))
        seeded = 0
        if limit <= 0:
            return seeded
        for item in decisions[-limit:]:
            if self.push(MemoryEntry.from_history(item)) is not None:
                seeded += 1
        return seeded

    def summary(self, rows: int = SUMMARY_ROWS) -> str:
        if not self._entries:
            return "none yet"
        recent = list(self._entries)[-rows:]
        return " | ".join(entry.render() for entry in recent)

    def lessons(self) -> str:
        """Turn recurring outcomes into short natural-language hints."""

        if not self._entries:
            return EMPTY_MEMORY_HINT

        executed = waiting = failures = 0
        insufficient = liquidity = schema = limits = 0
        for entry in self._entries:
            status = entry.status.strip().lower()
            if status == "executed":
                executed += 1
            elif status == "wait":
                waiting += 1
            elif status in ("blocked", "rejected"):
                failures += 1
            error = entry.error.strip().lower()
            if "insufficient" in error:
                insufficient += 1
            if "no matching" in error or "liquidity" in error:
                liquidity += 1
            if any(
                needle in error
                for needle in ("asset_symbol is required", "invalid action", "parse error")
            ):
                schema += 1
            if "limit reached" in error:
                limits += 1

        notes = []
        if schema:
            notes.append("always return strict schema with action+asset_symbol+qty(+side for trade)")
        if insufficient:
            notes.append("reduce qty or price to stay inside balances")
        if liquidity:
            notes.append("prefer trade sizes that fit visible opposite liquidity")
        if limits:
            notes.append("if limits are hit, wait or trade instead of creating new offers/RFQs")
        if failures > executed:
            notes.append("failure rate high: prefer one conservative action over aggressive retries")
        if executed:
            notes.append(f"recently executed {executed} actions; reuse similar valid sizing")
        if waiting and not executed:
            notes.append("waiting is acceptable, but seek a small executable trade when liquidity appears")
        if not notes:
            return STABLE_MEMORY_HINT
        return "; ".join(notes)


__all__ = [
    "DecisionMemory",
    "MEMORY_LIMIT",
    "MemoryEntry",
    "SEED_LIMIT",
    "score_decision_outcome",
]
