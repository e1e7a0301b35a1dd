"""Utility helpers shared across agent components."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

FNV32_OFFSET = 0x811C9DC5
FNV32_PRIME = 0x01000193


def safe_float(value: Any, default: float = 0.0) -> float:
    """Convert ``value`` to ``float`` while swallowing type errors.

    Parameters
    ----------
    value:
        Arbitrary numeric-like value.
    default:
        Value returned when conversion fails.
    """

    if isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def safe_int(value: Any, default: int = 0) -> int:
    """Convert ``value`` to ``int``, truncating floats."""

    number = safe_float(value, float("nan"))
    if math.isnan(number):
        return default
    return int(number)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""

    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def clean_symbol(value: Any) -> str:
    return str(value or "").strip().upper()


def trim_for_prompt(text: str, limit: int) -> str:
    trimmed = (text or "").strip()
    if not trimmed or limit <= 0:
        return ""
    if len(trimmed) <= limit:
        return trimmed
    return trimmed[: limit - 3] + "..."


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoding of ``text``."""

    value = FNV32_OFFSET
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * FNV32_PRIME) & 0xFFFFFFFF
    return value


def utc_now_iso() -> str:
    """Current UTC time as an RFC3339 string with second precision."""

    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


__all__ = [
    "safe_float",
    "safe_int",
    "round_half_away",
    "clean_symbol",
    "trim_for_prompt",
    "fnv1a_32",
    "utc_now_iso",
]
