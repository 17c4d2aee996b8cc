"""
Percentage parsing and aggregation.

Backtest results carry their return as text such as ``"12.34%"`` or
``"-3.5%"``. The two-decimal formatted string is also what gets stored and
added to in later runs, so ``parse_percent(format_percent(x)) == round(x, 2)``
must always hold.
"""

import logging
import math
from collections.abc import Iterable
from typing import Any

from shared.constants import ZERO_PNL

logger = logging.getLogger(__name__)


def parse_percent(value: Any) -> float | None:
    """Parse a percentage value, returning None when it is not a finite number.

    A single trailing ``%`` and surrounding whitespace are ignored. Never raises.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int | float):
        number = float(value)
    else:
        text = str(value).strip()
        if text.endswith("%"):
            text = text[:-1].strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None

    if not math.isfinite(number):
        return None
    return number


def format_percent(value: float) -> str:
    """Format a number as a percentage string with exactly two decimals"""
    text = f"{value:.2f}"
    if text == "-0.00":
        text = "0.00"
    return f"{text}%"


def _pnl_of(item: Any) -> tuple[Any, Any]:
    """Return (raw P&L, identifier) for a signal, record or bare value"""
    if hasattr(item, "final_pnl"):
        identifier = getattr(item, "id", None) or getattr(item, "signal_id", None)
        return item.final_pnl, identifier
    return item, None


def sum_pnl(items: Iterable[Any]) -> str:
    """Sum the valid P&L values of signals, records or raw strings.

    Returns "0%" when there is nothing valid to sum; malformed entries are
    logged and skipped.
    """
    total = 0.0
    valid_count = 0

    for item in items:
        raw, identifier = _pnl_of(item)
        value = parse_percent(raw)
        if value is None:
            logger.warning(f"Invalid P&L value for signal {identifier}: {raw!r}")
            continue
        total += value
        valid_count += 1

    if valid_count == 0:
        return ZERO_PNL
    return format_percent(total)


def add_percent(total: float, pnl: str) -> str:
    """Add a formatted P&L string onto a running total"""
    return format_percent(total + (parse_percent(pnl) or 0.0))


def is_valid_signal(signal: Any) -> bool:
    """A signal counts only once backtested and with a parseable Final P&L"""
    return bool(signal.backtest_done) and parse_percent(signal.final_pnl) is not None


def filter_valid_signals(signals: Iterable[Any]) -> list[Any]:
    """Keep only signals that are backtested with a finite Final P&L"""
    return [signal for signal in signals if is_valid_signal(signal)]
