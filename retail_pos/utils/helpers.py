# utils/helpers.py
from datetime import datetime, timezone
import logging
from typing import Union, Optional

from ..constants import CURRENCY_SYMBOL, MONEY_PLACES

NumberLike = Union[float, int, str]

_log = logging.getLogger(__name__)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO timestamp (a trailing 'Z' is accepted). Naive values are
    taken as local time. Returns None for empty or unparseable input.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(text)
    except ValueError:
        _log.debug("parse_iso: could not parse %r", value)
        return None
    if ts.tzinfo is None:
        ts = ts.astimezone()
    return ts


def round_money(v: float, places: int = MONEY_PLACES) -> float:
    # "+ 0.0" folds -0.0 into 0.0
    return round(float(v), places) + 0.0


def fmt_money(
    v: NumberLike,
    places: int = MONEY_PLACES,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"


def fmt_amount(v: NumberLike, symbol: str = CURRENCY_SYMBOL) -> str:
    """Currency amount for operator messages, e.g. ₹1,250.00."""
    return f"{symbol}{fmt_money(v, strict=True)}"
