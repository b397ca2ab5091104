"""
Values -- Money coercion and month-key primitives.

Responsibility:
    Provides the foundational value handling for every phasing computation:
    Decimal money amounts with an explicit "unset" sentinel (``None``), the
    fail-soft coercion rules that keep a plan from ever crashing on bad
    input, and the ``"YYYY-MM"`` month key.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other module.  No outward dependencies.

Invariants enforced:
    - All monetary amounts are ``Decimal`` (never float) once past the
      boundary helpers in this module.
    - ``None`` means "no value entered" and is distinct from ``Decimal("0")``.
    - Money is rounded to ``MONEY_PLACES`` (two decimal places) only where
      callers ask for it; intermediate sums keep full precision.
    - Month keys sort chronologically by plain string comparison.

Failure modes:
    - ``coerce_amount`` and ``parse_amount`` never raise.
    - ``parse_month_key`` raises InvalidMonthKeyError on malformed keys.
"""

from __future__ import annotations

import re
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from phasing_kernel.exceptions import InvalidMonthKeyError

MonthKey = str

ZERO = Decimal("0")
MONEY_PLACES = Decimal("0.01")

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------


def _to_decimal(value: Any) -> Decimal | None:
    """Best-effort conversion to a finite Decimal; None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def coerce_amount(value: Any) -> Decimal:
    """
    Coerce any cell value to a Decimal for aggregation.

    Unset, blank, non-numeric and non-finite input all count as zero.
    This is the spreadsheet rule: a bad cell never breaks a total.
    """
    result = _to_decimal(value)
    return ZERO if result is None else result


def parse_amount(value: Any) -> Decimal | None:
    """
    Parse a user-entered monetary value, keeping the unset sentinel.

    Postconditions:
        - Returns ``None`` for blank, non-numeric, non-finite or negative
          input (monetary fields are never negative).
        - Otherwise returns the Decimal value unchanged (no rounding).
    """
    result = _to_decimal(value)
    if result is None or result < ZERO:
        return None
    return result


_TRUE_STRINGS = frozenset({"true", "1", "yes", "y"})


def parse_flag(value: Any) -> bool:
    """Read a host boolean; strings other than true/1/yes/y are False."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def is_unset_or_zero(value: Decimal | None) -> bool:
    """True when a money field holds no value or holds exactly zero."""
    return value is None or value == ZERO


def quantize_money(amount: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def floor_money(amount: Decimal) -> Decimal:
    """Truncate toward zero at two decimal places."""
    return amount.quantize(MONEY_PLACES, rounding=ROUND_DOWN)


# ---------------------------------------------------------------------------
# Month keys
# ---------------------------------------------------------------------------


def make_month_key(year: int, month: int) -> MonthKey:
    """Format a (year, month) pair as ``"YYYY-MM"``."""
    return f"{year:04d}-{month:02d}"


def is_valid_month_key(value: Any) -> bool:
    """True if *value* is a ``"YYYY-MM"`` string with month 1-12."""
    if not isinstance(value, str):
        return False
    m = _MONTH_KEY_RE.match(value)
    return bool(m) and 1 <= int(m.group(2)) <= 12


def parse_month_key(value: Any) -> tuple[int, int]:
    """
    Split a month key into ``(year, month)``.

    Raises:
        InvalidMonthKeyError: if *value* is not a valid ``"YYYY-MM"`` key.
    """
    if not is_valid_month_key(value):
        raise InvalidMonthKeyError(value)
    year, month = value.split("-")
    return int(year), int(month)


def add_months(month_key: MonthKey, n: int) -> MonthKey:
    """Shift a month key by *n* months (negative moves backwards)."""
    year, month = parse_month_key(month_key)
    index = year * 12 + (month - 1) + n
    return make_month_key(index // 12, index % 12 + 1)
