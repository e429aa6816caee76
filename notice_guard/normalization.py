"""
Normalize Korean date and currency literals to canonical strings.

THIS IS THE COMPARISON KEY FOR EVERY FACT WE VALIDATE.

Two facts are "the same deadline" only if their dates normalize to the same
YYYY-MM-DD string, and "the same penalty" only if their amounts normalize to
the same integer string. Everything downstream trusts these two functions.

Supported date forms:
    "2025년 5월 31일"  → "2025-05-31"
    "2025.5.31" / "2025-05-31" / "2025/5/31" → "2025-05-31"
    "5월 31일"         → "<current year>-05-31"

Supported amount forms:
    "10만원"    → "100000"
    "1.5억원"   → "150000000"
    "87,000원"  → "87000"
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

# An amount of "0" means the amount is unknown, not a parsed zero.
UNKNOWN_AMOUNT = "0"

# ─── Date Patterns ───────────────────────────────────────────────────

KOREAN_DATE = r"\d{4}년\s*\d{1,2}월\s*\d{1,2}일"
NUMERIC_DATE = r"\d{4}[.\-/]\d{1,2}[.\-/]\d{1,2}"

_KOREAN_DATE_RE = re.compile(r"(\d{4})년\s*(\d{1,2})월\s*(\d{1,2})일")
_NUMERIC_DATE_RE = re.compile(r"(\d{4})[.\-/](\d{1,2})[.\-/](\d{1,2})")
_MONTH_DAY_RE = re.compile(r"(\d{1,2})월\s*(\d{1,2})일")

# ─── Amount Patterns ─────────────────────────────────────────────────

AMOUNT = r"\d+(?:,\d{3})*(?:\.\d+)?\s*(?:원|만원|억원)?"

# Checked in order; the first hit wins.
_MAGNITUDES: tuple[tuple[re.Pattern[str], int], ...] = (
    (re.compile(r"(\d+(?:\.\d+)?)만원?"), 10_000),
    (re.compile(r"(\d+(?:\.\d+)?)억원?"), 100_000_000),
    (re.compile(r"(\d+(?:\.\d+)?)원"), 1),
)


def normalize_date(text: str, *, year: int | None = None) -> str | None:
    """Normalize a date literal to YYYY-MM-DD.

    Args:
        text: A string containing one of the supported date forms.
        year: Year assumed for bare "MM월 DD일" dates (defaults to today's).

    Returns:
        The zero-padded ISO date, or None if nothing parseable was found or
        the parts don't form a real calendar date.
    """
    if not text:
        return None

    match = _KOREAN_DATE_RE.search(text) or _NUMERIC_DATE_RE.search(text)
    if match:
        y, m, d = (int(g) for g in match.groups())
    else:
        match = _MONTH_DAY_RE.search(text)
        if not match:
            return None
        y = year if year is not None else date.today().year
        m, d = (int(g) for g in match.groups())

    try:
        return date(y, m, d).isoformat()
    except ValueError:
        return None


def normalize_amount(text: str) -> str:
    """Normalize a currency literal to an integer string in won.

    Magnitude words are folded (만 ×10,000, 억 ×100,000,000). As a last resort
    every non-digit is stripped; if no digits remain the input is returned
    unchanged.
    """
    cleaned = re.sub(r"[,，\s]", "", text or "")

    for pattern, multiplier in _MAGNITUDES:
        match = pattern.search(cleaned)
        if match:
            try:
                return str(int(Decimal(match.group(1)) * multiplier))
            except InvalidOperation:
                break

    digits = re.sub(r"\D", "", cleaned)
    return digits or text


def is_unknown_amount(amount: str) -> bool:
    return amount == UNKNOWN_AMOUNT
