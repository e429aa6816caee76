"""
Fuzzy comparison predicates used by the response validators.

Their thresholds are part of the observable behavior: loosening or
tightening any of them changes which answers get rejected.
"""

from __future__ import annotations

import re

from .normalization import UNKNOWN_AMOUNT, normalize_amount, normalize_date

OBLIGATION_KEYWORDS: tuple[str, ...] = ("의무", "필수", "반드시", "해야")
MIN_SHARED_WORD_LENGTH = 3


def dates_match(a: str, b: str) -> bool:
    """Equal once normalized; substring containment if either won't normalize."""
    norm_a = normalize_date(a)
    norm_b = normalize_date(b)
    if norm_a is None or norm_b is None:
        return a in b or b in a
    return norm_a == norm_b


def amounts_match(a: str, b: str) -> bool:
    """Equal once normalized. Unknown ("0") or empty amounts always match."""
    norm_a = normalize_amount(a)
    norm_b = normalize_amount(b)
    if not norm_a or not norm_b or UNKNOWN_AMOUNT in (norm_a, norm_b):
        return True
    return norm_a == norm_b


def obligations_match(a: str, b: str) -> bool:
    """Substring containment either way, or shared words between two
    descriptions that both carry an obligation keyword."""
    norm_a = _collapse(a)
    norm_b = _collapse(b)

    if norm_a in norm_b or norm_b in norm_a:
        return True

    if _has_obligation_keyword(norm_a) and _has_obligation_keyword(norm_b):
        words_b = {w for w in norm_b.split() if len(w) >= MIN_SHARED_WORD_LENGTH}
        return any(w in words_b for w in norm_a.split() if len(w) >= MIN_SHARED_WORD_LENGTH)

    return False


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip()


def _has_obligation_keyword(text: str) -> bool:
    return any(kw in text for kw in OBLIGATION_KEYWORDS)
