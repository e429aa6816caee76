"""
Deterministic rule-based extraction of deadlines, obligations and penalties.

This module extracts notice facts using PURE REGEX and keyword lists — no AI,
no guessing. It produces the ground truth that generated answers are checked
against, and it is also re-run on the answers themselves so both sides are
read by the same rules.

Every extractor is a pure function: identical text always yields identical,
order-stable results, malformed or empty input yields an empty list, and
nothing here raises.
"""

from __future__ import annotations

import re

from .models import Deadline, Obligation, Penalty, RuleBasedData
from .normalization import (
    AMOUNT,
    KOREAN_DATE,
    NUMERIC_DATE,
    UNKNOWN_AMOUNT,
    normalize_amount,
    normalize_date,
)

# ─── Constants ───────────────────────────────────────────────────────

# Order matters: the first keyword that matches a date becomes its type.
DEADLINE_KEYWORDS: tuple[str, ...] = (
    "기한", "마감", "납부일", "납부기한", "제출일", "제출기한",
    "신청일", "신청기한", "접수기한", "접수일", "처리기한", "완료기한",
    "마감일", "기일", "까지", "이전",
)

PENALTY_KEYWORDS: tuple[str, ...] = (
    "과태료", "벌금", "처벌", "제재", "징계", "불이익",
)

CONTEXT_WINDOW = 50
DEADLINE_KEYWORD_WINDOW = 30
MAX_DESCRIPTION_LENGTH = 200
MIN_SENTENCE_LENGTH = 10

_DATE_LITERAL = f"(?:{KOREAN_DATE}|{NUMERIC_DATE})"
_DATE_LITERAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(f"({KOREAN_DATE})"),
    re.compile(f"({NUMERIC_DATE})"),
)

# (pattern, capture group used as the description)
_OBLIGATION_PATTERNS: tuple[tuple[re.Pattern[str], int], ...] = (
    # Explicit obligation words
    (re.compile(r"(의무|필수|반드시|해야\s*함|해야\s*합니다|해야\s*한다고|해야\s*한다|해야\s*할)"), 1),
    # "X 해야 합니다"
    (re.compile(r"([가-힣\s]+)\s*(해야\s*합니다|해야\s*함|해야\s*한다고|해야\s*한다|해야\s*할)"), 1),
    # "X 필수 / 의무 / 반드시"
    (re.compile(r"([가-힣\s]+)\s*(필수|의무|반드시)"), 1),
    # Prohibitions: "X 하지 않으면"
    (re.compile(r"([가-힣\s]+)\s*(하지\s*않으면\s*안\s*됨|하지\s*않으면|하지\s*않을\s*경우)"), 1),
    # Legal citations: "법률에 따라 X"
    (re.compile(r"(법률|규정|법령|조례|규칙|지침)\s*(에\s*따라|에\s*의해|에\s*의하면)\s*([가-힣\s]+)"), 0),
)

_OBLIGATION_KEYWORD_RE = re.compile(r"(의무|필수|반드시|해야|하지\s*않으면)")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?。！？\n]")

_GENERIC_PENALTY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"과태료\s*(?:는|은|가)?\s*({AMOUNT})"),
    re.compile(rf"벌금\s*(?:는|은|가)?\s*({AMOUNT})"),
    re.compile(r"처벌\s*(?:받을|받게|받는)"),
)
# Context amounts must carry a unit so date digits are never read as money.
_UNIT_AMOUNT_RE = re.compile(r"(\d+(?:,\d{3})*(?:\.\d+)?\s*(?:만원|억원|원))")


# ─── Public API ──────────────────────────────────────────────────────


def extract_all(text: str) -> RuleBasedData:
    """Run every rule extractor over one text."""
    return RuleBasedData(
        deadlines=extract_deadlines(text),
        obligations=extract_obligations(text),
        penalties=extract_penalties(text),
    )


def extract_deadlines(text: str) -> list[Deadline]:
    """Extract deadlines: dates tied to a deadline keyword.

    Pass 1 looks for a keyword immediately before or after a date literal.
    Pass 2 accepts any remaining date literal with a keyword within
    ±30 characters. Each normalized date is emitted at most once.
    """
    if not text:
        return []

    deadlines: list[Deadline] = []
    seen: set[str] = set()

    def _add(raw_date: str, match: re.Match[str], kind: str) -> None:
        normalized = normalize_date(raw_date)
        if normalized is None or normalized in seen:
            return
        seen.add(normalized)
        deadlines.append(
            Deadline(
                date=normalized,
                context=_get_context(text, match.start(), match.end()),
                type=kind,
            )
        )

    # ── Pass 1: keyword adjacent to a date ──────────────────────────
    for keyword in DEADLINE_KEYWORDS:
        kw = re.escape(keyword)
        after = re.compile(rf"{kw}[는은을를]?\s*[:：]?\s*({_DATE_LITERAL})")
        before = re.compile(rf"({_DATE_LITERAL})\s*{kw}")
        for pattern in (after, before):
            for match in pattern.finditer(text):
                _add(match.group(1), match, keyword)

    # ── Pass 2: any date with a keyword nearby ──────────────────────
    for pattern in _DATE_LITERAL_PATTERNS:
        for match in pattern.finditer(text):
            normalized = normalize_date(match.group(1))
            if normalized is None or normalized in seen:
                continue
            lo = max(0, match.start() - DEADLINE_KEYWORD_WINDOW)
            hi = min(len(text), match.end() + DEADLINE_KEYWORD_WINDOW)
            window = text[lo:hi]
            if any(keyword in window for keyword in DEADLINE_KEYWORDS):
                _add(match.group(1), match, "deadline")

    return deadlines


def extract_obligations(text: str) -> list[Obligation]:
    """Extract obligations from keyword patterns and obligation sentences.

    Descriptions are capped at 200 characters and deduplicated on their
    lower-cased, whitespace-collapsed form.
    """
    if not text:
        return []

    obligations: list[Obligation] = []
    seen: set[str] = set()

    def _add(description: str, context: str) -> None:
        description = description.strip()[:MAX_DESCRIPTION_LENGTH].strip()
        if not description:
            return
        key = _dedup_key(description)
        if key in seen:
            return
        seen.add(key)
        obligations.append(Obligation(description=description, context=context))

    for pattern, group in _OBLIGATION_PATTERNS:
        for match in pattern.finditer(text):
            description = match.group(group) or match.group(0)
            _add(description, _get_context(text, match.start(), match.end()))

    # Whole sentences that carry an obligation keyword
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        stripped = sentence.strip()
        if len(stripped) > MIN_SENTENCE_LENGTH and _OBLIGATION_KEYWORD_RE.search(stripped):
            _add(stripped, stripped)

    return obligations


def extract_penalties(text: str) -> list[Penalty]:
    """Extract penalties: a penalty keyword paired with an amount.

    A penalty sentence with no recoverable amount is still recorded, with
    amount "0" (unknown). Deduplicated on (type, amount).
    """
    if not text:
        return []

    penalties: list[Penalty] = []
    seen: set[tuple[str, str]] = set()

    def _add(amount: str, kind: str, context: str) -> None:
        key = (kind, amount)
        if key in seen:
            return
        seen.add(key)
        penalties.append(Penalty(amount=amount, type=kind, context=context))

    # ── Keyword paired with an amount ───────────────────────────────
    for keyword in PENALTY_KEYWORDS:
        kw = re.escape(keyword)
        after = re.compile(rf"{kw}\s*(?:[은는이가])?\s*[:：]?\s*({AMOUNT})")
        before = re.compile(rf"({AMOUNT})\s*(?:의|에\s*해당하는)?\s*{kw}")
        for pattern in (after, before):
            for match in pattern.finditer(text):
                _add(
                    normalize_amount(match.group(1)),
                    keyword,
                    _get_context(text, match.start(), match.end()),
                )

    # ── Generic penalty sentences ───────────────────────────────────
    for pattern in _GENERIC_PENALTY_PATTERNS:
        for match in pattern.finditer(text):
            context = _get_context(text, match.start(), match.end())
            if pattern.groups:
                amount = normalize_amount(match.group(1))
            else:
                amount_match = _UNIT_AMOUNT_RE.search(context)
                amount = normalize_amount(amount_match.group(1)) if amount_match else UNKNOWN_AMOUNT
            _add(amount, "penalty", context)

    return penalties


# ─── Internal Helpers ────────────────────────────────────────────────


def _get_context(text: str, start: int, end: int) -> str:
    """Return the match plus 50 characters either side, trimmed."""
    lo = max(0, start - CONTEXT_WINDOW)
    hi = min(len(text), end + CONTEXT_WINDOW)
    return text[lo:hi].strip()


def _dedup_key(description: str) -> str:
    return re.sub(r"\s+", " ", description.lower()).strip()
