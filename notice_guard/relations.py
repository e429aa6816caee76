"""
Pattern-based relation linking between merged entities.

Pairs are restricted by label and by a character distance between spans
(|target.start - source.end|). A connector keyword in the text spanning the
pair raises the confidence; without one, some relation types still accept a
pair on distance alone at a lower confidence.

All thresholds below are fixed constants, not learned values.
"""

from __future__ import annotations

from .models import Entity, EntityLabel, Relation, RelationType, Source

# ─── Thresholds ──────────────────────────────────────────────────────

DEADLINE_MAX_DISTANCE = 100
PAYMENT_MAX_DISTANCE = 50
PENALTY_MAX_DISTANCE = 100
ACCOUNT_MAX_DISTANCE = 50
REQUIRED_WINDOW = 30
KEYWORD_WINDOW = 50
MAX_CONTEXT_LENGTH = 100

DEADLINE_CONNECTORS: tuple[str, ...] = ("까지", "이전", "기한", "마감", "납부일", "제출일")
PAYMENT_CONNECTORS: tuple[str, ...] = ("의", "납부액", "금액", "비용", "요금")
REQUIRED_KEYWORDS: tuple[str, ...] = ("필수", "의무", "반드시", "해야", "해야함", "해야합니다")
PENALTY_KEYWORDS: tuple[str, ...] = ("과태료", "벌금", "가산세", "처벌", "제재", "불이익")
ACCOUNT_KEYWORDS: tuple[str, ...] = ("계좌", "입금", "납부", "송금")

# (with connector, distance only)
DEADLINE_CONFIDENCE = (0.9, 0.7)
PAYMENT_TAX_CONFIDENCE = (0.85, 0.65)
PAYMENT_ACTION_CONFIDENCE = (0.8, 0.6)
REQUIRED_CONFIDENCE = 0.85
REQUIRED_TARGET_CONFIDENCE = 0.9
PENALTY_ACTION_CONFIDENCE = 0.8
PENALTY_DEADLINE_CONFIDENCE = 0.75
ACCOUNT_ACTION_CONFIDENCE = 0.75
ACCOUNT_ORGANIZATION_CONFIDENCE = 0.7

_DATE_LABELS = frozenset({EntityLabel.DATE, EntityLabel.DEADLINE})


# ─── Public API ──────────────────────────────────────────────────────


def extract_relations(text: str, entities: list[Entity]) -> list[Relation]:
    """Infer typed relations between ``entities`` found in ``text``."""
    ordered = sorted(entities, key=lambda e: e.start)

    relations: list[Relation] = []
    relations.extend(link_deadlines(text, ordered))
    relations.extend(link_payments(text, ordered))
    relations.extend(link_required_actions(text, ordered))
    relations.extend(link_penalties(text, ordered))
    relations.extend(link_accounts(text, ordered))
    return relations


def link_deadlines(text: str, entities: list[Entity]) -> list[Relation]:
    """DATE/DEADLINE → ACTION, e.g. "2025년 5월 31일까지 납부하세요"."""
    relations: list[Relation] = []
    dates = _with_labels(entities, _DATE_LABELS)
    actions = _with_labels(entities, {EntityLabel.ACTION})

    for date in dates:
        for action in actions:
            if distance(date, action) > DEADLINE_MAX_DISTANCE:
                continue
            span = _span_text(text, date, action)
            relations.append(
                _relation(
                    RelationType.DEADLINE_OF,
                    date,
                    action,
                    _pick(DEADLINE_CONFIDENCE, _has_any(span, DEADLINE_CONNECTORS)),
                    span,
                )
            )
    return relations


def link_payments(text: str, entities: list[Entity]) -> list[Relation]:
    """MONEY → TAX_TYPE/ACTION, e.g. "87,000원의 지방세"."""
    relations: list[Relation] = []
    amounts = _with_labels(entities, {EntityLabel.MONEY})
    targets = (
        (EntityLabel.TAX_TYPE, PAYMENT_TAX_CONFIDENCE),
        (EntityLabel.ACTION, PAYMENT_ACTION_CONFIDENCE),
    )

    for money in amounts:
        for label, confidences in targets:
            for target in _with_labels(entities, {label}):
                if distance(money, target) > PAYMENT_MAX_DISTANCE:
                    continue
                span = _span_text(text, money, target)
                relations.append(
                    _relation(
                        RelationType.PAYMENT_AMOUNT_FOR,
                        money,
                        target,
                        _pick(confidences, _has_any(span, PAYMENT_CONNECTORS)),
                        span,
                    )
                )
    return relations


def link_required_actions(text: str, entities: list[Entity]) -> list[Relation]:
    """ACTION → a virtual target placed at the requirement keyword.

    e.g. "서류 제출 필수" or "반드시 납부해야 합니다".
    """
    relations: list[Relation] = []

    for action in _with_labels(entities, {EntityLabel.ACTION}):
        lo = max(0, action.start - REQUIRED_WINDOW)
        hi = min(len(text), action.end + REQUIRED_WINDOW)
        window = text[lo:hi]

        hits = [(window.find(kw), kw) for kw in REQUIRED_KEYWORDS if kw in window]
        if not hits:
            continue
        offset, keyword = min(hits)

        target = Entity(
            text=keyword,
            label=EntityLabel.ACTION,
            start=lo + offset,
            end=lo + offset + len(keyword),
            confidence=REQUIRED_TARGET_CONFIDENCE,
            sources=[Source.RULE],
        )
        relations.append(
            _relation(RelationType.ACTION_REQUIRED, action, target, REQUIRED_CONFIDENCE, window)
        )
    return relations


def link_penalties(text: str, entities: list[Entity]) -> list[Relation]:
    """MONEY near a penalty keyword → ACTION/DEADLINE, e.g. "과태료 10만원"."""
    relations: list[Relation] = []
    actions = _with_labels(entities, {EntityLabel.ACTION})
    dates = _with_labels(entities, _DATE_LABELS)

    for money in _with_labels(entities, {EntityLabel.MONEY}):
        window = _window(text, money, KEYWORD_WINDOW)
        if not _has_any(window, PENALTY_KEYWORDS):
            continue
        for targets, confidence in (
            (actions, PENALTY_ACTION_CONFIDENCE),
            (dates, PENALTY_DEADLINE_CONFIDENCE),
        ):
            for target in targets:
                if distance(money, target) <= PENALTY_MAX_DISTANCE:
                    relations.append(
                        _relation(RelationType.PENALTY_FOR, money, target, confidence, window)
                    )
    return relations


def link_accounts(text: str, entities: list[Entity]) -> list[Relation]:
    """ACCOUNT_NUMBER near an account keyword → ACTION/ORGANIZATION."""
    relations: list[Relation] = []
    actions = _with_labels(entities, {EntityLabel.ACTION})
    organizations = _with_labels(entities, {EntityLabel.ORGANIZATION})

    for account in _with_labels(entities, {EntityLabel.ACCOUNT_NUMBER}):
        window = _window(text, account, KEYWORD_WINDOW)
        if not _has_any(window, ACCOUNT_KEYWORDS):
            continue
        for targets, confidence in (
            (actions, ACCOUNT_ACTION_CONFIDENCE),
            (organizations, ACCOUNT_ORGANIZATION_CONFIDENCE),
        ):
            for target in targets:
                if distance(account, target) <= ACCOUNT_MAX_DISTANCE:
                    relations.append(
                        _relation(RelationType.ACCOUNT_FOR, account, target, confidence, window)
                    )
    return relations


def distance(source: Entity, target: Entity) -> int:
    """Characters between the end of the source and the start of the target."""
    return abs(target.start - source.end)


# ─── Internal Helpers ────────────────────────────────────────────────


def _with_labels(entities: list[Entity], labels: set[EntityLabel] | frozenset[EntityLabel]) -> list[Entity]:
    return [e for e in entities if e.label in labels]


def _span_text(text: str, a: Entity, b: Entity) -> str:
    return text[min(a.start, b.start):max(a.end, b.end)]


def _window(text: str, entity: Entity, size: int) -> str:
    return text[max(0, entity.start - size):min(len(text), entity.end + size)]


def _has_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(kw in text for kw in keywords)


def _pick(confidences: tuple[float, float], connected: bool) -> float:
    return confidences[0] if connected else confidences[1]


def _relation(
    kind: RelationType, source: Entity, target: Entity, confidence: float, context: str
) -> Relation:
    return Relation(
        type=kind,
        source=source,
        target=target,
        confidence=confidence,
        context=context[:MAX_CONTEXT_LENGTH],
    )
