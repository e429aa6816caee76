"""
Merge rule-extracted facts and external NER entities into one entity list.

Strategy — a greedy sweep over start-ordered spans:
  1. Rule deadlines/penalties are re-located in the source text and turned
     into DATE / MONEY entities.
  2. NER entities are coerced into the same Entity shape.
  3. Every incoming entity is compared with the already-placed entities;
     an overlap (intersecting spans AND same label) is resolved by one of
     the Resolution strategies below, so no ambiguity survives the merge.

The returned list is sorted by start offset. Relation linking downstream
relies on that order.

Known limitation: rule facts carry no offsets, so their span is the first
occurrence of the normalized value in the text (or [0, len(value)) when it
doesn't occur verbatim, e.g. a "2025년 5월 31일" date normalized to
"2025-05-31").
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Union

from pydantic import ValidationError

from .extractor_rules import extract_deadlines, extract_obligations, extract_penalties
from .models import (
    Deadline,
    Entity,
    EntityLabel,
    MergedComparison,
    MergedData,
    NerEntity,
    Penalty,
    Relation,
    Source,
)
from .normalization import is_unknown_amount, normalize_amount, normalize_date

logger = logging.getLogger(__name__)

# ─── Constants ───────────────────────────────────────────────────────

RULE_DEADLINE_CONFIDENCE = 0.8
RULE_PENALTY_CONFIDENCE = 0.75
DEFAULT_NER_CONFIDENCE = 0.7

NerInput = Union[NerEntity, Entity, dict]


class Resolution(str, Enum):
    """What to do with an incoming entity given the entity it overlaps."""

    APPEND = "append"  # No overlap
    PREFER_NER = "prefer_ner"  # NER candidate replaces a rule-only entity
    PREFER_HIGHER_CONFIDENCE = "prefer_higher_confidence"  # Both NER
    UNION = "union"  # Both rule, same text: union the sources
    PREFER_LONGER = "prefer_longer"  # Both rule, different text
    KEEP_EXISTING = "keep_existing"


# ─── Public API ──────────────────────────────────────────────────────


def merge_entities(ner_entities: Iterable[NerInput] | None, text: str) -> MergedData:
    """Merge NER entities with rule-extracted facts for ``text``.

    Args:
        ner_entities: Labeled spans from the NER service (models or dicts).
            Malformed items are skipped. None or empty means rule-only.
        text: The source text both extractors ran over.

    Returns:
        MergedData with start-ordered entities and the rule facts. Relations
        are empty until ``add_relations`` is applied.
    """
    deadlines = extract_deadlines(text)
    obligations = extract_obligations(text)
    penalties = extract_penalties(text)

    candidates = (
        coerce_ner_entities(ner_entities)
        + [_deadline_entity(d, text) for d in deadlines]
        + [_penalty_entity(p, text) for p in penalties if not is_unknown_amount(p.amount)]
    )

    return MergedData(
        entities=deduplicate_entities(candidates),
        deadlines=deadlines,
        obligations=obligations,
        penalties=penalties,
    )


def deduplicate_entities(entities: list[Entity]) -> list[Entity]:
    """Sweep start-ordered entities and resolve every same-label overlap."""
    result: list[Entity] = []

    for entity in sorted(entities, key=lambda e: e.start):
        index = next(
            (i for i, existing in enumerate(result) if spans_overlap(entity, existing)),
            None,
        )
        if index is None:
            result.append(entity)
            continue

        existing = result[index]
        resolution = resolve_overlap(entity, existing)

        if resolution in (
            Resolution.PREFER_NER,
            Resolution.PREFER_HIGHER_CONFIDENCE,
            Resolution.PREFER_LONGER,
        ):
            result[index] = entity
        elif resolution == Resolution.UNION:
            result[index] = existing.model_copy(
                update={"sources": _union_sources(existing.sources, entity.sources)}
            )

    return sorted(result, key=lambda e: e.start)


def spans_overlap(a: Entity, b: Entity) -> bool:
    """True if the half-open spans intersect and the labels match."""
    return a.label == b.label and a.start < b.end and b.start < a.end


def resolve_overlap(candidate: Entity, existing: Entity) -> Resolution:
    """Pick the resolution for a candidate that overlaps an existing entity."""
    if not spans_overlap(candidate, existing):
        return Resolution.APPEND

    candidate_ner = candidate.has_source(Source.NER)
    existing_ner = existing.has_source(Source.NER)

    if candidate_ner and not existing_ner:
        return Resolution.PREFER_NER

    if candidate_ner and existing_ner:
        if candidate.confidence > existing.confidence or (
            candidate.confidence == existing.confidence and candidate.length > existing.length
        ):
            return Resolution.PREFER_HIGHER_CONFIDENCE
        return Resolution.KEEP_EXISTING

    if not candidate_ner and not existing_ner:
        if candidate.text == existing.text:
            return Resolution.UNION
        if candidate.length > existing.length:
            return Resolution.PREFER_LONGER

    return Resolution.KEEP_EXISTING


def add_relations(merged: MergedData, relations: list[Relation]) -> MergedData:
    """Return a copy of ``merged`` carrying ``relations``."""
    return merged.model_copy(update={"relations": list(relations)})


def coerce_ner_entities(raw: Iterable[NerInput] | None) -> list[Entity]:
    """Convert NER payload items into NER-sourced Entities, skipping bad ones."""
    entities: list[Entity] = []
    for item in raw or []:
        try:
            if isinstance(item, Entity):
                ner = NerEntity(
                    text=item.text,
                    label=item.label,
                    start=item.start,
                    end=item.end,
                    confidence=item.confidence,
                )
            elif isinstance(item, NerEntity):
                ner = item
            else:
                ner = NerEntity.model_validate(item)
        except ValidationError as e:
            logger.warning("Skipping malformed NER entity: %s", e.errors()[0]["msg"])
            continue

        if ner.end < ner.start:
            logger.warning("Skipping NER entity with inverted span [%d, %d)", ner.start, ner.end)
            continue

        entities.append(
            Entity(
                text=ner.text,
                label=ner.label,
                start=ner.start,
                end=ner.end,
                confidence=ner.confidence if ner.confidence is not None else DEFAULT_NER_CONFIDENCE,
                sources=[Source.NER],
            )
        )
    return entities


# ─── Merged-Data Comparison ──────────────────────────────────────────


def compare_against_merged(answer: str, merged: MergedData) -> MergedComparison:
    """Symmetric diff of an answer's rule facts against merged data.

    Deadlines compare by normalized date, penalties by normalized amount
    (a same-type penalty with a different amount is a contradiction), and
    obligations by substring containment in either direction.
    """
    issues: list[str] = []
    missing: list[Entity] = []
    contradictory: list[dict] = []

    answer_deadlines = extract_deadlines(answer)
    answer_obligations = extract_obligations(answer)
    answer_penalties = extract_penalties(answer)

    # ── Deadlines ───────────────────────────────────────────────────
    merged_dates = {_date_key(d.date) for d in merged.deadlines}
    answer_dates = {_date_key(d.date) for d in answer_deadlines}

    for deadline in merged.deadlines:
        if _date_key(deadline.date) not in answer_dates:
            missing.append(_deadline_entity(deadline, ""))
            issues.append(f"Missing deadline: {deadline.date} not mentioned in answer")

    for deadline in answer_deadlines:
        if _date_key(deadline.date) not in merged_dates:
            issues.append(f"Added deadline: answer mentions {deadline.date} not found in merged data")

    # ── Penalties ───────────────────────────────────────────────────
    known_merged = [p for p in merged.penalties if not is_unknown_amount(p.amount)]
    known_answer = [p for p in answer_penalties if not is_unknown_amount(p.amount)]

    for penalty in known_merged:
        amount = normalize_amount(penalty.amount)
        if any(normalize_amount(p.amount) == amount for p in known_answer):
            continue
        same_type = next((p for p in known_answer if p.type == penalty.type), None)
        if same_type is not None:
            contradictory.append(
                {"merged": _penalty_entity(penalty, "").model_dump(), "answer": same_type.amount}
            )
            issues.append(
                f"Contradictory penalty: merged {penalty.amount}원 vs answer {same_type.amount}원"
            )
        else:
            missing.append(_penalty_entity(penalty, ""))
            issues.append(f"Missing penalty: {penalty.amount}원 not mentioned in answer")

    merged_amounts = {normalize_amount(p.amount) for p in known_merged}
    merged_types = {p.type for p in known_merged}
    for penalty in known_answer:
        if normalize_amount(penalty.amount) in merged_amounts or penalty.type in merged_types:
            continue
        issues.append(f"Added penalty: answer mentions {penalty.amount}원 not found in merged data")

    # ── Obligations ─────────────────────────────────────────────────
    answer_descriptions = [o.description.lower() for o in answer_obligations]
    missing_obligations = [
        o
        for o in merged.obligations
        if not any(
            o.description.lower() in desc or desc in o.description.lower()
            for desc in answer_descriptions
        )
    ]
    if missing_obligations:
        issues.append(
            f"Missing obligations: {len(missing_obligations)} obligations not mentioned in answer"
        )

    return MergedComparison(
        matches=not issues,
        issues=issues,
        missing_entities=missing,
        contradictory_entities=contradictory,
    )


# ─── Internal Helpers ────────────────────────────────────────────────


def _locate(value: str, text: str) -> tuple[int, int]:
    """First occurrence of value in text, else the [0, len(value)) fallback."""
    index = text.find(value) if text else -1
    if index < 0:
        return 0, len(value)
    return index, index + len(value)


def _deadline_entity(deadline: Deadline, text: str) -> Entity:
    start, end = _locate(deadline.date, text)
    return Entity(
        text=deadline.date,
        label=EntityLabel.DATE,
        start=start,
        end=end,
        confidence=RULE_DEADLINE_CONFIDENCE,
        sources=[Source.RULE],
    )


def _penalty_entity(penalty: Penalty, text: str) -> Entity:
    start, end = _locate(penalty.amount, text)
    return Entity(
        text=penalty.amount,
        label=EntityLabel.MONEY,
        start=start,
        end=end,
        confidence=RULE_PENALTY_CONFIDENCE,
        sources=[Source.RULE],
    )


def _union_sources(a: list[Source], b: list[Source]) -> list[Source]:
    return list(dict.fromkeys([*a, *b]))


def _date_key(value: str) -> str:
    return normalize_date(value) or value
