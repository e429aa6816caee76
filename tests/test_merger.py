"""
Tests for merging rule facts with NER entities.

Every overlap must be resolved deterministically — NER beats rules, higher
confidence beats lower, and identical rule hits collapse into one entity.

Run: pytest tests/ -v
"""

from __future__ import annotations

from typing import Any

import pytest

from notice_guard.extractor_rules import extract_all
from notice_guard.merger import (
    DEFAULT_NER_CONFIDENCE,
    Resolution,
    add_relations,
    coerce_ner_entities,
    compare_against_merged,
    deduplicate_entities,
    merge_entities,
    resolve_overlap,
    spans_overlap,
)
from notice_guard.models import (
    Entity,
    EntityLabel,
    MergedData,
    Relation,
    RelationType,
    Source,
)


# ─── Test Data ───────────────────────────────────────────────────────

NOTICE = "납부기한: 2025-05-31까지 과태료: 10만원을 납부하세요."


def _entity(**overrides: Any) -> Entity:
    """Factory for entities with rule-sourced DATE defaults."""
    kwargs: dict[str, Any] = {
        "text": "2025-05-31",
        "label": EntityLabel.DATE,
        "start": 0,
        "end": 10,
        "confidence": 0.8,
        "sources": [Source.RULE],
    }
    kwargs.update(overrides)
    return Entity(**kwargs)


# ═══════════════════════════════════════════════════════════════════════
# OVERLAP DETECTION
# ═══════════════════════════════════════════════════════════════════════


class TestSpansOverlap:
    def test_intersecting_same_label(self):
        assert spans_overlap(_entity(start=0, end=10), _entity(start=5, end=15))

    def test_touching_spans_do_not_overlap(self):
        """Spans are half-open: [0, 5) and [5, 10) share no character."""
        assert not spans_overlap(_entity(start=0, end=5), _entity(start=5, end=10))

    def test_different_labels_never_overlap(self):
        date = _entity()
        money = _entity(label=EntityLabel.MONEY)
        assert not spans_overlap(date, money)


# ═══════════════════════════════════════════════════════════════════════
# RESOLUTION RULES
# ═══════════════════════════════════════════════════════════════════════


class TestResolveOverlap:
    def test_no_overlap_appends(self):
        assert resolve_overlap(_entity(start=20, end=30), _entity()) == Resolution.APPEND

    def test_ner_candidate_replaces_rule(self):
        ner = _entity(sources=[Source.NER], confidence=0.5)
        assert resolve_overlap(ner, _entity()) == Resolution.PREFER_NER

    def test_rule_candidate_never_replaces_ner(self):
        ner = _entity(sources=[Source.NER], confidence=0.5)
        assert resolve_overlap(_entity(confidence=0.99), ner) == Resolution.KEEP_EXISTING

    def test_both_ner_higher_confidence_wins(self):
        existing = _entity(sources=[Source.NER], confidence=0.7)
        candidate = _entity(sources=[Source.NER], confidence=0.9)
        assert resolve_overlap(candidate, existing) == Resolution.PREFER_HIGHER_CONFIDENCE

    def test_both_ner_lower_confidence_kept_out(self):
        existing = _entity(sources=[Source.NER], confidence=0.9)
        candidate = _entity(sources=[Source.NER], confidence=0.7)
        assert resolve_overlap(candidate, existing) == Resolution.KEEP_EXISTING

    def test_both_ner_tie_broken_by_length(self):
        existing = _entity(sources=[Source.NER], confidence=0.8, end=10)
        candidate = _entity(sources=[Source.NER], confidence=0.8, text="2025-05-31까지", end=12)
        assert resolve_overlap(candidate, existing) == Resolution.PREFER_HIGHER_CONFIDENCE

    def test_both_rule_same_text_unions(self):
        assert resolve_overlap(_entity(), _entity(start=2, end=12)) == Resolution.UNION

    def test_both_rule_different_text_prefers_longer(self):
        longer = _entity(text="2025-05-31까지", end=12)
        assert resolve_overlap(longer, _entity()) == Resolution.PREFER_LONGER


# ═══════════════════════════════════════════════════════════════════════
# DEDUPLICATION SWEEP
# ═══════════════════════════════════════════════════════════════════════


class TestDeduplicateEntities:
    def test_ner_wins_regardless_of_input_order(self):
        rule = _entity()
        ner = _entity(text="2025-05-31까지", end=12, sources=[Source.NER], confidence=0.6)
        for entities in ([rule, ner], [ner, rule]):
            result = deduplicate_entities(entities)
            assert len(result) == 1
            assert result[0].sources == [Source.NER]

    def test_identical_rule_hits_union_sources(self):
        a = _entity(sources=[Source.RULE])
        b = _entity(start=1, end=11, sources=[Source.LLM])
        result = deduplicate_entities([a, b])
        assert len(result) == 1
        assert set(result[0].sources) == {Source.RULE, Source.LLM}

    def test_union_has_no_duplicate_sources(self):
        result = deduplicate_entities([_entity(), _entity()])
        assert len(result) == 1
        assert result[0].sources == [Source.RULE]

    def test_longer_rule_span_kept(self):
        short = _entity()
        long = _entity(text="2025-05-31까지", end=12)
        for entities in ([short, long], [long, short]):
            result = deduplicate_entities(entities)
            assert [e.text for e in result] == ["2025-05-31까지"]

    def test_different_labels_both_kept(self):
        result = deduplicate_entities([_entity(), _entity(label=EntityLabel.MONEY)])
        assert len(result) == 2

    def test_result_sorted_by_start(self):
        entities = [
            _entity(start=40, end=50),
            _entity(label=EntityLabel.MONEY, start=5, end=9),
            _entity(start=20, end=30),
        ]
        result = deduplicate_entities(entities)
        assert [e.start for e in result] == [5, 20, 40]


# ═══════════════════════════════════════════════════════════════════════
# NER COERCION
# ═══════════════════════════════════════════════════════════════════════


class TestCoerceNerEntities:
    def test_dict_payload(self):
        result = coerce_ner_entities([{"text": "10만원", "label": "MONEY", "start": 3, "end": 7}])
        assert len(result) == 1
        assert result[0].label == EntityLabel.MONEY
        assert result[0].sources == [Source.NER]

    def test_missing_confidence_gets_default(self):
        result = coerce_ner_entities([{"text": "납부", "label": "ACTION", "start": 0, "end": 2}])
        assert result[0].confidence == pytest.approx(DEFAULT_NER_CONFIDENCE)

    def test_unknown_label_coerced(self):
        result = coerce_ner_entities([{"text": "x", "label": "VEHICLE", "start": 0, "end": 1}])
        assert result[0].label == EntityLabel.UNKNOWN

    def test_lowercase_label_accepted(self):
        result = coerce_ner_entities([{"text": "x", "label": "date", "start": 0, "end": 1}])
        assert result[0].label == EntityLabel.DATE

    def test_missing_offsets_skipped(self):
        assert coerce_ner_entities([{"text": "x", "label": "DATE"}]) == []

    def test_inverted_span_skipped(self):
        assert coerce_ner_entities([{"text": "x", "label": "DATE", "start": 5, "end": 2}]) == []

    def test_none_means_no_entities(self):
        assert coerce_ner_entities(None) == []


# ═══════════════════════════════════════════════════════════════════════
# MERGE
# ═══════════════════════════════════════════════════════════════════════


class TestMergeEntities:
    def test_rule_only(self):
        merged = merge_entities([], NOTICE)
        labels = {e.label for e in merged.entities}
        assert labels == {EntityLabel.DATE, EntityLabel.MONEY}
        assert all(e.sources == [Source.RULE] for e in merged.entities)

    def test_rule_facts_carried(self):
        merged = merge_entities(None, NOTICE)
        facts = extract_all(NOTICE)
        assert merged.deadlines == facts.deadlines
        assert merged.obligations == facts.obligations
        assert merged.penalties == facts.penalties

    def test_rule_date_located_in_text(self):
        merged = merge_entities([], NOTICE)
        date = next(e for e in merged.entities if e.label == EntityLabel.DATE)
        assert NOTICE[date.start:date.end] == "2025-05-31"

    def test_unlocatable_value_falls_back_to_origin(self):
        merged = merge_entities([], "납부기한: 2025년 5월 31일")
        date = next(e for e in merged.entities if e.label == EntityLabel.DATE)
        assert (date.start, date.end) == (0, len("2025-05-31"))

    def test_ner_entity_replaces_overlapping_rule_entity(self):
        start = NOTICE.index("2025-05-31")
        ner = {
            "text": "2025-05-31까지",
            "label": "DATE",
            "start": start,
            "end": start + len("2025-05-31까지"),
            "confidence": 0.95,
        }
        merged = merge_entities([ner], NOTICE)
        dates = [e for e in merged.entities if e.label == EntityLabel.DATE]
        assert len(dates) == 1
        assert dates[0].text == "2025-05-31까지"
        assert dates[0].sources == [Source.NER]

    def test_unknown_amount_penalty_is_not_an_entity(self):
        merged = merge_entities([], "기한을 지키지 않으면 처벌 받을 수 있습니다")
        assert merged.penalties
        assert not any(e.label == EntityLabel.MONEY for e in merged.entities)

    def test_relations_empty_until_added(self):
        assert merge_entities([], NOTICE).relations == []

    def test_empty_text(self):
        merged = merge_entities([], "")
        assert merged == MergedData()


class TestAddRelations:
    def test_returns_copy(self):
        merged = merge_entities([], NOTICE)
        date = next(e for e in merged.entities if e.label == EntityLabel.DATE)
        money = next(e for e in merged.entities if e.label == EntityLabel.MONEY)
        relation = Relation(
            type=RelationType.PENALTY_FOR, source=money, target=date, confidence=0.75
        )
        updated = add_relations(merged, [relation])
        assert updated.relations == [relation]
        assert merged.relations == []
        assert updated.entities == merged.entities


# ═══════════════════════════════════════════════════════════════════════
# MERGED-DATA COMPARISON
# ═══════════════════════════════════════════════════════════════════════


class TestCompareAgainstMerged:
    def test_faithful_answer_matches(self):
        merged = merge_entities([], NOTICE)
        comparison = compare_against_merged(NOTICE, merged)
        assert comparison.matches is True
        assert comparison.issues == []

    def test_missing_deadline(self):
        merged = merge_entities([], NOTICE)
        comparison = compare_against_merged("과태료: 10만원입니다.", merged)
        assert any("Missing deadline" in i and "2025-05-31" in i for i in comparison.issues)
        assert any(e.label == EntityLabel.DATE for e in comparison.missing_entities)

    def test_added_deadline(self):
        merged = merge_entities([], NOTICE)
        answer = "납부기한: 2025-05-31까지, 제출기한: 2025-07-01. 과태료: 10만원입니다."
        comparison = compare_against_merged(answer, merged)
        assert any("Added deadline" in i and "2025-07-01" in i for i in comparison.issues)

    def test_contradictory_penalty(self):
        merged = merge_entities([], NOTICE)
        answer = "납부기한: 2025-05-31까지 과태료: 5만원을 납부하세요."
        comparison = compare_against_merged(answer, merged)
        assert comparison.matches is False
        assert any("Contradictory penalty" in i for i in comparison.issues)
        assert comparison.contradictory_entities

    def test_missing_obligations_counted(self):
        text = "서류를 반드시 제출해야 합니다."
        merged = merge_entities([], text)
        comparison = compare_against_merged("안내문입니다.", merged)
        assert any(i.startswith("Missing obligations:") for i in comparison.issues)
