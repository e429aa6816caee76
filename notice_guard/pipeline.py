"""
Main notice pipeline — orchestrates extraction, validation and guarded answers.

Flow:
  ┌────────────┐
  │ Notice text│
  └─────┬──────┘
        │
  ┌─────▼─────┐     ┌──────────┐
  │   Rules   │     │   NER    │   ← Dual extraction
  │  Extract  │     │ Service  │
  └─────┬─────┘     └────┬─────┘
        │                │
        └───────┬────────┘
                │
         ┌──────▼──────┐
         │   Merger    │   ← Arbitrate overlapping spans
         └──────┬──────┘
                │
         ┌──────▼──────┐
         │   Linker    │   ← Deadline-of, penalty-for, ...
         └──────┬──────┘
                │
         ┌──────▼──────┐
         │  Canonical  │   ← Immutable verified facts
         └──────┬──────┘
                │
         ┌──────▼──────┐
         │  Validator  │   ← Answer vs facts: accept or refuse
         └─────────────┘

Design principles:
  - The rule extractor ALWAYS runs (deterministic baseline).
  - The NER service is optional (graceful degradation to rule-only).
  - Validation is pure code — no side effects, no network calls.
  - A rejected answer is never shown; a fixed refusal replaces it.
  - The source text is SHA-256 hashed for audit trail.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Iterable, Literal

from .answer_llm import generate_answer
from .canonical import build_canonical
from .merger import NerInput, add_relations, merge_entities
from .models import (
    ExtractionReport,
    GuardedAnswer,
    HybridData,
    RuleBasedData,
    ValidationResult,
)
from .ner_client import NERClient
from .relations import extract_relations
from .validators import validate_response, validate_response_hybrid

logger = logging.getLogger(__name__)

Language = Literal["ko", "en"]

REFUSAL_MESSAGES: dict[str, str] = {
    "ko": (
        "죄송합니다. 제공된 문서에서 해당 질문에 대한 정보를 확인할 수 없습니다.\n\n"
        "다음과 같은 경우일 수 있습니다:\n"
        "- 질문이 문서 내용과 관련이 없을 수 있습니다\n"
        "- 문서에 해당 정보가 포함되어 있지 않을 수 있습니다\n\n"
        "문서에 포함된 내용에 대해 다시 질문해 주세요."
    ),
    "en": (
        "I'm sorry, but I couldn't confirm an answer to your question from the "
        "provided document.\n\n"
        "This could be because:\n"
        "- Your question may not be related to the document content\n"
        "- The document may not contain this information\n\n"
        "Please try asking about something that's included in the document."
    ),
}


class NoticeGuardPipeline:
    """Orchestrates fact extraction and answer validation for one notice.

    Usage:
        pipeline = NoticeGuardPipeline()
        report = pipeline.extract(notice_text, document_id="doc-1")
        result = pipeline.validate(candidate_answer, report)
        if not result.is_valid:
            # answer contradicts the notice, do not show it
            for issue in result.issues:
                print(issue)
    """

    def __init__(self, ner_client: NERClient | None = None, *, compare_merged: bool = False):
        self.ner_client = ner_client if ner_client is not None else NERClient()
        # Also diff answers against the full merged data (strict mode).
        self.compare_merged = compare_merged

    def extract(
        self,
        raw_text: str,
        *,
        ner_entities: Iterable[NerInput] | None = None,
        document_id: str | None = None,
    ) -> ExtractionReport:
        """Extract canonical facts from notice text.

        Args:
            raw_text: Recognized text of the notice.
            ner_entities: Entities from the caller's own NER run. When None,
                the configured NER service is asked; if it is unavailable
                the pipeline continues rule-only.
            document_id: Carried onto the canonical record.
        """
        # ── Step 0: Audit hash of original input ────────────────────
        doc_hash = hashlib.sha256(raw_text.encode("utf-8")).hexdigest()

        # ── Step 1: NER (optional collaborator) ─────────────────────
        if ner_entities is None and self.ner_client.configured:
            logger.info("Requesting NER entities...")
            ner_entities = self.ner_client.extract_entities(raw_text)

        entities = list(ner_entities) if ner_entities else []
        extraction_method = "Rules + NER hybrid" if entities else "Rules only (no NER entities)"

        # ── Step 2: Rules + merge ───────────────────────────────────
        logger.info("Starting rule extraction and entity merge...")
        merged = merge_entities(entities, raw_text)

        # ── Step 3: Relation linking ────────────────────────────────
        relations = extract_relations(raw_text, merged.entities)
        merged = add_relations(merged, relations)
        logger.info(
            "Merge complete: %d entities, %d relations",
            len(merged.entities),
            len(relations),
        )

        # ── Step 4: Canonical record ────────────────────────────────
        canonical = build_canonical(merged, document_id)
        logger.info(
            "Canonical output built: %d deadlines, %d actions, %d penalties (source=%s)",
            len(canonical.deadlines),
            len(canonical.required_actions),
            len(canonical.penalties),
            canonical.source.value,
        )

        return ExtractionReport(
            document_id=document_id,
            canonical=canonical,
            merged=merged,
            extraction_method=extraction_method,
            original_hash=doc_hash,
        )

    def validate(self, answer: str, report: ExtractionReport) -> ValidationResult:
        """Validate a candidate answer against an extraction report.

        Hybrid validation is used when the report carries NER entities,
        plain rule validation otherwise.
        """
        merged = report.merged
        ner_entities = report.ner_entities

        if not ner_entities and not self.compare_merged:
            result = validate_response(
                answer,
                RuleBasedData(
                    deadlines=merged.deadlines,
                    obligations=merged.obligations,
                    penalties=merged.penalties,
                ),
            )
        else:
            result = validate_response_hybrid(
                answer,
                HybridData(
                    deadlines=merged.deadlines,
                    obligations=merged.obligations,
                    penalties=merged.penalties,
                    ner_entities=ner_entities or None,
                    relations=merged.relations or None,
                    merged_data=merged if self.compare_merged else None,
                ),
            )

        if result.is_valid:
            logger.info("Answer accepted")
        else:
            logger.info("Answer rejected with %d issue(s)", len(result.issues))
        return result

    def answer(
        self,
        question: str,
        raw_text: str,
        report: ExtractionReport,
        *,
        language: Language = "ko",
    ) -> GuardedAnswer:
        """Generate an answer and return it only if it survives validation."""
        candidate = generate_answer(question, raw_text)
        if candidate is None:
            logger.info("No answer generated — returning refusal")
            return GuardedAnswer(answer=REFUSAL_MESSAGES[language], is_refusal=True)

        result = self.validate(candidate, report)
        if not result.is_valid:
            return GuardedAnswer(
                answer=REFUSAL_MESSAGES[language],
                is_refusal=True,
                validation=result,
            )
        return GuardedAnswer(answer=candidate, is_refusal=False, validation=result)
