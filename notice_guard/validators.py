"""
Deterministic answer validation — the "paranoid" layer.

A generated answer is re-read with the same rule extractor that produced the
document's facts, and the two fact sets are diffed. These checks NEVER call
an LLM. They NEVER guess. They catch what the generator got wrong:

  - missing facts      (the document has a deadline the answer dropped)
  - contradictory facts (same penalty, different amount)
  - added facts        (a date the document never mentions)

Each check:
  - Takes the answer text plus the facts it needs
  - Returns a list of ValidationFinding objects (empty = all clear)
  - Is independently testable

validate_response() runs the rule checks; validate_response_hybrid() layers
NER-entity, relation and merged-data checks on top of it.
"""

from __future__ import annotations

import re

from .extractor_rules import extract_deadlines, extract_obligations, extract_penalties
from .matching import amounts_match, dates_match, obligations_match
from .merger import compare_against_merged
from .models import (
    Deadline,
    Entity,
    EntityLabel,
    HybridData,
    Obligation,
    Penalty,
    Relation,
    RelationType,
    RuleBasedData,
    ValidationFinding,
    ValidationResult,
)
from .normalization import AMOUNT, is_unknown_amount

# ─── Constants ───────────────────────────────────────────────────────

DISCLAIMER_KEYWORDS: tuple[str, ...] = (
    "행정서비스",
    "법적인 의무나 권리가 발생하지 않습니다",
    "통지문",
    "제공하는 것으로",
)

# Only obligations mentioning one of these are reported as missing.
IMPORTANT_OBLIGATION_KEYWORDS: frozenset[str] = frozenset({
    "신고", "신청", "제출", "납부", "기한", "만료",
})

MIN_OBLIGATION_LENGTH = 10
MIN_ADDED_OBLIGATIONS = 3
ADDED_OBLIGATION_RATIO = 1.5
FRAGMENT_ISSUE_MAX_LENGTH = 100
RELATION_MAX_DISTANCE = 200
AMOUNT_SEARCH_WINDOW = 50

# Only numeric full dates are reported as missing NER deadlines; Korean-form
# NER dates ("2025년 5월 31일") are tolerated like partial ones.
_FULL_DATE_RE = re.compile(r"\d{4}[.\-/]\d{1,2}[.\-/]\d{1,2}")
_AMOUNT_RE = re.compile(AMOUNT)


# ─── Orchestrators ───────────────────────────────────────────────────


def validate_response(answer: str, facts: RuleBasedData) -> ValidationResult:
    """Validate an answer against rule-extracted document facts."""
    answer_facts = _AnswerFacts(answer)

    findings: list[ValidationFinding] = []
    findings.extend(check_deadlines(answer_facts.deadlines, facts.deadlines))
    findings.extend(check_obligations(answer_facts.obligations, facts.obligations))
    findings.extend(check_penalties(answer_facts.penalties, facts.penalties))

    return ValidationResult.from_findings(drop_noise(findings))


def validate_response_hybrid(answer: str, data: HybridData) -> ValidationResult:
    """Plain validation plus NER, relation and merged-data checks.

    The answer is valid only if every layer reports nothing.
    """
    findings = list(validate_response(answer, data).findings)

    if data.ner_entities:
        findings.extend(check_ner_entities(answer, data.ner_entities))

    if data.relations:
        findings.extend(check_relations(answer, data.relations))

    if data.merged_data is not None:
        comparison = compare_against_merged(answer, data.merged_data)
        findings.extend(
            ValidationFinding(
                code="MERGED_" + _code_from_issue(issue),
                field="merged",
                message=issue,
            )
            for issue in comparison.issues
        )

    return ValidationResult.from_findings(findings)


# ─── Rule-Fact Checks ────────────────────────────────────────────────


def check_deadlines(answer: list[Deadline], document: list[Deadline]) -> list[ValidationFinding]:
    """Every document deadline must appear; the answer may not add dates.

    A document deadline whose date is absent but whose keyword type appears
    with another date in the answer is reported as contradictory.
    """
    findings: list[ValidationFinding] = []

    for expected in document:
        if any(dates_match(d.date, expected.date) for d in answer):
            continue

        conflicting = next((d for d in answer if d.type == expected.type), None)
        if conflicting is not None:
            findings.append(
                ValidationFinding(
                    code="CONTRADICTORY_DEADLINE",
                    field="deadlines",
                    message=(
                        f"Contradictory deadline: document states {expected.date} "
                        f"({expected.type}) but the answer states {conflicting.date}"
                    ),
                    details={"expected": expected.date, "found": conflicting.date},
                )
            )
        else:
            findings.append(
                ValidationFinding(
                    code="MISSING_DEADLINE",
                    field="deadlines",
                    message=(
                        f"Missing deadline: document states deadline {expected.date} "
                        f"({expected.type}) but the answer does not mention it"
                    ),
                    details={"expected": expected.date, "type": expected.type},
                )
            )

    for found in answer:
        if not any(dates_match(d.date, found.date) for d in document):
            findings.append(
                ValidationFinding(
                    code="ADDED_DEADLINE",
                    field="deadlines",
                    message=(
                        f"Added deadline: answer mentions deadline {found.date} "
                        f"that does not appear in the document"
                    ),
                    details={"found": found.date},
                )
            )

    return findings


def check_obligations(
    answer: list[Obligation], document: list[Obligation]
) -> list[ValidationFinding]:
    """Important obligations must survive; a flood of new ones is suspicious.

    Paraphrase is expected, so added obligations are only reported when the
    unmatched count exceeds max(3, 1.5 × the document's count).
    """
    findings: list[ValidationFinding] = []
    expected = [o for o in document if is_substantive_obligation(o.description)]

    for obligation in expected:
        if any(obligations_match(o.description, obligation.description) for o in answer):
            continue
        if any(kw in obligation.description for kw in IMPORTANT_OBLIGATION_KEYWORDS):
            findings.append(
                ValidationFinding(
                    code="MISSING_OBLIGATION",
                    field="obligations",
                    message=(
                        f'Missing obligation: document states "{obligation.description[:50]}..." '
                        f"but the answer does not mention it"
                    ),
                    details={"description": obligation.description},
                )
            )

    unmatched = [
        o
        for o in answer
        if is_substantive_obligation(o.description)
        and not any(obligations_match(e.description, o.description) for e in expected)
    ]
    if len(unmatched) > max(MIN_ADDED_OBLIGATIONS, len(expected) * ADDED_OBLIGATION_RATIO):
        findings.append(
            ValidationFinding(
                code="ADDED_OBLIGATIONS",
                field="obligations",
                message=(
                    f"Added obligations: answer mentions {len(unmatched)} obligations "
                    f"that do not appear in the document"
                ),
                details={"count": len(unmatched), "document_count": len(expected)},
            )
        )

    return findings


def check_penalties(answer: list[Penalty], document: list[Penalty]) -> list[ValidationFinding]:
    """Penalties match by amount OR type; unknown amounts are never compared."""
    findings: list[ValidationFinding] = []

    for expected in document:
        if is_unknown_amount(expected.amount):
            continue

        match = next(
            (
                p
                for p in answer
                if amounts_match(p.amount, expected.amount) or p.type == expected.type
            ),
            None,
        )
        if match is None:
            findings.append(
                ValidationFinding(
                    code="MISSING_PENALTY",
                    field="penalties",
                    message=(
                        f"Missing penalty: document states penalty {expected.amount}원 "
                        f"({expected.type}) but the answer does not mention it"
                    ),
                    details={"expected": expected.amount, "type": expected.type},
                )
            )
        elif not is_unknown_amount(match.amount) and not amounts_match(match.amount, expected.amount):
            findings.append(
                ValidationFinding(
                    code="CONTRADICTORY_PENALTY",
                    field="penalties",
                    message=(
                        f"Contradictory penalty: document states {expected.amount}원 "
                        f"but the answer states {match.amount}원 (amount mismatch)"
                    ),
                    details={"expected": expected.amount, "found": match.amount},
                )
            )

    for found in answer:
        if is_unknown_amount(found.amount):
            continue
        if not any(
            amounts_match(p.amount, found.amount) or p.type == found.type for p in document
        ):
            findings.append(
                ValidationFinding(
                    code="ADDED_PENALTY",
                    field="penalties",
                    message=(
                        f"Added penalty: answer mentions penalty {found.amount}원 "
                        f"({found.type}) that does not appear in the document"
                    ),
                    details={"found": found.amount, "type": found.type},
                )
            )

    return findings


def is_substantive_obligation(description: str) -> bool:
    """False for disclaimers and fragments too short to compare."""
    if is_disclaimer(description):
        return False
    if len(description) < MIN_OBLIGATION_LENGTH:
        return False
    if description.strip().startswith("의무") and len(description) < 20:
        return False
    return True


def is_disclaimer(text: str) -> bool:
    lowered = text.lower()
    return any(kw.lower() in lowered for kw in DISCLAIMER_KEYWORDS)


def drop_noise(findings: list[ValidationFinding]) -> list[ValidationFinding]:
    """Drop findings about disclaimer boilerplate and short obligation fragments."""
    kept: list[ValidationFinding] = []
    for finding in findings:
        message = finding.message
        if "행정서비스" in message or "법적인 의무나 권리가 발생하지 않습니다" in message:
            continue
        if "의무..." in message and len(message) < FRAGMENT_ISSUE_MAX_LENGTH:
            continue
        kept.append(finding)
    return kept


# ─── NER-Entity Checks ───────────────────────────────────────────────


def check_ner_entities(answer: str, entities: list[Entity]) -> list[ValidationFinding]:
    """Every NER date, amount and action must be reflected in the answer.

    Date format differences are tolerated; only full dates missing outright
    are reported.
    """
    findings: list[ValidationFinding] = []
    answer_facts = _AnswerFacts(answer)

    for entity in entities:
        if entity.label in (EntityLabel.DATE, EntityLabel.DEADLINE):
            findings.extend(_check_ner_date(answer, answer_facts, entity))
        elif entity.label == EntityLabel.MONEY:
            findings.extend(_check_ner_money(answer, answer_facts, entity))
        elif entity.label == EntityLabel.ACTION:
            findings.extend(_check_ner_action(answer, answer_facts, entity))

    return findings


def _check_ner_date(answer: str, facts: _AnswerFacts, entity: Entity) -> list[ValidationFinding]:
    if any(dates_match(d.date, entity.text) for d in facts.deadlines):
        return []
    if date_mentioned(answer, entity.text):
        return []
    if not _FULL_DATE_RE.search(entity.text):
        return []
    return [
        ValidationFinding(
            code="MISSING_NER_DEADLINE",
            field="entities",
            message=f"Missing NER deadline: NER found {entity.text} but the answer does not mention it",
            details={"entity": entity.text},
        )
    ]


def _check_ner_money(answer: str, facts: _AnswerFacts, entity: Entity) -> list[ValidationFinding]:
    known = [p for p in facts.penalties if not is_unknown_amount(p.amount)]
    if any(amounts_match(p.amount, entity.text) for p in known):
        return []
    if entity.text in answer:
        return []
    nearby = amount_near(answer, entity.start)
    if nearby and amounts_match(nearby, entity.text):
        return []

    if known:
        return [
            ValidationFinding(
                code="CONTRADICTORY_NER_AMOUNT",
                field="entities",
                message=(
                    f"Contradictory NER amount: NER found {entity.text} "
                    f"but the answer states {known[0].amount}원"
                ),
                details={"entity": entity.text, "found": known[0].amount},
            )
        ]
    return [
        ValidationFinding(
            code="MISSING_NER_AMOUNT",
            field="entities",
            message=f"Missing NER amount: NER found {entity.text} but the answer does not mention it",
            details={"entity": entity.text},
        )
    ]


def _check_ner_action(answer: str, facts: _AnswerFacts, entity: Entity) -> list[ValidationFinding]:
    if entity.text in answer:
        return []
    if any(
        entity.text in o.description or o.description[:20] in entity.text
        for o in facts.obligations
    ):
        return []
    return [
        ValidationFinding(
            code="MISSING_NER_ACTION",
            field="entities",
            message=f'Missing NER action: NER found "{entity.text}" but the answer does not mention it',
            details={"entity": entity.text},
        )
    ]


def date_mentioned(answer: str, date_text: str) -> bool:
    """Verbatim, separator-free, or dash-separated form of the date in the answer."""
    return (
        date_text in answer
        or re.sub(r"[.\-/]", "", date_text) in answer
        or date_text.replace(".", "-") in answer
    )


def amount_near(text: str, position: int) -> str:
    """First amount literal within 50 characters of ``position`` ('' if none)."""
    lo = max(0, position - AMOUNT_SEARCH_WINDOW)
    hi = min(len(text), position + AMOUNT_SEARCH_WINDOW)
    match = _AMOUNT_RE.search(text[lo:hi])
    return match.group(0) if match else ""


# ─── Relation Checks ─────────────────────────────────────────────────


def check_relations(answer: str, relations: list[Relation]) -> list[ValidationFinding]:
    """The answer must keep related facts together."""
    findings: list[ValidationFinding] = []
    answer_facts = _AnswerFacts(answer)

    for relation in relations:
        if relation.type == RelationType.DEADLINE_OF:
            findings.extend(_check_deadline_relation(answer, answer_facts, relation))
        elif relation.type == RelationType.PAYMENT_AMOUNT_FOR:
            findings.extend(
                _check_amount_relation(
                    answer, answer_facts, relation,
                    code="MISSING_PAYMENT_TARGET",
                    label="Missing payment target",
                    noun="amount",
                )
            )
        elif relation.type == RelationType.PENALTY_FOR:
            findings.extend(
                _check_amount_relation(
                    answer, answer_facts, relation,
                    code="MISSING_PENALTY_CONTEXT",
                    label="Missing penalty context",
                    noun="penalty",
                )
            )

    return findings


def _check_deadline_relation(
    answer: str, facts: _AnswerFacts, relation: Relation
) -> list[ValidationFinding]:
    date_text = relation.source.text
    action_text = relation.target.text

    date_in = date_text in answer or any(dates_match(d.date, date_text) for d in facts.deadlines)
    action_in = action_text in answer
    details = {"date": date_text, "action": action_text}

    if date_in and action_in:
        date_index = answer.find(date_text)
        action_index = answer.find(action_text)
        if date_index >= 0 and action_index >= 0:
            gap = abs(action_index - date_index)
            if gap > RELATION_MAX_DISTANCE:
                return [
                    ValidationFinding(
                        code="WEAK_RELATION",
                        field="relations",
                        message=(
                            f'Weak relation: answer mentions deadline {date_text} and action '
                            f'"{action_text}" but they are far apart in the response'
                        ),
                        details={**details, "distance": gap},
                    )
                ]
        return []

    if date_in:
        return [
            ValidationFinding(
                code="MISSING_RELATION_TARGET",
                field="relations",
                message=(
                    f"Missing relation target: answer mentions deadline {date_text} "
                    f'but not the related action "{action_text}"'
                ),
                details=details,
            )
        ]
    if action_in:
        return [
            ValidationFinding(
                code="MISSING_RELATION_SOURCE",
                field="relations",
                message=(
                    f'Missing relation source: answer mentions action "{action_text}" '
                    f"but not the related deadline {date_text}"
                ),
                details=details,
            )
        ]
    return []


def _check_amount_relation(
    answer: str,
    facts: _AnswerFacts,
    relation: Relation,
    *,
    code: str,
    label: str,
    noun: str,
) -> list[ValidationFinding]:
    amount_text = relation.source.text
    target_text = relation.target.text

    amount_in = amount_text in answer or any(
        not is_unknown_amount(p.amount) and amounts_match(p.amount, amount_text)
        for p in facts.penalties
    )
    if amount_in and not _target_mentioned(answer, facts, relation.target):
        return [
            ValidationFinding(
                code=code,
                field="relations",
                message=(
                    f"{label}: answer mentions {noun} {amount_text} "
                    f'but not what it is for: "{target_text}"'
                ),
                details={"amount": amount_text, "target": target_text},
            )
        ]
    return []


def _target_mentioned(answer: str, facts: _AnswerFacts, target: Entity) -> bool:
    """Verbatim, or for date targets any answer deadline with the same date."""
    if target.text in answer:
        return True
    if target.label in (EntityLabel.DATE, EntityLabel.DEADLINE):
        return any(dates_match(d.date, target.text) for d in facts.deadlines)
    return False


# ─── Internal Helpers ────────────────────────────────────────────────


class _AnswerFacts:
    """Rule facts re-extracted from the answer, computed lazily once."""

    def __init__(self, answer: str):
        self.answer = answer
        self._deadlines: list[Deadline] | None = None
        self._obligations: list[Obligation] | None = None
        self._penalties: list[Penalty] | None = None

    @property
    def deadlines(self) -> list[Deadline]:
        if self._deadlines is None:
            self._deadlines = extract_deadlines(self.answer)
        return self._deadlines

    @property
    def obligations(self) -> list[Obligation]:
        if self._obligations is None:
            self._obligations = extract_obligations(self.answer)
        return self._obligations

    @property
    def penalties(self) -> list[Penalty]:
        if self._penalties is None:
            self._penalties = extract_penalties(self.answer)
        return self._penalties


def _code_from_issue(issue: str) -> str:
    """'Missing deadline: ...' → 'MISSING_DEADLINE'."""
    head = issue.split(":", 1)[0]
    return re.sub(r"\W+", "_", head.strip()).upper()
