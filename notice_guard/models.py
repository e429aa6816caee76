"""
Pydantic models for notice facts — strict typing as our first line of defense.

Extraction produces plain facts (Deadline, Obligation, Penalty), the merger
produces span-addressed Entities and Relations, and the canonical builder
wraps everything into an immutable CanonicalDocumentData record.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ─── Enumerations ───────────────────────────────────────────────────


class Source(str, Enum):
    """Where a fact came from."""

    RULE = "rule"
    NER = "ner"
    LLM = "llm"


class EntityLabel(str, Enum):
    """Entity labels shared by the rule extractor and the NER service."""

    DATE = "DATE"
    DEADLINE = "DEADLINE"
    MONEY = "MONEY"
    ACTION = "ACTION"
    ORGANIZATION = "ORGANIZATION"
    ACCOUNT_NUMBER = "ACCOUNT_NUMBER"
    LOCATION = "LOCATION"
    LAW_TERM = "LAW_TERM"
    PERSON = "PERSON"
    TAX_TYPE = "TAX_TYPE"
    UNKNOWN = "UNKNOWN"


class RelationType(str, Enum):
    DEADLINE_OF = "DEADLINE_OF"
    PAYMENT_AMOUNT_FOR = "PAYMENT_AMOUNT_FOR"
    ACTION_REQUIRED = "ACTION_REQUIRED"
    PENALTY_FOR = "PENALTY_FOR"
    ACCOUNT_FOR = "ACCOUNT_FOR"
    ORGANIZATION_OF = "ORGANIZATION_OF"


class CanonicalSource(str, Enum):
    """Overall provenance of a canonical record."""

    RULE = "rule"
    NER = "ner"
    HYBRID = "hybrid"


# ─── Rule-Extracted Facts ───────────────────────────────────────────


class Deadline(BaseModel):
    date: str  # YYYY-MM-DD
    context: str
    type: str  # Keyword that triggered the match, e.g. "납부기한"


class Obligation(BaseModel):
    description: str = Field(max_length=200)
    context: str


class Penalty(BaseModel):
    amount: str  # Normalized integer string; "0" means unknown
    type: str  # e.g. "과태료", "벌금", "penalty"
    context: str


class RuleBasedData(BaseModel):
    """The three fact lists the rule extractor produces for one text."""

    deadlines: list[Deadline] = Field(default_factory=list)
    obligations: list[Obligation] = Field(default_factory=list)
    penalties: list[Penalty] = Field(default_factory=list)


# ─── Entities & Relations ───────────────────────────────────────────


def _coerce_label(value: object) -> object:
    """Map labels we don't know to UNKNOWN instead of failing validation."""
    if isinstance(value, EntityLabel):
        return value
    if isinstance(value, str):
        upper = value.strip().upper()
        if upper in EntityLabel.__members__:
            return EntityLabel(upper)
        return EntityLabel.UNKNOWN
    return value


class NerEntity(BaseModel):
    """One labeled span as returned by the external NER service."""

    text: str
    label: EntityLabel
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("label", mode="before")
    @classmethod
    def _label(cls, v: object) -> object:
        return _coerce_label(v)


class Entity(BaseModel):
    """A merged entity: half-open [start, end) span into the source text."""

    text: str
    label: EntityLabel
    start: int
    end: int
    confidence: float = Field(ge=0.0, le=1.0)
    sources: list[Source] = Field(default_factory=list)

    @field_validator("label", mode="before")
    @classmethod
    def _label(cls, v: object) -> object:
        return _coerce_label(v)

    @property
    def length(self) -> int:
        return self.end - self.start

    def has_source(self, source: Source) -> bool:
        return source in self.sources


class Relation(BaseModel):
    type: RelationType
    source: Entity
    target: Entity
    confidence: float
    context: str = ""


class MergedData(BaseModel):
    """Merger output: deduplicated, start-ordered entities plus rule facts."""

    entities: list[Entity] = Field(default_factory=list)
    deadlines: list[Deadline] = Field(default_factory=list)
    obligations: list[Obligation] = Field(default_factory=list)
    penalties: list[Penalty] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)


class MergedComparison(BaseModel):
    """Result of diffing a candidate answer against MergedData."""

    matches: bool
    issues: list[str] = Field(default_factory=list)
    missing_entities: list[Entity] = Field(default_factory=list)
    contradictory_entities: list[dict] = Field(default_factory=list)


# ─── Canonical Output ───────────────────────────────────────────────

_FROZEN = ConfigDict(frozen=True)


class VerifiedDeadline(BaseModel):
    model_config = _FROZEN

    date: str
    context: str
    type: str
    verified: bool = True
    sources: tuple[Source, ...] = (Source.RULE,)


class VerifiedAction(BaseModel):
    model_config = _FROZEN

    description: str
    context: str
    verified: bool = True
    sources: tuple[Source, ...] = (Source.RULE,)


class VerifiedPenalty(BaseModel):
    model_config = _FROZEN

    amount: str
    type: str
    context: str
    verified: bool = True
    sources: tuple[Source, ...] = (Source.RULE,)


class VerifiedAmount(BaseModel):
    model_config = _FROZEN

    amount: str
    currency: str = "KRW"
    context: str
    verified: bool = True
    sources: tuple[Source, ...] = ()


class VerifiedAccount(BaseModel):
    model_config = _FROZEN

    account_number: str
    bank_name: Optional[str] = None
    account_holder: Optional[str] = None
    context: str
    verified: bool = True
    sources: tuple[Source, ...] = ()


class CanonicalDocumentData(BaseModel):
    """The unit persisted and exposed to collaborators. Rebuilt, never patched."""

    model_config = _FROZEN

    deadlines: tuple[VerifiedDeadline, ...] = ()
    required_actions: tuple[VerifiedAction, ...] = ()
    penalties: tuple[VerifiedPenalty, ...] = ()
    amounts: tuple[VerifiedAmount, ...] = ()
    account_numbers: tuple[VerifiedAccount, ...] = ()
    verified: bool = True
    source: CanonicalSource = CanonicalSource.RULE
    created_at: datetime
    document_id: Optional[str] = None


# ─── Validation ─────────────────────────────────────────────────────


class ValidationFinding(BaseModel):
    """A single discrepancy with a machine-readable code and details."""

    code: str  # e.g. "MISSING_DEADLINE"
    field: str  # deadlines / obligations / penalties / entities / relations
    message: str
    details: dict = Field(default_factory=dict)


class ValidationResult(BaseModel):
    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    findings: list[ValidationFinding] = Field(default_factory=list)

    @classmethod
    def from_findings(cls, findings: list[ValidationFinding]) -> ValidationResult:
        return cls(
            is_valid=not findings,
            issues=[f.message for f in findings],
            findings=findings,
        )


class HybridData(RuleBasedData):
    """Rule facts plus the optional NER / relation / merged layers."""

    ner_entities: Optional[list[Entity]] = None
    relations: Optional[list[Relation]] = None
    merged_data: Optional[MergedData] = None

    @field_validator("ner_entities", mode="before")
    @classmethod
    def _ner_entities(cls, v: object) -> object:
        """Accept raw NER payload items alongside merged Entities."""
        if not isinstance(v, (list, tuple)):
            return v
        from .merger import coerce_ner_entities  # merger imports this module

        entities: list[Entity] = []
        for item in v:
            if isinstance(item, Entity):
                entities.append(item)
            else:
                entities.extend(coerce_ner_entities([item]))
        return entities


# ─── Pipeline Output ────────────────────────────────────────────────


class ExtractionReport(BaseModel):
    """Everything one extraction run produced for a document."""

    document_id: Optional[str] = None
    canonical: CanonicalDocumentData
    merged: MergedData
    extraction_method: str = "unknown"
    original_hash: str = ""  # SHA-256 of the source text for audit trail

    @property
    def ner_entities(self) -> list[Entity]:
        return [e for e in self.merged.entities if e.has_source(Source.NER)]


class GuardedAnswer(BaseModel):
    """An answer that passed validation, or the refusal that replaced it."""

    answer: str
    is_refusal: bool
    validation: Optional[ValidationResult] = None
