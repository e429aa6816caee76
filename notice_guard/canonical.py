"""Build the immutable canonical-facts record from merged extraction output."""

from __future__ import annotations

from datetime import datetime, timezone

from .models import (
    CanonicalDocumentData,
    CanonicalSource,
    EntityLabel,
    MergedData,
    Source,
    VerifiedAccount,
    VerifiedAction,
    VerifiedAmount,
    VerifiedDeadline,
    VerifiedPenalty,
)
from .normalization import normalize_amount, normalize_date

CURRENCY = "KRW"


def build_canonical(
    merged: MergedData,
    document_id: str | None = None,
    *,
    created_at: datetime | None = None,
) -> CanonicalDocumentData:
    """Wrap merged facts into a CanonicalDocumentData record.

    Rule facts are marked verified with rule provenance. MONEY and
    ACCOUNT_NUMBER entities keep whatever sources the merger assigned.
    """
    deadlines = tuple(
        VerifiedDeadline(
            date=normalize_date(d.date) or d.date,
            context=d.context,
            type=d.type,
        )
        for d in merged.deadlines
    )
    actions = tuple(
        VerifiedAction(description=o.description, context=o.context)
        for o in merged.obligations
    )
    penalties = tuple(
        VerifiedPenalty(amount=normalize_amount(p.amount), type=p.type, context=p.context)
        for p in merged.penalties
    )
    amounts = tuple(
        VerifiedAmount(
            amount=normalize_amount(e.text),
            currency=CURRENCY,
            context=e.text,
            sources=tuple(e.sources),
        )
        for e in merged.entities
        if e.label == EntityLabel.MONEY
    )
    accounts = tuple(
        VerifiedAccount(account_number=e.text, context=e.text, sources=tuple(e.sources))
        for e in merged.entities
        if e.label == EntityLabel.ACCOUNT_NUMBER
    )

    return CanonicalDocumentData(
        deadlines=deadlines,
        required_actions=actions,
        penalties=penalties,
        amounts=amounts,
        account_numbers=accounts,
        verified=True,
        source=_overall_source(merged),
        created_at=created_at or datetime.now(timezone.utc),
        document_id=document_id,
    )


def _overall_source(merged: MergedData) -> CanonicalSource:
    has_ner = any(e.has_source(Source.NER) for e in merged.entities)
    has_rule = any(e.has_source(Source.RULE) for e in merged.entities)
    if has_ner and has_rule:
        return CanonicalSource.HYBRID
    if has_ner:
        return CanonicalSource.NER
    return CanonicalSource.RULE
