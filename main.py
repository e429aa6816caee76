#!/usr/bin/env python3
"""
Notice Guard — Entry Point
==========================

Demonstrates the full pipeline on a sample administrative notice: extracts
the canonical facts, then validates one faithful and one unfaithful answer
against them.

Usage:
    python main.py                                   # Rules-only mode
    NER_SERVICE_URL=http://... python main.py        # Rules + NER hybrid
    LOG_LEVEL=INFO python main.py                    # Show pipeline logs
"""

from __future__ import annotations

import logging
import os
import sys

from notice_guard.models import ExtractionReport, ValidationResult
from notice_guard.pipeline import REFUSAL_MESSAGES, NoticeGuardPipeline

# ─── Load .env if available (optional dependency) ────────────────────
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass


# ─── The Sample Notice ──────────────────────────────────────────────

DOCUMENT_ID = "GN-2025-0412"

RAW_NOTICE = """\
[강남구청] 주정차위반 과태료 부과 사전통지서
문서번호: GN-2025-0412
차량번호: 12가3456
위반장소: 강남구 테헤란로 152 앞
과태료: 40,000원
의견제출기한: 2025년 5월 31일
납부기한: 2025-06-15
기한 내에 과태료를 반드시 납부해야 합니다.
납부 계좌: 국민은행 123-456-789012"""

# Restates every fact verbatim.
FAITHFUL_ANSWER = """\
주정차위반 과태료: 40,000원입니다.
의견제출기한: 2025년 5월 31일
납부기한: 2025-06-15
기한 내에 과태료를 반드시 납부해야 합니다."""

# Wrong amount, invented date, dropped obligation.
UNFAITHFUL_ANSWER = "과태료는 50,000원이며 납부기한은 2025년 7월 15일까지입니다."


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_canonical(report: ExtractionReport) -> None:
    """Print the canonical facts extracted from the notice."""
    canonical = report.canonical
    for d in canonical.deadlines:
        print(f"  Deadline:    {_BOLD}{d.date}{_RESET} {_DIM}({d.type}){_RESET}")
    for p in canonical.penalties:
        amount = "unknown" if p.amount == "0" else f"{int(p.amount):,}원"
        print(f"  Penalty:     {_BOLD}{amount}{_RESET} {_DIM}({p.type}){_RESET}")
    for a in canonical.required_actions:
        print(f"  Action:      {a.description}")
    for m in canonical.amounts:
        sources = ", ".join(s.value for s in m.sources)
        print(f"  Amount:      {m.amount} {m.currency} {_DIM}[{sources}]{_RESET}")
    for acct in canonical.account_numbers:
        print(f"  Account:     {acct.account_number}")
    print(f"  Entities:    {len(report.merged.entities)}")
    print(f"  Relations:   {len(report.merged.relations)}")
    for r in report.merged.relations:
        print(
            f"    {_DIM}{r.type.value}: {r.source.text} → {r.target.text} "
            f"({r.confidence:.2f}){_RESET}"
        )


def _print_validation(label: str, answer: str, result: ValidationResult) -> None:
    """Print one answer's verdict and findings."""
    print(f"\n  {_BOLD}{label}{_RESET}")
    for line in answer.splitlines():
        print(f"    {_DIM}│ {line}{_RESET}")

    if result.is_valid:
        print(f"    {_GREEN}{_BOLD}ACCEPTED{_RESET}")
        return

    print(f"    {_RED}{_BOLD}REJECTED  --  {len(result.findings)} issue(s){_RESET}")
    for f in result.findings:
        print(f"    {_RED}[{f.code}]{_RESET}")
        print(f"    {f.message}")
    first_line = REFUSAL_MESSAGES["ko"].splitlines()[0]
    print(f"    {_DIM}→ shown instead: {first_line}{_RESET}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(
    report: ExtractionReport, faithful: ValidationResult, unfaithful: ValidationResult
) -> int:
    """Pretty-print the extraction and validation report.

    Returns:
        0 if the faithful answer was accepted and the unfaithful one
        rejected, 1 otherwise.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  NOTICE GUARD REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Document:    {report.document_id}")
    print(f"  Audit Hash:  {_DIM}{report.original_hash[:16]}...{_RESET}")
    print(f"  Extraction:  {report.extraction_method}")
    print(f"  Source:      {report.canonical.source.value}")
    print(f"{'─' * _WIDTH}")

    _print_canonical(report)

    print(f"{'─' * _WIDTH}")

    _print_validation("Faithful answer", FAITHFUL_ANSWER, faithful)
    _print_validation("Unfaithful answer", UNFAITHFUL_ANSWER, unfaithful)

    ok = faithful.is_valid and not unfaithful.is_valid
    print(f"\n{'=' * _WIDTH}")
    if ok:
        print(f"  {_GREEN}{_BOLD}GUARD BEHAVED AS EXPECTED{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}UNEXPECTED VERDICT{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if ok else 1


# ─── Main ────────────────────────────────────────────────────────────


def main():
    """Run extraction and validation on the sample notice and print the report."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("\n  Starting Notice Guard...")
    print("  Extracting facts from the sample notice...\n")

    pipeline = NoticeGuardPipeline()
    report = pipeline.extract(RAW_NOTICE, document_id=DOCUMENT_ID)
    faithful = pipeline.validate(FAITHFUL_ANSWER, report)
    unfaithful = pipeline.validate(UNFAITHFUL_ANSWER, report)

    exit_code = print_report(report, faithful, unfaithful)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
