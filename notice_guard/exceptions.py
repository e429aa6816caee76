"""
Exception hierarchy for the collaborator seams.

The extraction and validation core never raises on bad input. These
exceptions are raised where the package talks to external services, and are
caught at each client's public boundary so the pipeline can degrade to
rule-only extraction or a refusal instead of failing the request.
"""

from __future__ import annotations


class NoticeGuardError(Exception):
    """Base exception for all notice-guard failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class NERServiceError(NoticeGuardError):
    """The external NER service failed or returned an unusable payload."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NER_SERVICE_FAILED", message, details)


class AnswerGenerationError(NoticeGuardError):
    """The answer-generating LLM failed or returned nothing usable."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("ANSWER_GENERATION_FAILED", message, details)
