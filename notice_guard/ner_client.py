"""
HTTP client for the external named-entity recognition service.

The NER service is a collaborator, not part of the core: it receives the
document text and returns labeled spans. We never trust it blindly — its
spans are merged with rule findings and every overlap is arbitrated.

Design:
  - POST {"text": ...} → {"entities": [{text, label, start, end, confidence?}]}
  - Graceful fallback: no NER_SERVICE_URL → returns None → rule-only mode
  - Any transport or payload failure is logged and also returns None
"""

from __future__ import annotations

import logging
import os

import httpx
from pydantic import ValidationError

from .exceptions import NERServiceError
from .models import NerEntity

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class NERClient:
    """Thin synchronous client for the NER service.

    Usage:
        client = NERClient()                 # reads NER_SERVICE_URL
        entities = client.extract_entities(text)
        if entities is None:
            # service unavailable: continue rule-only
            ...
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or os.environ.get("NER_SERVICE_URL") or None
        self.timeout = timeout if timeout is not None else _env_timeout()

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    def extract_entities(self, text: str) -> list[NerEntity] | None:
        """Return the service's entities for ``text``, or None if unavailable.

        Individual malformed entities are dropped; an unusable response as a
        whole yields None.
        """
        if not self.configured:
            logger.info("No NER_SERVICE_URL set — skipping NER (rule-only mode)")
            return None

        try:
            payload = self._post(text)
            entities = _parse_entities(payload)
        except (httpx.HTTPError, NERServiceError) as e:
            logger.warning("NER extraction failed, continuing rule-only: %s", e)
            return None

        logger.info("NER extraction succeeded (%d entities)", len(entities))
        return entities

    def _post(self, text: str) -> dict:
        response = httpx.post(self.base_url, json={"text": text}, timeout=self.timeout)
        if response.status_code >= 400:
            raise NERServiceError(
                f"NER service returned {response.status_code}",
                details={"status_code": response.status_code},
            )
        try:
            data = response.json()
        except ValueError as e:
            raise NERServiceError("NER service returned invalid JSON") from e
        if not isinstance(data, dict):
            raise NERServiceError("NER service returned a non-object payload")
        return data


def _parse_entities(payload: dict) -> list[NerEntity]:
    raw = payload.get("entities") or []
    if not isinstance(raw, list):
        raise NERServiceError("NER payload 'entities' is not a list")

    entities: list[NerEntity] = []
    for item in raw:
        try:
            entities.append(NerEntity.model_validate(item))
        except ValidationError:
            logger.warning("Dropping malformed NER entity: %r", item)
    return entities


def _env_timeout() -> float:
    raw = os.environ.get("NER_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid NER_TIMEOUT_SECONDS=%r, using %.0fs", raw, DEFAULT_TIMEOUT_SECONDS)
        return DEFAULT_TIMEOUT_SECONDS
