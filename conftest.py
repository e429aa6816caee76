"""Pytest configuration — ensures the project root is importable."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent))


@pytest.fixture(autouse=True)
def _no_collaborator_calls(monkeypatch):
    """Prevent real LLM and NER calls during tests — keeps the suite fast and free."""
    monkeypatch.delenv("NER_SERVICE_URL", raising=False)
    with patch("notice_guard.pipeline.generate_answer", return_value=None):
        yield
