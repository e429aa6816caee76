"""
Notice Guard — Fact grounding for answers about Korean administrative notices.

Architecture: Dual extraction (Rules + NER) → Merge → Relations → Canonical facts → Answer validation
Philosophy:  Let the model phrase the answer. Trust only code to check it.
"""

__version__ = "1.0.0"
