"""
safetynet/detectors/severity.py
Report severity classification.

Rule path: ordered keyword buckets, Critical -> High -> Medium, first
bucket with any case-insensitive substring hit wins, otherwise Low.
Ordering biases ambiguous text toward the more urgent bucket.

External path: an LLMAdapter wrapped by FallbackSeverityClassifier.
Any adapter failure drops back to the rule path; callers never see it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from safetynet.llm.base import LLMAdapter
from safetynet.models.record import (
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    VALID_SEVERITIES,
)

logger = logging.getLogger(__name__)

# ── KEYWORD BUCKETS ──────────────────────────────────────────

CRITICAL_KEYWORDS: List[str] = [
    'abuse', 'abused', 'abusing',
    'danger', 'dangerous', 'threatened', 'threatening',
    'urgent', 'emergency', 'help',
    'violence', 'violent', 'attack', 'attacking',
    'hurt', 'hurting', 'injured', 'injury',
    'scared', 'afraid', 'fear', 'terrified',
    'assault', 'assaulted',
    'suicide', 'kill', 'death',
    'weapon', 'gun', 'knife',
]

HIGH_KEYWORDS: List[str] = [
    'concern', 'concerned', 'worry', 'worried',
    'uncomfortable', 'distressed',
    'inappropriate', 'improper',
    'harass', 'harassment', 'harassed',
    'bully', 'bullying', 'bullied',
    'threaten', 'threat',
    'unsafe', 'insecure',
    'exploit', 'exploitation',
]

MEDIUM_KEYWORDS: List[str] = [
    'issue', 'problem', 'trouble',
    'conflict', 'disagree', 'disagreement',
    'argument', 'arguing',
    'upset', 'frustrated', 'frustration',
    'annoyed', 'annoying',
    'rude', 'disrespectful',
]

# Evaluation order; first bucket with a hit wins
SEVERITY_BUCKETS: Sequence[Tuple[str, List[str]]] = (
    (SEVERITY_CRITICAL, CRITICAL_KEYWORDS),
    (SEVERITY_HIGH,     HIGH_KEYWORDS),
    (SEVERITY_MEDIUM,   MEDIUM_KEYWORDS),
)


def first_bucket_hit(
    text:    str,
    buckets: Sequence[Tuple[str, Sequence[str]]],
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Label of the first bucket with any term contained in text
    (case-insensitive substring), else default.
    """
    lowered = text.lower()
    for label, terms in buckets:
        if any(term in lowered for term in terms):
            return label
    return default


def classify_severity(text: str) -> str:
    if not text or not text.strip():
        return SEVERITY_LOW
    return first_bucket_hit(text, SEVERITY_BUCKETS, default=SEVERITY_LOW)


# ── STRATEGIES ───────────────────────────────────────────────

class ClassifierError(Exception):
    """An external classifier could not produce a label."""


class SeverityClassifier(ABC):

    @abstractmethod
    def classify(self, text: str) -> str:
        """Return one of Low / Medium / High / Critical."""
        ...


class RuleSeverityClassifier(SeverityClassifier):

    def classify(self, text: str) -> str:
        return classify_severity(text)


class ExternalSeverityClassifier(SeverityClassifier):
    """Adapts an LLMAdapter. Raises ClassifierError instead of returning None."""

    def __init__(self, adapter: LLMAdapter):
        self.adapter = adapter

    def classify(self, text: str) -> str:
        if not self.adapter.is_available():
            raise ClassifierError(f"{type(self.adapter).__name__} is not available")
        label = self.adapter.classify_severity(text)
        if label not in VALID_SEVERITIES:
            raise ClassifierError(f"{type(self.adapter).__name__} returned {label!r}")
        return label


class FallbackSeverityClassifier(SeverityClassifier):
    """
    Tries primary, falls back on any exception. The fallback is expected
    to be total (RuleSeverityClassifier is).
    """

    def __init__(
        self,
        primary:  SeverityClassifier,
        fallback: Optional[SeverityClassifier] = None,
    ):
        self.primary  = primary
        self.fallback = fallback or RuleSeverityClassifier()

    def classify(self, text: str) -> str:
        try:
            return self.primary.classify(text)
        except Exception as e:
            logger.warning(f"External severity classifier failed, using rules: {e}")
            return self.fallback.classify(text)


class NullAdapter(LLMAdapter):
    """Never available. Stands in wherever no external backend is configured."""

    def is_available(self) -> bool:
        return False

    def classify_severity(self, text: str) -> Optional[str]:
        return None


# ── SERVICE ──────────────────────────────────────────────────

class SeverityService:
    """
    classify() is the synchronous rule path.
    classify_with_external() prefers the adapter and never raises.
    """

    def __init__(self, adapter: Optional[LLMAdapter] = None):
        self.rules    = RuleSeverityClassifier()
        self.adapter  = adapter or NullAdapter()
        self.combined = FallbackSeverityClassifier(
            primary  = ExternalSeverityClassifier(self.adapter),
            fallback = self.rules,
        )

    def classify(self, text: str) -> str:
        return self.rules.classify(text)

    def classify_with_external_sync(self, text: str) -> str:
        if not text or not text.strip():
            return SEVERITY_LOW
        return self.combined.classify(text)

    async def classify_with_external(self, text: str) -> str:
        # Adapter I/O is blocking urllib; keep it off the event loop
        return await asyncio.to_thread(self.classify_with_external_sync, text)
