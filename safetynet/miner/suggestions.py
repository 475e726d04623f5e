"""
safetynet/miner/suggestions.py
Phrase suggestion miner. Reads recent message history, pulls out 2-4
word phrases that look dangerous and are not yet in the corpus, and
proposes them for admin review as pending KeywordSuggestions.

Runs on demand (CLI / API); nothing here schedules itself.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Tuple

from safetynet.models.record import (
    CATEGORY_ABUSE,
    CATEGORY_FINANCIAL,
    CATEGORY_INAPPROPRIATE,
    CATEGORY_PERSONAL_INFO,
    KeywordSuggestion,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    STATUS_PENDING,
    SuggestionCandidate,
)
from safetynet.storage.base import KeywordStore, MessageStore, SuggestionStore

logger = logging.getLogger(__name__)

NGRAM_SIZES      = (2, 3, 4)
MAX_EXAMPLES     = 3
EXAMPLE_CHARS    = 100
DEFAULT_DAYS     = 30
DEFAULT_TOP_K    = 20

# ── DANGEROUS PATTERN BANK ───────────────────────────────────
# A candidate phrase survives if any of these match anywhere in it.

DANGEROUS_PATTERNS: Dict[str, re.Pattern] = {
    'financial':     re.compile(r'bank|account|credit card|money|transfer|payment|cash|loan|debt'),
    'personal_info': re.compile(r'password|pin|ssn|social security|address|phone number|email'),
    'inappropriate': re.compile(r'nude|naked|sex|explicit|inappropriate|vulgar'),
    'threat_abuse':  re.compile(r'kill|hurt|harm|threat|abuse|violence|hate'),
    'scam':          re.compile(r"urgent|emergency|secret|don't tell|wire|gift card"),
}

# ── PHRASE RULES ─────────────────────────────────────────────
# Checked in order; first category pattern that matches decides.

_FINANCIAL          = re.compile(r'bank|account|credit|money|transfer|wire|cash')
_FINANCIAL_CRITICAL = re.compile(r'bank account|credit card|wire transfer|send money')
_PERSONAL           = re.compile(r'password|pin|ssn|social security|address')
_INAPPROPRIATE      = re.compile(r'nude|naked|sex|explicit|vulgar')
_ABUSE              = re.compile(r'kill|hurt|harm|threat|abuse|violence')


def is_dangerous_phrase(phrase: str) -> bool:
    return any(p.search(phrase) for p in DANGEROUS_PATTERNS.values())


def analyze_phrase(phrase: str) -> Tuple[str, str]:
    """(category, severity) for a mined phrase."""
    lowered = phrase.lower()
    if _FINANCIAL.search(lowered):
        critical = _FINANCIAL_CRITICAL.search(lowered)
        return CATEGORY_FINANCIAL, SEVERITY_CRITICAL if critical else SEVERITY_HIGH
    if _PERSONAL.search(lowered):
        return CATEGORY_PERSONAL_INFO, SEVERITY_CRITICAL
    if _INAPPROPRIATE.search(lowered):
        return CATEGORY_INAPPROPRIATE, SEVERITY_HIGH
    if _ABUSE.search(lowered):
        return CATEGORY_ABUSE, SEVERITY_CRITICAL
    return CATEGORY_FINANCIAL, SEVERITY_MEDIUM


def extract_ngrams(text: str, sizes=NGRAM_SIZES) -> List[str]:
    """Lower-cased whitespace tokens joined by single spaces, every n in sizes."""
    tokens = text.lower().split()
    phrases: List[str] = []
    for n in sizes:
        for i in range(len(tokens) - n + 1):
            phrases.append(' '.join(tokens[i:i + n]))
    return phrases


def build_reason(count: int, category: str, days_back: int) -> str:
    return (
        f"Detected {count} times in concerning {category.lower()} contexts "
        f"over the past {days_back} days"
    )


class SuggestionMiner:

    def __init__(
        self,
        message_store:    MessageStore,
        keyword_store:    KeywordStore,
        suggestion_store: SuggestionStore,
        top_k:            int = DEFAULT_TOP_K,
    ):
        self.message_store    = message_store
        self.keyword_store    = keyword_store
        self.suggestion_store = suggestion_store
        self.top_k            = top_k

    # ── GENERATE ─────────────────────────────────────────────
    def generate_suggestions(self, days_back: int = DEFAULT_DAYS) -> List[SuggestionCandidate]:
        cutoff   = datetime.now(timezone.utc) - timedelta(days=days_back)
        messages = self.message_store.list_since(cutoff)
        logger.info(f"Mining {len(messages)} message(s) from the last {days_back} day(s)")

        known = {k.phrase.lower() for k in self.keyword_store.list_active()}

        # phrase -> [count, examples]; dict keeps first-seen order for ties
        counts: Dict[str, list] = {}
        for msg in messages:
            if not msg.text:
                continue
            for phrase in extract_ngrams(msg.text):
                if phrase in known or not is_dangerous_phrase(phrase):
                    continue
                entry = counts.setdefault(phrase, [0, []])
                entry[0] += 1
                if len(entry[1]) < MAX_EXAMPLES:
                    entry[1].append(msg.text[:EXAMPLE_CHARS])

        candidates: List[SuggestionCandidate] = []
        for phrase, (count, examples) in counts.items():
            category, severity = analyze_phrase(phrase)
            candidates.append(SuggestionCandidate(
                phrase    = phrase,
                frequency = count,
                category  = category,
                severity  = severity,
                reason    = build_reason(count, category, days_back),
                examples  = examples,
            ))

        candidates.sort(key=lambda c: c.frequency, reverse=True)
        top = candidates[:self.top_k]
        logger.info(f"{len(candidates)} candidate phrase(s), returning top {len(top)}")
        return top

    # ── PERSIST ──────────────────────────────────────────────
    def save_suggestions(self, candidates: List[SuggestionCandidate]) -> int:
        """Insert each as pending. Returns how many were saved."""
        saved = 0
        for c in candidates:
            suggestion = KeywordSuggestion(
                id                          = str(uuid.uuid4()),
                phrase                      = c.phrase,
                category                    = c.category,
                severity                    = c.severity,
                detection_count_last_7_days = c.frequency,
                status                      = STATUS_PENDING,
                created_at                  = datetime.now(timezone.utc),
            )
            try:
                self.suggestion_store.insert(suggestion)
                saved += 1
            except Exception as e:
                logger.error(f"Failed to save suggestion '{c.phrase}': {e}")
        return saved

    def run_suggestion_generation(self, days_back: int = DEFAULT_DAYS) -> int:
        """Generate + save. Returns the number generated."""
        candidates = self.generate_suggestions(days_back)
        saved      = self.save_suggestions(candidates)
        if saved < len(candidates):
            logger.warning(f"Saved {saved}/{len(candidates)} suggestion(s)")
        return len(candidates)
