"""
safetynet/detectors/blocklist.py
Pre-send content filter. Blocks harmful outgoing messages.

Two passes, first match wins in list order:
  1. normalized message contains normalized entry  (catches evasion)
  2. lower-cased message contains lower-cased entry (catches exact phrases)

The list is DEFAULT_BLOCKED_WORDS, then active corpus phrases (when a
KeywordStore is attached), then words added at runtime.
"""

import logging
import time
from typing import Dict, List, Optional

from safetynet.detectors.normalizer import normalize
from safetynet.models.record import FilterResult
from safetynet.storage.base import KeywordStore

logger = logging.getLogger(__name__)

# ── DEFAULT BLOCKLIST ────────────────────────────────────────
# Matched case-insensitively. Order matters: first hit is reported.

DEFAULT_BLOCKED_WORDS: List[str] = [
    # Violence & threats
    'kill', 'murder', 'die', 'death threat',

    # Sexual content & abuse
    'rape', 'naked', 'nude', 'sex', 'porn', 'pedophile', 'molest',

    # Profanity & slurs
    'fuck', 'fucking', 'fucked', 'fucker',
    'shit', 'bullshit', 'bitch', 'asshole', 'bastard',
    'cunt', 'dick', 'cock', 'pussy',
    'whore', 'slut', 'hoe',

    # Hate speech
    'nigger', 'nigga', 'faggot', 'retard', 'retarded',

    # Self-harm
    'suicide', 'kill myself', 'kill yourself',

    # Harassment
    'stalk', 'stalking', 'harass', 'blackmail',

    # Abuse indicators
    'abuse', 'abuser', 'abusive', 'beat you', 'hit you', 'hurt you',
]

BLOCKED_REASON = 'This message contains inappropriate content and cannot be sent.'

BLOCKED_MESSAGE_ALERT = (
    'Your message contains content that violates our community guidelines '
    'and cannot be sent. Please revise your message.'
)

KEYWORD_CACHE_TTL_SEC = 300


class BlocklistFilter:
    """
    In-process blocklist. Optionally merges the active keyword corpus,
    cached for cache_ttl_sec and refreshed on demand.

    Not synchronized: add_blocked_word() from several threads is
    last-writer-wins.
    """

    def __init__(
        self,
        blocked_words:  Optional[List[str]]   = None,
        keyword_store:  Optional[KeywordStore] = None,
        cache_ttl_sec:  float                 = KEYWORD_CACHE_TTL_SEC,
    ):
        words = DEFAULT_BLOCKED_WORDS if blocked_words is None else blocked_words
        self._hardcoded: List[str] = _dedupe(words)
        self._dynamic:   List[str] = []
        self._runtime:   List[str] = []
        self.keyword_store = keyword_store
        self.cache_ttl_sec = cache_ttl_sec
        self._last_fetch   = 0.0

    # ── CORPUS SNAPSHOT ──────────────────────────────────────
    def load_keywords(self, force: bool = False) -> None:
        """
        Pull active corpus phrases into the dynamic list.
        Skipped while the cached snapshot is fresh. A failed fetch keeps
        the previous snapshot.
        """
        if self.keyword_store is None:
            return
        now = time.monotonic()
        if not force and self._dynamic and now - self._last_fetch < self.cache_ttl_sec:
            return
        try:
            records = self.keyword_store.list_active()
        except Exception as e:
            logger.warning(f"Blocklist keyword refresh failed, keeping previous snapshot: {e}")
            return
        self._dynamic    = _dedupe(r.phrase.lower() for r in records if r.phrase)
        self._last_fetch = now
        logger.debug(f"Blocklist loaded {len(self._dynamic)} corpus keyword(s)")

    def refresh(self) -> None:
        self.load_keywords(force=True)

    # ── LIST MANAGEMENT ──────────────────────────────────────
    def blocked_words(self) -> List[str]:
        """Hardcoded, then corpus, then runtime additions; deduplicated."""
        return _dedupe(self._hardcoded + self._dynamic + self._runtime)

    def add_blocked_word(self, word: str) -> bool:
        """Append word for the life of the process. Returns False if already listed."""
        word = (word or '').strip().lower()
        if not word:
            return False
        if word in {w.lower() for w in self.blocked_words()}:
            return False
        self._runtime.append(word)
        return True

    def keyword_count(self) -> Dict[str, int]:
        self.load_keywords()
        return {
            'hardcoded': len(self._hardcoded),
            'dynamic':   len(self._dynamic) + len(self._runtime),
            'total':     len(self.blocked_words()),
        }

    # ── FILTER ───────────────────────────────────────────────
    def filter_message(self, text: str) -> FilterResult:
        if not text or not text.strip():
            return FilterResult(is_blocked=False)

        self.load_keywords()
        words = self.blocked_words()

        normalized = normalize(text)
        for word in words:
            needle = normalize(word)
            if needle and needle in normalized:
                logger.info(f"Blocked word detected (normalized): '{word}'")
                return FilterResult(is_blocked=True, blocked_word=word, reason=BLOCKED_REASON)

        lowered = text.lower()
        for word in words:
            if word.lower() in lowered:
                logger.info(f"Blocked word detected (original): '{word}'")
                return FilterResult(is_blocked=True, blocked_word=word, reason=BLOCKED_REASON)

        return FilterResult(is_blocked=False)


def _dedupe(words) -> List[str]:
    seen:  set       = set()
    out:   List[str] = []
    for w in words:
        key = w.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(w)
    return out


# Module-level filter for callers that don't manage their own instance
_default_filter = BlocklistFilter()


def filter_message(text: str) -> FilterResult:
    return _default_filter.filter_message(text)


def add_blocked_word(word: str) -> bool:
    return _default_filter.add_blocked_word(word)
