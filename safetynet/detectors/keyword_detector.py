"""
safetynet/detectors/keyword_detector.py
Corpus detection: scans a persisted message against the active keyword
set held in a KeywordStore, returns every hit with a context snippet and
appends each hit to the detection log.

Detection logging is best-effort. A failed append is logged and the scan
result is returned unchanged.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from safetynet.models.record import (
    DetectionMatch,
    DetectionResult,
    KeywordDetection,
    KeywordRecord,
    SEVERITY_CRITICAL,
)
from safetynet.storage.base import DetectionStore, KeywordStore, SuggestionStore

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 30
ELLIPSIS      = '...'

# Called with (message_id, critical matches) after a scan
CriticalHook = Callable[[str, List[DetectionMatch]], None]


def extract_context(text: str, index: int, length: int, context_chars: int = CONTEXT_CHARS) -> str:
    """
    Window of text around text[index:index+length], up to context_chars
    each side. Prefixed with '...' when the window does not start at 0.
    """
    start = max(0, index - context_chars)
    end   = min(len(text), index + length + context_chars)
    snippet = text[start:end]
    return ELLIPSIS + snippet if start > 0 else snippet


def find_matches(
    text:          str,
    keywords:      List[KeywordRecord],
    context_chars: int = CONTEXT_CHARS,
) -> List[DetectionMatch]:
    """Case-insensitive substring search, first occurrence per keyword, corpus order."""
    matches: List[DetectionMatch] = []
    for kw in keywords:
        if not kw.phrase:
            continue
        # Offsets come from the original text; lower() can change its length
        found = re.search(re.escape(kw.phrase), text, re.IGNORECASE)
        if found is None:
            continue
        matches.append(DetectionMatch(
            keyword = kw,
            context = extract_context(text, found.start(), found.end() - found.start(), context_chars),
        ))
    return matches


class KeywordScanner:
    """
    Keyword Corpus Matcher. Stores are injected; the active set is read
    from keyword_store on every scan.
    """

    def __init__(
        self,
        keyword_store:    KeywordStore,
        detection_store:  DetectionStore,
        suggestion_store: Optional[SuggestionStore] = None,
        on_critical:      Optional[CriticalHook]    = None,
        context_chars:    int                       = CONTEXT_CHARS,
    ):
        self.keyword_store    = keyword_store
        self.detection_store  = detection_store
        self.suggestion_store = suggestion_store
        self.on_critical      = on_critical
        self.context_chars    = context_chars

    # ── SCAN ─────────────────────────────────────────────────
    def scan_message(self, message_id: str, text: str) -> DetectionResult:
        if not text or not text.strip():
            return DetectionResult(detected=False)

        # Store failure here is the caller's problem
        keywords = self.keyword_store.list_active()
        matches  = find_matches(text, keywords, self.context_chars)

        for match in matches:
            self._log_detection(message_id, match)

        if matches:
            logger.info(
                f"Message {message_id}: {len(matches)} keyword hit(s): "
                f"{', '.join(m.keyword.phrase for m in matches)}"
            )
            self._notify_critical(message_id, matches)

        return DetectionResult(detected=bool(matches), matches=matches)

    def _log_detection(self, message_id: str, match: DetectionMatch) -> None:
        detection = KeywordDetection(
            id              = str(uuid.uuid4()),
            keyword_id      = match.keyword.id,
            message_id      = message_id,
            detected_at     = datetime.now(timezone.utc),
            context_snippet = match.context,
        )
        try:
            self.detection_store.append(detection)
        except Exception as e:
            logger.error(
                f"Failed to log detection of keyword {match.keyword.id} "
                f"in message {message_id}: {e}"
            )

    def _notify_critical(self, message_id: str, matches: List[DetectionMatch]) -> None:
        critical = [m for m in matches if m.keyword.severity == SEVERITY_CRITICAL]
        if not critical or self.on_critical is None:
            return
        try:
            self.on_critical(message_id, critical)
        except Exception as e:
            logger.error(f"Critical alert hook failed for message {message_id}: {e}")

    # ── READ SIDE ────────────────────────────────────────────
    def detections_today(self) -> int:
        return self.detection_store.count_since(_start_of_today())

    def keyword_history(self, keyword_id: str) -> List[KeywordDetection]:
        return self.detection_store.list_by_keyword(keyword_id)

    def recent_detections(self, limit: int = 50) -> List[KeywordDetection]:
        return self.detection_store.list_recent(limit)

    def detection_stats(self) -> Dict:
        """Totals over the whole log: all-time, today, last 7 days, per keyword id."""
        today    = _start_of_today()
        week_ago = datetime.now(timezone.utc) - timedelta(days=7)

        total      = 0
        today_n    = 0
        week_n     = 0
        by_keyword: Dict[str, int] = {}
        for d in self.detection_store.list_all():
            total += 1
            if d.detected_at >= today:
                today_n += 1
            if d.detected_at >= week_ago:
                week_n += 1
            by_keyword[d.keyword_id] = by_keyword.get(d.keyword_id, 0) + 1

        return {
            'total':      total,
            'today':      today_n,
            'this_week':  week_n,
            'by_keyword': by_keyword,
        }

    def dashboard_stats(self) -> Dict[str, int]:
        week_ago = datetime.now(timezone.utc) - timedelta(days=7)
        pending  = self.suggestion_store.count_pending() if self.suggestion_store else 0
        return {
            'total_keywords':       self.keyword_store.count_active(),
            'added_this_week':      self.keyword_store.count_created_since(week_ago),
            'detections_today':     self.detections_today(),
            'pending_suggestions':  pending,
        }


def _start_of_today() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)
