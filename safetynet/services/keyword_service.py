"""
safetynet/services/keyword_service.py
Admin operations on the keyword corpus and the suggestion queue.

Suggestions are resolved exactly once: pending -> accepted or
pending -> rejected. Accepting promotes the phrase into the corpus
unless an active keyword already carries it.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from safetynet.models.record import (
    KeywordRecord,
    KeywordSuggestion,
    SEVERITY_LOW,
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
    VALID_CATEGORIES,
    normalize_severity,
)
from safetynet.storage.base import DetectionStore, KeywordStore, SuggestionStore
from safetynet.detectors.keyword_detector import KeywordScanner

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    """Referenced keyword or suggestion does not exist."""


@dataclass
class NormalizedSuggestion:
    """Suggestion shaped for the admin review list."""
    id:                str
    keyword:           str
    category:          str
    severity:          str
    detection_summary: str
    badges:            List[str] = field(default_factory=list)


def validate_category(category: str) -> str:
    category = (category or '').strip()
    if category not in VALID_CATEGORIES:
        raise ValueError(
            f"Unknown category: {category!r}. "
            f"Expected one of: {', '.join(sorted(VALID_CATEGORIES))}"
        )
    return category


def validate_phrase(phrase: str) -> str:
    phrase = (phrase or '').strip()
    if not phrase:
        raise ValueError("Keyword phrase must not be empty")
    return phrase


class KeywordService:

    def __init__(
        self,
        keyword_store:    KeywordStore,
        suggestion_store: SuggestionStore,
        detection_store:  Optional[DetectionStore] = None,
    ):
        self.keyword_store    = keyword_store
        self.suggestion_store = suggestion_store
        self.detection_store  = detection_store

    # ── CORPUS ───────────────────────────────────────────────
    def get_active_keywords(self) -> List[KeywordRecord]:
        return self.keyword_store.list_active()

    def add_keyword(self, phrase: str, category: str, severity: str) -> KeywordRecord:
        record = KeywordRecord(
            id         = str(uuid.uuid4()),
            phrase     = validate_phrase(phrase),
            category   = validate_category(category),
            severity   = normalize_severity(severity),
            active     = True,
            created_at = datetime.now(timezone.utc),
        )
        self.keyword_store.insert(record)
        logger.info(f"Keyword added: '{record.phrase}' ({record.category}, {record.severity})")
        return record

    def update_keyword(self, keyword_id: str, phrase: str, category: str, severity: str) -> KeywordRecord:
        existing = self._require_keyword(keyword_id)
        existing.phrase   = validate_phrase(phrase)
        existing.category = validate_category(category)
        existing.severity = normalize_severity(severity)
        self.keyword_store.update(existing)
        logger.info(f"Keyword {keyword_id} updated")
        return existing

    def delete_keyword(self, keyword_id: str) -> None:
        """Soft delete. Detection history keeps resolving."""
        self._require_keyword(keyword_id)
        self.keyword_store.soft_delete(keyword_id)
        logger.info(f"Keyword {keyword_id} deactivated")

    def _require_keyword(self, keyword_id: str) -> KeywordRecord:
        record = self.keyword_store.get(keyword_id)
        if record is None:
            raise NotFoundError(f"Keyword not found: {keyword_id}")
        return record

    # ── SUGGESTIONS ──────────────────────────────────────────
    def get_normalized_suggestions(self) -> List[NormalizedSuggestion]:
        out: List[NormalizedSuggestion] = []
        for s in self.suggestion_store.list_pending():
            try:
                severity = normalize_severity(s.severity)
            except ValueError:
                severity = SEVERITY_LOW
            out.append(NormalizedSuggestion(
                id                = s.id,
                keyword           = s.phrase,
                category          = s.category,
                severity          = severity,
                detection_summary = (
                    f"Detected {s.detection_count_last_7_days} times in concerning "
                    f"conversations over the past 7 days"
                ),
                badges            = [s.category, severity],
            ))
        return out

    def accept_suggestion(self, suggestion_id: str, promote: bool = True) -> Optional[KeywordRecord]:
        """
        Resolve as accepted. Returns the new KeywordRecord, or None when not
        promoted (promote=False, or the phrase is already active).
        """
        suggestion = self._require_pending(suggestion_id)

        created: Optional[KeywordRecord] = None
        if promote:
            active = {k.phrase.lower() for k in self.keyword_store.list_active()}
            if suggestion.phrase.lower() in active:
                logger.info(f"Suggestion '{suggestion.phrase}' already active, not promoting")
            else:
                created = self.add_keyword(suggestion.phrase, suggestion.category, suggestion.severity)

        self.suggestion_store.update_status(suggestion_id, STATUS_ACCEPTED)
        return created

    def reject_suggestion(self, suggestion_id: str) -> None:
        self._require_pending(suggestion_id)
        self.suggestion_store.update_status(suggestion_id, STATUS_REJECTED)
        logger.info(f"Suggestion {suggestion_id} rejected")

    def _require_pending(self, suggestion_id: str) -> KeywordSuggestion:
        suggestion = self.suggestion_store.get(suggestion_id)
        if suggestion is None:
            raise NotFoundError(f"Suggestion not found: {suggestion_id}")
        if suggestion.status != STATUS_PENDING:
            raise ValueError(f"Suggestion {suggestion_id} is already {suggestion.status}")
        return suggestion

    # ── DASHBOARD ────────────────────────────────────────────
    def get_dashboard_stats(self) -> Dict[str, int]:
        if self.detection_store is None:
            raise ValueError("Dashboard stats need a detection store")
        scanner = KeywordScanner(
            keyword_store    = self.keyword_store,
            detection_store  = self.detection_store,
            suggestion_store = self.suggestion_store,
        )
        return scanner.dashboard_stats()
