"""
safetynet/storage/base.py
Abstract store interfaces consumed by the pipeline.
To add a new backend: subclass each store and implement its methods.
Detectors and services only ever see these types.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from safetynet.models.record import (
    KeywordRecord,
    KeywordDetection,
    KeywordSuggestion,
    MessageRecord,
    SafetyReport,
)


class KeywordStore(ABC):
    """Active detection corpus. Records are soft-deleted, never removed."""

    @abstractmethod
    def list_active(self) -> List[KeywordRecord]:
        ...

    @abstractmethod
    def get(self, keyword_id: str) -> Optional[KeywordRecord]:
        ...

    @abstractmethod
    def insert(self, record: KeywordRecord) -> KeywordRecord:
        ...

    @abstractmethod
    def update(self, record: KeywordRecord) -> None:
        ...

    @abstractmethod
    def soft_delete(self, keyword_id: str) -> None:
        ...

    @abstractmethod
    def count_active(self) -> int:
        ...

    @abstractmethod
    def count_created_since(self, since: datetime) -> int:
        ...


class DetectionStore(ABC):
    """Append-only detection audit log."""

    @abstractmethod
    def append(self, detection: KeywordDetection) -> None:
        ...

    @abstractmethod
    def count_since(self, since: datetime) -> int:
        ...

    @abstractmethod
    def list_by_keyword(self, keyword_id: str) -> List[KeywordDetection]:
        """Newest first."""
        ...

    @abstractmethod
    def list_recent(self, limit: int = 50) -> List[KeywordDetection]:
        """Newest first."""
        ...

    @abstractmethod
    def list_all(self) -> List[KeywordDetection]:
        ...


class SuggestionStore(ABC):

    @abstractmethod
    def list_pending(self) -> List[KeywordSuggestion]:
        ...

    @abstractmethod
    def get(self, suggestion_id: str) -> Optional[KeywordSuggestion]:
        ...

    @abstractmethod
    def insert(self, suggestion: KeywordSuggestion) -> None:
        ...

    @abstractmethod
    def update_status(self, suggestion_id: str, status: str) -> None:
        ...

    @abstractmethod
    def count_pending(self) -> int:
        ...


class MessageStore(ABC):
    """Read access for mining; insert for the send pipeline."""

    @abstractmethod
    def list_since(self, since: datetime) -> List[MessageRecord]:
        ...

    @abstractmethod
    def insert(self, message: MessageRecord) -> None:
        ...


class ReportStore(ABC):

    @abstractmethod
    def insert(self, report: SafetyReport) -> None:
        ...

    @abstractmethod
    def list_by_reporter(self, reporter_id: str) -> List[SafetyReport]:
        ...
