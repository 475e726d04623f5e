"""
tests/conftest.py
Shared fixtures. Every test gets its own SQLite file under tmp_path.
Synthetic text only.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from safetynet.models.record import (
    CATEGORY_FINANCIAL,
    KeywordRecord,
    MessageRecord,
    SEVERITY_HIGH,
)
from safetynet.storage.sqlite_store import open_stores


@pytest.fixture
def stores(tmp_path):
    return open_stores(tmp_path / "safetynet_test.db")


def make_keyword(
    phrase:   str,
    category: str = CATEGORY_FINANCIAL,
    severity: str = SEVERITY_HIGH,
    active:   bool = True,
    created_at: datetime = None,
) -> KeywordRecord:
    return KeywordRecord(
        id         = str(uuid.uuid4()),
        phrase     = phrase,
        category   = category,
        severity   = severity,
        active     = active,
        created_at = created_at or datetime.now(timezone.utc),
    )


def make_message(text: str, days_ago: float = 0, sender_id: str = "u1") -> MessageRecord:
    return MessageRecord(
        id          = str(uuid.uuid4()),
        text        = text,
        sent_at     = datetime.now(timezone.utc) - timedelta(days=days_ago),
        sender_id   = sender_id,
        receiver_id = "u2",
        session_id  = "s1",
    )
