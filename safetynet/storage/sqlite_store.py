"""
safetynet/storage/sqlite_store.py
SQLite backend for every store interface. One database file holds
the corpus, the detection log, suggestions, messages and reports.

SCHEMA DESIGN NOTES:
- keywords are soft-deleted (is_active = 0) so keyword_detections.keyword_id
  always resolves; FK enforced with PRAGMA foreign_keys=ON
- keyword_detections is append-only; no UPDATE/DELETE is ever issued
- keyword_suggestions.keyword / .category keep the column names of the
  admin dashboard schema (category is the display name, not an id)
- All timestamps stored as fixed-width UTC text (YYYY-MM-DDTHH:MM:SS.ffffffZ)
  so range filters compare lexicographically
- Parameterized statements only
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from safetynet.models.record import (
    KeywordRecord,
    KeywordDetection,
    KeywordSuggestion,
    MessageRecord,
    SafetyReport,
    STATUS_PENDING,
    VALID_STATUSES,
)
from safetynet.storage.base import (
    KeywordStore,
    DetectionStore,
    SuggestionStore,
    MessageStore,
    ReportStore,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '1.0'

_TS_FORMAT = '%Y-%m-%dT%H:%M:%S.%fZ'


def to_db_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


# ── SCHEMA ───────────────────────────────────────────────────

def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS safetynet_meta (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at      TEXT    NOT NULL,
            schema_version  TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS keywords (
            id              TEXT    PRIMARY KEY,
            phrase          TEXT    NOT NULL,
            category        TEXT    NOT NULL,
            severity        TEXT    NOT NULL
                            CHECK (severity IN ('Low','Medium','High','Critical')),
            is_active       INTEGER NOT NULL DEFAULT 1,
            created_at      TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS keyword_detections (
            id              TEXT    PRIMARY KEY,
            keyword_id      TEXT    NOT NULL REFERENCES keywords(id),
            message_id      TEXT    NOT NULL,
            detected_at     TEXT    NOT NULL,
            context         TEXT
        );

        CREATE TABLE IF NOT EXISTS keyword_suggestions (
            id                          TEXT    PRIMARY KEY,
            keyword                     TEXT    NOT NULL,
            category                    TEXT    NOT NULL,
            severity                    TEXT
                                        CHECK (severity IN ('Low','Medium','High','Critical')),
            detection_count_last_7_days INTEGER DEFAULT 0,
            status                      TEXT    DEFAULT 'pending'
                                        CHECK (status IN ('pending','accepted','rejected')),
            created_at                  TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS messages (
            id              TEXT    PRIMARY KEY,
            sender_id       TEXT,
            receiver_id     TEXT,
            session_id      TEXT,
            content         TEXT,
            sent_at         TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS safety_reports (
            id               TEXT   PRIMARY KEY,
            reporter_id      TEXT   NOT NULL,
            reported_user_id TEXT,
            subject          TEXT,
            description      TEXT,
            severity_level   TEXT   NOT NULL,
            created_at       TEXT   NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_kw_active      ON keywords(is_active);
        CREATE INDEX IF NOT EXISTS idx_det_keyword    ON keyword_detections(keyword_id);
        CREATE INDEX IF NOT EXISTS idx_det_detected   ON keyword_detections(detected_at);
        CREATE INDEX IF NOT EXISTS idx_det_message    ON keyword_detections(message_id);
        CREATE INDEX IF NOT EXISTS idx_sugg_status    ON keyword_suggestions(status);
        CREATE INDEX IF NOT EXISTS idx_msg_sent       ON messages(sent_at);
        CREATE INDEX IF NOT EXISTS idx_report_user    ON safety_reports(reporter_id);
    """)


def init_db(db_path: Path) -> Path:
    """Create the schema (idempotent) and stamp a meta row. Returns db_path."""
    db_path = Path(db_path)
    with _session(db_path) as conn:
        create_schema(conn)
        conn.execute(
            "INSERT INTO safetynet_meta (created_at, schema_version) VALUES (?,?)",
            (to_db_time(datetime.now(timezone.utc)), SCHEMA_VERSION),
        )
    logger.info(f"SQLite schema ready → {db_path}")
    return db_path


@contextmanager
def _session(db_path: Path) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class _SQLiteStore:

    def __init__(self, db_path: Path = Path('safetynet.db')):
        self.db_path = Path(db_path)
        with _session(self.db_path) as conn:
            create_schema(conn)

    def _session(self):
        return _session(self.db_path)


# ── KEYWORDS ─────────────────────────────────────────────────

def _row_to_keyword(row: sqlite3.Row) -> KeywordRecord:
    return KeywordRecord(
        id         = row['id'],
        phrase     = row['phrase'],
        category   = row['category'],
        severity   = row['severity'],
        active     = bool(row['is_active']),
        created_at = from_db_time(row['created_at']),
    )


class SQLiteKeywordStore(_SQLiteStore, KeywordStore):

    def list_active(self) -> List[KeywordRecord]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM keywords WHERE is_active = 1 ORDER BY created_at, id"
            ).fetchall()
        return [_row_to_keyword(r) for r in rows]

    def get(self, keyword_id: str) -> Optional[KeywordRecord]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM keywords WHERE id = ?", (keyword_id,)
            ).fetchone()
        return _row_to_keyword(row) if row else None

    def insert(self, record: KeywordRecord) -> KeywordRecord:
        with self._session() as conn:
            conn.execute("""
                INSERT INTO keywords (id, phrase, category, severity, is_active, created_at)
                VALUES (?,?,?,?,?,?)
            """, (
                record.id, record.phrase, record.category, record.severity,
                int(record.active), to_db_time(record.created_at),
            ))
        return record

    def update(self, record: KeywordRecord) -> None:
        with self._session() as conn:
            cur = conn.execute("""
                UPDATE keywords SET phrase = ?, category = ?, severity = ?
                WHERE id = ?
            """, (record.phrase, record.category, record.severity, record.id))
        if cur.rowcount == 0:
            raise ValueError(f"Keyword not found: {record.id}")

    def soft_delete(self, keyword_id: str) -> None:
        with self._session() as conn:
            cur = conn.execute(
                "UPDATE keywords SET is_active = 0 WHERE id = ?", (keyword_id,)
            )
        if cur.rowcount == 0:
            raise ValueError(f"Keyword not found: {keyword_id}")

    def count_active(self) -> int:
        with self._session() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM keywords WHERE is_active = 1"
            ).fetchone()[0]

    def count_created_since(self, since: datetime) -> int:
        with self._session() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM keywords WHERE is_active = 1 AND created_at >= ?",
                (to_db_time(since),),
            ).fetchone()[0]


# ── DETECTIONS ───────────────────────────────────────────────

def _row_to_detection(row: sqlite3.Row) -> KeywordDetection:
    return KeywordDetection(
        id              = row['id'],
        keyword_id      = row['keyword_id'],
        message_id      = row['message_id'],
        detected_at     = from_db_time(row['detected_at']),
        context_snippet = row['context'] or '',
    )


class SQLiteDetectionStore(_SQLiteStore, DetectionStore):

    def append(self, detection: KeywordDetection) -> None:
        with self._session() as conn:
            conn.execute("""
                INSERT INTO keyword_detections (id, keyword_id, message_id, detected_at, context)
                VALUES (?,?,?,?,?)
            """, (
                detection.id, detection.keyword_id, detection.message_id,
                to_db_time(detection.detected_at), detection.context_snippet,
            ))

    def count_since(self, since: datetime) -> int:
        with self._session() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM keyword_detections WHERE detected_at >= ?",
                (to_db_time(since),),
            ).fetchone()[0]

    def list_by_keyword(self, keyword_id: str) -> List[KeywordDetection]:
        with self._session() as conn:
            rows = conn.execute("""
                SELECT * FROM keyword_detections WHERE keyword_id = ?
                ORDER BY detected_at DESC
            """, (keyword_id,)).fetchall()
        return [_row_to_detection(r) for r in rows]

    def list_recent(self, limit: int = 50) -> List[KeywordDetection]:
        limit = max(int(limit), 0)
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM keyword_detections ORDER BY detected_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_detection(r) for r in rows]

    def list_all(self) -> List[KeywordDetection]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM keyword_detections ORDER BY detected_at"
            ).fetchall()
        return [_row_to_detection(r) for r in rows]


# ── SUGGESTIONS ──────────────────────────────────────────────

def _row_to_suggestion(row: sqlite3.Row) -> KeywordSuggestion:
    return KeywordSuggestion(
        id                          = row['id'],
        phrase                      = row['keyword'],
        category                    = row['category'],
        severity                    = row['severity'],
        detection_count_last_7_days = row['detection_count_last_7_days'] or 0,
        status                      = row['status'],
        created_at                  = from_db_time(row['created_at']),
    )


class SQLiteSuggestionStore(_SQLiteStore, SuggestionStore):

    def list_pending(self) -> List[KeywordSuggestion]:
        with self._session() as conn:
            rows = conn.execute("""
                SELECT * FROM keyword_suggestions WHERE status = ?
                ORDER BY detection_count_last_7_days DESC, created_at
            """, (STATUS_PENDING,)).fetchall()
        return [_row_to_suggestion(r) for r in rows]

    def get(self, suggestion_id: str) -> Optional[KeywordSuggestion]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM keyword_suggestions WHERE id = ?", (suggestion_id,)
            ).fetchone()
        return _row_to_suggestion(row) if row else None

    def insert(self, suggestion: KeywordSuggestion) -> None:
        with self._session() as conn:
            conn.execute("""
                INSERT INTO keyword_suggestions
                (id, keyword, category, severity, detection_count_last_7_days, status, created_at)
                VALUES (?,?,?,?,?,?,?)
            """, (
                suggestion.id, suggestion.phrase, suggestion.category,
                suggestion.severity, suggestion.detection_count_last_7_days,
                suggestion.status, to_db_time(suggestion.created_at),
            ))

    def update_status(self, suggestion_id: str, status: str) -> None:
        if status not in VALID_STATUSES:
            raise ValueError(f"Unknown suggestion status: {status!r}")
        with self._session() as conn:
            cur = conn.execute(
                "UPDATE keyword_suggestions SET status = ? WHERE id = ?",
                (status, suggestion_id),
            )
        if cur.rowcount == 0:
            raise ValueError(f"Suggestion not found: {suggestion_id}")

    def count_pending(self) -> int:
        with self._session() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM keyword_suggestions WHERE status = ?",
                (STATUS_PENDING,),
            ).fetchone()[0]


# ── MESSAGES ─────────────────────────────────────────────────

class SQLiteMessageStore(_SQLiteStore, MessageStore):

    def list_since(self, since: datetime) -> List[MessageRecord]:
        with self._session() as conn:
            rows = conn.execute("""
                SELECT * FROM messages
                WHERE sent_at >= ? AND content IS NOT NULL
                ORDER BY sent_at
            """, (to_db_time(since),)).fetchall()
        return [
            MessageRecord(
                id          = r['id'],
                text        = r['content'],
                sent_at     = from_db_time(r['sent_at']),
                sender_id   = r['sender_id'] or '',
                receiver_id = r['receiver_id'] or '',
                session_id  = r['session_id'] or '',
            )
            for r in rows
        ]

    def insert(self, message: MessageRecord) -> None:
        with self._session() as conn:
            conn.execute("""
                INSERT INTO messages (id, sender_id, receiver_id, session_id, content, sent_at)
                VALUES (?,?,?,?,?,?)
            """, (
                message.id, message.sender_id, message.receiver_id,
                message.session_id, message.text, to_db_time(message.sent_at),
            ))


# ── REPORTS ──────────────────────────────────────────────────

class SQLiteReportStore(_SQLiteStore, ReportStore):

    def insert(self, report: SafetyReport) -> None:
        with self._session() as conn:
            conn.execute("""
                INSERT INTO safety_reports
                (id, reporter_id, reported_user_id, subject, description, severity_level, created_at)
                VALUES (?,?,?,?,?,?,?)
            """, (
                report.id, report.reporter_id, report.reported_user_id,
                report.subject, report.description, report.severity_level,
                to_db_time(report.created_at),
            ))

    def list_by_reporter(self, reporter_id: str) -> List[SafetyReport]:
        with self._session() as conn:
            rows = conn.execute("""
                SELECT * FROM safety_reports WHERE reporter_id = ?
                ORDER BY created_at DESC
            """, (reporter_id,)).fetchall()
        return [
            SafetyReport(
                id               = r['id'],
                reporter_id      = r['reporter_id'],
                subject          = r['subject'] or '',
                description      = r['description'] or '',
                severity_level   = r['severity_level'],
                created_at       = from_db_time(r['created_at']),
                reported_user_id = r['reported_user_id'],
            )
            for r in rows
        ]


# ── BUNDLE ───────────────────────────────────────────────────

@dataclass
class SQLiteStores:
    """Every store bound to the same database file."""
    keywords:    SQLiteKeywordStore
    detections:  SQLiteDetectionStore
    suggestions: SQLiteSuggestionStore
    messages:    SQLiteMessageStore
    reports:     SQLiteReportStore


def open_stores(db_path: Path) -> SQLiteStores:
    db_path = Path(db_path)
    return SQLiteStores(
        keywords    = SQLiteKeywordStore(db_path),
        detections  = SQLiteDetectionStore(db_path),
        suggestions = SQLiteSuggestionStore(db_path),
        messages    = SQLiteMessageStore(db_path),
        reports     = SQLiteReportStore(db_path),
    )
