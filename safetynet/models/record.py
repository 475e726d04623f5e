"""
safetynet/models/record.py
Shared dataclass schema. All detectors, stores, and services
use these types. Do not add logic here; data and label sets only.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

# ── LABEL SETS ───────────────────────────────────────────────
# Closed sets. Stored verbatim in the database.

SEVERITY_LOW      = 'Low'
SEVERITY_MEDIUM   = 'Medium'
SEVERITY_HIGH     = 'High'
SEVERITY_CRITICAL = 'Critical'

# Ascending; index is the rank
SEVERITY_ORDER = (SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH, SEVERITY_CRITICAL)
SEVERITY_RANK  = {s: i for i, s in enumerate(SEVERITY_ORDER)}
VALID_SEVERITIES = frozenset(SEVERITY_ORDER)

CATEGORY_FINANCIAL     = 'Financial Exploitation'
CATEGORY_PERSONAL_INFO = 'Personal Information'
CATEGORY_INAPPROPRIATE = 'Inappropriate Content'
CATEGORY_ABUSE         = 'Abuse & Harassment'

VALID_CATEGORIES = frozenset({
    CATEGORY_FINANCIAL,
    CATEGORY_PERSONAL_INFO,
    CATEGORY_INAPPROPRIATE,
    CATEGORY_ABUSE,
})

STATUS_PENDING  = 'pending'
STATUS_ACCEPTED = 'accepted'
STATUS_REJECTED = 'rejected'

VALID_STATUSES = frozenset({STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED})

# Moderation verdicts
MODERATION_SAFE    = 'safe'
MODERATION_WARNING = 'warning'
MODERATION_BLOCKED = 'blocked'

ACTION_ALLOW = 'allow'
ACTION_WARN  = 'warn_user'
ACTION_BLOCK = 'block_message'


def normalize_severity(value: str) -> str:
    """Map any casing of a severity label onto the canonical label."""
    label = str(value or '').strip().capitalize()
    if label not in VALID_SEVERITIES:
        raise ValueError(f"Unknown severity: {value!r}")
    return label


# ── CORPUS ───────────────────────────────────────────────────

@dataclass
class KeywordRecord:
    """One phrase in the active detection corpus."""
    id:          str
    phrase:      str
    category:    str          # one of VALID_CATEGORIES
    severity:    str          # one of VALID_SEVERITIES
    active:      bool
    created_at:  datetime


@dataclass
class KeywordDetection:
    """Append-only audit row, one per keyword hit."""
    id:              str
    keyword_id:      str
    message_id:      str
    detected_at:     datetime
    context_snippet: str


@dataclass
class KeywordSuggestion:
    """Mined phrase awaiting admin review."""
    id:                          str
    phrase:                      str
    category:                    str
    severity:                    str
    detection_count_last_7_days: int
    status:                      str      # pending / accepted / rejected
    created_at:                  datetime


@dataclass
class SuggestionCandidate:
    """Miner output before persistence."""
    phrase:    str
    frequency: int
    category:  str
    severity:  str
    reason:    str
    examples:  List[str] = field(default_factory=list)


@dataclass
class MessageRecord:
    """Persisted chat message, read-only input for mining."""
    id:          str
    text:        str
    sent_at:     datetime
    sender_id:   str = ''
    receiver_id: str = ''
    session_id:  str = ''


# ── DETECTOR OUTPUTS ─────────────────────────────────────────

@dataclass
class FilterResult:
    """Blocklist decision for one outgoing message."""
    is_blocked:   bool
    blocked_word: Optional[str] = None
    reason:       Optional[str] = None


@dataclass
class DetectionMatch:
    keyword: KeywordRecord
    context: str


@dataclass
class DetectionResult:
    detected: bool
    matches:  List[DetectionMatch] = field(default_factory=list)


@dataclass
class ModerationResult:
    """Transient verdict, never persisted by the core."""
    is_allowed:                  bool
    severity:                    str          # safe / warning / blocked
    suggested_action:            str          # allow / warn_user / block_message
    admin_notification_required: bool
    reason:                      Optional[str] = None
    detected_issues:             List[str]     = field(default_factory=list)


# ── SAFETY REPORTS ───────────────────────────────────────────

@dataclass
class SafetyReport:
    id:             str
    reporter_id:    str
    subject:        str
    description:    str
    severity_level: str
    created_at:     datetime
    reported_user_id: Optional[str] = None
