"""
safetynet/moderation/moderator.py
Pre-send moderation facade: allow / warn / block for one outgoing message.

Order of checks:
  1. Blocklist Matcher, when one is supplied       -> blocked
  2. BLOCKED financial phrases, first hit          -> blocked, admin notified
  3. WARNING financial words, every hit collected  -> allowed with warning
  4. otherwise                                     -> safe
Independent of the keyword corpus; corpus scanning happens after persist.
"""

import logging
from typing import List, Optional

from safetynet.detectors.blocklist import BlocklistFilter
from safetynet.models.record import (
    ACTION_ALLOW,
    ACTION_BLOCK,
    ACTION_WARN,
    MODERATION_BLOCKED,
    MODERATION_SAFE,
    MODERATION_WARNING,
    ModerationResult,
)

logger = logging.getLogger(__name__)

BLOCKED_KEYWORDS: List[str] = [
    'bank account',
    'send money',
    'wire transfer',
    'western union',
    'paypal',
    'password',
    'credit card',
    'debit card',
    'pin number',
    'social security',
    'account number',
    'routing number',
    'atm card',
]

WARNING_KEYWORDS: List[str] = [
    'loan',
    'borrow',
    'invest',
    'urgent',
    'emergency money',
    'financial help',
    'need cash',
    'send',
    'transfer',
]

ISSUE_FINANCIAL_REQUEST     = 'financial_request'
ISSUE_POTENTIAL_FINANCIAL   = 'potential_financial_request'
ISSUE_INAPPROPRIATE_CONTENT = 'inappropriate_content'

BLOCKED_REASON = (
    'Message contains prohibited content. '
    'Please do not share sensitive financial information.'
)
WARNING_REASON = (
    'Please be careful when discussing financial matters. '
    'Never share personal financial information.'
)

MEDIA_TYPES = ('voice', 'image', 'video')


def _safe() -> ModerationResult:
    return ModerationResult(
        is_allowed                  = True,
        severity                    = MODERATION_SAFE,
        suggested_action            = ACTION_ALLOW,
        admin_notification_required = False,
    )


class ModerationService:

    def __init__(self, blocklist: Optional[BlocklistFilter] = None):
        self.blocklist = blocklist

    def moderate_message(
        self,
        text:        str,
        sender_id:   str = '',
        receiver_id: str = '',
        session_id:  str = '',
    ) -> ModerationResult:
        if not text or not text.strip():
            return _safe()

        if self.blocklist is not None:
            filtered = self.blocklist.filter_message(text)
            if filtered.is_blocked:
                logger.info(f"Blocked message from {sender_id or 'unknown'} (blocklist)")
                return ModerationResult(
                    is_allowed                  = False,
                    severity                    = MODERATION_BLOCKED,
                    suggested_action            = ACTION_BLOCK,
                    admin_notification_required = True,
                    reason                      = filtered.reason,
                    detected_issues             = [ISSUE_INAPPROPRIATE_CONTENT, filtered.blocked_word],
                )

        lowered = text.lower()

        for keyword in BLOCKED_KEYWORDS:
            if keyword in lowered:
                logger.info(
                    f"Blocked message from {sender_id or 'unknown'} "
                    f"in session {session_id or '-'}: '{keyword}'"
                )
                return ModerationResult(
                    is_allowed                  = False,
                    severity                    = MODERATION_BLOCKED,
                    suggested_action            = ACTION_BLOCK,
                    admin_notification_required = True,
                    reason                      = BLOCKED_REASON,
                    detected_issues             = [ISSUE_FINANCIAL_REQUEST, keyword],
                )

        warnings = [kw for kw in WARNING_KEYWORDS if kw in lowered]
        if warnings:
            logger.debug(f"Warning for message from {sender_id or 'unknown'}: {warnings}")
            return ModerationResult(
                is_allowed                  = True,
                severity                    = MODERATION_WARNING,
                suggested_action            = ACTION_WARN,
                admin_notification_required = False,
                reason                      = WARNING_REASON,
                detected_issues             = [ISSUE_POTENTIAL_FINANCIAL] + warnings,
            )

        return _safe()

    def moderate_media(self, media_url: str, media_type: str, sender_id: str = '') -> ModerationResult:
        """No binary-content classifier yet: every media item is allowed."""
        if media_type not in MEDIA_TYPES:
            logger.debug(f"Unrecognized media type '{media_type}' from {sender_id or 'unknown'}")
        return _safe()
