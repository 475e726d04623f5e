"""
safetynet/services/message_pipeline.py
Send path for one text message:

  moderate -> (blocked? stop) -> persist -> corpus scan -> critical hook

The scan runs after the message is stored. A scan failure is logged
and reported as "no detections"; it never fails the send.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from safetynet.detectors.keyword_detector import KeywordScanner
from safetynet.models.record import (
    DetectionResult,
    MessageRecord,
    ModerationResult,
)
from safetynet.moderation.moderator import ModerationService
from safetynet.storage.base import MessageStore

logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    moderation: ModerationResult
    message:    Optional[MessageRecord] = None      # None when blocked
    detections: DetectionResult         = field(default_factory=lambda: DetectionResult(detected=False))

    @property
    def sent(self) -> bool:
        return self.message is not None


class MessagePipeline:

    def __init__(
        self,
        moderator:     ModerationService,
        message_store: MessageStore,
        scanner:       KeywordScanner,
    ):
        self.moderator     = moderator
        self.message_store = message_store
        self.scanner       = scanner

    def send_message(
        self,
        text:        str,
        sender_id:   str,
        receiver_id: str,
        session_id:  str = '',
    ) -> SendOutcome:
        moderation = self.moderator.moderate_message(text, sender_id, receiver_id, session_id)
        if not moderation.is_allowed:
            return SendOutcome(moderation=moderation)

        message = MessageRecord(
            id          = str(uuid.uuid4()),
            text        = text,
            sent_at     = datetime.now(timezone.utc),
            sender_id   = sender_id,
            receiver_id = receiver_id,
            session_id  = session_id,
        )
        # Primary operation: storage errors propagate
        self.message_store.insert(message)

        detections = DetectionResult(detected=False)
        if text and text.strip():
            try:
                detections = self.scanner.scan_message(message.id, text)
            except Exception as e:
                logger.error(f"Keyword scan failed for message {message.id}: {e}")

        return SendOutcome(moderation=moderation, message=message, detections=detections)
