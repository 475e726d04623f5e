"""
tests/test_moderation.py
Moderation facade: precedence, warning collection, blocklist composition.
"""

import pytest

from safetynet.detectors.blocklist import BlocklistFilter
from safetynet.moderation.moderator import ModerationService


class TestModerateMessage:
    def test_financial_request_scenario(self):
        result = ModerationService().moderate_message(
            "Can you send me your bank account number, it's urgent", "u1", "u2", "s1",
        )
        assert result.is_allowed is False
        assert result.severity == "blocked"
        assert result.detected_issues == ["financial_request", "bank account"]
        assert result.suggested_action == "block_message"
        assert result.admin_notification_required is True
        assert result.reason

    def test_blocked_beats_warning(self):
        result = ModerationService().moderate_message("urgent: what is your password")
        assert result.severity == "blocked"
        assert result.detected_issues == ["financial_request", "password"]

    def test_warning_collects_every_hit(self):
        result = ModerationService().moderate_message("Could I borrow some money? It's urgent")
        assert result.is_allowed is True
        assert result.severity == "warning"
        assert result.suggested_action == "warn_user"
        assert result.admin_notification_required is False
        assert result.detected_issues == ["potential_financial_request", "borrow", "urgent"]

    def test_case_insensitive(self):
        assert ModerationService().moderate_message("PAYPAL me").severity == "blocked"

    @pytest.mark.parametrize("text", ["", "   ", "See you at lunch tomorrow"])
    def test_safe(self, text):
        result = ModerationService().moderate_message(text)
        assert result.is_allowed is True
        assert result.severity == "safe"
        assert result.suggested_action == "allow"
        assert result.detected_issues == []
        assert result.reason is None

    def test_blocklist_checked_first(self):
        service = ModerationService(blocklist=BlocklistFilter())
        result  = service.moderate_message("you are a f u c k i n g idiot, send it")
        assert result.severity == "blocked"
        assert result.detected_issues == ["inappropriate_content", "fuck"]

    def test_blocklist_does_not_change_financial_scenario(self):
        service = ModerationService(blocklist=BlocklistFilter())
        result  = service.moderate_message("Can you send me your bank account number, it's urgent")
        assert result.detected_issues == ["financial_request", "bank account"]


class TestModerateMedia:
    @pytest.mark.parametrize("media_type", ["voice", "image", "video", "gif"])
    def test_media_always_safe(self, media_type):
        result = ModerationService().moderate_media("https://cdn.example/x", media_type, "u1")
        assert result.is_allowed is True
        assert result.severity == "safe"
