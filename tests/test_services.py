"""
tests/test_services.py
Keyword administration, message send path, safety report submission.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from safetynet.detectors.blocklist import BlocklistFilter
from safetynet.detectors.keyword_detector import KeywordScanner
from safetynet.detectors.severity import SeverityService
from safetynet.miner.suggestions import SuggestionMiner
from safetynet.models.record import KeywordSuggestion
from safetynet.moderation.moderator import ModerationService
from safetynet.services.keyword_service import KeywordService, NotFoundError
from safetynet.services.message_pipeline import MessagePipeline
from safetynet.services.safety_reports import SafetyReportService
from tests.conftest import make_message


@pytest.fixture
def keywords(stores):
    return KeywordService(stores.keywords, stores.suggestions, stores.detections)


def _pending_suggestions(stores, text="buy gift card", times=2):
    for _ in range(times):
        stores.messages.insert(make_message(text))
    SuggestionMiner(stores.messages, stores.keywords, stores.suggestions).run_suggestion_generation(30)
    return stores.suggestions.list_pending()


class TestKeywordService:
    def test_add_normalizes_severity(self, keywords):
        kw = keywords.add_keyword("  gift card ", "Financial Exploitation", "critical")
        assert kw.phrase == "gift card"
        assert kw.severity == "Critical"
        assert [k.id for k in keywords.get_active_keywords()] == [kw.id]

    @pytest.mark.parametrize("phrase, category, severity", [
        ("", "Financial Exploitation", "High"),
        ("x", "Spam", "High"),
        ("x", "Financial Exploitation", "Extreme"),
    ])
    def test_add_validates(self, keywords, phrase, category, severity):
        with pytest.raises(ValueError):
            keywords.add_keyword(phrase, category, severity)

    def test_update_and_delete(self, keywords):
        kw = keywords.add_keyword("gift card", "Financial Exploitation", "High")
        updated = keywords.update_keyword(kw.id, "gift cards", "Financial Exploitation", "Medium")
        assert updated.phrase == "gift cards"
        assert updated.severity == "Medium"

        keywords.delete_keyword(kw.id)
        assert keywords.get_active_keywords() == []

    def test_unknown_keyword(self, keywords):
        with pytest.raises(NotFoundError):
            keywords.delete_keyword("missing")
        with pytest.raises(NotFoundError):
            keywords.update_keyword("missing", "x", "Financial Exploitation", "Low")

    def test_normalized_suggestions(self, stores, keywords):
        _pending_suggestions(stores)
        rows = {s.keyword: s for s in keywords.get_normalized_suggestions()}
        gift = rows["gift card"]
        assert gift.badges == ["Financial Exploitation", gift.severity]
        assert gift.detection_summary == (
            "Detected 2 times in concerning conversations over the past 7 days"
        )

    def test_unlabelled_suggestion_shown_as_low(self, stores, keywords):
        stores.suggestions.insert(KeywordSuggestion(
            id                          = "s-null",
            phrase                      = "wire it",
            category                    = "Financial Exploitation",
            severity                    = None,
            detection_count_last_7_days = 1,
            status                      = "pending",
            created_at                  = datetime.now(timezone.utc),
        ))
        [row] = keywords.get_normalized_suggestions()
        assert row.severity == "Low"
        assert row.badges == ["Financial Exploitation", "Low"]

    def test_accept_promotes_to_corpus(self, stores, keywords):
        [first, *_] = _pending_suggestions(stores)
        created = keywords.accept_suggestion(first.id)

        assert created is not None
        assert created.phrase == first.phrase
        assert stores.suggestions.get(first.id).status == "accepted"
        assert first.phrase in [k.phrase for k in keywords.get_active_keywords()]

    def test_accept_does_not_duplicate_active_phrase(self, stores, keywords):
        [first, *_] = _pending_suggestions(stores)
        keywords.add_keyword(first.phrase.upper(), "Financial Exploitation", "High")

        assert keywords.accept_suggestion(first.id) is None
        assert len(keywords.get_active_keywords()) == 1
        assert stores.suggestions.get(first.id).status == "accepted"

    def test_accept_without_promote(self, stores, keywords):
        [first, *_] = _pending_suggestions(stores)
        assert keywords.accept_suggestion(first.id, promote=False) is None
        assert keywords.get_active_keywords() == []

    def test_resolved_suggestions_are_terminal(self, stores, keywords):
        [first, second] = _pending_suggestions(stores)
        keywords.reject_suggestion(first.id)
        keywords.accept_suggestion(second.id)

        with pytest.raises(ValueError):
            keywords.accept_suggestion(first.id)
        with pytest.raises(ValueError):
            keywords.reject_suggestion(second.id)
        with pytest.raises(NotFoundError):
            keywords.reject_suggestion("missing")

    def test_dashboard_stats(self, stores, keywords):
        _pending_suggestions(stores)
        keywords.add_keyword("gift card", "Financial Exploitation", "High")
        stats = keywords.get_dashboard_stats()
        assert stats["total_keywords"] == 1
        assert stats["added_this_week"] == 1
        assert stats["pending_suggestions"] == 2
        assert stats["detections_today"] == 0


class TestMessagePipeline:
    def _pipeline(self, stores, scanner=None):
        return MessagePipeline(
            moderator     = ModerationService(blocklist=BlocklistFilter()),
            message_store = stores.messages,
            scanner       = scanner or KeywordScanner(stores.keywords, stores.detections),
        )

    def test_blocked_message_is_not_stored(self, stores):
        outcome = self._pipeline(stores).send_message(
            "Can you send me your bank account number, it's urgent", "u1", "u2",
        )
        assert outcome.sent is False
        assert outcome.moderation.severity == "blocked"
        assert stores.messages.list_since(datetime.now(timezone.utc) - timedelta(days=1)) == []

    def test_allowed_message_is_stored_and_scanned(self, stores, keywords):
        keywords.add_keyword("lunch", "Personal Information", "Low")
        outcome = self._pipeline(stores).send_message(
            "See you at lunch tomorrow", "u1", "u2", "s1",
        )

        assert outcome.sent is True
        assert outcome.moderation.severity == "safe"
        assert outcome.detections.detected is True
        [logged] = stores.detections.list_all()
        assert logged.message_id == outcome.message.id

    def test_corpus_phrase_is_sent_then_logged(self, stores, keywords):
        kw = keywords.add_keyword("gift card", "Financial Exploitation", "High")
        outcome = self._pipeline(stores).send_message("buy me a gift card", "u1", "u2")

        assert outcome.sent is True
        assert outcome.moderation.severity == "safe"
        assert [m.keyword.id for m in outcome.detections.matches] == [kw.id]
        [logged] = stores.detections.list_by_keyword(kw.id)
        assert logged.message_id == outcome.message.id

    def test_corpus_does_not_change_moderation_verdict(self, stores, keywords):
        keywords.add_keyword("bank account", "Financial Exploitation", "Critical")
        outcome = self._pipeline(stores).send_message(
            "Can you send me your bank account number, it's urgent", "u1", "u2",
        )
        assert outcome.sent is False
        assert outcome.moderation.detected_issues == ["financial_request", "bank account"]
        assert stores.detections.list_all() == []

    def test_fixed_blocklist_still_blocks(self, stores):
        outcome = self._pipeline(stores).send_message("stop stalking me", "u1", "u2")
        assert outcome.sent is False
        assert outcome.moderation.detected_issues == ["inappropriate_content", "stalk"]

    def test_scan_failure_does_not_fail_send(self, stores):
        scanner = MagicMock()
        scanner.scan_message.side_effect = RuntimeError("db locked")
        outcome = self._pipeline(stores, scanner=scanner).send_message("See you at lunch tomorrow", "u1", "u2")
        assert outcome.sent is True
        assert outcome.detections.detected is False

    def test_warning_message_still_sent(self, stores):
        outcome = self._pipeline(stores).send_message("Could I borrow your umbrella", "u1", "u2")
        assert outcome.sent is True
        assert outcome.moderation.severity == "warning"


class TestSafetyReportService:
    def test_critical_report_triggers_alert(self, stores):
        hook    = MagicMock()
        service = SafetyReportService(stores.reports, on_critical=hook)

        report = service.submit_report("u1", "Chat", "He threatened me and I am scared for my life")

        assert report.severity_level == "Critical"
        hook.assert_called_once_with(report)
        assert [r.id for r in service.get_user_reports("u1")] == [report.id]

    def test_non_critical_report_no_alert(self, stores):
        hook   = MagicMock()
        report = SafetyReportService(stores.reports, on_critical=hook).submit_report(
            "u1", "Feedback", "Great experience, thank you",
        )
        assert report.severity_level == "Low"
        hook.assert_not_called()

    def test_alert_failure_does_not_fail_submission(self, stores):
        hook    = MagicMock(side_effect=RuntimeError("mail down"))
        service = SafetyReportService(stores.reports, on_critical=hook)
        report  = service.submit_report("u1", "Chat", "emergency")
        assert stores.reports.list_by_reporter("u1")[0].id == report.id

    def test_external_classifier_used_when_requested(self, stores):
        adapter = MagicMock()
        adapter.is_available.return_value = True
        adapter.classify_severity.return_value = "High"
        service = SafetyReportService(stores.reports, severity=SeverityService(adapter=adapter))

        assert service.submit_report("u1", "s", "all fine", use_external=True).severity_level == "High"
        assert service.submit_report("u1", "s", "all fine").severity_level == "Low"

    def test_reporter_required(self, stores):
        with pytest.raises(ValueError):
            SafetyReportService(stores.reports).submit_report("", "s", "d")
