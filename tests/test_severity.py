"""
tests/test_severity.py
Rule classifier precedence, fallback decorator, external adapters.
No network: urlopen is patched everywhere.
"""

import asyncio
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from safetynet.detectors.severity import (
    ClassifierError,
    ExternalSeverityClassifier,
    FallbackSeverityClassifier,
    NullAdapter,
    RuleSeverityClassifier,
    SeverityService,
    classify_severity,
    first_bucket_hit,
)
from safetynet.llm.base import LLMAdapter, parse_severity_label
from safetynet.llm.gemini_adapter import GeminiAdapter, gemini_api_key_from_env
from safetynet.llm.ollama_adapter import OllamaAdapter


def _adapter(available=True, label=None, error=None) -> MagicMock:
    adapter = MagicMock(spec=LLMAdapter)
    adapter.is_available.return_value = available
    if error is not None:
        adapter.classify_severity.side_effect = error
    else:
        adapter.classify_severity.return_value = label
    return adapter


def _http_response(payload) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    resp.__enter__.return_value = resp
    return resp


def _gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestRuleClassifier:
    @pytest.mark.parametrize("text", ["", "   "])
    def test_blank_is_low(self, text):
        assert classify_severity(text) == "Low"

    @pytest.mark.parametrize("text, expected", [
        ("He threatened me and I am scared for my life", "Critical"),
        ("The chat felt inappropriate", "High"),
        ("We had an argument about the schedule", "Medium"),
        ("Great experience, thank you", "Low"),
    ])
    def test_buckets(self, text, expected):
        assert classify_severity(text) == expected

    def test_critical_beats_medium(self):
        text = "I'm scared he will hurt me, this is just a minor disagreement"
        assert classify_severity(text) == "Critical"

    def test_high_beats_medium(self):
        assert classify_severity("Some harassment after an argument") == "High"

    def test_case_insensitive(self):
        assert classify_severity("EMERGENCY") == "Critical"

    def test_first_bucket_hit_default(self):
        buckets = (("A", ["x"]), ("B", ["y"]))
        assert first_bucket_hit("y then x", buckets) == "A"
        assert first_bucket_hit("nothing", buckets, default="Z") == "Z"


class TestFallbackClassifier:
    def test_external_label_used(self):
        classifier = FallbackSeverityClassifier(ExternalSeverityClassifier(_adapter(label="High")))
        assert classifier.classify("Great experience, thank you") == "High"

    @pytest.mark.parametrize("adapter", [
        _adapter(label=None),
        _adapter(label="Severe"),
        _adapter(error=RuntimeError("boom")),
        _adapter(available=False, label="High"),
    ])
    def test_any_failure_falls_back_to_rules(self, adapter):
        classifier = FallbackSeverityClassifier(ExternalSeverityClassifier(adapter))
        assert classifier.classify("We had an argument about the schedule") == "Medium"

    def test_unavailable_adapter_is_not_called(self):
        adapter = _adapter(available=False)
        with pytest.raises(ClassifierError):
            ExternalSeverityClassifier(adapter).classify("text")
        adapter.classify_severity.assert_not_called()

    def test_null_adapter_always_fails_over(self):
        classifier = FallbackSeverityClassifier(ExternalSeverityClassifier(NullAdapter()))
        assert classifier.classify("emergency") == "Critical"

    def test_default_fallback_is_rules(self):
        assert isinstance(FallbackSeverityClassifier(RuleSeverityClassifier()).fallback, RuleSeverityClassifier)


class TestSeverityService:
    def test_classify_is_rule_path_only(self):
        adapter = _adapter(label="Low")
        service = SeverityService(adapter=adapter)
        assert service.classify("emergency") == "Critical"
        adapter.classify_severity.assert_not_called()

    def test_async_external_prefers_adapter(self):
        service = SeverityService(adapter=_adapter(label="Critical"))
        assert asyncio.run(service.classify_with_external("all fine")) == "Critical"

    def test_async_external_falls_back(self):
        service = SeverityService(adapter=_adapter(error=TimeoutError("slow")))
        result = asyncio.run(service.classify_with_external("He threatened me and I am scared for my life"))
        assert result == "Critical"

    def test_async_external_without_adapter(self):
        assert asyncio.run(SeverityService().classify_with_external("We had an argument")) == "Medium"

    def test_async_external_blank_skips_adapter(self):
        adapter = _adapter(label="Critical")
        assert asyncio.run(SeverityService(adapter=adapter).classify_with_external("  ")) == "Low"
        adapter.classify_severity.assert_not_called()


class TestParseSeverityLabel:
    @pytest.mark.parametrize("reply, expected", [
        ("critical", "Critical"),
        ("High.", "High"),
        ('{"severity": "medium"}', "Medium"),
        ('```json\n{"severity": "Low"}\n```', "Low"),
        ("The severity is High", "High"),
        ("Low or High", None),
        ("", None),
        ("Severe", None),
        ('{"level": "High"}', None),
        ("{not json", None),
    ])
    def test_parse(self, reply, expected):
        assert parse_severity_label(reply) == expected


class TestGeminiAdapter:
    def test_no_key_is_unavailable(self):
        adapter = GeminiAdapter(api_key="")
        with patch("safetynet.llm.gemini_adapter.urllib.request.urlopen") as urlopen:
            assert adapter.is_available() is False
            assert adapter.classify_severity("text") is None
            urlopen.assert_not_called()

    def test_first_model_answer_wins(self):
        adapter = GeminiAdapter(api_key="k", models=["m1", "m2"])
        with patch("safetynet.llm.gemini_adapter.urllib.request.urlopen") as urlopen:
            urlopen.return_value = _http_response(_gemini_reply("High"))
            assert adapter.classify_severity("text") == "High"
        assert urlopen.call_count == 1
        request = urlopen.call_args[0][0]
        assert "/models/m1:generateContent" in request.full_url
        assert request.get_header("X-goog-api-key") == "k"
        assert urlopen.call_args[1]["timeout"] == adapter.timeout_sec

    def test_http_error_tries_next_model(self):
        adapter = GeminiAdapter(api_key="k", models=["m1", "m2"])
        error = urllib.error.HTTPError("https://x", 404, "not found", {}, None)
        with patch("safetynet.llm.gemini_adapter.urllib.request.urlopen") as urlopen:
            urlopen.side_effect = [error, _http_response(_gemini_reply("Critical"))]
            assert adapter.classify_severity("text") == "Critical"
        assert urlopen.call_count == 2

    def test_unrecognized_replies_exhaust_models(self):
        adapter = GeminiAdapter(api_key="k", models=["m1", "m2", "m3"])
        with patch("safetynet.llm.gemini_adapter.urllib.request.urlopen") as urlopen:
            urlopen.side_effect = [
                _http_response({"candidates": []}),
                _http_response(_gemini_reply("no idea")),
                urllib.error.URLError("timed out"),
            ]
            assert adapter.classify_severity("text") is None
        assert urlopen.call_count == 3

    def test_env_key_precedence(self, monkeypatch):
        monkeypatch.delenv("EXPO_PUBLIC_GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "plain")
        monkeypatch.setenv("VITE_GEMINI_API_KEY", "vite")
        assert gemini_api_key_from_env() == "vite"
        assert GeminiAdapter().api_key == "vite"


class TestOllamaAdapter:
    def test_reply_parsed(self):
        adapter = OllamaAdapter(model="llama3")
        with patch("safetynet.llm.ollama_adapter.urllib.request.urlopen") as urlopen:
            urlopen.return_value = _http_response({"response": " medium "})
            assert adapter.classify_severity("text") == "Medium"

    def test_unreachable_returns_none(self):
        adapter = OllamaAdapter()
        with patch("safetynet.llm.ollama_adapter.urllib.request.urlopen") as urlopen:
            urlopen.side_effect = urllib.error.URLError("refused")
            assert adapter.classify_severity("text") is None
            assert adapter.is_available() is False

    def test_is_available_prefix_match(self):
        adapter = OllamaAdapter(model="llama3")
        with patch("safetynet.llm.ollama_adapter.urllib.request.urlopen") as urlopen:
            urlopen.return_value = _http_response({"models": [{"name": "llama3:8b-instruct"}]})
            assert adapter.is_available() is True
