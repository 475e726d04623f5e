"""
tests/test_config.py
Config load / save / env merge, and external classifier selection.
"""

import json

import pytest

from safetynet.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    build_external_adapter,
    ensure_config,
    load_config,
    save_config,
)
from safetynet.llm.gemini_adapter import GeminiAdapter
from safetynet.llm.ollama_adapter import OllamaAdapter

_KEY_VARS = ('EXPO_PUBLIC_GEMINI_API_KEY', 'VITE_GEMINI_API_KEY', 'GEMINI_API_KEY')


@pytest.fixture(autouse=True)
def _no_env_keys(monkeypatch):
    for name in _KEY_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path) == DEFAULT_CONFIG


def test_file_merges_over_defaults(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"db_path": "other.db", "suggestion_top_k": 5}))
    config = load_config(tmp_path)
    assert config["db_path"] == "other.db"
    assert config["suggestion_top_k"] == 5
    assert config["context_chars"] == DEFAULT_CONFIG["context_chars"]


@pytest.mark.parametrize("body", ["not json {", "[1, 2, 3]"])
def test_unreadable_file_gives_defaults(tmp_path, body):
    (tmp_path / CONFIG_FILENAME).write_text(body)
    assert load_config(tmp_path) == DEFAULT_CONFIG


def test_save_never_writes_api_key(tmp_path):
    path = save_config({**DEFAULT_CONFIG, "gemini_api_key": "secret"}, tmp_path)
    stored = json.loads(path.read_text())
    assert "gemini_api_key" not in stored
    assert stored["db_path"] == DEFAULT_CONFIG["db_path"]


def test_ensure_config_reads_key_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("VITE_GEMINI_API_KEY", "vite-key")
    monkeypatch.setenv("GEMINI_API_KEY", "plain-key")
    assert ensure_config(tmp_path)["gemini_api_key"] == "vite-key"


def test_ensure_config_rejects_unknown_classifier(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"external_classifier": "GPT"}))
    assert ensure_config(tmp_path)["external_classifier"] == "none"


def test_ensure_config_normalizes_case(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"external_classifier": "Ollama"}))
    assert ensure_config(tmp_path)["external_classifier"] == "ollama"


class TestBuildExternalAdapter:
    def test_none(self):
        assert build_external_adapter(DEFAULT_CONFIG) is None

    def test_gemini(self):
        adapter = build_external_adapter({
            **DEFAULT_CONFIG,
            "external_classifier":    "gemini",
            "gemini_api_key":         "k",
            "gemini_models":          ["gemini-pro"],
            "classifier_timeout_sec": 3,
        })
        assert isinstance(adapter, GeminiAdapter)
        assert adapter.api_key == "k"
        assert adapter.models == ["gemini-pro"]
        assert adapter.timeout_sec == 3
        assert adapter.is_available()

    def test_gemini_without_key_is_unavailable(self):
        adapter = build_external_adapter({**DEFAULT_CONFIG, "external_classifier": "gemini"})
        assert adapter.is_available() is False

    def test_ollama(self):
        adapter = build_external_adapter({
            **DEFAULT_CONFIG,
            "external_classifier": "ollama",
            "ollama_host":         "http://gpu-box:11434/",
        })
        assert isinstance(adapter, OllamaAdapter)
        assert adapter.host == "http://gpu-box:11434"
        assert adapter.model == DEFAULT_CONFIG["ollama_model"]
