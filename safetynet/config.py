"""
safetynet/config.py
JSON config merged over defaults. Persists to safetynet_config.json.
Secrets may come from the environment instead of the file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from safetynet.llm.base import LLMAdapter
from safetynet.llm.gemini_adapter import DEFAULT_GEMINI_MODELS, GeminiAdapter, gemini_api_key_from_env
from safetynet.llm.ollama_adapter import OllamaAdapter

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "safetynet_config.json"

EXTERNAL_CLASSIFIERS = ("none", "gemini", "ollama")

DEFAULT_CONFIG = {
    "db_path": "safetynet.db",
    "external_classifier": "none",
    "gemini_models": list(DEFAULT_GEMINI_MODELS),
    "gemini_api_key": None,
    "ollama_host": "http://localhost:11434",
    "ollama_model": "llama3:8b-instruct",
    "classifier_timeout_sec": 8,
    "keyword_cache_ttl_sec": 300,
    "suggestion_days_back": 30,
    "suggestion_top_k": 20,
    "context_chars": 30,
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from safetynet_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return {**DEFAULT_CONFIG, **data}
            logger.warning(f"Config at {path} is not a JSON object, using defaults")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to safetynet_config.json. The API key is never written."""
    path = _config_path(project_root)
    data = {k: v for k, v in config.items() if k != "gemini_api_key"}
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load config, fill the Gemini key from the environment when the file
    has none, and check the classifier choice.
    """
    config = load_config(project_root)
    if not config.get("gemini_api_key"):
        config["gemini_api_key"] = gemini_api_key_from_env()

    choice = str(config.get("external_classifier") or "none").lower()
    if choice not in EXTERNAL_CLASSIFIERS:
        logger.warning(f"Unknown external_classifier '{choice}', using rules only")
        choice = "none"
    config["external_classifier"] = choice
    return config


def build_external_adapter(config: Dict[str, Any]) -> Optional[LLMAdapter]:
    """The configured external classifier, or None for rules only."""
    choice  = str(config.get("external_classifier") or "none").lower()
    timeout = float(config.get("classifier_timeout_sec") or DEFAULT_CONFIG["classifier_timeout_sec"])

    if choice == "gemini":
        return GeminiAdapter(
            api_key     = config.get("gemini_api_key") or gemini_api_key_from_env(),
            models      = config.get("gemini_models") or None,
            timeout_sec = timeout,
        )
    if choice == "ollama":
        return OllamaAdapter(
            model       = config.get("ollama_model") or DEFAULT_CONFIG["ollama_model"],
            host        = config.get("ollama_host") or DEFAULT_CONFIG["ollama_host"],
            timeout_sec = timeout,
        )
    return None
