"""
safetynet/llm/ollama_adapter.py
Ollama backend. Runs the severity prompt against a locally served model,
for deployments that cannot send report text to a hosted API.

  ollama pull llama3:8b-instruct
  safetynet_config.json: "external_classifier": "ollama"
"""

import json
import logging
import urllib.error
import urllib.request
from typing import List, Optional

from safetynet.llm.base import LLMAdapter, parse_severity_label

logger = logging.getLogger(__name__)


class OllamaAdapter(LLMAdapter):

    def __init__(
        self,
        model:       str   = 'llama3:8b-instruct',
        host:        str   = 'http://localhost:11434',
        timeout_sec: float = 8,
        temperature: float = 0.1,
    ):
        self.model       = model
        self.host        = host.rstrip('/')
        self.timeout_sec = timeout_sec
        self.temperature = temperature

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """Ping Ollama and confirm the configured model is pulled."""
        models = self.list_available_models()
        if not models:
            logger.warning(f"Ollama not reachable at {self.host} or no models pulled")
            return False

        # "llama3" matches "llama3:8b-instruct"
        available = any(
            m == self.model or m.startswith(self.model.split(':')[0])
            for m in models
        )
        if not available:
            logger.warning(
                f"Model '{self.model}' not found in Ollama. "
                f"Available: {models}. Run: ollama pull {self.model}"
            )
        return available

    def list_available_models(self) -> List[str]:
        try:
            req = urllib.request.Request(f"{self.host}/api/tags", method='GET')
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                data = json.loads(resp.read().decode())
            return [m['name'] for m in data.get('models', [])]
        except Exception as e:
            logger.debug(f"Ollama tag listing failed: {e}")
            return []

    # ── CLASSIFICATION ───────────────────────────────────────
    def classify_severity(self, text: str) -> Optional[str]:
        payload = json.dumps({
            'model':  self.model,
            'prompt': self.build_prompt(text),
            'stream': False,
            'options': {
                'temperature': self.temperature,
                'num_predict': 20,
            },
        }).encode('utf-8')

        try:
            req = urllib.request.Request(
                f"{self.host}/api/generate",
                data    = payload,
                headers = {'Content-Type': 'application/json'},
                method  = 'POST',
            )
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                data = json.loads(resp.read().decode('utf-8'))

        except urllib.error.URLError as e:
            logger.warning(f"Ollama request failed: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"JSON decode failed in Ollama response: {e}")
            return None
        except Exception as e:
            logger.warning(f"Ollama classify error: {e}")
            return None

        reply = str(data.get('response', '')).strip() if isinstance(data, dict) else ''
        label = parse_severity_label(reply)
        if label is None:
            logger.warning(f"Ollama gave no recognizable label: {reply[:80]!r}")
        return label
