"""
safetynet/llm/gemini_adapter.py
Google Gemini backend. Tries each configured model in order and stops at
the first one that answers with a recognized severity label.

API key comes from config or the GEMINI_API_KEY environment variable
(EXPO_PUBLIC_ / VITE_ prefixed names are honoured first).
"""

import json
import logging
import os
import urllib.error
import urllib.request
from typing import List, Optional

from safetynet.llm.base import LLMAdapter, parse_severity_label

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'

DEFAULT_GEMINI_MODELS = ['gemini-1.5-flash', 'gemini-1.5-pro', 'gemini-pro']


def gemini_api_key_from_env() -> Optional[str]:
    for name in ('EXPO_PUBLIC_GEMINI_API_KEY', 'VITE_GEMINI_API_KEY', 'GEMINI_API_KEY'):
        value = os.environ.get(name)
        if value:
            return value
    return None


class GeminiAdapter(LLMAdapter):

    def __init__(
        self,
        api_key:     Optional[str]       = None,
        models:      Optional[List[str]] = None,
        timeout_sec: float               = 8,
        temperature: float               = 0.1,
    ):
        self.api_key     = api_key if api_key is not None else gemini_api_key_from_env()
        self.models      = list(models) if models else list(DEFAULT_GEMINI_MODELS)
        self.timeout_sec = timeout_sec
        self.temperature = temperature

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """No network probe: a key and at least one model is enough to try."""
        if not self.api_key:
            logger.debug("No Gemini API key configured")
            return False
        return bool(self.models)

    # ── CLASSIFICATION ───────────────────────────────────────
    def classify_severity(self, text: str) -> Optional[str]:
        if not self.is_available():
            return None

        prompt = self.build_prompt(text)
        for model in self.models:
            label = self._classify_with_model(model, prompt)
            if label is not None:
                logger.debug(f"Gemini model {model} classified report as {label}")
                return label
        logger.warning(f"All Gemini models failed ({', '.join(self.models)})")
        return None

    def _classify_with_model(self, model: str, prompt: str) -> Optional[str]:
        payload = json.dumps({
            'contents': [{'parts': [{'text': prompt}]}],
            'generationConfig': {
                'temperature':     self.temperature,
                'maxOutputTokens': 20,
            },
        }).encode('utf-8')

        try:
            req = urllib.request.Request(
                GEMINI_ENDPOINT.format(model=model),
                data    = payload,
                headers = {
                    'Content-Type':   'application/json',
                    'x-goog-api-key': self.api_key,
                },
                method  = 'POST',
            )
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                data = json.loads(resp.read().decode('utf-8'))

        except urllib.error.HTTPError as e:
            logger.warning(f"Gemini model {model} returned HTTP {e.code}")
            return None
        except urllib.error.URLError as e:
            logger.warning(f"Gemini request failed for {model}: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"JSON decode failed in Gemini response ({model}): {e}")
            return None
        except Exception as e:
            logger.warning(f"Gemini classify error ({model}): {e}")
            return None

        reply = _extract_text(data)
        label = parse_severity_label(reply)
        if label is None:
            logger.warning(f"Gemini model {model} gave no recognizable label: {reply[:80]!r}")
        return label


def _extract_text(data) -> str:
    """candidates[0].content.parts[0].text, or '' when any level is missing."""
    try:
        return str(data['candidates'][0]['content']['parts'][0]['text']).strip()
    except (KeyError, IndexError, TypeError):
        return ''
