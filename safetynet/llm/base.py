"""
safetynet/llm/base.py
Abstract base class for external severity classifiers.
To add a new backend: subclass LLMAdapter and implement classify_severity().
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Optional

from safetynet.models.record import SEVERITY_ORDER, VALID_SEVERITIES

# Longest label first so "Critical" is not read as something shorter
_LABEL_PATTERN = re.compile(
    r'\b(' + '|'.join(sorted(SEVERITY_ORDER, key=len, reverse=True)) + r')\b',
    re.IGNORECASE,
)


class LLMAdapter(ABC):
    """
    All external backends implement this interface.
    The severity service calls classify_severity() and gets back one of
    Low / Medium / High / Critical, or None.
    The caller never knows which backend is running.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """
        Returns True if the backend is configured and reachable.
        Lets the caller skip straight to the rule classifier.
        """
        ...

    @abstractmethod
    def classify_severity(self, text: str) -> Optional[str]:
        """
        Classify a single report description.
        Returns None on any failure (no credentials, non-2xx, timeout,
        unparseable or unknown label). Never raises.
        """
        ...

    def build_prompt(self, text: str) -> str:
        """Shared prompt. Adapters override only for format-specific wrappers."""
        return (
            "You are a safety analyst for an intergenerational matching platform. "
            "Classify the severity of the following safety report.\n\n"
            f'REPORT:\n"{text[:2000]}"\n\n'
            "SEVERITY LEVELS:\n"
            "- Critical: immediate danger, abuse, violence, self-harm, weapons\n"
            "- High: serious concern needing prompt action (harassment, bullying, "
            "threats, exploitation, inappropriate behaviour)\n"
            "- Medium: interpersonal friction (conflict, argument, rudeness)\n"
            "- Low: general feedback or minor issues\n\n"
            "Respond with exactly one word: Low, Medium, High or Critical."
        )


def parse_severity_label(text: str) -> Optional[str]:
    """
    Read a severity label out of a model reply.
    Accepts a bare word, a sentence containing one label, or a JSON
    object with a "severity" key. Returns the canonical label or None.
    """
    if not text:
        return None
    clean = text.strip()

    # Strip markdown fences if present
    if clean.startswith('```'):
        parts = clean.split('```')
        clean = parts[1] if len(parts) > 1 else ''
        if clean.lower().startswith('json'):
            clean = clean[4:]
        clean = clean.strip()

    if clean.startswith('{'):
        try:
            data = json.loads(clean)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        clean = str(data.get('severity', ''))

    label = clean.strip().strip('."\'').capitalize()
    if label in VALID_SEVERITIES:
        return label

    found = {m.group(1).capitalize() for m in _LABEL_PATTERN.finditer(clean)}
    if len(found) == 1:
        return found.pop()
    # Zero or ambiguous
    return None
