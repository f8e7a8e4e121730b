"""
hush/llm/base.py
Abstract base class for all classification backends.
To add a new backend: subclass LLMAdapter and implement is_available()
and generate().
"""

import re
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from hush.models.record import URGENCY_LABELS, ClassifiedNotification, DecodedNotification

_THINK_BLOCK = re.compile(r'<think>[\s\S]*?</think>')


class BackendError(Exception):
    """Transport, HTTP status or empty-response failure from a backend."""


class LLMAdapter(ABC):
    """
    All classification backends implement this interface.
    The classifier calls generate() and gets back raw text.
    The caller never knows which backend is running.
    """

    model: str = ''

    @abstractmethod
    def is_available(self) -> bool:
        """
        Returns True if the backend is configured and reachable.
        Checked before each call so an absent backend costs no network
        round trip — the classifier goes straight to its fallback.
        """
        ...

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Send one prompt, return the response text.
        Raises BackendError on any failure. Never returns empty text.
        """
        ...

    @staticmethod
    def clean_text(text: str) -> str:
        """Strip reasoning blocks some local models emit before the answer."""
        return _THINK_BLOCK.sub('', text or '').strip()

    def build_prompt(
        self,
        notification: DecodedNotification,
        app_context:  Optional[str] = None,
    ) -> str:
        """
        Shared classification prompt. All adapters use this unless they
        need a format-specific override.
        """
        prompt = (
            "Classify the following notification, received while the user "
            "is in a focus session.\n"
            "Respond ONLY with a valid JSON object. No markdown, no explanation.\n\n"
            "URGENCY LEVELS (judge by the cost of delay):\n"
            "- critical: real damage if not handled right now; harm grows by the minute "
            "(production outage, security incident, emergency from family)\n"
            "- high: should be read as soon as focus ends; hours of delay cause trouble "
            "(direct mention from a manager, deadline today, blocking approval)\n"
            "- medium: fine to check later; half a day of delay is harmless "
            "(review request, general chat, meeting notice)\n"
            "- low: safe to never read (marketing, social likes, update notices)\n\n"
            "{\n"
            '  "summary_line": "summary in 30 characters or fewer",\n'
            '  "reason": "one sentence explaining the verdict",\n'
            '  "urgency_level": "critical" or "high" or "medium" or "low"\n'
            "}\n\n"
            "NOTIFICATION:\n"
            f"App: {notification.app_name} ({notification.bundle_id})\n"
            f"Title: {notification.title[:300]}\n"
            f"Subtitle: {notification.subtitle[:300]}\n"
            f'Body: "{notification.body[:1500]}"'
        )
        if app_context:
            prompt += f"\n\nAdditional context for this app: {app_context[:1000]}"
        return prompt

    def build_summary_prompt(self, notifications: Iterable[ClassifiedNotification]) -> str:
        lines = [
            f"[{n.app_name}][{URGENCY_LABELS.get(n.urgency, n.urgency)}] "
            f"{n.summary_line}: {n.body[:300]}"
            for n in notifications
        ]
        return (
            "Summarize the following notifications concisely. "
            "Organize them by app and make the order of handling clear. "
            "Plain text only.\n\n" + '\n'.join(lines)
        )
