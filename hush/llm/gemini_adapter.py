"""
hush/llm/gemini_adapter.py
Google Gemini backend adapter (remote API).
Usable only when GOOGLE_API_KEY is set. The key travels in a request
header and is never logged.
"""

import json
import logging
import urllib.error
import urllib.request

from hush.llm.base import BackendError, LLMAdapter

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'


class GeminiAdapter(LLMAdapter):

    def __init__(
        self,
        api_key:     str,
        model:       str   = 'gemini-2.5-flash-lite',
        timeout_sec: float = 30,
    ):
        self.api_key     = api_key or ''
        self.model       = model
        self.timeout_sec = timeout_sec

    def is_available(self) -> bool:
        return bool(self.api_key)

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise BackendError("GOOGLE_API_KEY is not set")

        payload = json.dumps({
            'contents': [{'parts': [{'text': prompt}]}],
        }).encode('utf-8')

        try:
            req = urllib.request.Request(
                GEMINI_ENDPOINT.format(model=self.model),
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
            raise BackendError(f"Gemini returned HTTP {e.code}") from e
        except urllib.error.URLError as e:
            raise BackendError(f"Gemini request failed: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise BackendError(f"Gemini returned invalid JSON: {e}") from e
        except (TimeoutError, OSError) as e:
            raise BackendError(f"Gemini request failed: {e}") from e

        try:
            text = data['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            text = ''
        text = self.clean_text(str(text))
        if not text:
            raise BackendError("Gemini response text is empty")
        return text
