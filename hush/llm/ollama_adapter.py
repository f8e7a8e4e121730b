"""
hush/llm/ollama_adapter.py
Ollama backend adapter. Runs the classifier on a local model.
Supports any model pulled via `ollama pull <model>`.

INSTALL:
  macOS: https://ollama.com/download   (or: brew install ollama)

RECOMMENDED MODELS:
  qwen3:8b (default) — good JSON discipline, <think> blocks are stripped
  llama3.1:8b        — faster, slightly less consistent urgency wording
"""

import json
import logging
import time
import urllib.error
import urllib.request
from typing import List

from hush.llm.base import BackendError, LLMAdapter

logger = logging.getLogger(__name__)


class OllamaAdapter(LLMAdapter):

    def __init__(
        self,
        model:            str   = 'qwen3:8b',
        host:             str   = 'http://localhost:11434',
        timeout_sec:      float = 30,
        temperature:      float = 0.1,
        availability_ttl: float = 60,
    ):
        self.model            = model
        self.host             = host.rstrip('/')
        self.timeout_sec      = timeout_sec
        self.temperature      = temperature
        self.availability_ttl = availability_ttl
        self._available: bool = False
        self._checked_at: float = float('-inf')

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """Ping Ollama at most once per availability_ttl seconds."""
        now = time.monotonic()
        if now - self._checked_at < self.availability_ttl:
            return self._available
        self._checked_at = now
        self._available = self._probe()
        return self._available

    def _probe(self) -> bool:
        try:
            models = self.list_available_models(raise_errors=True)
        except urllib.error.URLError:
            logger.warning(
                "Ollama not reachable at " + self.host +
                ". Classification will use the fallback until it is running."
            )
            return False
        except Exception as e:
            logger.warning(f"Ollama availability check failed: {e}")
            return False

        available = any(
            m == self.model or m.startswith(self.model.split(':')[0])
            for m in models
        )
        if not available:
            logger.warning(
                f"Model '{self.model}' not found in Ollama. "
                f"Available: {models}. "
                f"Run: ollama pull {self.model}"
            )
        return available

    # ── GENERATION ───────────────────────────────────────────
    def generate(self, prompt: str) -> str:
        payload = json.dumps({
            'model':  self.model,
            'prompt': prompt,
            'stream': False,
            'options': {
                'temperature': self.temperature,
                'num_predict': 400,
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
            raise BackendError(f"Ollama request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise BackendError(f"Ollama returned invalid JSON: {e}") from e
        except (TimeoutError, OSError) as e:
            raise BackendError(f"Ollama request failed: {e}") from e

        text = self.clean_text(str(data.get('response', '')))
        if not text:
            raise BackendError("Ollama response text is empty")
        return text

    # ── MODEL MANAGEMENT HELPERS ─────────────────────────────
    def list_available_models(self, raise_errors: bool = False) -> List[str]:
        """Return list of locally available Ollama model names."""
        try:
            req = urllib.request.Request(f"{self.host}/api/tags", method='GET')
            with urllib.request.urlopen(req, timeout=5) as resp:
                data = json.loads(resp.read().decode())
            return [m['name'] for m in data.get('models', [])]
        except Exception:
            if raise_errors:
                raise
            return []
