"""
hush/config.py
JSON config with environment overrides. Persists to hush_config.json in
the state directory (default ~/.config/hush).

Secrets are never written to disk: the Gemini key comes from
GOOGLE_API_KEY only.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "hush_config.json"
DEFAULT_STATE_DIR = Path.home() / ".config" / "hush"

DEFAULT_STORE_PATH = (
    Path.home() / "Library" / "Group Containers"
    / "group.com.apple.usernoted" / "db2" / "db"
)

DEFAULT_CONFIG = {
    "store_path": None,             # None → DEFAULT_STORE_PATH
    "focus_path": None,             # None → auto-detect Assertions.json
    "backend": "ollama",            # ollama / gemini
    "model": "qwen3:8b",
    "ollama_host": "http://localhost:11434",
    "gemini_model": "gemini-2.5-flash-lite",
    "poll_interval_sec": 5,
    "store_timeout_sec": 5,
    "classify_timeout_sec": 30,
    "max_workers": 4,
    "max_notifications_per_app": 12,
    "store_failure_threshold": 3,
    "summarize_with_llm": True,
    "api_host": "127.0.0.1",
    "api_port": 8766,
}

BACKENDS = ("ollama", "gemini")


def state_dir(override: Optional[Path] = None) -> Path:
    if override:
        return Path(override).expanduser()
    env = os.environ.get("HUSH_STATE_DIR")
    return Path(env).expanduser() if env else DEFAULT_STATE_DIR


def _config_path(root: Optional[Path] = None) -> Path:
    return state_dir(root) / CONFIG_FILENAME


def load_config(root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from hush_config.json. Returns defaults if missing or invalid."""
    path = _config_path(root)
    config = dict(DEFAULT_CONFIG)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                config.update(data)
            else:
                logger.warning(f"Config ignored: {path} is not a JSON object")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")

    config["state_dir"] = str(state_dir(root))
    config["google_api_key"] = os.environ.get("GOOGLE_API_KEY", "")
    backend = os.environ.get("HUSH_BACKEND")
    if backend:
        config["backend"] = backend
    if config["backend"] not in BACKENDS:
        logger.warning(f"Unknown backend {config['backend']!r}; using ollama")
        config["backend"] = "ollama"
    return config


def save_config(config: Dict[str, Any], root: Optional[Path] = None) -> Path:
    """Persist config to hush_config.json. Runtime-only keys are dropped."""
    path = _config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    persisted = {k: v for k, v in config.items() if k in DEFAULT_CONFIG}
    path.write_text(json.dumps(persisted, indent=2), encoding="utf-8")
    return path
