"""
hush/registry.py
Prompt & Ignore Registry — per-app classification context and the ignore
list, both persisted as JSON next to the config.

app_prompts.json   {"com.tinyspeck.slackmacgap": {"context": "..."}}
                   (flat {"bundleId": "context"} also accepted on load)
ignored_apps.json  ["com.apple.news", ...]   sorted

All mutations are idempotent. Delete/remove of a missing key is not an
error — the call reports no change. Empty bundle ids or contexts are
rejected with ValueError before any state changes.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

from hush.models.record import AppPromptEntry

logger = logging.getLogger(__name__)


def _require(value: str, name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{name} must not be empty")
    return str(value).strip()


def _normalize(bundle_id: str) -> str:
    return (bundle_id or '').strip()


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding='utf-8')
    os.replace(tmp, path)


class AppPrompts:
    """Per-app custom context injected into every classification for that app."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._map: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load {self.path.name}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring {self.path.name}: expected a JSON object")
            return {}

        prompts: Dict[str, str] = {}
        for bundle_id, value in data.items():
            if isinstance(value, dict):
                value = value.get('context')
            if isinstance(value, str) and value.strip():
                prompts[bundle_id] = value
        return prompts

    def save(self) -> None:
        _write_json(self.path, {
            k: {'context': v} for k, v in sorted(self._map.items())
        })

    def get(self, bundle_id: str) -> Optional[str]:
        bundle_id = _normalize(bundle_id)
        with self._lock:
            return self._map.get(bundle_id)

    def list(self) -> List[AppPromptEntry]:
        with self._lock:
            return [AppPromptEntry(k, v) for k, v in sorted(self._map.items())]

    def set(self, bundle_id: str, context: str) -> bool:
        """Store context for bundle_id. Returns True if anything changed."""
        bundle_id = _require(bundle_id, 'bundle_id')
        context   = _require(context, 'context')
        with self._lock:
            if self._map.get(bundle_id) == context:
                return False
            previous = self._map.get(bundle_id)
            self._map[bundle_id] = context
            try:
                self.save()
            except OSError:
                if previous is None:
                    self._map.pop(bundle_id, None)
                else:
                    self._map[bundle_id] = previous
                raise
        logger.info(f"App prompt set: {bundle_id}")
        return True

    def delete(self, bundle_id: str) -> bool:
        """Remove the prompt for bundle_id. Returns False if there was none."""
        bundle_id = _normalize(bundle_id)
        with self._lock:
            if bundle_id not in self._map:
                return False
            previous = self._map.pop(bundle_id)
            try:
                self.save()
            except OSError:
                self._map[bundle_id] = previous
                raise
        logger.info(f"App prompt deleted: {bundle_id}")
        return True


class IgnoredApps:
    """Bundle ids whose notifications are dropped before classification."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._set = self._load()

    def _load(self) -> set:
        if not self.path.exists():
            return set()
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load {self.path.name}: {e}")
            return set()
        if not isinstance(data, list):
            logger.warning(f"Ignoring {self.path.name}: expected a JSON array")
            return set()
        return {b for b in data if isinstance(b, str) and b.strip()}

    def save(self) -> None:
        _write_json(self.path, sorted(self._set))

    def __contains__(self, bundle_id: str) -> bool:
        bundle_id = _normalize(bundle_id)
        with self._lock:
            return bundle_id in self._set

    def list(self) -> List[str]:
        with self._lock:
            return sorted(self._set)

    def add(self, bundle_id: str) -> bool:
        bundle_id = _require(bundle_id, 'bundle_id')
        with self._lock:
            if bundle_id in self._set:
                return False
            self._set.add(bundle_id)
            try:
                self.save()
            except OSError:
                self._set.discard(bundle_id)
                raise
        logger.info(f"App ignored: {bundle_id}")
        return True

    def remove(self, bundle_id: str) -> bool:
        bundle_id = _normalize(bundle_id)
        with self._lock:
            if bundle_id not in self._set:
                return False
            self._set.discard(bundle_id)
            try:
                self.save()
            except OSError:
                self._set.add(bundle_id)
                raise
        logger.info(f"App un-ignored: {bundle_id}")
        return True
