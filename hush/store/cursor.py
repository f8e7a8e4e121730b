"""
hush/store/cursor.py
Persisted ProcessingCursor — high-water mark of the last raw store id
the orchestrator has accounted for.

Forward-only. Written atomically (temp file + replace) so a crash leaves
either the old or the new value on disk, never a torn file.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ProcessingCursor:

    def __init__(self, path: Path):
        self.path = Path(path)
        self._value: Optional[int] = self._load()

    @property
    def value(self) -> Optional[int]:
        """Last durable (or in-process) cursor. None before first initialization."""
        return self._value

    def _load(self) -> Optional[int]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
            return int(data['last_id'])
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Cursor file unreadable, starting fresh: {e}")
            return None

    def initialize(self, value: int) -> int:
        """Set the starting point when no cursor has been persisted yet."""
        if self._value is None:
            self._value = int(value)
            self._write()
        return self._value

    def advance(self, value: int) -> bool:
        """
        Move the cursor forward to value. Returns True if it moved.
        Values at or below the current cursor are ignored.
        """
        value = int(value)
        if self._value is not None and value <= self._value:
            return False
        self._value = value
        self._write()
        return True

    def _write(self) -> None:
        payload = {
            'last_id':    self._value,
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }
        tmp = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding='utf-8')
            os.replace(tmp, self.path)
        except OSError as e:
            # In-memory value still advanced; this process will not re-ingest
            logger.error(f"Cursor persist failed ({self.path}): {e}")
