"""
hush/focus.py
Focus Monitor — reads the OS focus / do-not-disturb assertions and runs
the session state machine.

    inactive ──(assertion seen)──▶ active ──(assertion gone)──▶ inactive

The active → inactive edge is the summary trigger. It is handed out once
per session via take_ended_session(), no matter how many consecutive
polls observe the inactive state.

An unreadable or malformed assertions file reads as inactive.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

from hush.models.record import FOCUS_ACTIVE, FOCUS_INACTIVE, FocusSession

logger = logging.getLogger(__name__)

SHARED_ASSERTIONS_PATH = Path('/Users/Shared/.FocusConfiguration/Assertions.json')


def default_assertions_path() -> Path:
    home = Path(os.environ.get('HOME', '~')).expanduser()
    primary = home / 'Library' / 'DoNotDisturb' / 'DB' / 'Assertions.json'
    if primary.exists():
        return primary
    return SHARED_ASSERTIONS_PATH


def is_focus_active(data: Any) -> bool:
    """True if any assertion record block is present in the assertions JSON."""
    if not isinstance(data, dict):
        return False
    records = data.get('data')
    if not isinstance(records, list):
        return False
    for record in records:
        if not isinstance(record, dict):
            continue
        value = record.get('storeAssertionRecords')
        if value is not None and value is not False:
            return True
    return False


class AssertionsFileSource:
    """Reads focus state from the OS Assertions.json file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_assertions_path()

    def __call__(self) -> bool:
        try:
            text = self.path.read_text(encoding='utf-8')
        except OSError as e:
            logger.debug(f"Cannot read focus assertions {self.path}: {e}")
            return False
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Cannot parse focus assertions {self.path}: {e}")
            return False
        return is_focus_active(data)


class FocusMonitor:

    def __init__(
        self,
        source: Optional[Callable[[], bool]] = None,
        clock:  Callable[[], float]          = time.time,
    ):
        self.source = source or AssertionsFileSource()
        self.clock  = clock
        self._session = FocusSession(state=FOCUS_INACTIVE)
        self._ended: Optional[FocusSession] = None

    def current_state(self) -> FocusSession:
        """Poll the focus source once, advance the state machine, return a snapshot."""
        try:
            active = bool(self.source())
        except Exception as e:
            logger.warning(f"Focus source failed, treating as inactive: {e}")
            active = False

        now = self.clock()
        if active and self._session.state == FOCUS_INACTIVE:
            self._session = FocusSession(state=FOCUS_ACTIVE, started_at=now)
            self._ended = None
            logger.info("Focus session started")
        elif not active and self._session.state == FOCUS_ACTIVE:
            self._session = replace(self._session, state=FOCUS_INACTIVE, ended_at=now)
            self._ended = replace(self._session)
            logger.info("Focus session ended")

        return replace(self._session)

    @property
    def is_active(self) -> bool:
        return self._session.state == FOCUS_ACTIVE

    def take_ended_session(self) -> Optional[FocusSession]:
        """
        Return the session that just ended, exactly once per session.
        Subsequent calls return None until another session ends.
        """
        ended, self._ended = self._ended, None
        return ended
