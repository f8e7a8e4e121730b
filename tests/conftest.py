"""
tests/conftest.py
Shared fixtures. Synthetic store rows only — no real notifications.
"""

import plistlib
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from hush.llm.base import BackendError, LLMAdapter
from hush.models.record import DecodedNotification


def make_payload(title: str = '', body: str = '', subtitle: str = '', nested: bool = False) -> bytes:
    fields = {'titl': title, 'body': body, 'subt': subtitle}
    data = {'app': 'x', 'req': fields} if nested else dict(fields)
    return plistlib.dumps(data, fmt=plistlib.FMT_BINARY)


def make_notification(
    id: int = 1,
    bundle_id: str = 'com.tinyspeck.slackmacgap',
    title: str = 'Deploy',
    body: str = 'Build finished.',
    subtitle: str = '',
    timestamp: int = 1_700_000_000,
) -> DecodedNotification:
    return DecodedNotification(
        id=id,
        bundle_id=bundle_id,
        app_name=bundle_id.rsplit('.', 1)[-1],
        title=title,
        subtitle=subtitle,
        body=body,
        timestamp=timestamp,
    )


class StoreDB:
    """Temporary notification store in one of the two known schemas."""

    def __init__(self, path: Path, schema: str = 'record'):
        self.path = path
        self.schema = schema
        self._apps: Dict[str, int] = {}
        conn = sqlite3.connect(str(path))
        if schema == 'record':
            conn.executescript("""
                CREATE TABLE app (app_id INTEGER PRIMARY KEY, identifier TEXT);
                CREATE TABLE record (
                    rec_id INTEGER PRIMARY KEY, app_id INTEGER,
                    data BLOB, delivered_date REAL
                );
            """)
        else:
            conn.executescript("""
                CREATE TABLE ZNOTIFICATIONAPPENTRY (Z_PK INTEGER PRIMARY KEY, ZBUNDLEID TEXT);
                CREATE TABLE ZNOTIFICATIONENTRY (Z_PK INTEGER PRIMARY KEY, ZAPP INTEGER, ZDATA BLOB);
            """)
        conn.commit()
        conn.close()

    def _app_id(self, conn: sqlite3.Connection, bundle_id: str) -> int:
        if bundle_id not in self._apps:
            app_id = len(self._apps) + 1
            if self.schema == 'record':
                conn.execute("INSERT INTO app (app_id, identifier) VALUES (?, ?)", (app_id, bundle_id))
            else:
                conn.execute("INSERT INTO ZNOTIFICATIONAPPENTRY (Z_PK, ZBUNDLEID) VALUES (?, ?)", (app_id, bundle_id))
            self._apps[bundle_id] = app_id
        return self._apps[bundle_id]

    def add(
        self,
        rec_id: int,
        bundle_id: str = 'com.tinyspeck.slackmacgap',
        payload: Union[bytes, None] = None,
        delivered: Optional[float] = None,
        **fields,
    ) -> None:
        if payload is None:
            payload = make_payload(**fields)
        conn = sqlite3.connect(str(self.path))
        app_id = self._app_id(conn, bundle_id)
        if self.schema == 'record':
            conn.execute(
                "INSERT INTO record (rec_id, app_id, data, delivered_date) VALUES (?,?,?,?)",
                (rec_id, app_id, payload, delivered),
            )
        else:
            conn.execute(
                "INSERT INTO ZNOTIFICATIONENTRY (Z_PK, ZAPP, ZDATA) VALUES (?,?,?)",
                (rec_id, app_id, payload),
            )
        conn.commit()
        conn.close()

    def delete(self, rec_id: int) -> None:
        conn = sqlite3.connect(str(self.path))
        if self.schema == 'record':
            conn.execute("DELETE FROM record WHERE rec_id = ?", (rec_id,))
        else:
            conn.execute("DELETE FROM ZNOTIFICATIONENTRY WHERE Z_PK = ?", (rec_id,))
        conn.commit()
        conn.close()


class FakeBackend(LLMAdapter):
    """
    Scripted backend. `reply` is either a fixed string or a callable
    taking the prompt. Raise BackendError by passing an exception instance.
    """

    def __init__(self, reply: Union[str, Callable[[str], str], Exception] = '', available: bool = True, delay: float = 0):
        self.model = 'fake'
        self.reply = reply
        self.available = available
        self.delay = delay
        self.prompts: List[str] = []
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.available

    def generate(self, prompt: str) -> str:
        with self._lock:
            self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if isinstance(self.reply, Exception):
            raise self.reply
        if callable(self.reply):
            return self.reply(prompt)
        return self.reply

    @property
    def calls(self) -> int:
        with self._lock:
            return len(self.prompts)


def level_reply(level: str, summary: str = 'short', reason: str = 'because') -> str:
    return (
        '{"summary_line": "%s", "reason": "%s", "urgency_level": "%s"}'
        % (summary, reason, level)
    )


@pytest.fixture
def store_db(tmp_path):
    return StoreDB(tmp_path / 'notifications.db', schema='record')


@pytest.fixture
def z_store_db(tmp_path):
    return StoreDB(tmp_path / 'z-notifications.db', schema='z')
