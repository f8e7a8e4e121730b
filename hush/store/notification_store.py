"""
hush/store/notification_store.py
Store Reader — polls the OS notification database for rows newer than a
cursor and decodes them.

The database is owned by the OS. It is opened read-only on every poll so
hush never holds a lock across ticks. Two on-disk schemas are known; the
first one that answers a probe query is cached for the process lifetime.

Cursor semantics: rows are selected strictly by id (not wall clock). The
returned cursor is the maximum raw id observed, including rows whose
payload failed to decode, so a malformed row cannot wedge the cursor.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from hush.models.record import DecodedNotification, RawRecord
from hush.parsers.payload_parser import decode_record

logger = logging.getLogger(__name__)

# Seconds between the Unix epoch and the Cocoa reference date (2001-01-01)
COCOA_EPOCH_OFFSET = 978307200


class StoreUnavailableError(Exception):
    """The notification store could not be opened or its schema is unknown."""


@dataclass(frozen=True)
class StoreSchema:
    name:      str
    rows_sql:  str
    max_sql:   str


SCHEMAS = (
    StoreSchema(
        name     = 'znotification',
        rows_sql = (
            "SELECT rec.Z_PK, rec.ZDATA, app.ZBUNDLEID, NULL "
            "FROM ZNOTIFICATIONENTRY rec "
            "JOIN ZNOTIFICATIONAPPENTRY app ON rec.ZAPP = app.Z_PK "
            "WHERE rec.Z_PK > ? ORDER BY rec.Z_PK"
        ),
        max_sql  = "SELECT MAX(Z_PK) FROM ZNOTIFICATIONENTRY",
    ),
    StoreSchema(
        name     = 'record',
        rows_sql = (
            "SELECT rec.rec_id, rec.data, app.identifier, rec.delivered_date "
            "FROM record rec "
            "JOIN app ON rec.app_id = app.app_id "
            "WHERE rec.rec_id > ? ORDER BY rec.rec_id"
        ),
        max_sql  = "SELECT MAX(rec_id) FROM record",
    ),
    StoreSchema(
        name     = 'record-nodate',
        rows_sql = (
            "SELECT rec.rec_id, rec.data, app.identifier, NULL "
            "FROM record rec "
            "JOIN app ON rec.app_id = app.app_id "
            "WHERE rec.rec_id > ? ORDER BY rec.rec_id"
        ),
        max_sql  = "SELECT MAX(rec_id) FROM record",
    ),
)

# Probe with an id no store will reach so the probe returns no rows
_PROBE_ID = 2 ** 62


class NotificationStore:
    """
    Read-only view over the OS notification database.

    Usage:
        store = NotificationStore(Path("~/Library/.../db2/db").expanduser())
        cursor = store.latest_id()
        notifications, cursor = store.poll(cursor)
    """

    def __init__(self, db_path: Path, timeout_sec: float = 5.0):
        self.db_path     = Path(db_path)
        self.timeout_sec = timeout_sec
        self._schema: Optional[StoreSchema] = None

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise StoreUnavailableError(f"notification store not found: {self.db_path}")
        uri = self.db_path.resolve().as_uri() + '?mode=ro'
        try:
            return sqlite3.connect(uri, uri=True, timeout=self.timeout_sec)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"cannot open notification store: {e}") from e

    def _resolve_schema(self, conn: sqlite3.Connection) -> StoreSchema:
        if self._schema is not None:
            return self._schema
        for schema in SCHEMAS:
            try:
                conn.execute(schema.rows_sql, (_PROBE_ID,)).fetchall()
            except sqlite3.Error:
                continue
            logger.info(f"Notification store schema: {schema.name}")
            self._schema = schema
            return schema
        raise StoreUnavailableError("could not determine notification store schema")

    # ── QUERIES ───────────────────────────────────────────────────────────

    def latest_id(self) -> int:
        """Highest raw id currently in the store (0 when empty)."""
        conn = self._connect()
        try:
            schema = self._resolve_schema(conn)
            row = conn.execute(schema.max_sql).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"latest id query failed: {e}") from e
        finally:
            conn.close()
        return int(row[0]) if row and row[0] is not None else 0

    def read_raw(self, cursor: int) -> List[RawRecord]:
        """Raw rows with id strictly greater than cursor, ascending."""
        conn = self._connect()
        try:
            schema = self._resolve_schema(conn)
            rows = conn.execute(schema.rows_sql, (int(cursor),)).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"notification query failed: {e}") from e
        finally:
            conn.close()

        now = int(time.time())
        records: List[RawRecord] = []
        for rec_id, data, bundle_id, delivered in rows:
            records.append(RawRecord(
                id           = int(rec_id),
                bundle_id    = bundle_id or '',
                delivered_at = _to_epoch(delivered, now),
                payload      = bytes(data) if data is not None else b'',
            ))
        return records

    def poll(self, cursor: int) -> Tuple[List[DecodedNotification], int]:
        """
        Read and decode rows newer than cursor.
        Returns (decoded notifications in ascending id order, new cursor).
        Undecodable rows are dropped but still advance the cursor.
        Raises StoreUnavailableError when the store cannot be read.
        """
        raw = self.read_raw(cursor)
        if not raw:
            return [], cursor

        decoded = []
        for rec in raw:
            notification = decode_record(rec)
            if notification is not None:
                decoded.append(notification)

        new_cursor = max(cursor, max(r.id for r in raw))
        dropped = len(raw) - len(decoded)
        logger.debug(
            f"Store poll: raw={len(raw)} decoded={len(decoded)} "
            f"dropped={dropped} cursor={cursor}->{new_cursor}"
        )
        return decoded, new_cursor


def _to_epoch(delivered, fallback: int) -> int:
    if delivered is None:
        return fallback
    try:
        return int(float(delivered)) + COCOA_EPOCH_OFFSET
    except (TypeError, ValueError):
        return fallback
