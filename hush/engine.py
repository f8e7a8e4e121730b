"""
hush/engine.py
Grouping & Dedup Engine — the authoritative in-memory table of classified
notifications, keyed by notification id.

All access goes through one lock: a tick's upserts land as one batch and
snapshot() builds its groups under the same lock, so readers never see a
partially-updated group. Every change bumps `revision`, which the UI layer
can poll to learn whether anything changed.

Grouping by bundle id is a partition of the live table by construction:
snapshot() derives groups from the table on every call and nothing else
holds entries.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional

from hush.models.record import URGENCY_LEVELS, ClassifiedNotification, NotificationGroup
from hush.parsers.payload_parser import app_name_from_bundle

logger = logging.getLogger(__name__)


def _recency_key(n: ClassifiedNotification):
    return (n.timestamp, n.classified_at, n.id)


class NotificationEngine:

    def __init__(self, max_per_app: Optional[int] = None):
        # A cap of zero or less means no cap
        self.max_per_app = max_per_app if max_per_app and max_per_app > 0 else None
        self._lock = threading.RLock()
        self._table: Dict[int, ClassifiedNotification] = {}
        self._revision = 0

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def __len__(self) -> int:
        with self._lock:
            return len(self._table)

    def __contains__(self, notification_id: int) -> bool:
        with self._lock:
            return notification_id in self._table

    # ── WRITES ───────────────────────────────────────────────

    def upsert(self, notification: ClassifiedNotification) -> None:
        """Insert, or replace an existing entry with the same id."""
        self.upsert_many([notification])

    def upsert_many(self, notifications: Iterable[ClassifiedNotification]) -> int:
        """Apply a batch atomically. Returns the number of entries written."""
        written = 0
        with self._lock:
            for n in notifications:
                if n.id in self._table:
                    logger.debug(f"Replacing existing entry id={n.id}")
                self._table[n.id] = n
                written += 1
            if written:
                self._revision += 1
        return written

    def clear_one(self, notification_id: int) -> bool:
        with self._lock:
            if self._table.pop(notification_id, None) is None:
                return False
            self._revision += 1
            return True

    def clear_app(self, bundle_id: str) -> int:
        with self._lock:
            doomed = [k for k, v in self._table.items() if v.bundle_id == bundle_id]
            for k in doomed:
                del self._table[k]
            if doomed:
                self._revision += 1
            return len(doomed)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._table)
            self._table.clear()
            if count:
                self._revision += 1
            return count

    # ── READS ────────────────────────────────────────────────

    def entries(self) -> List[ClassifiedNotification]:
        """All live entries, newest first."""
        with self._lock:
            items = list(self._table.values())
        return sorted(items, key=_recency_key, reverse=True)

    def snapshot(self, capped: bool = True) -> List[NotificationGroup]:
        """
        Live entries grouped by bundle id. Groups ordered by their newest
        entry, entries newest first. With capped=True each group keeps at
        most max_per_app entries and counts the rest in hidden_count.
        """
        with self._lock:
            items = list(self._table.values())

        buckets: Dict[str, List[ClassifiedNotification]] = {}
        for n in sorted(items, key=_recency_key, reverse=True):
            buckets.setdefault(n.bundle_id, []).append(n)

        groups: List[NotificationGroup] = []
        for bundle_id, members in buckets.items():
            app_name = members[0].app_name or app_name_from_bundle(bundle_id)
            hidden = 0
            if capped and self.max_per_app is not None and len(members) > self.max_per_app:
                hidden = len(members) - self.max_per_app
                members = members[:self.max_per_app]
            groups.append(NotificationGroup(
                bundle_id     = bundle_id,
                app_name      = app_name,
                notifications = members,
                hidden_count  = hidden,
            ))
        # dict preserves insertion order, which is already newest-group-first
        return groups

    def urgency_counts(self) -> Dict[str, int]:
        counts = {level: 0 for level in URGENCY_LEVELS}
        with self._lock:
            for n in self._table.values():
                counts[n.urgency] = counts.get(n.urgency, 0) + 1
        return counts

    def min_id(self) -> Optional[int]:
        with self._lock:
            return min(self._table) if self._table else None
