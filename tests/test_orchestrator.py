"""
tests/test_orchestrator.py
Orchestrator Loop — end-to-end ticks over a synthetic store.
Real store, cursor, engine and registry; scripted backend; mocked
dispatcher so no dialog is ever shown.
"""

import pytest
from unittest.mock import MagicMock

from conftest import FakeBackend, StoreDB, level_reply
from hush.classifier import FALLBACK_REASON, UrgencyClassifier
from hush.engine import NotificationEngine
from hush.focus import FocusMonitor
from hush.models.record import CRITICAL, MEDIUM
from hush.orchestrator import (
    EVENT_NOTIFICATIONS_UPDATED,
    MAX_TEST_INSERT_COUNT,
    STATUS_OK,
    STATUS_STORE_UNAVAILABLE,
    Orchestrator,
    StartupError,
)
from hush.registry import AppPrompts, IgnoredApps
from hush.store.cursor import ProcessingCursor
from hush.store.notification_store import NotificationStore

SLACK = 'com.tinyspeck.slackmacgap'


class Harness:
    """Wires one orchestrator over a temp state dir. Rebuild to simulate restart."""

    def __init__(self, tmp_path, store_path, backend, timeout_sec=5.0):
        self.tmp_path   = tmp_path
        self.store_path = store_path
        self.backend    = backend
        self.focus_on   = True
        self.dispatcher = MagicMock()
        self.dispatcher.notify_urgent.side_effect = lambda n: n.urgency in ('critical', 'high')
        self.dispatcher.dispatch_summary.return_value = True
        self.classifier = UrgencyClassifier(backend, timeout_sec=timeout_sec, max_workers=2)
        self.orchestrator = self.build()

    def build(self):
        return Orchestrator(
            store      = NotificationStore(self.store_path),
            cursor     = ProcessingCursor(self.tmp_path / 'state' / 'cursor.json'),
            focus      = FocusMonitor(source=lambda: self.focus_on),
            classifier = self.classifier,
            engine     = NotificationEngine(),
            prompts    = AppPrompts(self.tmp_path / 'state' / 'app_prompts.json'),
            ignored    = IgnoredApps(self.tmp_path / 'state' / 'ignored_apps.json'),
            dispatcher = self.dispatcher,
            store_failure_threshold = 3,
        )

    def restart(self):
        self.orchestrator = self.build()
        return self.orchestrator

    def seed_cursor(self, value):
        ProcessingCursor(self.tmp_path / 'state' / 'cursor.json').initialize(value)
        self.orchestrator = self.build()


@pytest.fixture
def harness_factory(tmp_path, store_db):
    created = []

    def _make(backend=None, **kwargs):
        h = Harness(tmp_path, store_db.path, backend or FakeBackend(level_reply('low')), **kwargs)
        created.append(h)
        return h

    yield _make
    for h in created:
        h.classifier.close()


# ── CORE SCENARIOS ──────────────────────────────────────────

class TestIngest:

    def test_critical_notification_grouped_and_alerted(self, harness_factory, store_db):
        h = harness_factory(FakeBackend(level_reply('critical', 'Prod down', 'outage')))
        h.seed_cursor(41)
        store_db.add(42, bundle_id=SLACK, title='Prod down', body='API is returning 500s')

        result = h.orchestrator.tick()

        groups = h.orchestrator.engine.snapshot()
        assert len(groups) == 1
        assert groups[0].bundle_id == SLACK
        entry = groups[0].notifications[0]
        assert (entry.id, entry.urgency) == (42, CRITICAL)
        h.dispatcher.notify_urgent.assert_called_once_with(entry)
        assert result.urgent_alerts == 1
        assert h.orchestrator.cursor.value == 42

    def test_backend_timeout_stores_fallback(self, harness_factory, store_db):
        h = harness_factory(FakeBackend(level_reply('critical'), delay=1.0), timeout_sec=0.1)
        h.seed_cursor(0)
        store_db.add(1, title='Slow one')

        result = h.orchestrator.tick()

        entry = h.orchestrator.engine.entries()[0]
        assert entry.urgency == MEDIUM
        assert entry.reason == FALLBACK_REASON
        assert entry.summary_line == 'Slow one'
        assert result.fallbacks == 1
        assert h.orchestrator.cursor.value == 1

    def test_ignored_app_never_classified(self, harness_factory, store_db):
        h = harness_factory()
        h.seed_cursor(0)
        h.orchestrator.ignored.add(SLACK)
        store_db.add(1, bundle_id=SLACK, title='noise')

        result = h.orchestrator.tick()

        assert h.backend.calls == 0
        assert result.ignored == 1
        assert len(h.orchestrator.engine) == 0
        assert h.orchestrator.cursor.value == 1

    def test_app_context_passed_to_classifier(self, harness_factory, store_db):
        h = harness_factory()
        h.seed_cursor(0)
        h.orchestrator.prompts.set(SLACK, 'Anything from #oncall is critical')
        store_db.add(1, bundle_id=SLACK, title='hey')

        h.orchestrator.tick()

        assert 'Anything from #oncall is critical' in h.backend.prompts[0]

    def test_malformed_row_skipped_but_cursor_advances(self, harness_factory, store_db):
        h = harness_factory()
        h.seed_cursor(0)
        store_db.add(1, title='good')
        store_db.add(2, payload=b'garbage')

        h.orchestrator.tick()

        assert [n.id for n in h.orchestrator.engine.entries()] == [1]
        assert h.orchestrator.cursor.value == 2


# ── CURSOR ──────────────────────────────────────────────────

class TestCursor:

    def test_first_start_begins_at_store_head(self, harness_factory, store_db):
        store_db.add(1, title='old')
        store_db.add(2, title='older')
        h = harness_factory()

        first = h.orchestrator.tick()
        assert first.ingested == 0
        assert h.orchestrator.cursor.value == 2

        store_db.add(3, title='new')
        second = h.orchestrator.tick()
        assert second.ingested == 1

    def test_at_most_once_across_restart(self, harness_factory, store_db):
        h = harness_factory()
        h.seed_cursor(0)
        for i in range(1, 4):
            store_db.add(i, title=f'n{i}')

        assert h.orchestrator.tick().ingested == 3
        calls = h.backend.calls

        restarted = h.restart()
        assert restarted.cursor.value == 3
        assert restarted.tick().ingested == 0
        assert h.backend.calls == calls

    def test_unfocused_records_skipped(self, harness_factory, store_db):
        h = harness_factory()
        h.seed_cursor(0)
        h.focus_on = False
        store_db.add(1, title='while away')

        result = h.orchestrator.tick()

        assert result.skipped_unfocused == 1
        assert len(h.orchestrator.engine) == 0
        assert h.orchestrator.cursor.value == 1
        assert h.backend.calls == 0


# ── SESSION SUMMARY ─────────────────────────────────────────

def test_summary_dispatched_once_per_session(harness_factory, store_db):
    h = harness_factory()
    h.seed_cursor(0)
    store_db.add(1, title='during focus')

    h.orchestrator.tick()
    h.focus_on = False
    ended = h.orchestrator.tick()
    again = h.orchestrator.tick()

    assert ended.summary_dispatched is True
    assert again.summary_dispatched is False
    h.dispatcher.dispatch_summary.assert_called_once()
    groups = h.dispatcher.dispatch_summary.call_args[0][0]
    assert [n.id for g in groups for n in g.notifications] == [1]


# ── STORE FAILURES ──────────────────────────────────────────

def test_store_unavailable_status_and_recovery(tmp_path):
    store_path = tmp_path / 'late.db'
    h = Harness(tmp_path, store_path, FakeBackend(level_reply('low')))
    try:
        for _ in range(2):
            assert h.orchestrator.tick().store_error
        assert h.orchestrator.status()['status'] == STATUS_OK

        h.orchestrator.tick()
        status = h.orchestrator.status()
        assert status['status'] == STATUS_STORE_UNAVAILABLE
        assert status['store_failures'] == 3

        StoreDB(store_path)
        result = h.orchestrator.tick()
        assert result.store_error is None
        assert h.orchestrator.status()['status'] == STATUS_OK
    finally:
        h.classifier.close()


# ── EVENTS / TEST DATA ──────────────────────────────────────

def test_listener_notified_only_on_change(harness_factory, store_db):
    h = harness_factory()
    h.seed_cursor(0)
    events = []
    h.orchestrator.subscribe(events.append)

    h.orchestrator.tick()
    assert events == []

    store_db.add(1, title='x')
    h.orchestrator.tick()
    assert events == [EVENT_NOTIFICATIONS_UPDATED]


def test_listener_failure_does_not_break_tick(harness_factory, store_db):
    h = harness_factory()
    h.seed_cursor(0)

    def broken(event):
        raise RuntimeError('ui gone')

    h.orchestrator.subscribe(broken)
    store_db.add(1, title='x')
    assert h.orchestrator.tick().ingested == 1


class TestInjectTestNotifications:

    @pytest.mark.parametrize('requested, expected', [(None, 8), (0, 1), (-5, 1), (3, 3), (100, MAX_TEST_INSERT_COUNT)])
    def test_count_clamped(self, harness_factory, requested, expected):
        h = harness_factory()
        assert h.orchestrator.inject_test_notifications(requested) == expected
        assert len(h.orchestrator.engine) == expected

    def test_ids_negative_and_unique(self, harness_factory):
        h = harness_factory()
        h.orchestrator.inject_test_notifications(5)
        h.orchestrator.inject_test_notifications(5)
        ids = [n.id for n in h.orchestrator.engine.entries()]
        assert len(ids) == 10
        assert len(set(ids)) == 10
        assert all(i < 0 for i in ids)

    def test_no_alerts_for_injected(self, harness_factory):
        h = harness_factory()
        h.orchestrator.inject_test_notifications(6)
        h.dispatcher.notify_urgent.assert_not_called()


# ── WIRING ──────────────────────────────────────────────────

def test_from_config_wires_components(tmp_path, store_db):
    config = {
        'state_dir':  str(tmp_path / 'state'),
        'store_path': str(store_db.path),
        'focus_path': str(tmp_path / 'Assertions.json'),
        'max_notifications_per_app': 5,
    }
    orchestrator = Orchestrator.from_config(config, backend=FakeBackend())
    try:
        assert orchestrator.engine.max_per_app == 5
        assert orchestrator.store.db_path == store_db.path
        assert orchestrator.tick().store_error is None
    finally:
        orchestrator.close()


def test_from_config_rejects_unusable_state_dir(tmp_path):
    blocker = tmp_path / 'not-a-dir'
    blocker.write_text('x')
    with pytest.raises(StartupError):
        Orchestrator.from_config({'state_dir': str(blocker)}, backend=FakeBackend())
