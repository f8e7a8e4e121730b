"""
tests/test_api.py
─────────────────────────────────────────────────────────────────────────────
Tests for hush.api — HushAPI command layer and the FastAPI endpoints.

Coverage:
  - clears: idempotent, publish only on change
  - prompts / ignore list round-trips, empty-value rejection
  - test injection, urgency counts, status
  - HTTP endpoints via TestClient (needs httpx)

The orchestrator is real apart from store, focus and dispatcher, which
are MagicMocks. No osascript / open calls are made.
"""

from unittest.mock import MagicMock

import pytest

from hush.api import HushAPI, build_app
from hush.classifier import UrgencyClassifier
from hush.engine import NotificationEngine
from hush.orchestrator import EVENT_NOTIFICATIONS_UPDATED, Orchestrator
from hush.registry import AppPrompts, IgnoredApps
from hush.store.cursor import ProcessingCursor

SLACK = 'com.tinyspeck.slackmacgap'


# ── HELPERS ──────────────────────────────────────────────────────────────────

@pytest.fixture
def orchestrator(tmp_path):
    focus = MagicMock()
    focus.is_active = False
    classifier = UrgencyClassifier(None)
    orch = Orchestrator(
        store      = MagicMock(),
        cursor     = ProcessingCursor(tmp_path / 'cursor.json'),
        focus      = focus,
        classifier = classifier,
        engine     = NotificationEngine(),
        prompts    = AppPrompts(tmp_path / 'app_prompts.json'),
        ignored    = IgnoredApps(tmp_path / 'ignored_apps.json'),
        dispatcher = MagicMock(),
    )
    yield orch
    classifier.close()


@pytest.fixture
def launcher():
    return MagicMock()


@pytest.fixture
def api(orchestrator, launcher):
    return HushAPI(orchestrator, launcher=launcher)


# ── NOTIFICATIONS ────────────────────────────────────────────────────────────

class TestNotifications:

    def test_inject_then_groups(self, api):
        assert api.inject_test_notifications(4) == 4
        groups = api.get_groups()
        assert sum(len(g['notifications']) for g in groups) == 4
        assert all(n['bundle_id'] == g['bundle_id'] for g in groups for n in g['notifications'])

    def test_clear_notification_idempotent(self, api):
        api.inject_test_notifications(1)
        nid = api.get_groups()[0]['notifications'][0]['id']
        assert api.clear_notification(nid) is True
        assert api.clear_notification(nid) is False
        assert api.get_groups() == []

    def test_clear_app_and_all(self, api):
        api.inject_test_notifications(8)
        assert api.clear_app(SLACK) == 2
        assert api.clear_app(SLACK) == 0
        assert api.clear_all() == 6
        assert api.clear_all() == 0

    def test_publish_only_on_change(self, api):
        events = []
        api.subscribe(events.append)
        api.clear_all()
        assert events == []
        api.inject_test_notifications(1)
        api.clear_all()
        assert events == [EVENT_NOTIFICATIONS_UPDATED, EVENT_NOTIFICATIONS_UPDATED]

    def test_urgency_counts(self, api):
        api.inject_test_notifications(6)
        counts = api.get_urgency_counts()
        assert counts == {'critical': 1, 'high': 2, 'medium': 1, 'low': 2}

    def test_summarize_empty_and_local(self, api):
        assert api.summarize() is None
        api.inject_test_notifications(2)
        assert api.summarize().startswith('2 notifications')


# ── PROMPTS / IGNORE LIST ────────────────────────────────────────────────────

class TestRegistry:

    def test_prompt_round_trip(self, api):
        assert api.set_prompt(SLACK, 'oncall channel is urgent') is True
        assert api.get_prompts() == [{'bundle_id': SLACK, 'context': 'oncall channel is urgent'}]
        assert api.delete_prompt(SLACK) is True
        assert api.delete_prompt(SLACK) is False

    def test_prompt_rejects_empty(self, api):
        with pytest.raises(ValueError):
            api.set_prompt(SLACK, '')

    def test_ignore_round_trip(self, api):
        assert api.add_ignored_app('com.apple.news') is True
        assert api.get_ignored_apps() == ['com.apple.news']
        assert api.remove_ignored_app('com.apple.news') is True
        assert api.get_ignored_apps() == []


def test_open_app_uses_launcher(api, launcher):
    api.open_app('com.apple.mail')
    launcher.assert_called_once_with('com.apple.mail')


def test_status(api):
    status = api.get_status()
    assert status['status'] == 'ok'
    assert status['notification_count'] == 0


# ── HTTP ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def client(api):
    testclient = pytest.importorskip('fastapi.testclient')
    return testclient.TestClient(build_app(api))


class TestHTTP:

    def test_health(self, client):
        r = client.get('/health')
        assert r.status_code == 200
        assert r.json()['status'] == 'ok'

    def test_inject_default_and_groups(self, client):
        assert client.post('/test-notifications').json() == {'inserted': 8}
        body = client.get('/groups').json()
        assert sum(len(g['notifications']) for g in body['groups']) == 8

    def test_inject_with_count(self, client):
        assert client.post('/test-notifications', json={'count': 3}).json() == {'inserted': 3}

    def test_clear_endpoints(self, client):
        client.post('/test-notifications', json={'count': 4})
        nid = client.get('/groups').json()['groups'][0]['notifications'][0]['id']
        assert client.delete(f'/notifications/{nid}').json() == {'cleared': True}
        assert client.delete(f'/notifications/{nid}').json() == {'cleared': False}
        assert client.delete('/notifications').json() == {'cleared': 3}

    def test_prompt_endpoints(self, client):
        r = client.put(f'/prompts/{SLACK}', json={'context': 'ctx'})
        assert r.json() == {'changed': True}
        assert client.get('/prompts').json()['prompts'][0]['bundle_id'] == SLACK
        assert client.delete(f'/prompts/{SLACK}').json() == {'removed': True}

    def test_empty_prompt_is_400(self, client):
        assert client.put(f'/prompts/{SLACK}', json={'context': '  '}).status_code == 400

    def test_ignored_endpoints(self, client):
        assert client.post('/ignored/com.apple.news').json() == {'changed': True}
        assert client.get('/ignored').json() == {'ignored': ['com.apple.news']}
        assert client.delete('/ignored/com.apple.news').json() == {'removed': True}

    def test_open_app(self, client, launcher):
        assert client.post('/apps/com.apple.mail/open').json() == {'status': 'ok'}
        launcher.assert_called_once_with('com.apple.mail')

    def test_updates_signal(self, client):
        first = client.get('/updates').json()
        assert first['changed'] is True
        same = client.get('/updates', params={'since': first['revision']}).json()
        assert same['changed'] is False
        client.post('/test-notifications', json={'count': 1})
        after = client.get('/updates', params={'since': first['revision']}).json()
        assert after['changed'] is True
        assert sum(after['counts'].values()) == 1
