"""
hush/orchestrator.py
Orchestrator Loop — one tick every poll_interval_sec:

  focus snapshot → store poll → ignore filter → classify (bounded pool,
  per-call deadline) → engine upsert → urgent alerts → cursor advance →
  session summary on the focus-ended edge → 'notifications-updated'
  event if the engine changed.

Nothing inside tick() may stop later ticks: every per-record and per-call
failure is contained at its seam and replaced by a fallback. Only a run
of consecutive store failures surfaces, as a standing status.

The orchestrator owns exactly one NotificationEngine for its lifetime.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from hush.alerts import AlertDispatcher, OsascriptPresenter
from hush.classifier.urgency_classifier import UrgencyClassifier, build_classified
from hush.engine import NotificationEngine
from hush.focus import AssertionsFileSource, FocusMonitor
from hush.llm.base import LLMAdapter
from hush.models.record import (
    CRITICAL,
    HIGH,
    LOW,
    MEDIUM,
    ClassificationResult,
    DecodedNotification,
)
from hush.registry import AppPrompts, IgnoredApps
from hush.store.cursor import ProcessingCursor
from hush.store.notification_store import NotificationStore, StoreUnavailableError

logger = logging.getLogger(__name__)

EVENT_NOTIFICATIONS_UPDATED = 'notifications-updated'

STATUS_OK                = 'ok'
STATUS_STORE_UNAVAILABLE = 'store_unavailable'

DEFAULT_TEST_INSERT_COUNT = 8
MAX_TEST_INSERT_COUNT     = 30

TEST_APPS = (
    ('com.tinyspeck.slackmacgap', 'Slack'),
    ('com.apple.mail',            'Mail'),
    ('com.apple.iCal',            'Calendar'),
    ('com.apple.reminders',       'Reminders'),
)

# (summary/title, body, reason, urgency)
TEST_SAMPLES = (
    ('Immediate action required', 'Production error rate is spiking.',
     'Monitoring alert that needs an immediate look', CRITICAL),
    ('15:00 meeting invite updated', 'The meeting link was changed to a new URL.',
     'Update to check before the end of the day', HIGH),
    ('Review requested', 'You were asked to review PR #128.',
     'Moderate interruption priority', MEDIUM),
    ('Invoice issued', "Please check this month's invoice.",
     'Fine to check before the due date', LOW),
    ('Delivery time updated', 'The estimated arrival time of your parcel changed.',
     'General status update', LOW),
    ('Security warning', 'An unrecognized sign-in attempt was detected.',
     'Handle soon to protect the account', HIGH),
)


class StartupError(Exception):
    """Persisted state cannot be opened; the agent must not start."""


@dataclass
class TickResult:
    focus_active:       bool = False
    ingested:           int  = 0
    ignored:            int  = 0
    skipped_unfocused:  int  = 0
    fallbacks:          int  = 0
    urgent_alerts:      int  = 0
    summary_dispatched: bool = False
    store_error:        Optional[str] = None
    changed:            bool = False


def build_backend(config: Dict[str, Any]) -> LLMAdapter:
    timeout = config.get('classify_timeout_sec', 30)
    if config.get('backend') == 'gemini':
        from hush.llm.gemini_adapter import GeminiAdapter
        return GeminiAdapter(
            api_key     = config.get('google_api_key', ''),
            model       = config.get('gemini_model', 'gemini-2.5-flash-lite'),
            timeout_sec = timeout,
        )
    from hush.llm.ollama_adapter import OllamaAdapter
    return OllamaAdapter(
        model       = config.get('model', 'qwen3:8b'),
        host        = config.get('ollama_host', 'http://localhost:11434'),
        timeout_sec = timeout,
    )


class Orchestrator:

    def __init__(
        self,
        store:                   NotificationStore,
        cursor:                  ProcessingCursor,
        focus:                   FocusMonitor,
        classifier:              UrgencyClassifier,
        engine:                  NotificationEngine,
        prompts:                 AppPrompts,
        ignored:                 IgnoredApps,
        dispatcher:              AlertDispatcher,
        poll_interval_sec:       float = 5,
        store_failure_threshold: int   = 3,
        clock:                   Callable[[], float] = time.time,
    ):
        self.store      = store
        self.cursor     = cursor
        self.focus      = focus
        self.classifier = classifier
        self.engine     = engine
        self.prompts    = prompts
        self.ignored    = ignored
        self.dispatcher = dispatcher
        self.poll_interval_sec       = poll_interval_sec
        self.store_failure_threshold = max(1, int(store_failure_threshold))
        self.clock = clock

        self._listeners: List[Callable[[str], None]] = []
        self._listeners_lock = threading.Lock()
        self._tick_lock  = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._store_failures  = 0
        self._last_store_error: Optional[str] = None
        self._last_tick_at: Optional[float] = None

    # ── CONSTRUCTION ─────────────────────────────────────────

    @classmethod
    def from_config(
        cls,
        config:  Dict[str, Any],
        backend: Optional[LLMAdapter] = None,
    ) -> "Orchestrator":
        """
        Wire every component from a loaded config.
        Raises StartupError when the state directory is unusable.
        """
        root = Path(config['state_dir'])
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StartupError(f"cannot create state directory {root}: {e}") from e
        if not os.access(root, os.R_OK | os.W_OK):
            raise StartupError(f"state directory is not readable and writable: {root}")

        from hush.config import DEFAULT_STORE_PATH
        store_path = Path(config.get('store_path') or DEFAULT_STORE_PATH).expanduser()
        focus_path = config.get('focus_path')

        classifier = UrgencyClassifier(
            backend            = backend if backend is not None else build_backend(config),
            timeout_sec        = config.get('classify_timeout_sec', 30),
            max_workers        = config.get('max_workers', 4),
            summarize_with_llm = config.get('summarize_with_llm', True),
        )
        return cls(
            store      = NotificationStore(store_path, timeout_sec=config.get('store_timeout_sec', 5)),
            cursor     = ProcessingCursor(root / 'cursor.json'),
            focus      = FocusMonitor(AssertionsFileSource(Path(focus_path).expanduser() if focus_path else None)),
            classifier = classifier,
            engine     = NotificationEngine(max_per_app=config.get('max_notifications_per_app', 12)),
            prompts    = AppPrompts(root / 'app_prompts.json'),
            ignored    = IgnoredApps(root / 'ignored_apps.json'),
            dispatcher = AlertDispatcher(OsascriptPresenter(), classifier.summarize),
            poll_interval_sec       = config.get('poll_interval_sec', 5),
            store_failure_threshold = config.get('store_failure_threshold', 3),
        )

    # ── EVENTS ───────────────────────────────────────────────

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def publish(self, event: str = EVENT_NOTIFICATIONS_UPDATED) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Listener for {event} failed: {e}")

    # ── TICK ─────────────────────────────────────────────────

    def tick(self) -> TickResult:
        """Run one scheduler tick. Never raises."""
        with self._tick_lock:
            result = TickResult()
            revision_before = self.engine.revision
            try:
                self._tick(result)
            except Exception as e:
                logger.exception(f"Tick failed unexpectedly: {e}")
            self._last_tick_at = self.clock()
            result.changed = self.engine.revision != revision_before
            if result.changed:
                self.publish(EVENT_NOTIFICATIONS_UPDATED)
            return result

    def _tick(self, result: TickResult) -> None:
        session = self.focus.current_state()
        result.focus_active = self.focus.is_active

        polled = self._poll_store(result)
        if polled is not None:
            notifications, new_cursor = polled
            if result.focus_active:
                self._ingest(notifications, result)
            else:
                result.skipped_unfocused = len(notifications)
            self.cursor.advance(new_cursor)

        ended = self.focus.take_ended_session()
        if ended is not None:
            groups = self.engine.snapshot(capped=False)
            result.summary_dispatched = self.dispatcher.dispatch_summary(groups)

        logger.debug(
            f"Tick: focus={session.state} ingested={result.ingested} "
            f"ignored={result.ignored} fallbacks={result.fallbacks} "
            f"urgent={result.urgent_alerts} cursor={self.cursor.value}"
        )

    def _poll_store(self, result: TickResult):
        try:
            if self.cursor.value is None:
                start = self.store.latest_id()
                self.cursor.initialize(start)
                logger.info(f"Cursor initialized at store head: {start}")
            polled = self.store.poll(self.cursor.value)
        except StoreUnavailableError as e:
            self._record_store_failure(str(e))
            result.store_error = str(e)
            return None

        if self._store_failures >= self.store_failure_threshold:
            logger.info("Notification store reachable again")
        self._store_failures = 0
        self._last_store_error = None
        return polled

    def _record_store_failure(self, message: str) -> None:
        self._store_failures += 1
        self._last_store_error = message
        if self._store_failures == self.store_failure_threshold:
            logger.error(
                f"Notification store unavailable for {self._store_failures} consecutive polls: {message}"
            )
        else:
            logger.warning(f"Store poll failed ({self._store_failures}): {message}")

    def _ingest(self, notifications: List[DecodedNotification], result: TickResult) -> None:
        accepted = []
        for n in sorted(notifications, key=lambda n: n.id):
            if n.bundle_id in self.ignored:
                result.ignored += 1
                continue
            accepted.append(n)
        if not accepted:
            return

        items = [(n, self.prompts.get(n.bundle_id)) for n in accepted]
        verdicts: List[ClassificationResult] = self.classifier.classify_batch(items)

        now = self.clock()
        classified = [build_classified(n, v, now) for n, v in zip(accepted, verdicts)]
        self.engine.upsert_many(classified)
        result.ingested  = len(classified)
        result.fallbacks = sum(1 for v in verdicts if v.fallback)

        for entry in classified:
            if self.dispatcher.notify_urgent(entry):
                result.urgent_alerts += 1

        logger.info(
            f"Ingested {result.ingested} notification(s) "
            f"(ignored={result.ignored}, fallbacks={result.fallbacks}, "
            f"urgent={result.urgent_alerts})"
        )

    # ── LOOP ─────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic tick on a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target = self._run,
            name   = 'hush-orchestrator',
            daemon = True,
        )
        self._thread.start()
        logger.info(f"Orchestrator started (interval={self.poll_interval_sec}s)")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self.poll_interval_sec)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Orchestrator stopped")

    def close(self) -> None:
        self.stop()
        self.classifier.close()

    # ── STATUS / COMMANDS ────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        unavailable = self._store_failures >= self.store_failure_threshold
        return {
            'status':              STATUS_STORE_UNAVAILABLE if unavailable else STATUS_OK,
            'store_failures':      self._store_failures,
            'last_store_error':    self._last_store_error,
            'focus_active':        self.focus.is_active,
            'cursor':              self.cursor.value,
            'revision':            self.engine.revision,
            'notification_count':  len(self.engine),
            'last_tick_at':        self._last_tick_at,
        }

    def summarize(self) -> Optional[str]:
        """Summary text for the current entries, or None when there are none."""
        entries = self.engine.entries()
        if not entries:
            return None
        return self.classifier.summarize(entries)

    def inject_test_notifications(self, count: Optional[int] = None) -> int:
        """
        Insert pre-classified sample entries for demos and UI work.
        Count is clamped to 1..30. Ids are negative so they never collide
        with store ids.
        """
        count = DEFAULT_TEST_INSERT_COUNT if count is None else int(count)
        count = min(max(count, 1), MAX_TEST_INSERT_COUNT)

        lowest = self.engine.min_id()
        next_id = min(lowest, 0) if lowest is not None else 0
        now = self.clock()

        entries = []
        for i in range(count):
            next_id -= 1
            bundle_id, app_name = TEST_APPS[i % len(TEST_APPS)]
            summary, body, reason, urgency = TEST_SAMPLES[i % len(TEST_SAMPLES)]
            notification = DecodedNotification(
                id        = next_id,
                bundle_id = bundle_id,
                app_name  = app_name,
                title     = summary,
                subtitle  = 'Test',
                body      = body,
                timestamp = int(now),
            )
            verdict = ClassificationResult(urgency=urgency, summary_line=summary, reason=reason)
            entries.append(build_classified(notification, verdict, now))

        self.engine.upsert_many(entries)
        self.publish(EVENT_NOTIFICATIONS_UPDATED)
        logger.info(f"Injected {count} test notification(s)")
        return count
