"""
hush/classifier/urgency_classifier.py
Urgency Classifier — one backend call per notification, strict parse,
typed fallback.

Failure policy: network error, HTTP error, empty response or timeout
never fails the pipeline. The notification gets a fallback result
(medium, truncated title/body as summary, FALLBACK_REASON) and is still
stored. Unrecognized urgency wording is coerced to medium with the raw
text kept as the reason.

Concurrency: classify_batch() runs calls on a bounded thread pool. Each
call has its own deadline measured from when a worker starts it; a call
that misses it is abandoned (result discarded) and replaced by the
fallback immediately. A call still queued after one timeout per batch
round ahead of it is cancelled.

No automatic retry.
"""

import json
import logging
import threading
import time
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import List, Optional, Sequence, Tuple

from hush.llm.base import BackendError, LLMAdapter
from hush.models.record import (
    CRITICAL,
    MEDIUM,
    URGENCY_COLORS,
    URGENCY_LABELS,
    VALID_URGENCIES,
    ClassificationResult,
    ClassifiedNotification,
    DecodedNotification,
)

logger = logging.getLogger(__name__)

FALLBACK_REASON      = "Classifier unavailable; treated as normal priority by local rule."
MISSING_REASON       = "The classifier gave no reason."
UNTITLED_SUMMARY     = "Notification with no readable content"
SUMMARY_MAX_CHARS    = 60
RAW_REASON_MAX_CHARS = 500


# ── PURE HELPERS ─────────────────────────────────────────────

def default_summary_line(notification: DecodedNotification) -> str:
    """First non-empty of title / body / subtitle, truncated to 60 chars."""
    for candidate in (notification.title, notification.body, notification.subtitle):
        text = (candidate or '').strip()
        if text:
            break
    else:
        return UNTITLED_SUMMARY

    if len(text) > SUMMARY_MAX_CHARS:
        return text[:SUMMARY_MAX_CHARS] + '…'
    return text


def fallback_result(notification: DecodedNotification) -> ClassificationResult:
    return ClassificationResult(
        urgency      = MEDIUM,
        summary_line = default_summary_line(notification),
        reason       = FALLBACK_REASON,
        fallback     = True,
    )


def _coerced_result(notification: DecodedNotification, raw_text: str) -> ClassificationResult:
    raw = (raw_text or '').strip()[:RAW_REASON_MAX_CHARS]
    return ClassificationResult(
        urgency      = MEDIUM,
        summary_line = default_summary_line(notification),
        reason       = raw or FALLBACK_REASON,
        fallback     = True,
    )


def _extract_json_object(text: str) -> Optional[dict]:
    start = text.find('{')
    end   = text.rfind('}')
    if start < 0 or end < start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _clean_str(value) -> str:
    return value.strip() if isinstance(value, str) else ''


def parse_classification_response(
    text:         str,
    notification: DecodedNotification,
) -> ClassificationResult:
    """
    Parse backend text into a ClassificationResult. Never raises.
    Anything that does not map cleanly onto the four levels → medium,
    raw text preserved as the reason.
    """
    data = _extract_json_object(text or '')
    if data is None:
        logger.warning(f"Unparsable classifier response for id={notification.id}")
        return _coerced_result(notification, text)

    raw_level = data.get('urgency_level')
    level = _clean_str(raw_level).lower()
    if level not in VALID_URGENCIES:
        logger.warning(
            f"Unknown urgency {str(raw_level)[:40]!r} for id={notification.id}; using medium"
        )
        return _coerced_result(notification, text)

    return ClassificationResult(
        urgency      = level,
        summary_line = _clean_str(data.get('summary_line')) or default_summary_line(notification),
        reason       = _clean_str(data.get('reason')) or MISSING_REASON,
    )


def build_classified(
    notification: DecodedNotification,
    result:       ClassificationResult,
    classified_at: Optional[float] = None,
) -> ClassifiedNotification:
    return ClassifiedNotification(
        id            = notification.id,
        bundle_id     = notification.bundle_id,
        app_name      = notification.app_name,
        title         = notification.title,
        subtitle      = notification.subtitle,
        body          = notification.body,
        timestamp     = notification.timestamp,
        urgency       = result.urgency,
        urgency_label = URGENCY_LABELS[result.urgency],
        color_hint    = URGENCY_COLORS[result.urgency],
        summary_line  = result.summary_line,
        reason        = result.reason,
        classified_at = classified_at if classified_at is not None else time.time(),
    )


def fallback_summary(notifications: Sequence[ClassifiedNotification]) -> str:
    counts = Counter(n.app_name for n in notifications)
    critical = sum(1 for n in notifications if n.urgency == CRITICAL)
    lines = [f"{len(notifications)} notifications (critical: {critical})"]
    lines += [f"{app}: {count}" for app, count in sorted(counts.items())]
    return '\n'.join(lines)


# ── CLASSIFIER ───────────────────────────────────────────────

class _Attempt:
    """One queued classification call and the moment a worker picked it up."""

    def __init__(self, notification: DecodedNotification, context: Optional[str]):
        self.notification = notification
        self.context      = context
        self.started      = threading.Event()
        self.started_at:  Optional[float]  = None
        self.future:      Optional[Future] = None


class UrgencyClassifier:

    def __init__(
        self,
        backend:            Optional[LLMAdapter],
        timeout_sec:        float = 30,
        max_workers:        int   = 4,
        summarize_with_llm: bool  = True,
    ):
        self.backend            = backend
        self.timeout_sec        = timeout_sec
        self.max_workers        = max(1, int(max_workers))
        self.summarize_with_llm = summarize_with_llm
        self._pool = ThreadPoolExecutor(
            max_workers        = self.max_workers,
            thread_name_prefix = 'hush-classify',
        )

    def _backend_ready(self) -> bool:
        if self.backend is None:
            return False
        try:
            return self.backend.is_available()
        except Exception as e:
            logger.warning(f"Backend availability check failed: {e}")
            return False

    def classify(
        self,
        notification: DecodedNotification,
        app_context:  Optional[str] = None,
    ) -> ClassificationResult:
        """
        One classification attempt. Runs on the calling thread; the
        per-call deadline is applied by classify_batch(). Never raises.
        """
        if not self._backend_ready():
            return fallback_result(notification)

        prompt = self.backend.build_prompt(notification, app_context)
        start = time.perf_counter()
        try:
            text = self.backend.generate(prompt)
        except BackendError as e:
            logger.warning(f"Classifier call failed for id={notification.id}: {e}")
            return fallback_result(notification)
        except Exception as e:
            logger.error(f"Classifier error for id={notification.id}: {e}")
            return fallback_result(notification)

        result = parse_classification_response(text, notification)
        logger.debug(
            "Classified id=%s bundle=%s level=%s latency_sec=%.2f",
            notification.id, notification.bundle_id, result.urgency,
            time.perf_counter() - start,
        )
        return result

    def classify_batch(
        self,
        items: Sequence[Tuple[DecodedNotification, Optional[str]]],
    ) -> List[ClassificationResult]:
        """
        Classify (notification, app_context) pairs with bounded parallelism.
        Results come back in input order, one per item, never fewer.

        Each call's deadline runs from the moment a worker starts it, so
        time spent queued behind a full pool does not count against it.
        Queue wait is bounded by one timeout per batch round ahead of the
        item.
        """
        if not items:
            return []

        batch_start = time.monotonic()
        submitted: List[Tuple[_Attempt, float]] = []
        for index, (notification, context) in enumerate(items):
            attempt = _Attempt(notification, context)
            attempt.future = self._pool.submit(self._run_attempt, attempt)
            rounds = index // self.max_workers + 1
            submitted.append((attempt, batch_start + self.timeout_sec * rounds))

        return [self._await(attempt, start_by) for attempt, start_by in submitted]

    def _run_attempt(self, attempt: _Attempt) -> ClassificationResult:
        attempt.started_at = time.monotonic()
        attempt.started.set()
        return self.classify(attempt.notification, attempt.context)

    def _await(self, attempt: _Attempt, start_by: float) -> ClassificationResult:
        notification = attempt.notification
        if not attempt.started.wait(timeout=max(0.0, start_by - time.monotonic())):
            attempt.future.cancel()
            logger.warning(
                f"Classifier queue stalled for id={notification.id}; using fallback"
            )
            return fallback_result(notification)

        remaining = max(0.0, attempt.started_at + self.timeout_sec - time.monotonic())
        try:
            return attempt.future.result(timeout=remaining)
        except FuturesTimeout:
            logger.warning(
                f"Classifier timed out after {self.timeout_sec}s for id={notification.id}; "
                f"using fallback"
            )
        except Exception as e:
            logger.error(f"Classifier worker failed for id={notification.id}: {e}")
        return fallback_result(notification)

    def summarize(self, notifications: Sequence[ClassifiedNotification]) -> str:
        """Session summary text. Backend when available, local counts otherwise."""
        if not notifications:
            return "No notifications."

        if self.summarize_with_llm and self._backend_ready():
            prompt = self.backend.build_summary_prompt(notifications)
            future = self._pool.submit(self.backend.generate, prompt)
            try:
                return future.result(timeout=self.timeout_sec)
            except FuturesTimeout:
                future.cancel()
                logger.warning("Summary generation timed out; using local summary")
            except Exception as e:
                logger.warning(f"Summary generation failed: {e}")

        return fallback_summary(notifications)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
