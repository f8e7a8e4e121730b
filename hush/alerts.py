"""
hush/alerts.py
Alert Dispatcher — the only path that reaches the user during focus.

Immediate path: critical/high results raise a modal dialog. Dialogs are
shown by osascript `display dialog`, which is not subject to the
do-not-disturb suppression that holds back ordinary banners.

Session-summary path: when a focus session ends, the live entries are
rendered into one summary and dispatched once (banner + dialog).

Presentation runs detached (Popen) so a dialog waiting for its OK button
never holds up the orchestrator. Failures are logged, not retried.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Callable, List, Sequence

from hush.models.record import (
    INTERRUPTING_URGENCIES,
    URGENCY_LABELS,
    ClassifiedNotification,
    NotificationGroup,
)

logger = logging.getLogger(__name__)

OSASCRIPT = '/usr/bin/osascript'
OPEN      = '/usr/bin/open'

DIALOG_BODY_MAX_CHARS = 800


class Presenter(ABC):
    """Displays messages to the user."""

    @abstractmethod
    def show_dialog(self, title: str, message: str) -> None:
        """Modal dialog that bypasses notification suppression."""
        ...

    @abstractmethod
    def show_banner(self, title: str, message: str) -> None:
        """Ordinary notification banner (suppressed during focus)."""
        ...


def escape_applescript(text: str) -> str:
    return text.replace('\\', '\\\\').replace('"', '\\"')


class OsascriptPresenter(Presenter):

    def _run(self, script: str) -> None:
        subprocess.Popen(
            [OSASCRIPT, '-e', script],
            stdout = subprocess.DEVNULL,
            stderr = subprocess.DEVNULL,
        )

    def show_dialog(self, title: str, message: str) -> None:
        self._run(
            f'display dialog "{escape_applescript(message)}" '
            f'with title "{escape_applescript(title)}" '
            f'buttons {{"OK"}} default button "OK"'
        )

    def show_banner(self, title: str, message: str) -> None:
        self._run(
            f'display notification "{escape_applescript(message)}" '
            f'with title "{escape_applescript(title)}"'
        )


def open_app(bundle_id: str) -> None:
    """Fire-and-forget launch of an application by bundle identifier."""
    if not bundle_id or not bundle_id.strip():
        raise ValueError("bundle_id must not be empty")
    logger.info(f"Opening app: {bundle_id}")
    subprocess.Popen(
        [OPEN, '-b', bundle_id.strip()],
        stdout = subprocess.DEVNULL,
        stderr = subprocess.DEVNULL,
    )


class AlertDispatcher:

    def __init__(
        self,
        presenter:  Presenter,
        summarizer: Callable[[Sequence[ClassifiedNotification]], str],
    ):
        self.presenter  = presenter
        self.summarizer = summarizer

    def notify_urgent(self, notification: ClassifiedNotification) -> bool:
        """
        Immediate path. Returns True if a dialog was dispatched.
        Non-interrupting levels are ignored.
        """
        if notification.urgency not in INTERRUPTING_URGENCIES:
            return False

        label = URGENCY_LABELS[notification.urgency]
        title = f"{label}: {notification.app_name}"
        lines = [notification.summary_line]
        if notification.title and notification.title != notification.summary_line:
            lines.append(notification.title)
        if notification.body:
            lines.append(notification.body[:DIALOG_BODY_MAX_CHARS])

        try:
            self.presenter.show_dialog(title, '\n'.join(lines))
        except Exception as e:
            logger.error(f"Urgent alert dispatch failed for id={notification.id}: {e}")
            return False
        logger.info(f"Urgent alert dispatched: id={notification.id} level={notification.urgency}")
        return True

    def dispatch_summary(self, groups: Sequence[NotificationGroup]) -> bool:
        """
        Session-summary path. Renders all entries in groups into one
        summary. Returns True if it was dispatched; empty groups → no-op.
        """
        entries: List[ClassifiedNotification] = [
            n for g in groups for n in g.notifications
        ]
        if not entries:
            logger.info("Focus ended with nothing accumulated; no summary")
            return False

        try:
            text = self.summarizer(entries)
            self.presenter.show_banner(
                "Focus session ended",
                f"{len(entries)} notifications are waiting",
            )
            self.presenter.show_dialog("Notification summary", text)
        except Exception as e:
            logger.error(f"Session summary dispatch failed: {e}")
            return False
        logger.info(f"Session summary dispatched: {len(entries)} notifications")
        return True
