"""
hush/models/record.py
Shared dataclass schema. Store reader, classifier, engine, alerts and API
all use these types. Do not add logic here — data only.
"""

from dataclasses import dataclass, field
from typing import List, Optional

# ── URGENCY LEVELS ───────────────────────────────────────────

CRITICAL = 'critical'
HIGH     = 'high'
MEDIUM   = 'medium'
LOW      = 'low'

URGENCY_LEVELS = (CRITICAL, HIGH, MEDIUM, LOW)
VALID_URGENCIES = frozenset(URGENCY_LEVELS)

# Levels that interrupt the user immediately during focus
INTERRUPTING_URGENCIES = frozenset({CRITICAL, HIGH})

URGENCY_LABELS = {
    CRITICAL: 'URGENT',
    HIGH:     'HIGH',
    MEDIUM:   'NORMAL',
    LOW:      'LOW',
}

URGENCY_COLORS = {
    CRITICAL: '#ef4444',
    HIGH:     '#f97316',
    MEDIUM:   '#f59e0b',
    LOW:      '#22c55e',
}

FOCUS_ACTIVE   = 'active'
FOCUS_INACTIVE = 'inactive'


@dataclass
class RawRecord:
    """One row of the OS notification store. Read-only to hush."""
    id:           int
    bundle_id:    str
    delivered_at: int           # epoch seconds
    payload:      bytes


@dataclass
class DecodedNotification:
    """Best-effort decode of a RawRecord."""
    id:        int
    bundle_id: str
    app_name:  str
    title:     str
    subtitle:  str
    body:      str
    timestamp: int              # epoch seconds


@dataclass(frozen=True)
class ClassificationResult:
    """Classifier verdict for one notification."""
    urgency:      str           # critical / high / medium / low
    summary_line: str
    reason:       str
    fallback:     bool = False  # True when the backend was unavailable or unparsable


@dataclass(frozen=True)
class ClassifiedNotification:
    """Decoded notification plus its classification. Replaced, never mutated."""
    id:            int
    bundle_id:     str
    app_name:      str
    title:         str
    subtitle:      str
    body:          str
    timestamp:     int
    urgency:       str
    urgency_label: str
    color_hint:    str
    summary_line:  str
    reason:        str
    classified_at: float


@dataclass
class NotificationGroup:
    """Live notifications from one source app, newest first."""
    bundle_id:     str
    app_name:      str
    notifications: List[ClassifiedNotification] = field(default_factory=list)
    icon:          Optional[str] = None      # base64 PNG when the UI supplies one
    hidden_count:  int = 0                   # entries beyond the per-app display cap


@dataclass(frozen=True)
class AppPromptEntry:
    """User-authored classification context for one app."""
    bundle_id: str
    context:   str


@dataclass
class FocusSession:
    """Snapshot of the focus state machine."""
    state:      str                     # active / inactive
    started_at: Optional[float] = None
    ended_at:   Optional[float] = None
