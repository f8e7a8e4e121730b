"""
hush/classifier — urgency classification for focus-session notifications.

Privacy: No notification content in logs. Ids, bundle ids and levels only.
"""

from hush.classifier.urgency_classifier import (
    FALLBACK_REASON,
    UrgencyClassifier,
    build_classified,
    fallback_result,
    parse_classification_response,
)

__all__ = [
    "FALLBACK_REASON",
    "UrgencyClassifier",
    "build_classified",
    "fallback_result",
    "parse_classification_response",
]
