"""
hush/parsers/payload_parser.py
Decodes notification payload blobs from the OS notification store.

Payloads are binary property lists. Title, subtitle and body live under
the short keys 'titl', 'subt' and 'body', either at the top level or
nested under 'req' depending on the OS build.

Decode is best-effort: an unparsable blob returns None and the caller
drops the record. Never raises.
"""

import logging
import plistlib
from typing import Any, Optional

from hush.models.record import DecodedNotification, RawRecord

logger = logging.getLogger(__name__)

FIELD_KEYS = {
    'title':    'titl',
    'subtitle': 'subt',
    'body':     'body',
}

MAX_FIELD_LEN = 4000


def decode_record(raw: RawRecord) -> Optional[DecodedNotification]:
    """
    Decode one RawRecord into a DecodedNotification.
    Returns None when the payload is not a readable property list.
    """
    data = _load_plist(raw.payload)
    if data is None:
        logger.warning(f"Dropped undecodable payload: id={raw.id} bundle={raw.bundle_id}")
        return None

    fields = {
        name: _extract(data, key) or _extract(data, 'req', key)
        for name, key in FIELD_KEYS.items()
    }

    return DecodedNotification(
        id        = raw.id,
        bundle_id = raw.bundle_id,
        app_name  = app_name_from_bundle(raw.bundle_id),
        title     = fields['title'],
        subtitle  = fields['subtitle'],
        body      = fields['body'],
        timestamp = raw.delivered_at,
    )


def app_name_from_bundle(bundle_id: str) -> str:
    """'com.tinyspeck.slackmacgap' → 'slackmacgap'. Falls back to the full id."""
    last = (bundle_id or '').rsplit('.', 1)[-1]
    return last or bundle_id


def _load_plist(payload: bytes) -> Optional[dict]:
    if not payload:
        return None
    try:
        data = plistlib.loads(payload)
    except Exception as e:
        # plistlib raises assorted struct/overflow errors on truncated blobs
        logger.debug(f"plist decode failed: {type(e).__name__}")
        return None
    if not isinstance(data, dict):
        return None
    return data


def _extract(data: Any, *keys: str) -> str:
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return ''
        current = current.get(key)
    if not isinstance(current, str):
        return ''
    return _sanitize(current)


def _sanitize(text: str, max_len: int = MAX_FIELD_LEN) -> str:
    if not text:
        return ''
    cleaned = ''.join(c for c in text if c.isprintable() or c in '\n\r\t')
    return cleaned[:max_len]
