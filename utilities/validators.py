import re
from datetime import datetime, timezone

from .constants import MODES, DIFFICULTIES

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]{2,}$', re.IGNORECASE)


def looks_like_email(email: str) -> bool:
    if not email or '@' not in email or '.' not in email:
        return False
    if len(email) < 6:
        return False
    return bool(_EMAIL_RE.match(email.strip()))


def normalize_email(email) -> str:
    return (email or '').strip().lower()


def is_valid_mode(mode) -> bool:
    return mode in MODES


def is_valid_difficulty(difficulty) -> bool:
    return difficulty in DIFFICULTIES


def parse_iso_datetime(value):
    """Parse an ISO-8601 timestamp into a naive UTC datetime, or None."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_score(value, low=0.0, high=10.0):
    """Coerce a model-supplied number into [low, high]; None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return max(low, min(high, number))
