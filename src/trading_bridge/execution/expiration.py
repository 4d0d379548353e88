"""Expiration selection for option buys."""

from collections.abc import Sequence

DEFAULT_EXPIRATION_SECONDS = 5
# Hints at or above this are milliseconds
MILLIS_THRESHOLD = 1000


def normalize_expiration(hint: float | None, allowed: Sequence[int] | None) -> int:
    """Resolve an expiration in seconds.

    Args:
        hint: Requested expiration, seconds or milliseconds
        allowed: Expirations the instrument supports, in seconds

    Returns:
        The exact allowed match, else the nearest allowed value (ties go to the
        lower one). Without an allowed list, the hint itself, or 5 seconds.
    """
    seconds: int | None = None
    if hint is not None and hint > 0:
        # Halves round up
        seconds = int(hint / 1000 + 0.5) if hint >= MILLIS_THRESHOLD else int(hint + 0.5)

    options = sorted(int(v) for v in allowed or [])
    if not options:
        return seconds if seconds else DEFAULT_EXPIRATION_SECONDS
    if seconds is None:
        return options[0]
    if seconds in options:
        return seconds
    return min(options, key=lambda v: (abs(v - seconds), v))
