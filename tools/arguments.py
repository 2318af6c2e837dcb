"""
Defensive coercion of model-supplied tool arguments.

Arguments arrive untyped from free-form model output. Nothing here raises:
malformed values degrade to defaults so a tool call never fails on input
shape alone.
"""

import json
import logging
import math
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
MIN_LIMIT = 1
MAX_LIMIT = 20


def _to_float(value: Any) -> Optional[float]:
    """float() that maps unparseable input to None and oversized ints to ±inf."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return float(value)
    except OverflowError:
        # int beyond float range, e.g. a 400-digit JSON literal
        return math.inf if value > 0 else -math.inf
    except (TypeError, ValueError):
        return None


def safe_number(value: Any, fallback: Optional[float] = 0) -> Optional[float]:
    """
    Parse a finite number, returning *fallback* when parsing fails.

    Booleans count as 0/1; blank strings, None, NaN and infinities use the
    fallback.

    Example:
        >>> safe_number("3.5")
        3.5
        >>> safe_number("abc", fallback=None) is None
        True
    """
    number = _to_float(value)
    if number is None or math.isnan(number) or math.isinf(number):
        return fallback
    return number


def safe_limit(value: Any, default: int = DEFAULT_LIMIT) -> int:
    """
    Resolve a "limit" argument into the closed range [1, 20].

    Non-numeric or missing values use *default*; numbers are floored then
    clamped, so ``0 → 1``, ``37 → 20``, ``1e999 → 20`` and
    ``"abc" → default``.
    """
    number = _to_float(value)
    if number is None or math.isnan(number):
        number = default
    elif math.isinf(number):
        return MAX_LIMIT if number > 0 else MIN_LIMIT
    return int(min(max(math.floor(number), MIN_LIMIT), MAX_LIMIT))


def coerce_arguments(raw: Any) -> Dict[str, Any]:
    """
    Turn whatever the model sent as ``arguments`` into a dict.

    A JSON string is parsed; anything that is not a mapping afterwards
    (including parse failures) becomes an empty dict.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Discarding unparseable tool arguments: {raw[:80]!r}")
            return {}
    if not isinstance(raw, dict):
        return {}
    return dict(raw)


def as_bool(value: Any) -> bool:
    """Truthiness with the usual string spellings of false."""
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no", "off")
    return bool(value)


def round_to(value: float, digits: int) -> float:
    return round(float(value), digits)
