"""
Response size limiting for payloads handed back to the calling agent
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 32000

TRUNCATION_MARKER = " [TRUNCATED]"

# Room for an empty string or object, the smallest markers
MIN_MAX_CHARS = 2

# Checked first when looking for the row array inside an object payload
ARRAY_FIELD_NAMES = ("results", "data", "items", "rows", "records", "entries")


@dataclass
class TruncateResult:
    data: Any
    truncated: bool
    original_size: Optional[int] = None
    truncated_size: Optional[int] = None
    message: Optional[str] = None


def serialized_size(data: Any) -> int:
    """Length of the compact JSON form of *data*"""
    return len(_dumps(data))


def truncate_response(data: Any, max_chars: int = DEFAULT_MAX_CHARS) -> TruncateResult:
    """
    Fit *data* into ``max_chars`` characters of compact JSON.

    Lists keep their longest fitting prefix. Objects keep every sibling and cut
    their row array (priority names first, then any non-empty list field).
    Strings get a ``[TRUNCATED]`` suffix. Anything else collapses to a small
    marker object. ``None`` passes through untouched.
    """
    if max_chars < MIN_MAX_CHARS:
        raise ValueError(f"max_chars must be at least {MIN_MAX_CHARS}")
    if data is None:
        return TruncateResult(data=data, truncated=False)

    serialized = _dumps(data)
    original_size = len(serialized)
    if original_size <= max_chars:
        return TruncateResult(data=data, truncated=False)

    logger.debug(f"Truncating response of {original_size} chars to {max_chars}")

    if isinstance(data, list):
        fitted = _fit_list(data, max_chars)
        return _truncated(
            fitted,
            original_size,
            f"Showing {len(fitted)} of {len(data)} items (response truncated)",
        )

    if isinstance(data, dict):
        result = _fit_object(data, max_chars, original_size)
        if result is not None:
            return result

    if isinstance(data, str):
        return _truncated(_fit_string(data, max_chars), original_size, "String truncated")

    return _truncated(
        _fit_marker(original_size, max_chars),
        original_size,
        "Response replaced with truncation marker",
    )


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)


def _truncated(data: Any, original_size: int, message: str) -> TruncateResult:
    return TruncateResult(
        data=data,
        truncated=True,
        original_size=original_size,
        truncated_size=serialized_size(data),
        message=message,
    )


def _fit_list(items: list, max_chars: int) -> list:
    """Longest prefix of *items* whose serialization fits"""
    low, high = 0, len(items)
    best = 0
    while low <= high:
        mid = (low + high) // 2
        if serialized_size(items[:mid]) <= max_chars:
            best = mid
            low = mid + 1
        else:
            high = mid - 1
    return items[:best]


def _fit_object(data: dict, max_chars: int, original_size: int) -> Optional[TruncateResult]:
    candidates = [name for name in ARRAY_FIELD_NAMES if isinstance(data.get(name), list)]
    candidates += [
        name
        for name, value in data.items()
        if name not in candidates and isinstance(value, list) and value
    ]

    for name in candidates:
        items = data[name]
        overhead = serialized_size({**data, name: []})
        # the empty list already counted two characters
        available = max_chars - overhead + 2
        if available <= 2:
            continue

        fitted = _fit_list(items, available)
        result = {**data, name: fitted}
        while fitted and serialized_size(result) > max_chars:
            fitted = fitted[:-1]
            result = {**data, name: fitted}
        if serialized_size(result) > max_chars:
            continue

        return _truncated(
            result,
            original_size,
            f"Showing {len(fitted)} of {len(items)} {name} (response truncated)",
        )
    return None


def _fit_string(value: str, max_chars: int) -> str:
    available = max_chars - len(TRUNCATION_MARKER) - 2
    if available <= 0:
        bare = TRUNCATION_MARKER.strip()
        return bare if serialized_size(bare) <= max_chars else ""

    # escapes can make the serialized form longer than the raw prefix
    low, high = 0, min(len(value), available)
    best = 0
    while low <= high:
        mid = (low + high) // 2
        if serialized_size(value[:mid] + TRUNCATION_MARKER) <= max_chars:
            best = mid
            low = mid + 1
        else:
            high = mid - 1
    return value[:best] + TRUNCATION_MARKER


def _fit_marker(original_size: int, max_chars: int) -> dict:
    """Most informative marker object that fits, shrinking down to ``{}``"""
    candidates = [
        {
            "_truncated": True,
            "_message": (
                f"Response truncated ({original_size} bytes). "
                "Use more specific queries or filters to reduce the payload."
            ),
        },
        {"_truncated": True, "_message": f"Response truncated ({original_size} bytes)"},
        {"_truncated": True},
    ]
    for marker in candidates:
        if serialized_size(marker) <= max_chars:
            return marker
    return {}
