"""Helpers for compact debug logging of relay traffic.

Relay frames carry signatures and arbitrarily long content. This module
trims them before they are emitted in DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

# Keys whose values never make it into a log line (signatures, NIP-42/46 secrets).
_REDACTED_KEYS: frozenset[str] = frozenset({"sig", "auth", "secret", "token"})


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a trimmed copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<{len(value)} chars>"
    if value is None or isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>"
            if str(k).lower() in _REDACTED_KEYS
            else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return repr(value)


def summarize_frame(frame: Sequence[Any]) -> str:
    """One-line description of a NIP-01 relay frame.

    ``EVENT`` frames are reduced to sub id, kind, id and ``created_at``;
    other frames are redacted and truncated.
    """
    if not frame:
        return "<empty frame>"
    label = str(frame[0])
    if label == "EVENT" and len(frame) >= 3 and isinstance(frame[2], Mapping):
        event = frame[2]
        return f"EVENT sub={frame[1]} kind={event.get('kind')} id={event.get('id')} created_at={event.get('created_at')}"
    return f"{label} {redact_for_log(list(frame[1:]), max_string=120)}"
