"""
Component status payloads for the ``/stats`` view.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_iso(ts: Optional[float]) -> Optional[str]:
    """Epoch seconds -> ISO-8601 UTC, ``None`` passes through."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(slots=True)
class ComponentStatus:
    name: str
    type: str
    status: str = "unknown"
    last_success: Optional[str] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    counters: Dict[str, int] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)


def build_status(
    *,
    name: str,
    type: str,
    status: str = "unknown",
    last_success_ts: Optional[float] = None,
    last_error: Optional[str] = None,
    consecutive_failures: int = 0,
    sent_count: int = 0,
    error_count: int = 0,
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return asdict(ComponentStatus(
        name=name,
        type=type,
        status=status,
        last_success=utc_iso(last_success_ts),
        last_error=last_error,
        consecutive_failures=consecutive_failures,
        counters={'sent_count': sent_count, 'error_count': error_count},
        extras=extras or {},
    ))
