"""
Runtime configuration for cftail.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from .models import StackInfo

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_WORKERS = 8
DEFAULT_MAX_RETRIES = 3
DEFAULT_SOUND = "Ping"


@dataclass(frozen=True)
class TailConfig:
    """Per-run configuration of the tail engine."""
    stack_info: StackInfo
    since: datetime
    show_separators: bool = False
    show_notifications: bool = False
    show_outputs: bool = False
    show_resource_types: bool = False
    sound: str = DEFAULT_SOUND
    poll_interval: float = DEFAULT_POLL_INTERVAL


def _env_number(name: str, default: float, cast=float):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None
    if value < 0:
        raise ValueError(f"Invalid value for {name}: {raw!r} (must not be negative)")
    return value


def get_poll_interval() -> float:
    """
    Get the delay between polls in seconds.

    Returns:
        float: CFTAIL_POLL_INTERVAL or the default of 5 seconds
    """
    return _env_number("CFTAIL_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)


def get_max_workers() -> int:
    """Number of stacks fetched in parallel (CFTAIL_MAX_WORKERS)."""
    workers = _env_number("CFTAIL_MAX_WORKERS", DEFAULT_MAX_WORKERS, int)
    if workers < 1:
        raise ValueError("Invalid value for CFTAIL_MAX_WORKERS: must be at least 1")
    return workers


def get_max_retries() -> int:
    """Retries for throttled or timed out API calls (CFTAIL_MAX_RETRIES)."""
    return _env_number("CFTAIL_MAX_RETRIES", DEFAULT_MAX_RETRIES, int)


def get_region() -> Optional[str]:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")


def parse_since(value: Optional[Union[str, int, float]], now: Optional[datetime] = None) -> datetime:
    """
    Parse the starting point of the tail.

    Args:
        value: None for "now", epoch seconds, or an ISO-8601 timestamp
        now: Override for the current time

    Returns:
        datetime: Timezone-aware UTC datetime

    Raises:
        ValueError: If the value is neither epoch seconds nor ISO-8601
    """
    if value is None:
        return now or datetime.now(timezone.utc)

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = value.strip()
    try:
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    except ValueError:
        pass

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Invalid since value: {value!r} (expected epoch seconds or ISO-8601)") from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
