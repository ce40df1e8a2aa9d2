"""
Clock helpers.

All timestamps are naive UTC. Deadlines are evaluated lazily at call time.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    return now


def window_open(deadline: Optional[datetime], now: datetime) -> bool:
    """A window with no deadline never closes; otherwise it is open through the deadline."""
    return deadline is None or now <= deadline


def deadline_passed(deadline: Optional[datetime], now: datetime) -> bool:
    return deadline is not None and now > deadline
