"""Due-set computation for the source catalog."""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from src.sources.schemas import SourceConfig


def is_due(source: SourceConfig, now: datetime | None = None) -> bool:
    """
    A source is due when it is enabled and has either never run or last
    ran at least interval_minutes ago.
    """
    if not source.enabled:
        return False
    if source.last_collected_at is None:
        return True

    now = now or datetime.now(timezone.utc)
    return now - source.last_collected_at >= timedelta(minutes=source.interval_minutes)


def due_sources(
    sources: Iterable[SourceConfig],
    now: datetime | None = None,
) -> list[SourceConfig]:
    """Filter to due sources, lowest priority value first (stable on ties)."""
    now = now or datetime.now(timezone.utc)
    return sorted(
        (s for s in sources if is_due(s, now)),
        key=lambda s: s.priority,
    )
