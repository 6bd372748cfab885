from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional

from app.features.waitlist.schemas.waitlist import DailyStat, SourceCount, WaitlistStatsResponse

TOP_SOURCES = 5
DAILY_WINDOW_DAYS = 7


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0


def build_waitlist_stats(
    rows: Iterable[Mapping], now: Optional[datetime] = None
) -> WaitlistStatsResponse:
    """Aggregate the repository's stats projection into the public stats report."""
    now = _as_utc(now or datetime.now(timezone.utc))
    rows = [{**row, "created_at": _as_utc(row["created_at"])} for row in rows]

    total = len(rows)
    verified = sum(1 for row in rows if row["verified"])
    recent = sum(1 for row in rows if row["created_at"] > now - timedelta(hours=24))

    source_counts = Counter(row["source"] or "direct" for row in rows)
    top_sources = [
        SourceCount(source=source, count=count)
        for source, count in sorted(source_counts.items(), key=lambda item: -item[1])[:TOP_SOURCES]
    ]

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    daily_stats = []
    for days_ago in range(DAILY_WINDOW_DAYS - 1, -1, -1):
        day_start = today - timedelta(days=days_ago)
        day_end = day_start + timedelta(days=1)
        day_rows = [row for row in rows if day_start <= row["created_at"] < day_end]
        day_verified = sum(1 for row in day_rows if row["verified"])
        daily_stats.append(
            DailyStat(
                date=day_start.date().isoformat(),
                signups=len(day_rows),
                verified=day_verified,
                conversion_rate=_rate(day_verified, len(day_rows)),
            )
        )

    return WaitlistStatsResponse(
        total_signups=total,
        verified_signups=verified,
        recent_signups=recent,
        conversion_rate=_rate(verified, total),
        top_sources=top_sources,
        top_referrers=[],
        daily_stats=daily_stats,
    )
