from datetime import datetime, timedelta, timezone

from app.features.waitlist.services.stats import build_waitlist_stats

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def row(hours_ago, verified=False, source=None):
    return {
        "verified": verified,
        "created_at": NOW - timedelta(hours=hours_ago),
        "source": source,
        "unsubscribed": False,
    }


def test_empty_stats():
    stats = build_waitlist_stats([], now=NOW)

    assert stats.total_signups == 0
    assert stats.verified_signups == 0
    assert stats.conversion_rate == 0
    assert stats.top_sources == []
    assert stats.top_referrers == []
    assert [day.date for day in stats.daily_stats] == [
        "2026-03-04", "2026-03-05", "2026-03-06", "2026-03-07", "2026-03-08", "2026-03-09", "2026-03-10",
    ]
    assert all(day.signups == 0 and day.conversion_rate == 0 for day in stats.daily_stats)


def test_totals_and_conversion_rate():
    rows = [row(1, verified=True), row(2), row(3), row(30, verified=True), row(100)]
    stats = build_waitlist_stats(rows, now=NOW)

    assert stats.total_signups == 5
    assert stats.verified_signups == 2
    assert stats.recent_signups == 3
    assert stats.conversion_rate == 40.0


def test_conversion_rate_is_rounded():
    stats = build_waitlist_stats([row(1, verified=True), row(1), row(1)], now=NOW)
    assert stats.conversion_rate == 33.33


def test_top_sources_sorted_and_capped():
    rows = (
        [row(1, source="twitter")] * 4
        + [row(1, source="hn")] * 3
        + [row(1)] * 2
        + [row(1, source="reddit"), row(1, source="blog"), row(1, source="email")]
        + [row(1, source="ads")] * 2
    )
    stats = build_waitlist_stats(rows, now=NOW)

    assert len(stats.top_sources) == 5
    assert stats.top_sources[0].source == "twitter"
    assert stats.top_sources[0].count == 4
    assert stats.top_sources[1].source == "hn"
    counts = [s.count for s in stats.top_sources]
    assert counts == sorted(counts, reverse=True)
    assert "direct" in [s.source for s in stats.top_sources]


def test_daily_buckets_are_utc_days():
    rows = [
        row(1, verified=True),   # 2026-03-10 14:00
        row(14),                 # 2026-03-10 01:00
        row(16, verified=True),  # 2026-03-09 23:00
        row(24 * 8),             # outside the window
    ]
    stats = build_waitlist_stats(rows, now=NOW)

    today, yesterday = stats.daily_stats[-1], stats.daily_stats[-2]
    assert (today.date, today.signups, today.verified, today.conversion_rate) == ("2026-03-10", 2, 1, 50.0)
    assert (yesterday.date, yesterday.signups, yesterday.verified) == ("2026-03-09", 1, 1)
    assert sum(day.signups for day in stats.daily_stats) == 3
    assert stats.total_signups == 4


def test_naive_datetimes_are_treated_as_utc():
    naive = {"verified": False, "created_at": datetime(2026, 3, 10, 12, 0), "source": None, "unsubscribed": False}
    stats = build_waitlist_stats([naive], now=NOW)

    assert stats.recent_signups == 1
    assert stats.daily_stats[-1].signups == 1
