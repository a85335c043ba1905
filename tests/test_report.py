import math
from datetime import date, datetime, timezone

import pytest

from app.core.analytics.aggregate import BucketAggregate, SectorTotal, YearTotal
from app.core.analytics.report import (
    build_irrigation_report,
    compare_year,
    is_partial,
    percent_change,
    percentage_changes,
    resolve_period,
    summarize_buckets,
)
from app.core.exceptions import AnalyticsInputError, AnalyticsQueryError
from app.core.schemas import AnalyticsMetrics, Aggregation, YoYComparison

UTC = timezone.utc


class FakeAggregates:
    """In-memory query layer: serves canned buckets, year totals and sectors."""

    def __init__(self, buckets=None, year_totals=None, sectors=None, error=None):
        self.buckets = buckets or []
        self.year_totals = year_totals or {}
        self.sectors = sectors or []
        self.error = error
        self.bucket_calls = []
        self.sector_filter = "unset"

    async def fetch_buckets(self, farm_id, start, end, aggregation, limit=None, offset=0):
        self.bucket_calls.append((start, end, aggregation, limit, offset))
        if self.error:
            raise self.error
        if limit is None:
            return list(self.buckets), len(self.buckets)
        return self.buckets[offset : offset + limit], len(self.buckets)

    async def fetch_year_totals(self, farm_id, start, end):
        return self.year_totals

    async def fetch_sector_totals(self, farm_id, sector_id, start, end):
        self.sector_filter = sector_id
        return self.sectors


def bucket(day, real, events, avg=None, low=None, high=None, nominal=None):
    return BucketAggregate(
        bucket=day,
        total_real=real,
        total_nominal=nominal if nominal is not None else real,
        event_count=events,
        avg_efficiency=avg,
        min_efficiency=low,
        max_efficiency=high,
    )


def year(value, real, events, avg=None, low=None, high=None):
    return YearTotal(
        year=value,
        total_real=real,
        total_nominal=real,
        event_count=events,
        avg_efficiency=avg,
        min_efficiency=low,
        max_efficiency=high,
    )


async def build(aggregates, start=date(2024, 3, 1), end=date(2024, 3, 31), **overrides):
    options = dict(
        farm_id=1,
        farm_name="Farm A",
        start_date=start,
        end_date=end,
        sector_id=None,
        aggregation=Aggregation.DAILY,
        page=1,
        limit=50,
    )
    options.update(overrides)
    return await build_irrigation_report(aggregates, **options)


# =========================
# Period resolution
# =========================
def test_resolve_period_covers_whole_end_day():
    start, end = resolve_period(date(2024, 3, 1), date(2024, 3, 31))
    assert start == datetime(2024, 3, 1, 0, 0, 0, tzinfo=UTC)
    assert end == datetime(2024, 3, 31, 23, 59, 59, 999999, tzinfo=UTC)


def test_resolve_period_defaults_to_trailing_90_days():
    now = datetime(2024, 6, 30, 15, 45, tzinfo=UTC)
    start, end = resolve_period(None, date(2024, 6, 1), now=now)
    assert start == datetime(2024, 4, 1, 0, 0, tzinfo=UTC)
    assert end == now


def test_resolve_period_rejects_reversed_range():
    with pytest.raises(AnalyticsInputError):
        resolve_period(date(2024, 3, 31), date(2024, 3, 1))


# =========================
# Current period metrics
# =========================
def test_summarize_empty_period():
    metrics = summarize_buckets([])
    assert metrics.total_irrigation_volume_mm == 0
    assert metrics.total_irrigation_events == 0
    assert metrics.average_efficiency is None
    assert metrics.efficiency_range is None


def test_average_efficiency_is_mean_of_bucket_means():
    """Not weighted by events: (0.5 + 1.0) / 2 even though counts differ"""
    metrics = summarize_buckets(
        [
            bucket(date(2024, 3, 1), 10, 9, avg=0.5, low=0.4, high=0.6),
            bucket(date(2024, 3, 2), 20, 1, avg=1.0, low=1.0, high=1.0),
            bucket(date(2024, 3, 3), 5, 2),
        ]
    )
    assert metrics.total_irrigation_volume_mm == pytest.approx(35)
    assert metrics.total_irrigation_events == 12
    assert metrics.average_efficiency == pytest.approx(0.75)
    assert metrics.efficiency_range.min == pytest.approx(0.4)
    assert metrics.efficiency_range.max == pytest.approx(1.0)


def test_no_eligible_efficiency_keeps_sums():
    metrics = summarize_buckets([bucket(date(2024, 3, 1), 7, 2)])
    assert metrics.total_irrigation_volume_mm == pytest.approx(7)
    assert metrics.total_irrigation_events == 2
    assert metrics.average_efficiency is None
    assert metrics.efficiency_range is None


# =========================
# Year-over-year
# =========================
def test_missing_year_is_incomplete_with_note():
    comparison = compare_year({}, 2023, "previous year")
    assert comparison.data_incomplete is True
    assert comparison.note == "No data available for previous year (2023)"
    assert comparison.total_irrigation_volume_mm is None
    assert comparison.total_irrigation_events is None
    assert comparison.average_efficiency is None
    assert comparison.efficiency_range is None


def test_year_with_zero_events_is_incomplete():
    comparison = compare_year({2022: year(2022, 0, 0)}, 2022, "two years ago")
    assert comparison.data_incomplete is True
    assert "2022" in comparison.note
    assert comparison.total_irrigation_events is None


def test_complete_year_is_populated():
    comparison = compare_year(
        {2023: year(2023, 25, 2, avg=0.6, low=0.5, high=0.7)}, 2023, "previous year"
    )
    assert comparison.data_incomplete is False
    assert comparison.note is None
    assert comparison.total_irrigation_volume_mm == 25
    assert comparison.total_irrigation_events == 2
    assert comparison.average_efficiency == 0.6
    assert comparison.efficiency_range.min == 0.5


@pytest.mark.parametrize(
    "current, previous, expected",
    [
        (30.0, 25.0, 20.0),
        (10.0, 20.0, -50.0),
        (10.0, 0.0, None),
        (10.0, -4.0, None),
        (None, 0.5, None),
        (0.5, None, None),
    ],
)
def test_percent_change(current, previous, expected):
    result = percent_change(current, previous)
    if expected is None:
        assert result is None
    else:
        assert result == pytest.approx(expected)


def test_percentage_changes_null_each_metric_independently():
    current = AnalyticsMetrics(
        total_irrigation_volume_mm=30, total_irrigation_events=4, average_efficiency=0.9
    )
    previous = YoYComparison(
        total_irrigation_volume_mm=0, total_irrigation_events=2, average_efficiency=None
    )

    change = percentage_changes(current, previous)

    assert change.volume_change_percent is None
    assert change.events_change_percent == pytest.approx(100)
    assert change.efficiency_change_percent is None


def test_percentage_changes_skip_incomplete_year():
    previous = compare_year({}, 2023, "previous year")
    assert percentage_changes(AnalyticsMetrics(), previous) is None


# =========================
# Full report
# =========================
@pytest.mark.asyncio
async def test_report_with_complete_history():
    aggregates = FakeAggregates(
        buckets=[bucket(date(2024, 3, 1), 30, 2, avg=0.75, low=0.7, high=0.8, nominal=40)],
        year_totals={
            2024: year(2024, 30, 2, avg=0.75),
            2023: year(2023, 25, 2, avg=0.6, low=0.5, high=0.7),
            2022: year(2022, 20, 2, avg=0.55, low=0.5, high=0.6),
        },
        sectors=[SectorTotal(1, "S1", 30, 40, 2, 0.75)],
    )

    report = await build(aggregates, limit=10)

    assert not is_partial(report)
    assert report.farm_name == "Farm A"
    assert report.metrics.total_irrigation_volume_mm == 30
    assert report.time_series.pagination.total_pages == 1
    assert report.time_series.pagination.total_count == 1
    assert report.time_series.data[0].date == "2024-03-01"
    assert report.time_series.data[0].nominal_amount_mm == 40
    assert report.period_comparison.vs_same_period_1y.volume_change_percent == pytest.approx(20)
    assert report.period_comparison.vs_same_period_2y.volume_change_percent == pytest.approx(50)
    assert report.period_comparison.vs_same_period_1y.efficiency_change_percent == pytest.approx(25)
    assert report.sector_breakdown[0].sector_name == "S1"
    assert report.sector_breakdown[0].total_volume_mm == 30


@pytest.mark.asyncio
async def test_report_without_two_years_ago_is_partial():
    aggregates = FakeAggregates(
        buckets=[bucket(date(2023, 1, 5), 12, 3, avg=0.8, low=0.8, high=0.8)],
        year_totals={2023: year(2023, 12, 3), 2022: year(2022, 10, 2)},
    )

    report = await build(aggregates, start=date(2023, 1, 1), end=date(2023, 1, 31))
    body = report.model_dump(mode="json", by_alias=True)

    assert is_partial(report)
    assert body["same_period_-1"]["data_incomplete"] is False
    assert "note" not in body["same_period_-1"]
    assert body["same_period_-2"]["data_incomplete"] is True
    assert "2021" in body["same_period_-2"]["note"]
    assert body["same_period_-2"]["total_irrigation_volume_mm"] is None
    assert "vs_same_period_-1" in body["period_comparison"]
    assert "vs_same_period_-2" not in body["period_comparison"]


@pytest.mark.asyncio
async def test_empty_period_with_history():
    aggregates = FakeAggregates(
        year_totals={2019: year(2019, 10, 1), 2018: year(2018, 10, 1)}
    )

    report = await build(aggregates, start=date(2020, 1, 1), end=date(2020, 1, 31))

    assert not is_partial(report)
    assert report.metrics.total_irrigation_events == 0
    assert report.metrics.average_efficiency is None
    assert report.time_series.data == []
    assert report.time_series.pagination.total_pages == 0
    assert report.sector_breakdown == []
    # current volume 0 against 10 previously
    assert report.period_comparison.vs_same_period_1y.volume_change_percent == pytest.approx(-100)


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [1, 3, 7, 50])
async def test_total_pages_is_ceiling(limit):
    days = [bucket(date(2024, 3, d), 1, 1) for d in range(1, 8)]
    report = await build(FakeAggregates(buckets=days), limit=limit)

    pagination = report.time_series.pagination
    assert pagination.total_count == 7
    assert pagination.total_pages == math.ceil(7 / limit)


@pytest.mark.asyncio
async def test_metrics_cover_the_whole_period_not_the_page():
    days = [bucket(date(2024, 3, d), 2, 1, avg=0.5, low=0.5, high=0.5) for d in range(1, 8)]
    aggregates = FakeAggregates(buckets=days)

    report = await build(aggregates, page=2, limit=3)

    assert [entry.date for entry in report.time_series.data] == [
        "2024-03-04",
        "2024-03-05",
        "2024-03-06",
    ]
    assert report.metrics.total_irrigation_volume_mm == pytest.approx(14)
    assert report.metrics.total_irrigation_events == 7
    # page request first, then one unpaginated pass for the metrics
    assert [call[3:] for call in aggregates.bucket_calls] == [(3, 3), (None, 0)]


@pytest.mark.asyncio
async def test_single_page_period_is_fetched_once():
    aggregates = FakeAggregates(buckets=[bucket(date(2024, 3, 1), 2, 1)])
    await build(aggregates)
    assert len(aggregates.bucket_calls) == 1


@pytest.mark.asyncio
async def test_sector_filter_only_reaches_sector_breakdown():
    aggregates = FakeAggregates()
    await build(aggregates, sector_id=5)
    assert aggregates.sector_filter == 5


@pytest.mark.asyncio
async def test_query_failure_aborts_report():
    aggregates = FakeAggregates(
        error=AnalyticsQueryError("fetch_buckets", "failed to aggregate")
    )
    with pytest.raises(AnalyticsQueryError):
        await build(aggregates)


def test_previous_year_without_volume_is_not_compared():
    comparison = compare_year({2023: year(2023, 0, 3, avg=0.0)}, 2023, "previous year")

    assert comparison.data_incomplete is False
    assert comparison.total_irrigation_volume_mm is None
    assert comparison.total_irrigation_events == 3
    assert percentage_changes(AnalyticsMetrics(total_irrigation_volume_mm=5), comparison) is None


@pytest.mark.asyncio
async def test_page_past_the_end_still_reports_the_period():
    days = [bucket(date(2024, 3, d), 2, 1) for d in range(1, 4)]

    report = await build(FakeAggregates(buckets=days), page=10**16, limit=10000)

    assert report.time_series.data == []
    assert report.time_series.pagination.total_count == 3
    assert report.metrics.total_irrigation_events == 3
