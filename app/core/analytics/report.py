import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from app.core import schemas
from app.core.analytics.aggregate import (
    BucketAggregate,
    IrrigationAggregates,
    SectorTotal,
    YearTotal,
)
from app.core.exceptions import AnalyticsInputError, AnalyticsQueryError


# -----------------------------------------------------------------------------
# REPORT MODULE - Orchestration
# Purpose: turn the three aggregate queries into the analytics document:
# period normalization, efficiency math, year-over-year completeness and
# percentage changes.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90
END_OF_DAY = time(23, 59, 59, 999999)

YEAR_LABELS = {1: "previous year", 2: "two years ago"}


def resolve_period(
    start_date: Optional[date],
    end_date: Optional[date],
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Turn the requested dates into an inclusive UTC window.

    Without both dates the window is the trailing 90 days ending now, with
    the start floored to midnight. With both dates the whole end day is
    included.
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)

    if start_date is None or end_date is None:
        window_start = (now - timedelta(days=DEFAULT_WINDOW_DAYS)).date()
        return datetime.combine(window_start, time.min, tzinfo=timezone.utc), now

    start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_date, END_OF_DAY, tzinfo=timezone.utc)
    if start > end:
        raise AnalyticsInputError("start_date must not be after end_date")
    return start, end


def summarize_buckets(buckets: List[BucketAggregate]) -> schemas.AnalyticsMetrics:
    """
    Reduce period buckets into the headline metrics.

    average_efficiency is the mean of the per-bucket averages, not a mean
    weighted by event count. Buckets without an efficiency are skipped.
    """
    total_volume = 0.0
    total_events = 0
    efficiencies = []
    lowest = None
    highest = None

    for bucket in buckets:
        total_volume += bucket.total_real
        total_events += bucket.event_count

        if bucket.avg_efficiency is not None:
            efficiencies.append(bucket.avg_efficiency)
        if bucket.min_efficiency is not None:
            if lowest is None or bucket.min_efficiency < lowest:
                lowest = bucket.min_efficiency
        if bucket.max_efficiency is not None:
            if highest is None or bucket.max_efficiency > highest:
                highest = bucket.max_efficiency

    metrics = schemas.AnalyticsMetrics(
        total_irrigation_volume_mm=total_volume,
        total_irrigation_events=total_events,
    )

    if efficiencies:
        metrics.average_efficiency = sum(efficiencies) / len(efficiencies)
        if lowest is not None and highest is not None:
            metrics.efficiency_range = schemas.EfficiencyRange(min=lowest, max=highest)

    return metrics


def compare_year(
    year_totals: Dict[int, YearTotal], year: int, label: str
) -> schemas.YoYComparison:
    """
    Build the comparison object for one earlier year.
    A year missing from year_totals, or one without events, is incomplete.
    """
    totals = year_totals.get(year)
    if totals is None:
        return schemas.YoYComparison(
            data_incomplete=True,
            note=f"No data available for {label} ({year})",
        )
    if totals.event_count <= 0:
        return schemas.YoYComparison(
            data_incomplete=True,
            note=f"No events found for {label} ({year})",
        )

    comparison = schemas.YoYComparison(
        total_irrigation_events=totals.event_count,
        average_efficiency=totals.avg_efficiency,
    )
    # Without a positive volume there is nothing to compare against
    if totals.total_real > 0:
        comparison.total_irrigation_volume_mm = totals.total_real
    if totals.min_efficiency is not None and totals.max_efficiency is not None:
        comparison.efficiency_range = schemas.EfficiencyRange(
            min=totals.min_efficiency, max=totals.max_efficiency
        )

    return comparison


def percent_change(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """((current - previous) / previous) * 100, or None unless previous > 0."""
    if current is None or previous is None or previous <= 0:
        return None
    return ((current - previous) / previous) * 100


def percentage_changes(
    current: schemas.AnalyticsMetrics, previous: schemas.YoYComparison
) -> Optional[schemas.PeriodChange]:
    """Changes against one earlier year, or None when its volume is unknown."""
    if previous.data_incomplete or previous.total_irrigation_volume_mm is None:
        return None

    return schemas.PeriodChange(
        volume_change_percent=percent_change(
            current.total_irrigation_volume_mm, previous.total_irrigation_volume_mm
        ),
        events_change_percent=percent_change(
            current.total_irrigation_events, previous.total_irrigation_events
        ),
        efficiency_change_percent=percent_change(
            current.average_efficiency, previous.average_efficiency
        ),
    )


def _time_series_entries(buckets: List[BucketAggregate]) -> List[schemas.TimeSeriesEntry]:
    return [
        schemas.TimeSeriesEntry(
            date=bucket.bucket.isoformat(),
            nominal_amount_mm=bucket.total_nominal,
            real_amount_mm=bucket.total_real,
            efficiency=bucket.avg_efficiency,
            event_count=bucket.event_count,
        )
        for bucket in buckets
    ]


def _sector_entries(sectors: List[SectorTotal]) -> List[schemas.SectorBreakdownEntry]:
    return [
        schemas.SectorBreakdownEntry(
            sector_id=sector.sector_id,
            sector_name=sector.sector_name,
            total_volume_mm=sector.total_real,
            average_efficiency=sector.avg_efficiency,
        )
        for sector in sectors
    ]


async def build_irrigation_report(
    aggregates: IrrigationAggregates,
    farm_id: int,
    farm_name: str,
    start_date: Optional[date],
    end_date: Optional[date],
    sector_id: Optional[int],
    aggregation: schemas.Aggregation,
    page: int,
    limit: int,
    now: Optional[datetime] = None,
) -> schemas.IrrigationAnalyticsResponse:
    """
    Run the analytics pipeline for one farm.

    Steps: resolve the period, fetch buckets / year totals / sector totals,
    summarize the period, compare against the two previous years and
    assemble the response. Any query failure aborts the whole report.

    Args:
        aggregates: Query layer bound to the request's session
        farm_id: Farm that is known to exist
        farm_name: Display name echoed in the response
        start_date: Requested first day, or None
        end_date: Requested last day, or None
        sector_id: Restricts the sector breakdown to one sector
        aggregation: Time-series bucket width
        page: 1-based page of the time series
        limit: Buckets per page (>= 1)
        now: Reference instant for the default window

    Returns:
        The full analytics document
    """
    start, end = resolve_period(start_date, end_date, now)
    logger.info(
        f"[Farm {farm_id}] building {aggregation.value} irrigation analytics "
        f"for {start.isoformat()} .. {end.isoformat()}"
    )

    offset = (page - 1) * limit
    try:
        page_buckets, total_count = await aggregates.fetch_buckets(
            farm_id, start, end, aggregation, limit=limit, offset=offset
        )
        # Headline metrics always describe the whole period, not just the page
        if offset == 0 and total_count <= len(page_buckets):
            period_buckets = page_buckets
        else:
            period_buckets, _ = await aggregates.fetch_buckets(
                farm_id, start, end, aggregation
            )
        year_totals = await aggregates.fetch_year_totals(farm_id, start, end)
        sector_totals = await aggregates.fetch_sector_totals(
            farm_id, sector_id, start, end
        )
    except AnalyticsQueryError as error:
        logger.error(f"[Farm {farm_id}] analytics query failed: {error}: {error.__cause__}")
        raise

    metrics = summarize_buckets(period_buckets)

    same_period_1y = compare_year(year_totals, start.year - 1, YEAR_LABELS[1])
    same_period_2y = compare_year(year_totals, start.year - 2, YEAR_LABELS[2])

    return schemas.IrrigationAnalyticsResponse(
        farm_id=farm_id,
        farm_name=farm_name,
        period=schemas.AnalyticsPeriod(start=start, end=end),
        aggregation=aggregation,
        metrics=metrics,
        same_period_1y=same_period_1y,
        same_period_2y=same_period_2y,
        period_comparison=schemas.PeriodComparisonSet(
            vs_same_period_1y=percentage_changes(metrics, same_period_1y),
            vs_same_period_2y=percentage_changes(metrics, same_period_2y),
        ),
        time_series=schemas.TimeSeries(
            data=_time_series_entries(page_buckets),
            pagination=schemas.PaginationMetadata(
                page=page,
                limit=limit,
                total_count=total_count,
                total_pages=math.ceil(total_count / limit),
            ),
        ),
        sector_breakdown=_sector_entries(sector_totals),
    )


def is_partial(report: schemas.IrrigationAnalyticsResponse) -> bool:
    """True when either earlier year lacks data (served as 206)."""
    return (
        report.same_period_1y.data_incomplete or report.same_period_2y.data_incomplete
    )
