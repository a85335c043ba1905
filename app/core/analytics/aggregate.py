from dataclasses import dataclass
from datetime import MINYEAR, date, datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Date, Float, Integer, and_, case, cast, func, literal, select, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement

from app.core import models
from app.core.exceptions import AnalyticsQueryError
from app.core.schemas import Aggregation


# -----------------------------------------------------------------------------
# AGGREGATE MODULE
# Purpose: push every irrigation aggregation down to the database.
# Raw irrigation rows never reach Python, only grouped totals do.
# -----------------------------------------------------------------------------

TRUNCATION_UNITS = {
    Aggregation.DAILY: "day",
    Aggregation.WEEKLY: "week",
    Aggregation.MONTHLY: "month",
}

# Current year, previous year, two years ago
YEAR_OFFSETS = (0, 1, 2)


@dataclass
class BucketAggregate:
    bucket: date
    total_real: float
    total_nominal: float
    event_count: int
    avg_efficiency: Optional[float] = None
    min_efficiency: Optional[float] = None
    max_efficiency: Optional[float] = None


@dataclass
class YearTotal:
    year: int
    total_real: float
    total_nominal: float
    event_count: int
    avg_efficiency: Optional[float] = None
    min_efficiency: Optional[float] = None
    max_efficiency: Optional[float] = None


@dataclass
class SectorTotal:
    sector_id: int
    sector_name: str
    total_real: float
    total_nominal: float
    event_count: int
    avg_efficiency: Optional[float] = None


class date_bucket(FunctionElement):
    """
    Truncate a timestamp to the calendar date that starts its day, ISO week
    (Monday) or month, evaluated in UTC.
    """

    type = Date()
    name = "date_bucket"
    # unit is not part of the clause arguments, so the statement can't be cached
    inherit_cache = False

    def __init__(self, unit: str, expr):
        self.unit = unit
        super().__init__(expr)


@compiles(date_bucket)
def _compile_date_bucket(element, compiler, **kw):
    return "CAST(date_trunc('%s', %s AT TIME ZONE 'UTC') AS DATE)" % (
        element.unit,
        compiler.process(element.clauses, **kw),
    )


@compiles(date_bucket, "sqlite")
def _compile_date_bucket_sqlite(element, compiler, **kw):
    column = compiler.process(element.clauses, **kw)
    if element.unit == "week":
        # 'weekday 0' rolls forward to Sunday, six days back is the Monday
        return "date(%s, 'weekday 0', '-6 days')" % column
    if element.unit == "month":
        return "date(%s, 'start of month')" % column
    return "date(%s)" % column


def shift_year(moment: datetime, years: int) -> datetime:
    """
    Move a timestamp by whole calendar years, keeping month, day and time.
    Feb 29 becomes Mar 1 when the target year is not a leap year.
    """
    target = moment.year + years
    try:
        return moment.replace(year=target)
    except ValueError:
        return moment.replace(year=target, month=3, day=1)


def _efficiency():
    # NULL for non-positive nominal amounts so AVG/MIN/MAX skip those rows
    record = models.IrrigationRecord
    return case(
        (
            record.nominal_amount > 0,
            cast(record.real_amount, Float) / cast(record.nominal_amount, Float),
        ),
        else_=None,
    )


def _in_period(farm_id: int, start: datetime, end: datetime):
    record = models.IrrigationRecord
    return and_(
        record.farm_id == farm_id,
        record.start_time >= start,
        record.start_time <= end,
    )


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


class IrrigationAggregates:
    """
    Aggregate queries behind the irrigation analytics endpoint.

    Every method is a read; failures are wrapped in AnalyticsQueryError
    with the failing operation's name and are never retried.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_buckets(
        self,
        farm_id: int,
        start: datetime,
        end: datetime,
        aggregation: Aggregation,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[BucketAggregate], int]:
        """
        Group a farm's irrigation events into day/week/month buckets.

        Args:
            farm_id: Farm to analyze
            start: Inclusive start of period (UTC)
            end: Inclusive end of period (UTC)
            aggregation: Bucket width
            limit: Page size, None for every bucket
            offset: Buckets to skip

        Returns:
            The requested page of buckets in ascending order and the number
            of buckets in the whole period

        Example:
            ([BucketAggregate(bucket=date(2024, 3, 4), total_real=54.0,
              total_nominal=60.0, event_count=9, avg_efficiency=0.9,
              min_efficiency=0.8, max_efficiency=1.0)], 5)
        """
        record = models.IrrigationRecord
        bucket = date_bucket(TRUNCATION_UNITS[aggregation], record.start_time)
        efficiency = _efficiency()

        stmt = (
            select(
                bucket.label("bucket"),
                func.coalesce(func.sum(record.real_amount), 0).label("total_real"),
                func.coalesce(func.sum(record.nominal_amount), 0).label(
                    "total_nominal"
                ),
                func.count(record.id).label("event_count"),
                func.avg(efficiency).label("avg_efficiency"),
                func.min(efficiency).label("min_efficiency"),
                func.max(efficiency).label("max_efficiency"),
            )
            .where(_in_period(farm_id, start, end))
            .group_by("bucket")
            .order_by("bucket")
        )
        if limit is not None:
            stmt = stmt.limit(limit).offset(offset)

        # Distinct buckets over the whole period, for pagination metadata
        count_stmt = select(func.count()).select_from(
            select(bucket.label("bucket"))
            .where(_in_period(farm_id, start, end))
            .group_by("bucket")
            .subquery()
        )

        try:
            total_count = (await self.db.execute(count_stmt)).scalar_one()
            # A page past the last bucket is empty; its offset may not even fit
            # the driver's integer type
            if limit is not None and offset >= total_count:
                rows = []
            else:
                result = await self.db.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as error:
            raise AnalyticsQueryError(
                "fetch_buckets", "failed to aggregate irrigation data by period"
            ) from error

        buckets = []
        for row in rows:
            buckets.append(
                BucketAggregate(
                    bucket=row.bucket,
                    total_real=float(row.total_real),
                    total_nominal=float(row.total_nominal),
                    event_count=row.event_count,
                    avg_efficiency=_as_float(row.avg_efficiency),
                    min_efficiency=_as_float(row.min_efficiency),
                    max_efficiency=_as_float(row.max_efficiency),
                )
            )

        return buckets, total_count

    async def fetch_year_totals(
        self, farm_id: int, start: datetime, end: datetime
    ) -> Dict[int, YearTotal]:
        """
        Totals for [start, end] and for the same calendar span one and two
        years earlier, in a single UNION ALL round trip.

        Years without any irrigation event are left out of the mapping;
        callers treat a missing key as "no data for that year".
        """
        record = models.IrrigationRecord
        efficiency = _efficiency()

        per_year = []
        for offset in YEAR_OFFSETS:
            # Years before MINYEAR can't be represented, they just have no data
            if start.year - offset < MINYEAR:
                continue
            per_year.append(
                select(
                    literal(start.year - offset, Integer).label("year"),
                    func.coalesce(func.sum(record.real_amount), 0).label("total_real"),
                    func.coalesce(func.sum(record.nominal_amount), 0).label(
                        "total_nominal"
                    ),
                    func.count(record.id).label("event_count"),
                    func.avg(efficiency).label("avg_efficiency"),
                    func.min(efficiency).label("min_efficiency"),
                    func.max(efficiency).label("max_efficiency"),
                ).where(
                    _in_period(
                        farm_id, shift_year(start, -offset), shift_year(end, -offset)
                    )
                )
            )

        try:
            result = await self.db.execute(union_all(*per_year))
            rows = result.all()
        except SQLAlchemyError as error:
            raise AnalyticsQueryError(
                "fetch_year_totals", "failed to aggregate year-over-year totals"
            ) from error

        totals = {}
        for row in rows:
            if not row.event_count:
                continue
            totals[row.year] = YearTotal(
                year=row.year,
                total_real=float(row.total_real),
                total_nominal=float(row.total_nominal),
                event_count=row.event_count,
                avg_efficiency=_as_float(row.avg_efficiency),
                min_efficiency=_as_float(row.min_efficiency),
                max_efficiency=_as_float(row.max_efficiency),
            )

        return totals

    async def fetch_sector_totals(
        self,
        farm_id: int,
        sector_id: Optional[int],
        start: datetime,
        end: datetime,
    ) -> List[SectorTotal]:
        """
        Per-sector totals for the period, ascending by sector id.
        Sectors with no events in the period are not returned.
        """
        record = models.IrrigationRecord
        sector = models.IrrigationSector
        efficiency = _efficiency()

        conditions = [_in_period(farm_id, start, end)]
        if sector_id is not None:
            conditions.append(record.irrigation_sector_id == sector_id)

        stmt = (
            select(
                sector.id.label("sector_id"),
                sector.name.label("sector_name"),
                func.coalesce(func.sum(record.real_amount), 0).label("total_real"),
                func.coalesce(func.sum(record.nominal_amount), 0).label(
                    "total_nominal"
                ),
                func.count(record.id).label("event_count"),
                func.avg(efficiency).label("avg_efficiency"),
            )
            .select_from(record)
            .join(sector, sector.id == record.irrigation_sector_id)
            .where(and_(*conditions))
            .group_by(sector.id, sector.name)
            .order_by(sector.id)
        )

        try:
            result = await self.db.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as error:
            raise AnalyticsQueryError(
                "fetch_sector_totals", "failed to aggregate irrigation data by sector"
            ) from error

        return [
            SectorTotal(
                sector_id=row.sector_id,
                sector_name=row.sector_name,
                total_real=float(row.total_real),
                total_nominal=float(row.total_nominal),
                event_count=row.event_count,
                avg_efficiency=_as_float(row.avg_efficiency),
            )
            for row in rows
        ]
