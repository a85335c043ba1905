from datetime import datetime
from typing import Optional, List
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_serializer


# =========================
# Enums
# =========================
class Aggregation(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# =========================
# FARM / SECTOR
# =========================
class FarmResponse(BaseModel):
    id: int
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SectorResponse(BaseModel):
    id: int
    farm_id: int
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =========================
# IRRIGATION ANALYTICS
# =========================
class EfficiencyRange(BaseModel):
    min: float
    max: float


class AnalyticsMetrics(BaseModel):
    total_irrigation_volume_mm: float = 0.0
    total_irrigation_events: int = 0
    average_efficiency: Optional[float] = None
    efficiency_range: Optional[EfficiencyRange] = None


class YoYComparison(BaseModel):
    """
    Metrics for the same calendar span in an earlier year.
    When data_incomplete is set every metric is null and note says why.
    """

    total_irrigation_volume_mm: Optional[float] = None
    total_irrigation_events: Optional[int] = None
    average_efficiency: Optional[float] = None
    efficiency_range: Optional[EfficiencyRange] = None
    data_incomplete: bool = False
    note: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_empty_note(self, handler):
        data = handler(self)
        if data.get("note") is None:
            data.pop("note", None)
        return data


class PeriodChange(BaseModel):
    volume_change_percent: Optional[float] = None
    events_change_percent: Optional[float] = None
    efficiency_change_percent: Optional[float] = None


class PeriodComparisonSet(BaseModel):
    # A comparison against an incomplete year is left out entirely
    vs_same_period_1y: Optional[PeriodChange] = Field(
        default=None, alias="vs_same_period_-1"
    )
    vs_same_period_2y: Optional[PeriodChange] = Field(
        default=None, alias="vs_same_period_-2"
    )

    model_config = ConfigDict(populate_by_name=True)

    @model_serializer(mode="wrap")
    def _omit_missing_years(self, handler):
        return {key: value for key, value in handler(self).items() if value is not None}


class TimeSeriesEntry(BaseModel):
    date: str  # bucket start, YYYY-MM-DD
    nominal_amount_mm: float
    real_amount_mm: float
    efficiency: Optional[float] = None
    event_count: int


class PaginationMetadata(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int


class TimeSeries(BaseModel):
    data: List[TimeSeriesEntry] = []
    pagination: PaginationMetadata


class SectorBreakdownEntry(BaseModel):
    sector_id: int
    sector_name: str
    total_volume_mm: float
    average_efficiency: Optional[float] = None


class AnalyticsPeriod(BaseModel):
    start: datetime
    end: datetime


class IrrigationAnalyticsResponse(BaseModel):
    farm_id: int
    farm_name: str
    period: AnalyticsPeriod
    aggregation: Aggregation
    metrics: AnalyticsMetrics
    same_period_1y: YoYComparison = Field(alias="same_period_-1")
    same_period_2y: YoYComparison = Field(alias="same_period_-2")
    period_comparison: PeriodComparisonSet
    time_series: TimeSeries
    sector_breakdown: List[SectorBreakdownEntry] = []

    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    message: Optional[str] = None
