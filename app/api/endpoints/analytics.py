import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.endpoints.farms import get_farm_or_404
from app.core import schemas
from app.core.database import get_db
from app.core.exceptions import AnalyticsInputError, AnalyticsQueryError
from app.core.analytics import params
from app.core.analytics.aggregate import IrrigationAggregates
from app.core.analytics.report import build_irrigation_report, is_partial

router = APIRouter(prefix="/v1/farms", tags=["Analytics"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.get(
    "/{farm_id}/irrigation/analytics",
    response_model=schemas.IrrigationAnalyticsResponse,
    responses={
        206: {"description": "Previous-year data incomplete or missing"},
        400: {"description": "Invalid request parameters"},
        404: {"description": "Farm not found"},
        500: {"description": "Internal server error"},
    },
)
async def get_irrigation_analytics(
    response: Response,
    db: db_dep,
    farm_id: Annotated[int, Path(gt=0)],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sector_id: Optional[str] = None,
    aggregation: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
):
    """
    Irrigation analytics for a farm with year-over-year comparison,
    a paginated time series and a per-sector breakdown.

    Responds 206 instead of 200 when either comparison year has no data.
    """
    # Validate everything before touching the database
    try:
        start = params.parse_date(start_date, "start_date")
        end = params.parse_date(end_date, "end_date")
        params.check_date_range(start, end)
        sector = params.parse_sector_id(sector_id)
        granularity = params.parse_aggregation(aggregation)
    except AnalyticsInputError as error:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(error))

    farm = await get_farm_or_404(farm_id, db)

    try:
        report = await build_irrigation_report(
            IrrigationAggregates(db),
            farm_id=farm.id,
            farm_name=farm.name,
            start_date=start,
            end_date=end,
            sector_id=sector,
            aggregation=granularity,
            page=params.normalize_page(page),
            limit=params.normalize_limit(limit),
        )
    except AnalyticsInputError as error:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(error))
    except AnalyticsQueryError as error:
        logging.error(f"Failed to build analytics for farm {farm_id}: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "failed to fetch analytics"
        )

    if is_partial(report):
        response.status_code = status.HTTP_206_PARTIAL_CONTENT

    return report
