import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import schemas
from app.core.config import settings
from app.core.database import get_db

router = APIRouter(tags=["Health"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.get("/health", response_model=schemas.HealthResponse)
async def get_health(response: Response, db: db_dep):
    """Service status plus a round trip to the database."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logging.error(f"Database health check failed: {error}")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return schemas.HealthResponse(
            status="unhealthy",
            service=settings.SERVICE_NAME,
            version=settings.SERVICE_VERSION,
            message="database connection failed",
        )

    return schemas.HealthResponse(
        status="healthy",
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )
