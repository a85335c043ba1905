from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy import asc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import models, schemas
from app.core.database import get_db

router = APIRouter(prefix="/v1/farms", tags=["Farms"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


async def get_farm_or_404(farm_id: int, db: AsyncSession) -> models.Farm:
    query = select(models.Farm).where(models.Farm.id == farm_id)
    result = await db.execute(query)
    farm = result.scalars().first()

    if not farm:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="farm not found"
        )
    return farm


# List farms
@router.get("", response_model=List[schemas.FarmResponse])
async def list_farms(db: db_dep):
    result = await db.execute(select(models.Farm).order_by(asc(models.Farm.id)))
    return result.scalars().all()


# Get farm
@router.get("/{farm_id}", response_model=schemas.FarmResponse)
async def get_farm(farm_id: Annotated[int, Path(gt=0)], db: db_dep):
    return await get_farm_or_404(farm_id, db)


# Sectors of a farm
@router.get("/{farm_id}/sectors", response_model=List[schemas.SectorResponse])
async def list_farm_sectors(farm_id: Annotated[int, Path(gt=0)], db: db_dep):
    await get_farm_or_404(farm_id, db)

    query = (
        select(models.IrrigationSector)
        .where(models.IrrigationSector.farm_id == farm_id)
        .order_by(asc(models.IrrigationSector.id))
    )
    result = await db.execute(query)
    return result.scalars().all()
