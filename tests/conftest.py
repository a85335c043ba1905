import os
import uuid
from datetime import timedelta
from decimal import Decimal

# Settings are read at import time, so point them at a throwaway database first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RUN_MIGRATIONS", "false")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core import models
from app.core.database import Base, get_db

# Force to use a test db for tests (in-memory SQLite unless told otherwise)
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")


def _engine_options(url: str) -> dict:
    # One shared connection, otherwise every connection gets its own empty :memory: db
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool}
    return {}


# Fresh schema for every test and drop it once the test is done
@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL, echo=False, **_engine_options(TEST_DATABASE_URL)
    )
    async with engine.begin() as conn:
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)
    yield engine  # Tests happens here
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# Create session and rollback once it is done
@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine):
    TestingSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# Farm
@pytest_asyncio.fixture(scope="function")
async def test_farm(db_session: AsyncSession):
    farm = models.Farm(name=f"Test Farm {uuid.uuid4().hex[:8]}")

    db_session.add(farm)
    await db_session.commit()
    await db_session.refresh(farm)
    return farm


# Two sectors on the test farm
@pytest_asyncio.fixture(scope="function")
async def test_sectors(db_session: AsyncSession, test_farm):
    sectors = [
        models.IrrigationSector(farm_id=test_farm.id, name="North Field"),
        models.IrrigationSector(farm_id=test_farm.id, name="South Orchard"),
    ]
    db_session.add_all(sectors)
    await db_session.commit()
    for sector in sectors:
        await db_session.refresh(sector)
    return sectors


# Another farm whose data must never leak into the test farm's numbers
@pytest_asyncio.fixture(scope="function")
async def other_farm_sector(db_session: AsyncSession):
    farm = models.Farm(name="Neighbour Farm")
    db_session.add(farm)
    await db_session.commit()
    await db_session.refresh(farm)

    sector = models.IrrigationSector(farm_id=farm.id, name="Neighbour Sector")
    db_session.add(sector)
    await db_session.commit()
    await db_session.refresh(sector)
    return sector


# Insert irrigation events: (start_time, nominal_mm, real_mm)
@pytest_asyncio.fixture(scope="function")
async def add_events(db_session: AsyncSession):
    async def _add(sector: models.IrrigationSector, events):
        for start_time, nominal, real in events:
            db_session.add(
                models.IrrigationRecord(
                    farm_id=sector.farm_id,
                    irrigation_sector_id=sector.id,
                    start_time=start_time,
                    end_time=start_time + timedelta(hours=1),
                    nominal_amount=Decimal(str(nominal)),
                    real_amount=Decimal(str(real)),
                )
            )
        await db_session.commit()

    return _add
