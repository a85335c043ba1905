from fastapi import APIRouter
from app.api.endpoints import analytics, farms, health

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(health.router)
api_router.include_router(farms.router)
api_router.include_router(analytics.router)
