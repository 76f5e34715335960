"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from studio_booking.api.routes import admin, bookings, cron, settings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(settings.router)
api_router.include_router(admin.router)
api_router.include_router(cron.router)
