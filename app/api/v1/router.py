"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    assessments,
    availability,
    events,
    health,
    referrals,
    waiting_list,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(assessments.router, prefix="/assessments", tags=["Assessments"])
api_router.include_router(referrals.router, prefix="/referrals", tags=["Referrals"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(availability.router, prefix="/availability", tags=["Availability"])
api_router.include_router(waiting_list.router, prefix="/waiting-list", tags=["Waiting List"])
api_router.include_router(events.router, prefix="/events", tags=["Events"])
