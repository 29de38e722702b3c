"""API v1 router aggregator."""

from fastapi import APIRouter

from classroll.api.v1 import invitations, registrations

api_router = APIRouter(tags=["API v1"])

# Include all API routers
api_router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
api_router.include_router(registrations.router, prefix="/registrations", tags=["Registrations"])
