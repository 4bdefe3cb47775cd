"""API router initializers."""

from fastapi import APIRouter


def get_api_router() -> APIRouter:
    """Construct and return the API router."""

    from mediq.routers.admin import router as admin_router
    from mediq.routers.appointments import router as appointments_router
    from mediq.routers.booking import router as booking_router
    from mediq.routers.doctors import router as doctors_router

    api_router = APIRouter()
    api_router.include_router(booking_router, tags=["booking"])
    api_router.include_router(appointments_router, prefix="/appointments", tags=["appointments"])
    api_router.include_router(doctors_router, prefix="/doctors", tags=["doctors"])
    api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
    return api_router
