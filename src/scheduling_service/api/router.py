"""API router aggregation."""

from fastapi import APIRouter

from scheduling_service.api import health, scheduling

router = APIRouter(
    responses={
        400: {"description": "Validation or precondition error"},
        404: {"description": "Not found"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(health.router)
router.include_router(scheduling.router)
