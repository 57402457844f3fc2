from fastapi import APIRouter

from api.v1.attendance import router as attendance_router
from api.v1.billing import router as billing_router
from api.v1.enrollments import router as enrollments_router
from api.v1.occurrences import router as occurrences_router
from api.v1.templates import router as templates_router

router = APIRouter()

# Include v1 routers
router.include_router(templates_router, prefix="/v1")
router.include_router(occurrences_router, prefix="/v1")
router.include_router(enrollments_router, prefix="/v1")
router.include_router(attendance_router, prefix="/v1")

# Billing
router.include_router(billing_router, prefix="/v1")
