from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    reports,
)

router = APIRouter()

router.include_router(auth.router, prefix="/auth")
router.include_router(reports.router, prefix="/reports")
