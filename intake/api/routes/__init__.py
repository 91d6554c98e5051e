"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from intake.api.routes.user_routes import router as user_router
from intake.api.routes.application_routes import router as application_router
from intake.api.routes.applicant_routes import router as applicant_router
from intake.api.routes.sheet_routes import router as sheet_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(user_router)
api_router.include_router(application_router)
api_router.include_router(applicant_router)
api_router.include_router(sheet_router)
