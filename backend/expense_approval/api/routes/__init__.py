"""API Routes module"""
from fastapi import APIRouter

from .expenses import router as expenses_router
from .workflow import router as workflow_router
from .dashboard import router as dashboard_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(expenses_router, prefix="/expenses", tags=["Expenses"])
api_router.include_router(workflow_router, prefix="/workflow", tags=["Workflow"])
api_router.include_router(dashboard_router, prefix="/manager", tags=["Manager"])

__all__ = ["api_router"]
