# API module exports
from .routes import router as api_router, metrics_router

__all__ = ["router"]

# Combine routers
from fastapi import APIRouter
router = APIRouter()
router.include_router(api_router)
router.include_router(metrics_router)
