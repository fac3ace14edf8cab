"""API v1 Endpoints"""
from .general import router as general_router
from .matching import router as matching_router

__all__ = [
    "general_router",
    "matching_router",
]
