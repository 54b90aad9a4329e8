"""
API v1 package initialization.

This module initializes the v1 API package for the Kitpack service.
"""

from kitpack.api.v1.packing import router as packing_router

__all__ = ["packing_router"]
