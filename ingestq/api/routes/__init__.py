"""
API routes module.
"""

from ingestq.api.routes.dispatch import router as dispatch_router
from ingestq.api.routes.health import router as health_router

__all__ = ["dispatch_router", "health_router"]
