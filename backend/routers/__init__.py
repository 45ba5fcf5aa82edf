"""
Router registry - imports and exports all API routers.
"""
from routers.health import router as health_router
from routers.webhook import create_router as create_webhook_router

all_routers = [
    health_router,
]

__all__ = ["all_routers", "create_webhook_router", "health_router"]
