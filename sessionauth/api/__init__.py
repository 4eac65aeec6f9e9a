# Session Auth API
from sessionauth.api.auth import router as auth_router
from sessionauth.api.health import router as health_router

__all__ = ["auth_router", "health_router"]
