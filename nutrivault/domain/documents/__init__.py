from .public_router import router as public_router
from .router import router

__all__ = ["router", "public_router"]
