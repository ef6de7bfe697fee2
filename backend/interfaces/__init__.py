from .session_router import router as session_router
from .debug_router import router as debug_router

__all__ = [
    "session_router",
    "debug_router",
]
