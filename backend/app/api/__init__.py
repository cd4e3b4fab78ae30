from .admin import router as admin_router
from .attachments import router as attachments_router
from .auth import router as auth_router
from .posts import router as posts_router
from .relationship import router as relationship_router
from .users import router as users_router

__all__ = [
    "admin_router",
    "attachments_router",
    "auth_router",
    "posts_router",
    "relationship_router",
    "users_router",
]
