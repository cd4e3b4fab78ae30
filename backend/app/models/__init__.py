from .user import User
from .relationship import Relationship
from .invitation import Invitation
from .post import Attachment, Post
from .session import UserSession

__all__ = [
    "User",
    "Relationship",
    "Invitation",
    "Post",
    "Attachment",
    "UserSession",
]
