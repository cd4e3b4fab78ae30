from .accounts import AccountService
from .invitation import InvitationService
from .pairing import PairingService
from .posts import PostService
from .profile import ProfileService
from .reaper import GracePeriodReaper, ReaperReport
from .relationship import RelationshipService
from .sessions import SessionService

__all__ = [
    "AccountService",
    "InvitationService",
    "PairingService",
    "PostService",
    "ProfileService",
    "GracePeriodReaper",
    "ReaperReport",
    "RelationshipService",
    "SessionService",
]
