from .base import Base
from .user import Profile, Role, User
from .tag import Tag, question_tags
from .question import Question, QuestionStatus
from .answer import Answer
from .vote import TargetType, Vote
from .reputation import ReputationLogEntry
from .badge import Badge, BadgeTier, UserBadge
from .upgrade_request import (
    ApprovalEvent,
    ApprovalLevel,
    RequestStatus,
    RequestType,
    UpgradeRequest,
)

__all__ = [
    "Base",
    "User",
    "Profile",
    "Role",
    "Tag",
    "question_tags",
    "Question",
    "QuestionStatus",
    "Answer",
    "Vote",
    "TargetType",
    "ReputationLogEntry",
    "Badge",
    "BadgeTier",
    "UserBadge",
    "UpgradeRequest",
    "ApprovalEvent",
    "ApprovalLevel",
    "RequestStatus",
    "RequestType",
]
