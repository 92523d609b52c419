from models.base import Base
from models.user import User
from models.persona import Persona, PersonaFollow
from models.post import AuthoredBy, Post, PostStatus, Reply, Room
from models.battle import Battle, BattleStatus, BattleTurn
from models.activity import PersonaActivityEvent, QuotaEvent
from models.digest import PersonaDigest, WeeklyDigest
from models.job import Job, JobStatus
from models.event import Event
from models.notification import Notification

__all__ = [
    "Base",
    "User",
    "Persona",
    "PersonaFollow",
    "Room",
    "Post",
    "PostStatus",
    "AuthoredBy",
    "Reply",
    "Battle",
    "BattleStatus",
    "BattleTurn",
    "PersonaActivityEvent",
    "QuotaEvent",
    "PersonaDigest",
    "WeeklyDigest",
    "Job",
    "JobStatus",
    "Event",
    "Notification",
]
