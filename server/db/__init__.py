"""Database layer: SQLAlchemy models and session."""

from server.db.models import Base, LearningEvent, PlaySession, ProofRecord, StressTestRecord, ValidatorRuntime
from server.db.session import get_db, init_db

__all__ = [
    "Base",
    "ValidatorRuntime",
    "PlaySession",
    "LearningEvent",
    "ProofRecord",
    "StressTestRecord",
    "get_db",
    "init_db",
]
