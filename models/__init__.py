"""
Tourney Progression Database Models

SQLAlchemy ORM models for tournaments, stages and their derived state.
"""

from models.base import Base, engine, SessionLocal, init_db, create_session_factory
from models.tournament import Tournament, TournamentStatus
from models.stage import (
    Stage, StageKind, StageStatus, StageGroup, StageParticipant, StageSlot, SlotSource,
    IntakeMapping,
)
from models.match import Match, MatchStatus, Outcome, SIDES
from models.standing import StandingRow

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "init_db",
    "create_session_factory",
    "Tournament",
    "TournamentStatus",
    "Stage",
    "StageKind",
    "StageStatus",
    "StageGroup",
    "StageParticipant",
    "StageSlot",
    "SlotSource",
    "IntakeMapping",
    "Match",
    "MatchStatus",
    "Outcome",
    "SIDES",
    "StandingRow",
]
