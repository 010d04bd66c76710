"""
Tournament model.

A tournament is an ordered sequence of stages (league, groups, knockout).
Its status only moves forward: draft -> active -> completed.
"""

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Integer, DateTime, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base

if TYPE_CHECKING:
    from models.stage import Stage
    from models.match import Match


class TournamentStatus(enum.Enum):
    """Tournament lifecycle states."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


class Tournament(Base):
    """
    A tournament competition with staged progression.

    Stages run in `Stage.ordering` order, e.g. League -> Knockout -> Groups -> Knockout.
    """
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Status
    status: Mapped[TournamentStatus] = mapped_column(
        SAEnum(TournamentStatus),
        default=TournamentStatus.ACTIVE
    )

    # Winner
    winner_team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    runner_up_team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc)
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    stages: Mapped[list["Stage"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="Stage.ordering",
    )
    matches: Mapped[list["Match"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Tournament(id={self.id}, name='{self.name}', status={self.status.value})>"

    @property
    def is_complete(self) -> bool:
        return self.status == TournamentStatus.COMPLETED

    def mark_completed(self, winner_team_id: Optional[int] = None,
                       runner_up_team_id: Optional[int] = None) -> None:
        """Close the tournament, recording the final placings when known."""
        self.status = TournamentStatus.COMPLETED
        self.completed_at = datetime.now(timezone.utc)
        if winner_team_id is not None:
            self.winner_team_id = winner_team_id
            self.runner_up_team_id = runner_up_team_id
