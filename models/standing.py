"""
Standing rows: the derived league table of a stage or group.
"""

from typing import Optional

from sqlalchemy import Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class StandingRow(Base):
    """
    One team's line in a (stage, group) table.

    Rows are fully derived and replaced as a set on every recompute.
    group_id is 0 for league stages.
    """
    __tablename__ = "stage_standings"
    __table_args__ = (
        UniqueConstraint("stage_id", "group_id", "team_id", name="uq_standing_team"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    group_id: Mapped[int] = mapped_column(Integer, default=0)
    team_id: Mapped[int] = mapped_column(Integer, nullable=False)

    played: Mapped[int] = mapped_column(Integer, default=0)
    won: Mapped[int] = mapped_column(Integer, default=0)
    drawn: Mapped[int] = mapped_column(Integer, default=0)
    lost: Mapped[int] = mapped_column(Integer, default=0)
    goals_for: Mapped[int] = mapped_column(Integer, default=0)
    goals_against: Mapped[int] = mapped_column(Integer, default=0)
    points: Mapped[int] = mapped_column(Integer, default=0)
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (f"<StandingRow(stage={self.stage_id}, group={self.group_id}, "
                f"team={self.team_id}, rank={self.rank}, pts={self.points})>")

    @property
    def goal_diff(self) -> int:
        return self.goals_for - self.goals_against
