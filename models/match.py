"""
Match model for league, group and knockout fixtures.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Integer, ForeignKey, DateTime, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base

if TYPE_CHECKING:
    from models.tournament import Tournament
    from models.stage import Stage


SIDES = ("home", "away")


class MatchStatus(enum.Enum):
    """Match lifecycle states."""
    SCHEDULED = "scheduled"
    FINISHED = "finished"


class Outcome(str, enum.Enum):
    """Which team of a source match a stable pointer resolves to."""
    WINNER = "W"
    LOSER = "L"


class Match(Base):
    """
    A fixture between two teams.

    Knockout matches are addressed by (round, bracket_pos); league and group
    matches by matchday. A team slot may be left empty and instead point at
    "the winner (or loser) of the match at (round, bracket_pos)" in the same
    stage through the home_source_* / away_source_* fields.
    """
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False)
    stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("stage_groups.id"), nullable=True)

    status: Mapped[MatchStatus] = mapped_column(
        SAEnum(MatchStatus),
        default=MatchStatus.SCHEDULED
    )

    # Position: knockout uses round/bracket_pos (1-based), round-robin uses matchday
    round: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bracket_pos: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    matchday: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Participants
    home_team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Final scores
    home_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    winner_team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Stable pointers
    home_source_round: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    home_source_bracket_pos: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    home_source_outcome: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)
    away_source_round: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_source_bracket_pos: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_source_outcome: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)

    # Timing
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    tournament: Mapped["Tournament"] = relationship(back_populates="matches")
    stage: Mapped["Stage"] = relationship(back_populates="matches")

    def __repr__(self) -> str:
        where = (f"R{self.round}-B{self.bracket_pos}" if self.round is not None
                 else f"MD{self.matchday}")
        return f"<Match(id={self.id}, {where}, status={self.status.value})>"

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.FINISHED

    @property
    def is_bracket_match(self) -> bool:
        return self.round is not None and self.bracket_pos is not None

    def team(self, side: str) -> Optional[int]:
        return getattr(self, f"{side}_team_id")

    def source(self, side: str) -> Optional[tuple[int, int, str]]:
        """(round, bracket_pos, outcome) this side is fed from, or None."""
        src_round = getattr(self, f"{side}_source_round")
        src_pos = getattr(self, f"{side}_source_bracket_pos")
        if src_round is None or src_pos is None:
            return None
        outcome = getattr(self, f"{side}_source_outcome") or Outcome.WINNER.value
        return src_round, src_pos, outcome

    def set_source(self, side: str, source: Optional[tuple[int, int, str]]) -> None:
        if source is None:
            src_round = src_pos = outcome = None
        else:
            src_round, src_pos, outcome = source
            outcome = Outcome(outcome).value
        setattr(self, f"{side}_source_round", src_round)
        setattr(self, f"{side}_source_bracket_pos", src_pos)
        setattr(self, f"{side}_source_outcome", outcome)

    def decided_teams(self) -> tuple[Optional[int], Optional[int]]:
        """
        Winner and loser of a finished match.

        Scores decide when both are present; a level score has no winner.
        Without scores the stored winner_team_id is used.

        Returns:
            (winner_team_id, loser_team_id), both None when undecided
        """
        if not self.is_finished or self.home_team_id is None or self.away_team_id is None:
            return None, None

        if self.home_score is not None and self.away_score is not None:
            if self.home_score > self.away_score:
                return self.home_team_id, self.away_team_id
            if self.away_score > self.home_score:
                return self.away_team_id, self.home_team_id
            return None, None

        if self.winner_team_id == self.home_team_id:
            return self.home_team_id, self.away_team_id
        if self.winner_team_id == self.away_team_id:
            return self.away_team_id, self.home_team_id
        return None, None

    def team_for_outcome(self, outcome: str) -> Optional[int]:
        winner, loser = self.decided_teams()
        return winner if Outcome(outcome) == Outcome.WINNER else loser
