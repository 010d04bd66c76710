"""
Stage, group, participant and slot models.

A stage's kind-specific parameters live in a JSON text column and are
exposed through the typed `Stage.config` property (see models.schemas).
"""

import enum
import json
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String, Integer, Text, ForeignKey, UniqueConstraint, Enum as SAEnum
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base

if TYPE_CHECKING:
    from models.tournament import Tournament
    from models.match import Match
    from models.schemas import StageConfig


class StageKind(enum.Enum):
    """The three stage formats."""
    LEAGUE = "league"
    GROUPS = "groups"
    KNOCKOUT = "knockout"


class StageStatus(enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class SlotSource(enum.Enum):
    """Provenance of a stage slot's team."""
    INTAKE = "intake"
    MANUAL = "manual"


class Stage(Base):
    """One phase of a tournament."""
    __tablename__ = "stages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), default="")
    kind: Mapped[StageKind] = mapped_column(SAEnum(StageKind), nullable=False)

    # Tournament-wide sequence
    ordering: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[StageStatus] = mapped_column(SAEnum(StageStatus), default=StageStatus.PENDING)

    # Kind-specific parameters (JSON)
    config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    tournament: Mapped["Tournament"] = relationship(back_populates="stages")
    groups: Mapped[list["StageGroup"]] = relationship(
        back_populates="stage",
        cascade="all, delete-orphan",
        order_by="StageGroup.ordering",
    )
    participants: Mapped[list["StageParticipant"]] = relationship(
        back_populates="stage",
        cascade="all, delete-orphan"
    )
    matches: Mapped[list["Match"]] = relationship(back_populates="stage")

    def __repr__(self) -> str:
        return f"<Stage(id={self.id}, kind={self.kind.value}, ordering={self.ordering})>"

    @property
    def config(self) -> "StageConfig":
        """Typed config for this stage's kind.

        Raises:
            InvalidConfigurationError: if the stored blob does not validate
        """
        from pydantic import ValidationError
        from models.schemas import parse_stage_config
        from engine.errors import InvalidConfigurationError

        try:
            data = json.loads(self.config_json) if self.config_json else {}
        except json.JSONDecodeError as exc:
            raise InvalidConfigurationError(f"Stage {self.id}: config is not valid JSON") from exc

        data.setdefault("kind", self.kind.value)
        if data["kind"] != self.kind.value:
            raise InvalidConfigurationError(
                f"Stage {self.id}: config kind '{data['kind']}' does not match stage kind "
                f"'{self.kind.value}'"
            )
        try:
            return parse_stage_config(data)
        except ValidationError as exc:
            raise InvalidConfigurationError(f"Stage {self.id}: {exc}") from exc

    @config.setter
    def config(self, value: "StageConfig") -> None:
        if value.kind != self.kind.value:
            raise ValueError(f"Config kind '{value.kind}' does not fit a {self.kind.value} stage")
        self.config_json = value.model_dump_json()


class StageGroup(Base):
    """A group within a groups stage."""
    __tablename__ = "stage_groups"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    ordering: Mapped[int] = mapped_column(Integer, default=0)  # 0 = group A
    label: Mapped[str] = mapped_column(String(50), default="")

    stage: Mapped["Stage"] = relationship(back_populates="groups")

    def __repr__(self) -> str:
        return f"<StageGroup(id={self.id}, stage={self.stage_id}, label='{self.label}')>"


class StageParticipant(Base):
    """Declares a team as eligible in a stage (and optionally a group)."""
    __tablename__ = "stage_participants"
    __table_args__ = (UniqueConstraint("stage_id", "team_id", name="uq_participant_stage_team"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("stage_groups.id"), nullable=True)
    seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    stage: Mapped["Stage"] = relationship(back_populates="participants")

    def __repr__(self) -> str:
        return f"<StageParticipant(stage={self.stage_id}, team={self.team_id}, seed={self.seed})>"


class StageSlot(Base):
    """An addressable (stage, group index, slot index) position."""
    __tablename__ = "stage_slots"
    __table_args__ = (
        UniqueConstraint("stage_id", "group_idx", "slot_idx", name="uq_stage_slot"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    group_idx: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_idx: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based
    team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source: Mapped[SlotSource] = mapped_column(SAEnum(SlotSource), default=SlotSource.MANUAL)

    def __repr__(self) -> str:
        return (f"<StageSlot(stage={self.stage_id}, group={self.group_idx}, "
                f"slot={self.slot_idx}, team={self.team_id})>")


class IntakeMapping(Base):
    """
    Routes one outcome of a knockout match into a slot of a later stage.

    Created at most once per (from_stage, round, bracket_pos, outcome) and
    never modified afterwards.
    """
    __tablename__ = "intake_mappings"
    __table_args__ = (
        UniqueConstraint("from_stage_id", "round", "bracket_pos", "outcome",
                         name="uq_intake_source"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    from_stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    bracket_pos: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome: Mapped[str] = mapped_column(String(1), nullable=False)  # "W" or "L"
    to_stage_id: Mapped[int] = mapped_column(ForeignKey("stages.id"), nullable=False)
    group_idx: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_idx: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (f"<IntakeMapping(R{self.round}-B{self.bracket_pos}:{self.outcome} -> "
                f"stage={self.to_stage_id}, group={self.group_idx}, slot={self.slot_idx})>")
