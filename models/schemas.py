"""
Pydantic schemas for data validation.

Stage configs form a tagged union on `kind`, so each stage format carries
only the parameters that apply to it.
"""

import enum
from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# ============ Stage Config Schemas ============

class CrossPairing(str, enum.Enum):
    """How two groups' qualifiers meet in the first knockout round."""
    A1_B2 = "A1-B2"  # winner of A plays runner-up of B
    A1_B1 = "A1-B1"  # winner of A plays winner of B


class LeagueConfig(BaseModel):
    """Single table, everyone plays everyone."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["league"] = "league"
    advancers_total: Optional[int] = Field(None, ge=2)
    double_round: bool = False
    rounds_per_opponent: Optional[int] = Field(None, ge=1)

    @property
    def repeats(self) -> int:
        if self.rounds_per_opponent:
            return self.rounds_per_opponent
        return 2 if self.double_round else 1


class GroupsConfig(BaseModel):
    """Several round-robin groups."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["groups"] = "groups"
    from_stage_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("from_stage_id", "fromStageId")
    )  # knockout stage feeding this one
    advancers_per_group: int = Field(default=2, ge=1)
    double_round: bool = False
    rounds_per_opponent: Optional[int] = Field(None, ge=1)

    @property
    def repeats(self) -> int:
        if self.rounds_per_opponent:
            return self.rounds_per_opponent
        return 2 if self.double_round else 1


class KnockoutConfig(BaseModel):
    """Single elimination bracket."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["knockout"] = "knockout"
    from_stage_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("from_stage_id", "fromStageId")
    )  # league/groups stage seeding this one
    advancers_per_group: Optional[int] = Field(None, ge=1)
    advancers_total: Optional[int] = Field(None, ge=2)
    standalone_bracket_size: Optional[int] = Field(None, ge=2)
    cross_pairing: CrossPairing = Field(
        CrossPairing.A1_B2, validation_alias=AliasChoices("cross_pairing", "semis_cross")
    )

    # Seed from baseline/partial standings instead of waiting for the source to finish
    seed_early: bool = True

    # Let a finished source match rebuild a bracket that has not started yet
    auto_reseed: bool = True

    @field_validator("cross_pairing", mode="before")
    @classmethod
    def normalize_cross_pairing(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


StageConfig = Annotated[
    Union[LeagueConfig, GroupsConfig, KnockoutConfig],
    Field(discriminator="kind"),
]

_STAGE_CONFIG_ADAPTER = TypeAdapter(StageConfig)


def parse_stage_config(data: dict) -> StageConfig:
    """Validate a raw config dict into the config model for its kind."""
    return _STAGE_CONFIG_ADAPTER.validate_python(data)


# ============ Match Schemas ============

class MatchResult(BaseModel):
    """Schema for finalizing a match."""
    home_score: int = Field(..., ge=0)
    away_score: int = Field(..., ge=0)


class MatchResponse(BaseModel):
    """Schema for match response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    stage_id: int
    round: Optional[int]
    bracket_pos: Optional[int]
    matchday: Optional[int]
    home_team_id: Optional[int]
    away_team_id: Optional[int]
    home_score: Optional[int]
    away_score: Optional[int]
    winner_team_id: Optional[int]


# ============ Standing Schemas ============

class StandingResponse(BaseModel):
    """Schema for one line of a standings table."""
    model_config = ConfigDict(from_attributes=True)

    group_id: int
    team_id: int
    rank: Optional[int]
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    points: int
