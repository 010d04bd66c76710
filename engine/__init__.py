"""
Tourney Progression Engine

Core progression logic: standings, bracket building, intake routing and
the orchestrator that ties them together.
This module contains no GUI dependencies.
"""

from engine.errors import (
    ProgressionError,
    NotFoundError,
    InvalidConfigurationError,
    GuardViolationError,
    PartialDataError,
)
from engine.standings import StandingRecord, compute_standings, baseline_standings
from engine.bracket_builder import (
    MatchStub, SlotRef, build_knockout, build_from_pairings, seed_order, next_power_of_two,
)
from engine.round_robin import pairs_by_matchday
from engine.intake import IntakeMapper
from engine.bracket_graph import BracketGraph, GraphNode, LinkChange
from engine.progression import ProgressionEngine, ProgressionReport, StepOutcome, StepStatus

__all__ = [
    "ProgressionError",
    "NotFoundError",
    "InvalidConfigurationError",
    "GuardViolationError",
    "PartialDataError",
    "StandingRecord",
    "compute_standings",
    "baseline_standings",
    "MatchStub",
    "SlotRef",
    "build_knockout",
    "build_from_pairings",
    "seed_order",
    "next_power_of_two",
    "pairs_by_matchday",
    "IntakeMapper",
    "BracketGraph",
    "GraphNode",
    "LinkChange",
    "ProgressionEngine",
    "ProgressionReport",
    "StepOutcome",
    "StepStatus",
]
