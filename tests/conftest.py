"""
Shared fixtures for storage-backed tests.

Every test gets its own in-memory SQLite database.
"""

import pytest

from engine.bracket_builder import build_knockout
from engine.progression import ProgressionEngine
from models.base import create_session_factory
from models.match import Match, MatchStatus
from models.schemas import GroupsConfig, KnockoutConfig, LeagueConfig
from models.stage import Stage, StageGroup, StageKind, StageParticipant
from models.tournament import Tournament
from services.storage import SqlAlchemyStore


class TournamentBuilder:
    """Small helper for laying out tournaments in tests."""

    def __init__(self, store: SqlAlchemyStore):
        self.store = store

    def tournament(self, name: str = "Test Cup") -> Tournament:
        return self.store.add_all([Tournament(name=name)])[0]

    def stage(self, tournament: Tournament, kind: StageKind, ordering: int, config=None,
              name: str = "") -> Stage:
        stage = Stage(tournament_id=tournament.id, kind=kind, ordering=ordering,
                      name=name or kind.value)
        if config is not None:
            stage.config = config
        return self.store.add_all([stage])[0]

    def league(self, tournament: Tournament, ordering: int = 1, **config) -> Stage:
        return self.stage(tournament, StageKind.LEAGUE, ordering, LeagueConfig(**config))

    def groups(self, tournament: Tournament, ordering: int = 1, group_count: int = 2,
               **config) -> tuple[Stage, list[StageGroup]]:
        stage = self.stage(tournament, StageKind.GROUPS, ordering, GroupsConfig(**config))
        groups = self.store.add_all([
            StageGroup(stage_id=stage.id, ordering=i, label=chr(ord("A") + i))
            for i in range(group_count)
        ])
        return stage, groups

    def knockout(self, tournament: Tournament, ordering: int = 2, **config) -> Stage:
        return self.stage(tournament, StageKind.KNOCKOUT, ordering, KnockoutConfig(**config))

    def participants(self, stage: Stage, team_ids, group: StageGroup = None,
                     seeded: bool = True) -> list[StageParticipant]:
        return self.store.add_all([
            StageParticipant(
                stage_id=stage.id,
                team_id=team_id,
                group_id=group.id if group is not None else None,
                seed=seed if seeded else None,
            )
            for seed, team_id in enumerate(team_ids, start=1)
        ])

    def match(self, stage: Stage, home=None, away=None, round=None, bracket_pos=None,
              matchday=None, group: StageGroup = None, score=None,
              home_source=None, away_source=None) -> Match:
        match = Match(
            tournament_id=stage.tournament_id,
            stage_id=stage.id,
            group_id=group.id if group is not None else None,
            round=round,
            bracket_pos=bracket_pos,
            matchday=matchday,
            home_team_id=home,
            away_team_id=away,
            status=MatchStatus.SCHEDULED,
        )
        match.set_source("home", home_source)
        match.set_source("away", away_source)
        if score is not None:
            match.home_score, match.away_score = score
            match.status = MatchStatus.FINISHED
        return self.store.add_all([match])[0]

    def bracket(self, stage: Stage, entrants) -> list[Match]:
        return self.store.insert_matches(stage.tournament_id, stage.id, build_knockout(entrants))


def match_at(store: SqlAlchemyStore, stage_id: int, round_no: int, bracket_pos: int) -> Match:
    """Stored match at (round, bracket_pos) of a stage."""
    for match in store.list_matches(stage_id):
        if (match.round, match.bracket_pos) == (round_no, bracket_pos):
            return match
    raise LookupError(f"No match R{round_no}-B{bracket_pos} in stage {stage_id}")


class Recorder:
    """Collects signal payloads."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args[0] if len(args) == 1 else args)

    def __len__(self):
        return len(self.calls)


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://")


@pytest.fixture
def store(session_factory):
    return SqlAlchemyStore(session_factory)


@pytest.fixture
def build(store):
    return TournamentBuilder(store)


@pytest.fixture
def engine(store):
    return ProgressionEngine(store)


@pytest.fixture
def recorder():
    """Factory for signal recorders."""
    return Recorder


@pytest.fixture
def find_match(store):
    """Look up a stored match by (stage_id, round, bracket_pos)."""
    return lambda stage_id, round_no, bracket_pos: match_at(store, stage_id, round_no, bracket_pos)


@pytest.fixture
def make_builder():
    """Builder factory for tests that bring their own store."""
    return TournamentBuilder
