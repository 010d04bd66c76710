"""
Storage contract for the progression engine.

The engine only talks to ProgressionStore. SqlAlchemyStore implements it
on top of the SQLAlchemy models; every method joins the transaction opened
by `atomic()` or opens its own when called outside one.
"""

import functools
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Generator, Iterable, Optional

from sqlalchemy import select, delete
from sqlalchemy.orm import Session, sessionmaker

from models.base import SessionLocal
from models.tournament import Tournament
from models.stage import Stage, StageGroup, StageParticipant, StageSlot, SlotSource, IntakeMapping
from models.match import Match, MatchStatus
from models.standing import StandingRow


logger = logging.getLogger(__name__)


class ProgressionStore(ABC):
    """Reads and writes the progression engine depends on."""

    @abstractmethod
    def atomic(self):
        """Context manager: commit on success, roll back and re-raise on error."""

    # ============ Reads ============

    @abstractmethod
    def get_tournament(self, tournament_id: int) -> Optional[Tournament]: ...

    @abstractmethod
    def get_stage(self, stage_id: int) -> Optional[Stage]: ...

    @abstractmethod
    def get_match(self, match_id: int) -> Optional[Match]: ...

    @abstractmethod
    def list_stages(self, tournament_id: int) -> list[Stage]: ...

    @abstractmethod
    def list_groups(self, stage_id: int) -> list[StageGroup]: ...

    @abstractmethod
    def list_matches(self, stage_id: int, group_id: Optional[int] = None,
                     status: Optional[MatchStatus] = None) -> list[Match]: ...

    @abstractmethod
    def list_tournament_matches(self, tournament_id: int) -> list[Match]: ...

    @abstractmethod
    def list_participants(self, stage_id: int, group_id: Optional[int] = None) -> list[StageParticipant]: ...

    @abstractmethod
    def list_standings(self, stage_id: int, group_id: Optional[int] = None) -> list[StandingRow]: ...

    @abstractmethod
    def list_slots(self, stage_id: int, group_idx: Optional[int] = None) -> list[StageSlot]: ...

    @abstractmethod
    def find_intake_mappings(self, from_stage_id: int, round: int,
                             bracket_pos: int) -> list[IntakeMapping]: ...

    @abstractmethod
    def list_intake_targets(self, to_stage_id: int, group_idx: int) -> list[IntakeMapping]: ...

    # ============ Writes ============

    @abstractmethod
    def add_all(self, records: Iterable) -> list: ...

    @abstractmethod
    def replace_standings(self, stage_id: int, group_id: int, records: Iterable) -> list[StandingRow]: ...

    @abstractmethod
    def insert_matches(self, tournament_id: int, stage_id: int, stubs: Iterable) -> list[Match]: ...

    @abstractmethod
    def delete_stage_matches(self, stage_id: int) -> int: ...

    @abstractmethod
    def delete_match(self, match_id: int) -> None: ...

    @abstractmethod
    def update_match(self, match_id: int, **fields) -> Match: ...

    @abstractmethod
    def upsert_slot(self, stage_id: int, group_idx: int, slot_idx: int,
                    team_id: Optional[int], source: SlotSource) -> StageSlot: ...

    @abstractmethod
    def insert_intake_mappings(self, mappings: Iterable[IntakeMapping]) -> list[IntakeMapping]: ...

    @abstractmethod
    def complete_tournament(self, tournament_id: int, winner_team_id: Optional[int] = None,
                            runner_up_team_id: Optional[int] = None) -> Tournament: ...


def _transactional(method):
    """Run a store method inside the current (or a fresh) transaction."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.atomic():
            return method(self, *args, **kwargs)
    return wrapper


class SqlAlchemyStore(ProgressionStore):
    """
    ProgressionStore backed by a SQLAlchemy session factory.

    Nested `atomic()` blocks join the outermost one, so a whole engine step
    commits or rolls back as a unit. Sessions are tracked per thread.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal
        self._local = threading.local()

    @contextmanager
    def atomic(self) -> Generator[Session, None, None]:
        session = getattr(self._local, "session", None)
        if session is not None:
            yield session
            return

        session = self._session_factory()
        self._local.session = session
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    @property
    def session(self) -> Session:
        session = getattr(self._local, "session", None)
        if session is None:
            raise RuntimeError("No active transaction; use store.atomic()")
        return session

    # ============ Reads ============

    @_transactional
    def get_tournament(self, tournament_id: int) -> Optional[Tournament]:
        return self.session.get(Tournament, tournament_id)

    @_transactional
    def get_stage(self, stage_id: int) -> Optional[Stage]:
        return self.session.get(Stage, stage_id)

    @_transactional
    def get_match(self, match_id: int) -> Optional[Match]:
        return self.session.get(Match, match_id)

    @_transactional
    def list_stages(self, tournament_id: int) -> list[Stage]:
        stmt = (select(Stage)
                .where(Stage.tournament_id == tournament_id)
                .order_by(Stage.ordering, Stage.id))
        return list(self.session.scalars(stmt))

    @_transactional
    def list_groups(self, stage_id: int) -> list[StageGroup]:
        stmt = (select(StageGroup)
                .where(StageGroup.stage_id == stage_id)
                .order_by(StageGroup.ordering, StageGroup.id))
        return list(self.session.scalars(stmt))

    @_transactional
    def list_matches(self, stage_id: int, group_id: Optional[int] = None,
                     status: Optional[MatchStatus] = None) -> list[Match]:
        stmt = select(Match).where(Match.stage_id == stage_id)
        if group_id is not None:
            stmt = stmt.where(Match.group_id == group_id)
        if status is not None:
            stmt = stmt.where(Match.status == status)
        stmt = stmt.order_by(Match.round, Match.bracket_pos, Match.matchday, Match.id)
        return list(self.session.scalars(stmt))

    @_transactional
    def list_tournament_matches(self, tournament_id: int) -> list[Match]:
        stmt = (select(Match)
                .where(Match.tournament_id == tournament_id)
                .order_by(Match.stage_id, Match.id))
        return list(self.session.scalars(stmt))

    @_transactional
    def list_participants(self, stage_id: int, group_id: Optional[int] = None) -> list[StageParticipant]:
        stmt = select(StageParticipant).where(StageParticipant.stage_id == stage_id)
        if group_id is not None:
            stmt = stmt.where(StageParticipant.group_id == group_id)
        stmt = stmt.order_by(StageParticipant.id)
        return list(self.session.scalars(stmt))

    @_transactional
    def list_standings(self, stage_id: int, group_id: Optional[int] = None) -> list[StandingRow]:
        stmt = select(StandingRow).where(StandingRow.stage_id == stage_id)
        if group_id is not None:
            stmt = stmt.where(StandingRow.group_id == group_id)
        stmt = stmt.order_by(StandingRow.group_id, StandingRow.rank, StandingRow.team_id)
        return list(self.session.scalars(stmt))

    @_transactional
    def list_slots(self, stage_id: int, group_idx: Optional[int] = None) -> list[StageSlot]:
        stmt = select(StageSlot).where(StageSlot.stage_id == stage_id)
        if group_idx is not None:
            stmt = stmt.where(StageSlot.group_idx == group_idx)
        stmt = stmt.order_by(StageSlot.group_idx, StageSlot.slot_idx)
        return list(self.session.scalars(stmt))

    @_transactional
    def find_intake_mappings(self, from_stage_id: int, round: int,
                             bracket_pos: int) -> list[IntakeMapping]:
        stmt = (select(IntakeMapping)
                .where(IntakeMapping.from_stage_id == from_stage_id,
                       IntakeMapping.round == round,
                       IntakeMapping.bracket_pos == bracket_pos)
                .order_by(IntakeMapping.outcome.desc()))  # "W" before "L"
        return list(self.session.scalars(stmt))

    @_transactional
    def list_intake_targets(self, to_stage_id: int, group_idx: int) -> list[IntakeMapping]:
        stmt = (select(IntakeMapping)
                .where(IntakeMapping.to_stage_id == to_stage_id,
                       IntakeMapping.group_idx == group_idx)
                .order_by(IntakeMapping.slot_idx))
        return list(self.session.scalars(stmt))

    # ============ Writes ============

    @_transactional
    def add_all(self, records: Iterable) -> list:
        records = list(records)
        self.session.add_all(records)
        self.session.flush()
        return records

    @_transactional
    def replace_standings(self, stage_id: int, group_id: int, records: Iterable) -> list[StandingRow]:
        self.session.execute(
            delete(StandingRow).where(StandingRow.stage_id == stage_id,
                                      StandingRow.group_id == group_id)
        )
        rows = [
            StandingRow(
                stage_id=stage_id,
                group_id=group_id,
                team_id=r.team_id,
                played=r.played,
                won=r.won,
                drawn=r.drawn,
                lost=r.lost,
                goals_for=r.goals_for,
                goals_against=r.goals_against,
                points=r.points,
                rank=r.rank,
            )
            for r in records
        ]
        self.session.add_all(rows)
        self.session.flush()
        return rows

    @_transactional
    def insert_matches(self, tournament_id: int, stage_id: int, stubs: Iterable) -> list[Match]:
        matches = []
        for stub in stubs:
            match = Match(
                tournament_id=tournament_id,
                stage_id=stage_id,
                round=stub.round,
                bracket_pos=stub.bracket_pos,
                home_team_id=stub.home_team_id,
                away_team_id=stub.away_team_id,
                status=MatchStatus.SCHEDULED,
            )
            match.set_source("home", stub.home_source.as_tuple() if stub.home_source else None)
            match.set_source("away", stub.away_source.as_tuple() if stub.away_source else None)
            matches.append(match)
        self.session.add_all(matches)
        self.session.flush()
        return matches

    @_transactional
    def delete_stage_matches(self, stage_id: int) -> int:
        result = self.session.execute(delete(Match).where(Match.stage_id == stage_id))
        logger.debug("Deleted %s matches of stage %s", result.rowcount, stage_id)
        return result.rowcount or 0

    @_transactional
    def delete_match(self, match_id: int) -> None:
        match = self.session.get(Match, match_id)
        if match is not None:
            self.session.delete(match)
            self.session.flush()

    @_transactional
    def update_match(self, match_id: int, **fields) -> Match:
        match = self.session.get(Match, match_id)
        if match is None:
            from engine.errors import NotFoundError
            raise NotFoundError("match", match_id)

        for name, value in fields.items():
            if name in ("home_source", "away_source"):
                match.set_source(name.split("_")[0], value)
            elif hasattr(Match, name):
                setattr(match, name, value)
            else:
                raise AttributeError(f"Match has no field '{name}'")
        self.session.flush()
        return match

    @_transactional
    def upsert_slot(self, stage_id: int, group_idx: int, slot_idx: int,
                    team_id: Optional[int], source: SlotSource) -> StageSlot:
        slot = self.session.scalars(
            select(StageSlot).where(StageSlot.stage_id == stage_id,
                                    StageSlot.group_idx == group_idx,
                                    StageSlot.slot_idx == slot_idx)
        ).first()
        if slot is None:
            slot = StageSlot(stage_id=stage_id, group_idx=group_idx, slot_idx=slot_idx)
            self.session.add(slot)
        slot.team_id = team_id
        slot.source = source
        self.session.flush()
        return slot

    @_transactional
    def insert_intake_mappings(self, mappings: Iterable[IntakeMapping]) -> list[IntakeMapping]:
        mappings = list(mappings)
        self.session.add_all(mappings)
        self.session.flush()
        return mappings

    @_transactional
    def complete_tournament(self, tournament_id: int, winner_team_id: Optional[int] = None,
                            runner_up_team_id: Optional[int] = None) -> Tournament:
        tournament = self.session.get(Tournament, tournament_id)
        if tournament is None:
            from engine.errors import NotFoundError
            raise NotFoundError("tournament", tournament_id)
        tournament.mark_completed(winner_team_id, runner_up_team_id)
        self.session.flush()
        return tournament

