"""
Progression Orchestrator

Reacts to "a match became final" and keeps every derived piece of
tournament state in line with it:

    propagation -> intake -> standings -> downstream seeding -> completion

Each step runs in its own storage transaction and reports a StepOutcome.
A failing step is rolled back and logged; the steps after it still run.
Every step is idempotent, so a caller may simply re-run the whole trigger
when the report shows a failure.
"""

import enum
import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from PySide6.QtCore import QObject, Signal

from config import SEEDING_SETTINGS
from engine.bracket_builder import MatchStub, build_from_pairings, build_knockout
from engine.errors import (
    GuardViolationError, InvalidConfigurationError, NotFoundError, PartialDataError,
    ProgressionError,
)
from engine.intake import IntakeMapper
from engine.standings import StandingRecord, compute_standings
from models.match import SIDES, Match, MatchStatus
from models.schemas import CrossPairing, KnockoutConfig, MatchResult
from models.stage import Stage, StageKind
from services.locks import KeyedLock

if TYPE_CHECKING:
    from services.storage import ProgressionStore


logger = logging.getLogger(__name__)


STEP_LOAD = "load"
STEP_PROPAGATION = "propagation"
STEP_INTAKE = "intake"
STEP_STANDINGS = "standings"
STEP_SEEDING = "seeding"
STEP_COMPLETION = "completion"


class StepStatus(enum.Enum):
    """What a progression step did."""
    NOOP = "noop"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class StepOutcome:
    """Result of one progression step."""
    step: str
    status: StepStatus
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    def to_dict(self) -> dict:
        return {"step": self.step, "status": self.status.value, "detail": self.detail}


@dataclass
class ProgressionReport:
    """Step-by-step result of one trigger."""
    match_id: int
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(o.failed for o in self.outcomes)

    @property
    def failed_steps(self) -> list[str]:
        return [o.step for o in self.outcomes if o.failed]

    def status_of(self, step: str) -> Optional[StepStatus]:
        for outcome in self.outcomes:
            if outcome.step == step:
                return outcome.status
        return None

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "ok": self.ok,
            "steps": [o.to_dict() for o in self.outcomes],
        }


def _noop(detail: str) -> tuple[StepStatus, str]:
    return StepStatus.NOOP, detail


def _applied(detail: str) -> tuple[StepStatus, str]:
    return StepStatus.APPLIED, detail


class ProgressionEngine(QObject):
    """
    Drives tournament progression from finished matches.

    Usage:
        engine = ProgressionEngine(store)
        report = engine.finalize_match(match_id, 2, 1)
        if not report.ok:
            engine.on_match_finished(match_id)  # safe to retry
    """

    # Signals (emitted only after the step that caused them committed)
    match_progressed = Signal(dict)      # ProgressionReport.to_dict()
    slot_filled = Signal(dict)           # {match_id, side, team_id}
    intake_applied = Signal(dict)        # {stage_id, group_idx, slot_idx, team_id}
    standings_updated = Signal(int)      # stage_id
    knockout_seeded = Signal(int)        # knockout stage_id
    tournament_completed = Signal(dict)  # {tournament_id, winner_team_id, runner_up_team_id}
    step_failed = Signal(str, str)       # step, reason

    def __init__(self, store: "ProgressionStore", locks: Optional[KeyedLock] = None):
        super().__init__()
        self.store = store
        self.locks = locks or KeyedLock()
        self.intake = IntakeMapper(store)
        self._local = threading.local()

    # ============ Public operations ============

    def on_match_finished(self, match_id: int) -> ProgressionReport:
        """
        Run every progression step for a match that became final.

        Args:
            match_id: The finished match

        Returns:
            ProgressionReport with one StepOutcome per step
        """
        report = ProgressionReport(match_id)

        with self.locks.hold(("match", match_id)):
            match = self.store.get_match(match_id)
            if match is None:
                report.outcomes.append(self._fail(STEP_LOAD, f"Match {match_id} not found"))
                self.match_progressed.emit(report.to_dict())
                return report
            if not match.is_finished:
                report.outcomes.append(StepOutcome(STEP_LOAD, StepStatus.NOOP, "match is not finished"))
                self.match_progressed.emit(report.to_dict())
                return report

            stage_id, tournament_id = match.stage_id, match.tournament_id
            report.outcomes.append(self._run_step(STEP_PROPAGATION, self._propagate, match_id))
            report.outcomes.append(self._run_step(STEP_INTAKE, self._apply_intake, match_id))
            report.outcomes.append(self._run_step(STEP_STANDINGS, self._recompute, stage_id))
            report.outcomes.append(self._run_step(STEP_SEEDING, self._seed_from_trigger, stage_id))
            report.outcomes.append(self._run_step(STEP_COMPLETION, self._complete, tournament_id))

        logger.info("Match %s progression: %s", match_id,
                    ", ".join(f"{o.step}={o.status.value}" for o in report.outcomes))
        self.match_progressed.emit(report.to_dict())
        return report

    def finalize_match(self, match_id: int, home_score: int, away_score: int) -> ProgressionReport:
        """
        Record a final score and run the progression trigger.

        Raises:
            pydantic.ValidationError: if a score is negative
            NotFoundError: if the match does not exist
            GuardViolationError: if either team is still unknown
        """
        result = MatchResult(home_score=home_score, away_score=away_score)

        with self.locks.hold(("match", match_id)):
            with self.store.atomic():
                match = self.store.get_match(match_id)
                if match is None:
                    raise NotFoundError("match", match_id)
                if match.home_team_id is None or match.away_team_id is None:
                    raise GuardViolationError(f"Match {match_id} cannot be finalized before both teams are known")
                if match.is_finished:
                    logger.warning("Match %s was already finished; overwriting its score", match_id)

                if result.home_score > result.away_score:
                    winner = match.home_team_id
                elif result.away_score > result.home_score:
                    winner = match.away_team_id
                else:
                    winner = None

                self.store.update_match(
                    match_id,
                    home_score=result.home_score,
                    away_score=result.away_score,
                    winner_team_id=winner,
                    status=MatchStatus.FINISHED,
                    completed_at=datetime.now(timezone.utc),
                )

            return self.on_match_finished(match_id)

    def recompute_standings(self, stage_id: int) -> StepOutcome:
        """Recompute a stage's tables now."""
        return self._run_step(STEP_STANDINGS, self._recompute, stage_id)

    def seed_downstream(self, source_stage_id: int, reseed: bool = False) -> StepOutcome:
        """
        Seed the knockout stage configured to follow a league/groups stage.

        With reseed=False an already seeded bracket is left alone; with
        reseed=True it is rebuilt unless any of its matches is finished.
        """
        return self._run_step(STEP_SEEDING, self._seed_downstream, source_stage_id, reseed)

    def force_reseed(self, stage_id: int, allow_destructive: bool = False) -> StepOutcome:
        """
        Rebuild a knockout stage from its configured source stage.

        Used for manual recovery. Existing matches are only replaced when
        allow_destructive is set, and never once one of them is finished.
        """
        return self._run_step(STEP_SEEDING, self._force_reseed, stage_id, allow_destructive)

    def resync_stage(self, stage_id: int) -> list[StepOutcome]:
        """Re-apply propagation and standings after an external edit of a stage."""
        with self.locks.hold(("stage", stage_id)):
            return [
                self._run_step(STEP_PROPAGATION, self._propagate_stage, stage_id),
                self._run_step(STEP_STANDINGS, self._recompute, stage_id),
            ]

    # ============ Step runner ============

    def _run_step(self, step: str, func: Callable, *args) -> StepOutcome:
        self._local.pending = []
        try:
            with self.store.atomic():
                status, detail = func(*args)
        except PartialDataError as exc:
            self._local.pending = []
            logger.debug("%s: %s", step, exc)
            return StepOutcome(step, StepStatus.NOOP, str(exc))
        except ProgressionError as exc:
            self._local.pending = []
            logger.warning("%s step rejected: %s", step, exc)
            return self._fail(step, str(exc))
        except Exception as exc:
            self._local.pending = []
            logger.exception("%s step failed", step)
            return self._fail(step, f"{type(exc).__name__}: {exc}")

        pending, self._local.pending = self._local.pending, []
        for signal, payload in pending:
            signal.emit(payload)

        if status == StepStatus.APPLIED:
            logger.info("%s: %s", step, detail)
        else:
            logger.debug("%s: %s", step, detail)
        return StepOutcome(step, status, detail)

    def _fail(self, step: str, reason: str) -> StepOutcome:
        self.step_failed.emit(step, reason)
        return StepOutcome(step, StepStatus.FAILED, reason)

    def _defer(self, signal, payload) -> None:
        """Queue a signal until the running step commits."""
        self._local.pending.append((signal, payload))

    def _load_match(self, match_id: int) -> Match:
        match = self.store.get_match(match_id)
        if match is None:
            raise NotFoundError("match", match_id)
        return match

    def _load_stage(self, stage_id: int) -> Stage:
        stage = self.store.get_stage(stage_id)
        if stage is None:
            raise NotFoundError("stage", stage_id)
        return stage

    # ============ Propagation ============

    def _propagate(self, match_id: int) -> tuple[StepStatus, str]:
        match = self._load_match(match_id)
        if not match.is_bracket_match:
            return _noop("not a bracket match")

        filled = self._fill_dependents(match)
        if not filled:
            return _noop("no empty dependent slots")
        return _applied(f"filled {filled} slot(s) from R{match.round}-B{match.bracket_pos}")

    def _propagate_stage(self, stage_id: int) -> tuple[StepStatus, str]:
        self._load_stage(stage_id)
        filled = 0
        for match in self.store.list_matches(stage_id, status=MatchStatus.FINISHED):
            if match.is_bracket_match:
                filled += self._fill_dependents(match)
        if not filled:
            return _noop("no empty dependent slots")
        return _applied(f"filled {filled} slot(s) in stage {stage_id}")

    def _fill_dependents(self, match: Match) -> int:
        """Fill empty slots whose stable pointer names this match. Never overwrites."""
        winner, loser = match.decided_teams()
        if winner is None:
            return 0

        filled = 0
        for child in self.store.list_matches(match.stage_id):
            if child.id == match.id or child.is_finished:
                continue
            for side in SIDES:
                source = child.source(side)
                if source is None or source[:2] != (match.round, match.bracket_pos):
                    continue
                if child.team(side) is not None:
                    continue
                team_id = match.team_for_outcome(source[2])
                self.store.update_match(child.id, **{f"{side}_team_id": team_id})
                self._defer(self.slot_filled, {"match_id": child.id, "side": side, "team_id": team_id})
                filled += 1
        return filled

    # ============ Intake ============

    def _apply_intake(self, match_id: int) -> tuple[StepStatus, str]:
        match = self._load_match(match_id)
        targets = self.intake.target_stage_ids(match)
        if not targets:
            return _noop("no intake to apply")

        # Slot numbering is read-then-write on the receiving stage
        with ExitStack() as held:
            for stage_id in targets:
                held.enter_context(self.locks.hold(("stage", stage_id)))
            created = self.intake.ensure_mappings(match)
            written = self.intake.apply(match)

        hydrated = 0
        for stage_id in sorted({slot.stage_id for slot in written}):
            hydrated += self.intake.hydrate_group_matches(stage_id)
        for slot in written:
            self._defer(self.intake_applied, {
                "stage_id": slot.stage_id,
                "group_idx": slot.group_idx,
                "slot_idx": slot.slot_idx,
                "team_id": slot.team_id,
            })

        if not created and not written:
            return _noop("no intake to apply")
        return _applied(f"{len(created)} mapping(s) created, {len(written)} slot(s) written, "
                        f"{hydrated} match slot(s) hydrated")

    # ============ Standings ============

    def _recompute(self, stage_id: int) -> tuple[StepStatus, str]:
        stage = self._load_stage(stage_id)
        if stage.kind == StageKind.KNOCKOUT:
            return _noop("knockout stages have no table")

        tables = self._compute_tables(stage)
        if not any(tables.values()):
            raise PartialDataError(f"stage {stage_id} has no participants; cannot seed downstream")

        changed = 0
        for group_id, records in tables.items():
            current = self.store.list_standings(stage_id, group_id)
            if _rows_signature(current) == _rows_signature(records):
                continue
            self.store.replace_standings(stage_id, group_id, records)
            changed += 1

        if not changed:
            return _noop("standings unchanged")
        self._defer(self.standings_updated, stage_id)
        return _applied(f"replaced {changed} table(s) of stage {stage_id}")

    def _compute_tables(self, stage: Stage) -> dict[int, list[StandingRecord]]:
        """{group_id: ranked records}; a league is the single group 0."""
        if stage.kind == StageKind.LEAGUE:
            return {0: compute_standings(self.store.list_matches(stage.id),
                                         self.store.list_participants(stage.id))}

        tables = {}
        for group in self.store.list_groups(stage.id):
            tables[group.id] = compute_standings(
                self.store.list_matches(stage.id, group_id=group.id),
                self.store.list_participants(stage.id, group_id=group.id),
                group_id=group.id,
            )
        return tables

    # ============ Downstream seeding ============

    def _seed_from_trigger(self, stage_id: int) -> tuple[StepStatus, str]:
        return self._seed_downstream(stage_id, None)

    def _seed_downstream(self, source_stage_id: int, reseed: Optional[bool]) -> tuple[StepStatus, str]:
        source = self._load_stage(source_stage_id)
        if source.kind == StageKind.KNOCKOUT:
            return _noop("knockout stages do not seed downstream")

        target = self._find_knockout_target(source)
        if target is None:
            return _noop("no knockout stage follows this stage")
        config = target.config

        if reseed is None:
            # Trigger path: config decides
            if not config.seed_early and self._has_open_matches(source.id):
                return _noop(f"waiting for stage {source.id} to finish")
            return self._seed_into(source, target, config, config.auto_reseed, forced=False)
        return self._seed_into(source, target, config, reseed, forced=reseed)

    def _force_reseed(self, stage_id: int, allow_destructive: bool) -> tuple[StepStatus, str]:
        target = self._load_stage(stage_id)
        if target.kind != StageKind.KNOCKOUT:
            raise InvalidConfigurationError(f"Stage {stage_id} is not a knockout stage")

        config = target.config
        if config.from_stage_id is None:
            raise InvalidConfigurationError(f"Knockout stage {stage_id} has no source stage configured")
        source = self.store.get_stage(config.from_stage_id)
        if source is None or source.tournament_id != target.tournament_id:
            raise InvalidConfigurationError(
                f"Knockout stage {stage_id} references missing source stage {config.from_stage_id}"
            )
        if source.kind == StageKind.KNOCKOUT:
            raise InvalidConfigurationError(f"Knockout stage {stage_id} cannot be seeded from a knockout stage")

        return self._seed_into(source, target, config, allow_destructive, forced=allow_destructive)

    def _find_knockout_target(self, source: Stage) -> Optional[Stage]:
        """First later knockout stage whose config names `source`."""
        for stage in self.store.list_stages(source.tournament_id):
            if stage.kind != StageKind.KNOCKOUT or stage.ordering <= source.ordering:
                continue
            try:
                from_stage_id = stage.config.from_stage_id
            except InvalidConfigurationError as exc:
                logger.warning("Skipping knockout stage %s: %s", stage.id, exc)
                continue
            if from_stage_id == source.id:
                return stage
        return None

    def _has_open_matches(self, stage_id: int) -> bool:
        return any(not m.is_finished for m in self.store.list_matches(stage_id))

    def _seed_into(self, source: Stage, target: Stage, config: KnockoutConfig,
                   reseed: bool, forced: bool) -> tuple[StepStatus, str]:
        with self.locks.hold(("stage", target.id)):
            existing = self.store.list_matches(target.id)
            if any(m.is_finished for m in existing):
                if forced:
                    raise GuardViolationError(
                        f"Knockout stage {target.id} already has finished matches; reseed refused"
                    )
                return _noop(f"knockout stage {target.id} already started")
            if existing and not reseed:
                return _noop(f"knockout stage {target.id} already seeded")

            # Seed from current standings, computing them if they were never stored
            if not self.store.list_standings(source.id):
                self._recompute(source.id)

            stubs = self._build_bracket(source, config)
            if not stubs:
                return _noop("fewer than two qualifiers")

            if (existing and not forced
                    and _bracket_signature(existing) == [s.signature() for s in stubs]):
                return _noop(f"knockout stage {target.id} already up to date")

            if existing:
                self.store.delete_stage_matches(target.id)
            self.store.insert_matches(target.tournament_id, target.id, stubs)

        self._defer(self.knockout_seeded, target.id)
        verb = "reseeded" if existing else "seeded"
        return _applied(f"{verb} knockout stage {target.id} with {len(stubs)} match(es) from stage {source.id}")

    def _build_bracket(self, source: Stage, config: KnockoutConfig) -> list[MatchStub]:
        if source.kind == StageKind.GROUPS:
            return self._bracket_from_groups(source, config)
        return self._bracket_from_league(source, config)

    def _bracket_from_groups(self, source: Stage, config: KnockoutConfig) -> list[MatchStub]:
        per_group = max(1, config.advancers_per_group
                        or source.config.advancers_per_group
                        or SEEDING_SETTINGS.advancers_per_group)

        ranked = [
            [row.team_id for row in self.store.list_standings(source.id, group.id)][:per_group]
            for group in self.store.list_groups(source.id)
        ]

        # Two groups of two: explicit semi-finals and a final
        if len(ranked) == 2 and per_group == 2 and all(len(top) >= 2 for top in ranked):
            (a1, a2), (b1, b2) = ranked
            if config.cross_pairing == CrossPairing.A1_B1:
                pairs = [(a1, b1), (a2, b2)]
            else:
                pairs = [(a1, b2), (b1, a2)]
            return build_from_pairings(pairs)

        # Tiers: every group winner first, then every runner-up, ...
        entrants = []
        for tier in range(per_group):
            for top in ranked:
                if tier < len(top):
                    entrants.append(top[tier])
        return build_knockout(entrants)

    def _bracket_from_league(self, source: Stage, config: KnockoutConfig) -> list[MatchStub]:
        total = (config.advancers_total
                 or config.standalone_bracket_size
                 or source.config.advancers_total
                 or SEEDING_SETTINGS.league_advancers)
        total = max(SEEDING_SETTINGS.min_league_advancers, total)
        entrants = [row.team_id for row in self.store.list_standings(source.id, 0)][:total]
        return build_knockout(entrants)

    # ============ Completion ============

    def _complete(self, tournament_id: int) -> tuple[StepStatus, str]:
        tournament = self.store.get_tournament(tournament_id)
        if tournament is None:
            raise NotFoundError("tournament", tournament_id)
        if tournament.is_complete:
            return _noop("tournament already completed")

        matches = self.store.list_tournament_matches(tournament_id)
        open_count = sum(1 for m in matches if not m.is_finished)
        if not matches or open_count:
            return _noop(f"{open_count} match(es) still open")

        winner, runner_up = self._final_placings(tournament_id)
        self.store.complete_tournament(tournament_id, winner, runner_up)
        self._defer(self.tournament_completed, {
            "tournament_id": tournament_id,
            "winner_team_id": winner,
            "runner_up_team_id": runner_up,
        })
        return _applied(f"tournament {tournament_id} completed")

    def _final_placings(self, tournament_id: int) -> tuple[Optional[int], Optional[int]]:
        """Winner and runner-up of the last knockout stage's final, if there is one."""
        knockouts = [s for s in self.store.list_stages(tournament_id) if s.kind == StageKind.KNOCKOUT]
        if not knockouts:
            return None, None
        bracket = [m for m in self.store.list_matches(knockouts[-1].id) if m.is_bracket_match]
        if not bracket:
            return None, None
        final = max(bracket, key=lambda m: (m.round, -m.bracket_pos))
        return final.decided_teams()


def _rows_signature(rows) -> list[tuple]:
    return [
        (r.team_id, r.rank, r.played, r.won, r.drawn, r.lost, r.goals_for, r.goals_against, r.points)
        for r in sorted(rows, key=lambda r: (r.rank, r.team_id))
    ]


def _bracket_signature(matches: list[Match]) -> list[tuple]:
    return [
        (m.round, m.bracket_pos, m.home_team_id, m.away_team_id, m.source("home"), m.source("away"))
        for m in sorted(matches, key=lambda m: (m.round or 0, m.bracket_pos or 0))
    ]
