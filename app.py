"""
Tourney Progression Application Controller

Top-level controller that wires together all application components.
"""

import logging
from typing import Optional

from PySide6.QtCore import QObject
from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from services.event_bus import EventBus
from services.locks import KeyedLock
from services.storage import SqlAlchemyStore
from engine.errors import ProgressionError
from engine.progression import STEP_LOAD, ProgressionEngine, ProgressionReport, StepOutcome, StepStatus
from engine.bracket_graph import BracketGraph
from models.base import init_db
from models.schemas import MatchResponse, StandingResponse


logger = logging.getLogger(__name__)


class TourneyProgressionApp(QObject):
    """
    Top-level application controller.

    Front ends emit `event_bus.match_finished` (or call finalize_match) and
    listen to the bus for the results.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        super().__init__()

        # Initialize the default database unless one was handed in
        if session_factory is None:
            init_db()

        # Core services
        self.event_bus = EventBus()
        self.locks = KeyedLock()
        self.store = SqlAlchemyStore(session_factory)
        self.engine = ProgressionEngine(self.store, self.locks)

        # Open bracket designers, one per knockout stage
        self.designers: dict[int, BracketGraph] = {}

        # Wire up engine signals to event bus
        self.engine.match_progressed.connect(self.event_bus.match_progressed.emit)
        self.engine.slot_filled.connect(self.event_bus.slot_filled.emit)
        self.engine.intake_applied.connect(self.event_bus.intake_applied.emit)
        self.engine.standings_updated.connect(self.event_bus.standings_updated.emit)
        self.engine.knockout_seeded.connect(self.event_bus.knockout_seeded.emit)
        self.engine.tournament_completed.connect(self.event_bus.tournament_completed.emit)
        self.engine.step_failed.connect(self.event_bus.step_failed.emit)

        # External triggers
        self.event_bus.match_finished.connect(self._on_match_finished)
        self.event_bus.bracket_edited.connect(self._on_bracket_edited)

    def _on_match_finished(self, match_id: int) -> None:
        """Handle a match result that became final elsewhere."""
        report = self.engine.on_match_finished(match_id)
        if not report.ok:
            self.event_bus.emit_message(
                "warning", f"Match {match_id}: {', '.join(report.failed_steps)} failed; retry later"
            )

    def _on_bracket_edited(self, stage_id: int) -> None:
        """Bracket edits are external mutations: re-run propagation and standings."""
        for outcome in self.engine.resync_stage(stage_id):
            if outcome.failed:
                self.event_bus.emit_message("error", f"Stage {stage_id} resync: {outcome.detail}")

    def finalize_match(self, match_id: int, home_score: int, away_score: int) -> ProgressionReport:
        """
        Record a final score and progress the tournament.

        Args:
            match_id: The match to finalize
            home_score: Home team goals
            away_score: Away team goals

        Returns:
            Step-by-step progression report; a refused score comes back as
            a failed load step
        """
        try:
            return self.engine.finalize_match(match_id, home_score, away_score)
        except (ProgressionError, ValidationError) as e:
            logger.error("Cannot finalize match %s: %s", match_id, e)
            self.event_bus.emit_message("error", f"Match {match_id}: {e}")
            return ProgressionReport(match_id, [StepOutcome(STEP_LOAD, StepStatus.FAILED, str(e))])

    def force_reseed(self, stage_id: int, allow_destructive: bool = False) -> StepOutcome:
        """Manually rebuild a knockout stage from its source stage."""
        outcome = self.engine.force_reseed(stage_id, allow_destructive)
        level = "error" if outcome.failed else "info"
        self.event_bus.emit_message(level, f"Reseed of stage {stage_id}: {outcome.detail}")
        return outcome

    def open_bracket_designer(self, stage_id: int) -> BracketGraph:
        """Load (or reuse) the designer canvas for a knockout stage."""
        graph = self.designers.get(stage_id)
        if graph is None:
            graph = BracketGraph(self.store, stage_id)
            graph.links_committed.connect(
                lambda edited_stage_id, _changes: self.event_bus.bracket_edited.emit(edited_stage_id)
            )
            self.designers[stage_id] = graph
        graph.load()
        return graph

    def close_bracket_designer(self, stage_id: int) -> None:
        self.designers.pop(stage_id, None)

    def standings(self, stage_id: int) -> list[StandingResponse]:
        """Current standings of a league or groups stage."""
        return [StandingResponse.model_validate(row) for row in self.store.list_standings(stage_id)]

    def bracket(self, stage_id: int) -> list[MatchResponse]:
        """Matches of a stage in (round, bracket_pos) order."""
        return [MatchResponse.model_validate(m) for m in self.store.list_matches(stage_id)]
