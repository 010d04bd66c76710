"""
Event Bus - Central signal hub for inter-module communication.

All modules connect to this single object rather than directly to each other,
enabling loose coupling between the progression engine, the bracket
designer and whatever UI or CLI sits on top.
"""

from PySide6.QtCore import QObject, Signal


class EventBus(QObject):
    """
    Central signal hub for Tourney Progression.

    The EventBus acts as a mediator between all application components:
    - ProgressionEngine announces what each trigger changed
    - BracketGraph announces committed bracket edits
    - Front ends listen and refresh tables and brackets

    Usage:
        # In ProgressionEngine
        self.event_bus.standings_updated.emit(stage_id)

        # In a standings view
        self.event_bus.standings_updated.connect(self._on_standings_updated)
    """

    # ============ Match Lifecycle ============
    match_finished = Signal(int)        # match_id
    match_progressed = Signal(dict)     # ProgressionReport as dict

    # ============ Bracket Events ============
    slot_filled = Signal(dict)          # {match_id, side, team_id}
    knockout_seeded = Signal(int)       # knockout stage_id
    bracket_edited = Signal(int)        # stage_id whose links changed

    # ============ Stage Events ============
    intake_applied = Signal(dict)       # {stage_id, group_idx, slot_idx, team_id}
    standings_updated = Signal(int)     # stage_id

    # ============ Tournament Events ============
    tournament_completed = Signal(dict)  # {tournament_id, winner_team_id, runner_up_team_id}

    # ============ System Events ============
    step_failed = Signal(str, str)      # (step, reason)
    system_message = Signal(str, str)   # (level, message) - e.g., ("info", "Bracket seeded")

    def __init__(self):
        super().__init__()

    def emit_message(self, level: str, message: str) -> None:
        """Emit a system message (info, warning, error)."""
        self.system_message.emit(level, message)
