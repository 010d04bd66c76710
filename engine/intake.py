"""
Intake Mapper

Routes the outcome of a finished knockout match into a slot of a later
groups stage. The routing is decided once per source (round, bracket_pos)
and persisted as immutable IntakeMapping rows; applying a mapping writes
the resolved team into the target StageSlot.
"""

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Optional

from engine.errors import InvalidConfigurationError, NotFoundError
from engine.round_robin import pairs_by_matchday
from models.match import Match, Outcome
from models.stage import IntakeMapping, SlotSource, Stage, StageKind, StageSlot

if TYPE_CHECKING:
    from services.storage import ProgressionStore


logger = logging.getLogger(__name__)


class IntakeMapper:
    """
    Decides and applies knockout -> groups intake.

    Usage:
        mapper = IntakeMapper(store)
        mapper.ensure_mappings(match)
        mapper.apply(match)
        mapper.hydrate_group_matches(groups_stage_id)
    """

    def __init__(self, store: "ProgressionStore"):
        self.store = store

    # ============ Routing ============

    def find_target_stage(self, source: Stage) -> Optional[Stage]:
        """
        Nearest groups stage fed by `source`.

        Only groups stages after `source` in tournament order count. One whose
        config names `source` wins; otherwise the first of them.
        """
        later = []
        for stage in self.store.list_stages(source.tournament_id):
            if stage.kind != StageKind.GROUPS or stage.ordering <= source.ordering:
                continue
            try:
                from_stage_id = stage.config.from_stage_id
            except InvalidConfigurationError as exc:
                logger.warning("Ignoring groups stage %s with bad config: %s", stage.id, exc)
                continue
            if from_stage_id == source.id:
                return stage
            later.append(stage)
        return later[0] if later else None

    @staticmethod
    def default_targets(group_count: int) -> list[tuple[str, int]]:
        """(outcome, group index) pairs: winner to group 0, loser to group 1 when it exists."""
        targets = [(Outcome.WINNER.value, 0)]
        if group_count >= 2:
            targets.append((Outcome.LOSER.value, 1))
        return targets

    def next_free_slot(self, stage_id: int, group_idx: int) -> int:
        """
        Next 1-based slot index in (stage, group).

        Slots promised to a mapping count as taken even before the mapping
        is applied, so indices are never handed out twice.
        """
        taken = [s.slot_idx for s in self.store.list_slots(stage_id, group_idx)]
        taken += [m.slot_idx for m in self.store.list_intake_targets(stage_id, group_idx)]
        return max(taken, default=0) + 1

    def target_stage_ids(self, match: Match) -> list[int]:
        """
        Stages whose slots intake from `match` writes to.

        Raises:
            NotFoundError: if the match's stage is missing
        """
        if not match.is_bracket_match:
            return []

        mappings = self.store.find_intake_mappings(match.stage_id, match.round, match.bracket_pos)
        if mappings:
            return sorted({m.to_stage_id for m in mappings})

        source = self.store.get_stage(match.stage_id)
        if source is None:
            raise NotFoundError("stage", match.stage_id)
        if source.kind != StageKind.KNOCKOUT:
            return []
        target = self.find_target_stage(source)
        return [target.id] if target is not None else []

    def ensure_mappings(self, match: Match) -> list[IntakeMapping]:
        """
        Create the intake mappings for a knockout match if none exist yet.

        Returns:
            The newly created mappings (empty when they already existed or
            when nothing downstream takes intake)

        Raises:
            NotFoundError: if the match's stage is missing
        """
        if not match.is_bracket_match:
            return []

        source = self.store.get_stage(match.stage_id)
        if source is None:
            raise NotFoundError("stage", match.stage_id)
        if source.kind != StageKind.KNOCKOUT:
            return []

        if self.store.find_intake_mappings(source.id, match.round, match.bracket_pos):
            return []

        target = self.find_target_stage(source)
        if target is None:
            return []

        groups = self.store.list_groups(target.id)
        if not groups:
            logger.warning("Groups stage %s has no groups; intake from stage %s skipped",
                           target.id, source.id)
            return []

        created = []
        for outcome, group_idx in self.default_targets(len(groups)):
            mapping = IntakeMapping(
                from_stage_id=source.id,
                round=match.round,
                bracket_pos=match.bracket_pos,
                outcome=outcome,
                to_stage_id=target.id,
                group_idx=group_idx,
                slot_idx=self.next_free_slot(target.id, group_idx),
            )
            created.extend(self.store.insert_intake_mappings([mapping]))

        logger.info("Created %d intake mapping(s) for stage %s R%s-B%s -> stage %s",
                    len(created), source.id, match.round, match.bracket_pos, target.id)
        return created

    def apply(self, match: Match) -> list[StageSlot]:
        """
        Write the match's winner/loser into its mapped slots.

        A match without a decisive result writes nothing.

        Returns:
            Slots whose team changed
        """
        if not match.is_bracket_match:
            return []

        mappings = self.store.find_intake_mappings(match.stage_id, match.round, match.bracket_pos)
        if not mappings:
            return []

        winner, loser = match.decided_teams()
        if winner is None:
            logger.debug("Match %s has no decisive winner; intake not applied", match.id)
            return []

        written = []
        for mapping in mappings:
            team_id = winner if mapping.outcome == Outcome.WINNER.value else loser
            current = next((s for s in self.store.list_slots(mapping.to_stage_id, mapping.group_idx)
                            if s.slot_idx == mapping.slot_idx), None)
            if current is not None and current.team_id == team_id and current.source == SlotSource.INTAKE:
                continue
            written.append(self.store.upsert_slot(
                mapping.to_stage_id, mapping.group_idx, mapping.slot_idx, team_id, SlotSource.INTAKE
            ))
        return written

    # ============ Group hydration ============

    def hydrate_group_matches(self, stage_id: int) -> int:
        """
        Fill empty team slots of a groups stage's scheduled matches from its slots.

        Each group's matches are read as a round-robin skeleton over slot
        positions (circle method, ordered by matchday then id). A side is
        filled only while it is empty and the slot behind it holds a team;
        finished matches are never touched.

        Returns:
            Number of team slots filled
        """
        stage = self.store.get_stage(stage_id)
        if stage is None:
            raise NotFoundError("stage", stage_id)
        if stage.kind != StageKind.GROUPS:
            return 0

        repeats = stage.config.repeats
        slot_teams: dict[int, dict[int, int]] = defaultdict(dict)
        for slot in self.store.list_slots(stage_id):
            if slot.team_id is not None:
                slot_teams[slot.group_idx][slot.slot_idx] = slot.team_id

        filled = 0
        for group_idx, group in enumerate(self.store.list_groups(stage_id)):
            teams = slot_teams.get(group_idx)
            if not teams:
                continue

            matches = [m for m in self.store.list_matches(stage_id, group_id=group.id)
                       if m.matchday is not None]
            size = max(_field_size(len(matches), repeats), max(teams))
            if size < 2:
                continue

            by_matchday: dict[int, list[Match]] = defaultdict(list)
            for match in matches:
                by_matchday[match.matchday].append(match)

            # Positions are 1-based slot indices
            schedule = pairs_by_matchday(list(range(1, size + 1)), repeats)
            for matchday, pairs in schedule.items():
                for match, (home_slot, away_slot) in zip(by_matchday.get(matchday, []), pairs):
                    if match.is_finished:
                        continue
                    changes = {}
                    if match.home_team_id is None and home_slot in teams:
                        changes["home_team_id"] = teams[home_slot]
                    if match.away_team_id is None and away_slot in teams:
                        changes["away_team_id"] = teams[away_slot]
                    if changes:
                        self.store.update_match(match.id, **changes)
                        filled += len(changes)

        if filled:
            logger.info("Hydrated %d team slot(s) in groups stage %s", filled, stage_id)
        return filled


def _field_size(match_count: int, repeats: int) -> int:
    """Smallest field whose round-robin needs at least match_count matches."""
    size = 0
    while repeats * size * (size - 1) // 2 < match_count:
        size += 1
    return size
