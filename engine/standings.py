"""
Standings Calculator

Turns finished round-robin matches plus the declared participant list into
a ranked table. Pure: no storage access, no Qt.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from config import SCORING
from models.match import MatchStatus


logger = logging.getLogger(__name__)


@dataclass
class StandingRecord:
    """Team standing within a stage or group."""
    team_id: int
    group_id: int = 0
    seed: Optional[int] = None
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    rank: int = 0

    @property
    def goal_diff(self) -> int:
        return self.goals_for - self.goals_against


def sort_key(record: StandingRecord) -> tuple:
    """Points, goal difference, goals for (all desc), then team id asc."""
    return (-record.points, -record.goal_diff, -record.goals_for, record.team_id)


def _baseline_key(record: StandingRecord) -> tuple:
    # Unseeded teams go after seeded ones
    return (record.seed is None, record.seed or 0, record.team_id)


def _counts(match) -> bool:
    return (
        match.status == MatchStatus.FINISHED
        and match.home_team_id is not None
        and match.away_team_id is not None
        and match.home_score is not None
        and match.away_score is not None
    )


def _declare(participants, group_id: int) -> dict[int, StandingRecord]:
    table: dict[int, StandingRecord] = {}
    for participant in participants:
        if participant.team_id in table:
            continue
        table[participant.team_id] = StandingRecord(
            team_id=participant.team_id,
            group_id=group_id,
            seed=getattr(participant, "seed", None),
        )
    return table


def baseline_standings(participants: Iterable, group_id: int = 0) -> list[StandingRecord]:
    """
    Ranked table before any match is finished.

    Rank follows declared seed (ascending, unseeded last), then team id.
    """
    records = sorted(_declare(participants, group_id).values(), key=_baseline_key)
    for rank, record in enumerate(records, start=1):
        record.rank = rank
    return records


def compute_standings(matches: Iterable, participants: Iterable,
                      group_id: int = 0) -> list[StandingRecord]:
    """
    Compute a ranked table for one stage or group.

    Every declared participant gets a row even with nothing played. Only
    finished matches with both teams and both scores count. A team that
    appears in a counted match without being declared is still added so the
    table accounts for every game.

    Args:
        matches: Match-like objects (status, teams, scores)
        participants: objects with team_id and optional seed
        group_id: group the rows belong to (0 for a league)

    Returns:
        Records sorted by rank; empty when there is nothing to rank
    """
    participants = list(participants)
    table = _declare(participants, group_id)
    counted = [m for m in matches if _counts(m)]

    if not counted:
        return baseline_standings(participants, group_id)

    for match in counted:
        for team_id in (match.home_team_id, match.away_team_id):
            if team_id not in table:
                logger.debug("Team %s played in match %s without being declared",
                             team_id, getattr(match, "id", None))
                table[team_id] = StandingRecord(team_id=team_id, group_id=group_id)

        home = table[match.home_team_id]
        away = table[match.away_team_id]
        _apply_result(home, match.home_score, match.away_score)
        _apply_result(away, match.away_score, match.home_score)

    records = sorted(table.values(), key=sort_key)
    for rank, record in enumerate(records, start=1):
        record.rank = rank
    return records


def _apply_result(record: StandingRecord, scored: int, conceded: int) -> None:
    record.played += 1
    record.goals_for += scored
    record.goals_against += conceded
    if scored > conceded:
        record.won += 1
        record.points += SCORING.points_win
    elif scored == conceded:
        record.drawn += 1
        record.points += SCORING.points_draw
    else:
        record.lost += 1
        record.points += SCORING.points_loss
