"""
Round-robin pairing (circle method).

Used to decide which two teams of a group meet on which matchday, so that
group matches created before their teams were known can be filled in the
same order they were generated.
"""

from typing import Sequence


def matchdays_per_cycle(team_count: int) -> int:
    """Matchdays needed for everyone to meet once."""
    if team_count < 2:
        return 0
    return team_count - 1 if team_count % 2 == 0 else team_count


def pairs_by_matchday(team_ids: Sequence[int], repeats: int = 1) -> dict[int, list[tuple[int, int]]]:
    """
    Pair teams per matchday using the circle method.

    The first team stays fixed while the others rotate one place per
    matchday. An odd field gets a phantom opponent; whoever draws it sits
    the matchday out. Each extra cycle repeats the first with home and away
    swapped on even cycles.

    Args:
        team_ids: Teams in slot order
        repeats: How many times each pair meets (1 = single round)

    Returns:
        {matchday: [(home_team_id, away_team_id), ...]}, matchdays from 1
    """
    teams = list(team_ids)
    if len(teams) < 2:
        return {}

    ring: list = teams + [None] if len(teams) % 2 else teams[:]
    size = len(ring)
    half = size // 2
    cycle_length = size - 1

    base: list[list[tuple[int, int]]] = []
    for _ in range(cycle_length):
        pairs = []
        for i in range(half):
            home, away = ring[i], ring[size - 1 - i]
            if home is None or away is None:
                continue
            pairs.append((home, away))
        base.append(pairs)
        ring = [ring[0], ring[-1]] + ring[1:-1]

    schedule: dict[int, list[tuple[int, int]]] = {}
    for cycle in range(max(1, repeats)):
        flip = cycle % 2 == 1
        for offset, pairs in enumerate(base, start=1):
            matchday = cycle * cycle_length + offset
            schedule[matchday] = [(away, home) if flip else (home, away) for home, away in pairs]
    return schedule
