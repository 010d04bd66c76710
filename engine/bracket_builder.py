"""
Bracket Builder

Builds a seeded single-elimination bracket for any number of entrants.
The field is padded to the next power of two; padded slots are byes.
A bye never produces a match row: the team is carried into round 2 as a
literal team id. Every later slot that depends on a match result is a
stable pointer to the (round, bracket_pos) that produces it.

Seed placement uses the standard recursive order (1 v 16, 8 v 9, ...) so
the top seeds stay apart as long as possible.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

from models.match import Outcome


@dataclass(frozen=True)
class SlotRef:
    """Stable pointer: the winner (or loser) of the match at (round, bracket_pos)."""
    round: int
    bracket_pos: int
    outcome: str = Outcome.WINNER.value

    def as_tuple(self) -> tuple[int, int, str]:
        return self.round, self.bracket_pos, self.outcome


@dataclass
class MatchStub:
    """A match to create, before it has a storage identity."""
    round: int
    bracket_pos: int  # 1-based within the round
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    home_source: Optional[SlotRef] = None
    away_source: Optional[SlotRef] = None

    @property
    def key(self) -> tuple[int, int]:
        return self.round, self.bracket_pos

    def signature(self) -> tuple:
        """Comparable shape of the stub (teams and pointers)."""
        return (
            self.round,
            self.bracket_pos,
            self.home_team_id,
            self.away_team_id,
            self.home_source.as_tuple() if self.home_source else None,
            self.away_source.as_tuple() if self.away_source else None,
        )


# A round input is a known team, the result of an earlier match, or nothing
Entry = Union[int, SlotRef, None]


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    size = 1
    while size < n:
        size *= 2
    return size


def rounds_needed(n: int) -> int:
    """Number of rounds a bracket of n entrants spans."""
    if n <= 1:
        return 0
    return (next_power_of_two(n) - 1).bit_length()


def seed_order(size: int) -> list[int]:
    """
    Canonical slot order for a bracket of `size` slots.

    seed_order(8) == [1, 8, 4, 5, 2, 7, 3, 6]

    Raises:
        ValueError: if size is not a positive power of two
    """
    if size < 1 or size & (size - 1):
        raise ValueError(f"Bracket size must be a power of two, got {size}")
    if size == 1:
        return [1]

    order = []
    for seed in seed_order(size // 2):
        order.append(seed)
        order.append(size + 1 - seed)
    return order


def _unique(entrants: Sequence[int]) -> list[int]:
    seen = set()
    teams = []
    for team_id in entrants:
        if team_id is None or team_id in seen:
            continue
        seen.add(team_id)
        teams.append(team_id)
    return teams


def build_knockout(entrants: Sequence[int]) -> list[MatchStub]:
    """
    Build a bracket from entrants in seed order (index 0 = seed 1).

    Duplicate team ids are dropped, keeping the first (best) seed.

    Returns:
        Match stubs ordered by (round, bracket_pos); empty for fewer than
        two entrants
    """
    teams = _unique(entrants)
    if len(teams) <= 1:
        return []

    size = next_power_of_two(len(teams))
    slots = [teams[seed - 1] if seed <= len(teams) else None for seed in seed_order(size)]
    pairs = [(slots[i], slots[i + 1]) for i in range(0, size, 2)]
    return _build_rounds(pairs)


def build_from_pairings(pairs: Sequence[tuple[Optional[int], Optional[int]]]) -> list[MatchStub]:
    """
    Build a bracket from explicit first-round pairings.

    A pair with one missing team is a bye for the other.

    Raises:
        ValueError: if the pair count is not a power of two, a team appears
            twice, or a pair has no team at all
    """
    pairs = [tuple(pair) for pair in pairs]
    if not pairs:
        return []
    if len(pairs) & (len(pairs) - 1):
        raise ValueError(f"Pairing count must be a power of two, got {len(pairs)}")

    seen = set()
    for pair in pairs:
        if len(pair) != 2:
            raise ValueError(f"A pairing needs exactly two sides, got {pair!r}")
        for team_id in pair:
            if team_id is None:
                continue
            if team_id in seen:
                raise ValueError(f"Team {team_id} appears in more than one pairing")
            seen.add(team_id)

    return _build_rounds(pairs)


def _build_rounds(pairs: list[tuple[Optional[int], Optional[int]]]) -> list[MatchStub]:
    stubs: list[MatchStub] = []
    carry: list[Entry] = []

    # Round 1: only real-vs-real pairs become matches
    for pos, (home, away) in enumerate(pairs, start=1):
        if home is not None and away is not None:
            stubs.append(MatchStub(round=1, bracket_pos=pos, home_team_id=home, away_team_id=away))
            carry.append(SlotRef(1, pos))
        elif home is None and away is None:
            # Unreachable for seeded fields padded to the next power of two
            raise ValueError(f"Round 1 position {pos} has no entrant on either side")
        else:
            carry.append(home if home is not None else away)

    round_no = 2
    while len(carry) > 1:
        advancing: list[Entry] = []
        for i in range(0, len(carry), 2):
            stub = MatchStub(round=round_no, bracket_pos=i // 2 + 1)
            _assign(stub, "home", carry[i])
            _assign(stub, "away", carry[i + 1])
            stubs.append(stub)
            advancing.append(SlotRef(round_no, stub.bracket_pos))
        carry = advancing
        round_no += 1

    return stubs


def _assign(stub: MatchStub, side: str, entry: Entry) -> None:
    if isinstance(entry, SlotRef):
        setattr(stub, f"{side}_source", entry)
    else:
        setattr(stub, f"{side}_team_id", entry)
