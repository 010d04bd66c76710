"""
Bracket Graph Synchronizer

Keeps a free-form node/edge layout (the bracket designer canvas) in step
with the stored (round, bracket_pos) bracket. Loading lays stored matches
out on a grid; every edit is committed back as stable pointers, writing
only what actually changed.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Callable, Optional

from PySide6.QtCore import QObject, Signal

from config import GRID_SETTINGS, GridSettings
from engine.bracket_builder import MatchStub, SlotRef
from engine.errors import GuardViolationError, NotFoundError
from models.match import SIDES, Outcome

if TYPE_CHECKING:
    from services.storage import ProgressionStore


logger = logging.getLogger(__name__)

Position = tuple[int, int]


@dataclass
class GraphNode:
    """A match box on the designer canvas."""
    node_id: str
    x: float
    y: float
    round: Optional[int] = None
    bracket_pos: Optional[int] = None
    match_id: Optional[int] = None
    cleared: bool = False

    @property
    def has_meta(self) -> bool:
        return self.round is not None and self.bracket_pos is not None


@dataclass(frozen=True)
class LinkChange:
    """One persisted difference between the canvas and storage."""
    node_id: str
    match_id: Optional[int]
    field: str  # "created", "position", "home_source" or "away_source"
    before: Optional[tuple]
    after: Optional[tuple]


def bucket_positions(nodes: list[GraphNode], gap: int) -> dict[str, Position]:
    """
    Infer (round, bracket_pos) from canvas coordinates.

    Nodes sorted by x start a new column (round) when they sit more than
    `gap` to the right of the column's first node; inside a column the
    position follows y.
    """
    columns: list[list[GraphNode]] = []
    for node in sorted(nodes, key=lambda n: (n.x, n.y, n.node_id)):
        if not columns or abs(node.x - columns[-1][0].x) > gap:
            columns.append([node])
        else:
            columns[-1].append(node)

    positions = {}
    for round_no, column in enumerate(columns, start=1):
        for pos, node in enumerate(sorted(column, key=lambda n: (n.y, n.node_id)), start=1):
            positions[node.node_id] = (round_no, pos)
    return positions


class BracketGraph(QObject):
    """
    Canvas model for one knockout stage.

    Usage:
        graph = BracketGraph(store, stage_id)
        graph.load()
        graph.connect("R1-B1", "R2-B1")
        graph.remove_node("R1-B2")              # soft: clear teams and links
        graph.remove_node("R1-B2", hard=True)   # delete the match row
    """

    links_committed = Signal(int, list)  # stage_id, [LinkChange as dict]
    node_removed = Signal(str, bool)     # node_id, hard

    def __init__(self, store: "ProgressionStore", stage_id: int,
                 grid: GridSettings = GRID_SETTINGS,
                 id_factory: Optional[Callable[[], str]] = None):
        super().__init__()
        self.store = store
        self.stage_id = stage_id
        self.grid = grid
        self._new_id = id_factory or (lambda: f"N-{uuid.uuid4().hex[:12]}")

        self.nodes: dict[str, GraphNode] = {}
        self.edges: list[tuple[str, str]] = []
        self.rejected: list[tuple[str, str]] = []
        self._loading = False

    # ============ Load ============

    def grid_point(self, round_no: int, bracket_pos: int) -> tuple[int, int]:
        """Canvas coordinates of a (round, bracket_pos) cell."""
        return (self.grid.x0 + (round_no - 1) * self.grid.col_w,
                self.grid.y0 + (bracket_pos - 1) * self.grid.row_h)

    def load(self) -> None:
        """Rebuild the canvas from the stored bracket."""
        self._loading = True
        try:
            if self.store.get_stage(self.stage_id) is None:
                raise NotFoundError("stage", self.stage_id)

            matches = [m for m in self.store.list_matches(self.stage_id) if m.is_bracket_match]
            nodes: dict[str, GraphNode] = {}
            by_position: dict[Position, str] = {}
            for match in matches:
                node_id = f"R{match.round}-B{match.bracket_pos}"
                x, y = self.grid_point(match.round, match.bracket_pos)
                nodes[node_id] = GraphNode(node_id, x, y, match.round, match.bracket_pos, match.id)
                by_position[(match.round, match.bracket_pos)] = node_id

            edges = []
            for match in matches:
                target = by_position[(match.round, match.bracket_pos)]
                for side in SIDES:
                    source = match.source(side)
                    if source is not None and source[:2] in by_position:
                        edges.append((by_position[source[:2]], target))

            self.nodes = nodes
            self.edges = edges
            self.rejected = []
        finally:
            self._loading = False

        logger.debug("Loaded %d node(s) and %d edge(s) for stage %s",
                     len(self.nodes), len(self.edges), self.stage_id)

    # ============ Edits ============

    def add_node(self, x: float, y: float, round_no: Optional[int] = None,
                 bracket_pos: Optional[int] = None) -> str:
        """Add a match box and commit it as a new match row."""
        node_id = self._new_id()
        if node_id in self.nodes:
            raise GuardViolationError(f"Node id {node_id} is already in use")
        self.nodes[node_id] = GraphNode(node_id, x, y, round_no, bracket_pos)
        try:
            self.commit()
        except GuardViolationError:
            del self.nodes[node_id]
            raise
        return node_id

    def move_node(self, node_id: str, x: float, y: float) -> list[LinkChange]:
        node = self._node(node_id)
        node.x, node.y = x, y
        return self.commit()

    def set_node_meta(self, node_id: str, round_no: Optional[int],
                      bracket_pos: Optional[int]) -> list[LinkChange]:
        node = self._node(node_id)
        previous = node.round, node.bracket_pos
        node.round, node.bracket_pos = round_no, bracket_pos
        try:
            return self.commit()
        except GuardViolationError:
            node.round, node.bracket_pos = previous
            raise

    def connect(self, source_id: str, target_id: str) -> list[LinkChange]:
        """
        Link source's winner into target.

        Raises:
            GuardViolationError: if the link skips a round, points backwards,
                or target already has two inputs
        """
        self._node(source_id)
        self._node(target_id)
        if (source_id, target_id) in self.edges:
            return []

        positions = self.positions()
        source_round, target_round = positions[source_id][0], positions[target_id][0]
        if source_round != target_round - 1:
            raise GuardViolationError(
                f"Cannot link {source_id} (round {source_round}) to {target_id} "
                f"(round {target_round}): links must join consecutive rounds"
            )
        incoming = [e for e in self.edges if e[1] == target_id]
        if len(incoming) >= self.grid.max_parents:
            raise GuardViolationError(f"{target_id} already has {len(incoming)} inputs")

        self.edges.append((source_id, target_id))
        return self.commit()

    def disconnect(self, source_id: str, target_id: str) -> list[LinkChange]:
        if (source_id, target_id) not in self.edges:
            return []
        self.edges.remove((source_id, target_id))
        return self.commit()

    def remove_node(self, node_id: str, hard: bool = False) -> list[LinkChange]:
        """
        Delete a match box in two steps.

        Soft (default): clear the match's teams and pointers and drop every
        link touching it; the row and its (round, bracket_pos) stay so the
        box can be relinked. Hard: also delete the row and the box. A hard
        delete of a box that was never soft-cleared clears it first.

        Raises:
            GuardViolationError: if the match is already finished
        """
        node = self._node(node_id)
        match = self.store.get_match(node.match_id) if node.match_id is not None else None
        if match is not None and match.is_finished:
            raise GuardViolationError(f"Match {match.id} is finished and cannot be removed")

        self.edges = [e for e in self.edges if node_id not in e]
        changes: list[LinkChange] = []
        with self.store.atomic():
            if not node.cleared:
                if match is not None:
                    self.store.update_match(match.id, home_team_id=None, away_team_id=None,
                                            home_source=None, away_source=None)
                node.cleared = True
                # Dependents drop their links while the box is still on the canvas
                changes += self.commit()

            if hard:
                if match is not None:
                    self.store.delete_match(match.id)
                del self.nodes[node_id]
                changes += self.commit()

        self.node_removed.emit(node_id, hard)
        return changes

    # ============ Derivation ============

    def positions(self) -> dict[str, Position]:
        """
        Effective (round, bracket_pos) of every node.

        Metadata wins; a node without it takes its canvas bucket, moved down
        to the next free position when a node with metadata holds that cell.
        """
        inferred = bucket_positions(list(self.nodes.values()), self.grid.column_gap)
        positions = {
            node_id: (node.round, node.bracket_pos)
            for node_id, node in self.nodes.items() if node.has_meta
        }
        taken = set(positions.values())
        for node_id in sorted((n for n in self.nodes if n not in positions), key=inferred.get):
            round_no, pos = inferred[node_id]
            while (round_no, pos) in taken:
                pos += 1
            positions[node_id] = (round_no, pos)
            taken.add((round_no, pos))
        return positions

    def effective_position(self, node_id: str) -> Position:
        self._node(node_id)
        return self.positions()[node_id]

    def derive_pointers(self, stored: Optional[dict[str, dict]] = None,
                        known: Optional[dict[Position, str]] = None) -> dict[str, dict]:
        """
        Home/away pointers each node should have.

        Args:
            stored: {node_id: {"home": pointer, "away": pointer}} currently
                persisted; a linked parent keeps its stored outcome and a
                pointer to a position off the canvas keeps its side
            known: {stored position: node_id} for boxes already saved, so a
                pointer to where a moved box used to be follows the box

        Returns:
            {node_id: {"home": (round, pos, outcome) | None, "away": ...}}
        """
        stored = stored or {}
        known = known or {}
        positions = self.positions()
        now_at = {old: positions[n] for old, n in known.items() if n in positions}
        on_canvas = set(positions.values()) | set(known)

        parents: dict[str, list[str]] = defaultdict(list)
        self.rejected = []
        for source_id, target_id in self.edges:
            if positions[source_id][0] != positions[target_id][0] - 1:
                logger.warning("Dropping link %s -> %s: it skips a round", source_id, target_id)
                self.rejected.append((source_id, target_id))
                continue
            parents[target_id].append(source_id)

        pointers = {}
        for node_id in self.nodes:
            current = stored.get(node_id, {})
            keys = [positions[p] for p in sorted(parents[node_id], key=lambda p: positions[p][1])]
            if len(keys) > self.grid.max_parents:
                logger.warning("%s has %d inputs; keeping the first %d",
                               node_id, len(keys), self.grid.max_parents)
                keys = keys[:self.grid.max_parents]
            pointers[node_id] = _assign_sides(keys, current, on_canvas, now_at)
        return pointers

    # ============ Commit ============

    def commit(self) -> list[LinkChange]:
        """
        Persist the canvas: new boxes become match rows, moved boxes and
        changed pointers update theirs. A side whose pointer changes loses
        its team. Finished matches are never rewritten.

        Returns:
            The changes written (empty while a load is in progress)
        """
        if self._loading:
            return []

        positions = self.positions()
        duplicates = [p for p in set(positions.values()) if list(positions.values()).count(p) > 1]
        if duplicates:
            raise GuardViolationError(f"Several boxes share round/position {sorted(duplicates)}")

        changes: list[LinkChange] = []
        with self.store.atomic():
            stage = self.store.get_stage(self.stage_id)
            if stage is None:
                raise NotFoundError("stage", self.stage_id)

            stored_matches = {m.id: m for m in self.store.list_matches(self.stage_id)}
            node_matches = {
                node_id: stored_matches.get(node.match_id)
                for node_id, node in self.nodes.items()
            }
            stored = {
                node_id: {side: match.source(side) for side in SIDES}
                for node_id, match in node_matches.items() if match is not None
            }
            known = {
                (m.round, m.bracket_pos): node_id
                for node_id, m in node_matches.items() if m is not None
            }
            desired = self.derive_pointers(stored, known)

            for node_id in sorted(self.nodes, key=lambda n: positions[n]):
                node = self.nodes[node_id]
                round_no, pos = positions[node_id]
                match = node_matches[node_id]
                want = desired[node_id]

                if match is None:
                    created = self.store.insert_matches(stage.tournament_id, self.stage_id, [MatchStub(
                        round=round_no,
                        bracket_pos=pos,
                        home_source=_ref(want["home"]),
                        away_source=_ref(want["away"]),
                    )])[0]
                    node.match_id = created.id
                    changes.append(LinkChange(node_id, created.id, "created", None, (round_no, pos)))
                    continue

                fields = {}
                pending = []
                if (match.round, match.bracket_pos) != (round_no, pos):
                    fields["round"], fields["bracket_pos"] = round_no, pos
                    pending.append(LinkChange(node_id, match.id, "position",
                                              (match.round, match.bracket_pos), (round_no, pos)))
                for side in SIDES:
                    before = match.source(side)
                    if before == want[side]:
                        continue
                    fields[f"{side}_source"] = want[side]
                    if match.team(side) is not None:
                        fields[f"{side}_team_id"] = None
                    pending.append(LinkChange(node_id, match.id, f"{side}_source", before, want[side]))

                if not fields:
                    continue
                if match.is_finished:
                    logger.warning("Match %s is finished; canvas change to %s not saved", match.id, node_id)
                    continue
                self.store.update_match(match.id, **fields)
                changes.extend(pending)

        if changes:
            logger.info("Committed %d bracket change(s) for stage %s", len(changes), self.stage_id)
            self.links_committed.emit(self.stage_id, [asdict(c) for c in changes])
        return changes

    def _node(self, node_id: str) -> GraphNode:
        node = self.nodes.get(node_id)
        if node is None:
            raise NotFoundError("node", node_id)
        return node


def _assign_sides(keys: list[Position], current: dict, on_canvas: set,
                  now_at: dict[Position, Position]) -> dict:
    """
    Turn ordered parent positions into home/away pointers.

    The lowest linked position is home and the next is away. A linked parent
    keeps the outcome its stored pointer asked for; a stored pointer to a
    position off the canvas stays on its side when no linked parent takes it.
    """
    outcomes = {}
    for pointer in current.values():
        if pointer is not None:
            outcomes[now_at.get(pointer[:2], pointer[:2])] = pointer[2]

    wanted = {side: None for side in SIDES}
    for side, key in zip(SIDES, keys):
        wanted[side] = (key[0], key[1], outcomes.get(key) or Outcome.WINNER.value)

    for side in SIDES:
        pointer = current.get(side)
        if wanted[side] is None and pointer is not None and pointer[:2] not in on_canvas:
            wanted[side] = pointer
    return wanted


def _ref(pointer: Optional[tuple]) -> Optional[SlotRef]:
    return SlotRef(*pointer) if pointer is not None else None
