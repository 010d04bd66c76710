"""
Tests for the Bracket Graph Synchronizer

Tests loading a stored bracket onto the canvas and committing edits back
as stable pointers.
"""

import itertools

import pytest
from engine.bracket_graph import BracketGraph, GraphNode, bucket_positions
from engine.errors import GuardViolationError, NotFoundError
from models.match import MatchStatus


@pytest.fixture
def knockout(build):
    tournament = build.tournament()
    stage = build.knockout(tournament, ordering=1)
    build.bracket(stage, [1, 2, 3, 4])
    return stage


@pytest.fixture
def graph(store, knockout):
    counter = itertools.count(1)
    graph = BracketGraph(store, knockout.id, id_factory=lambda: f"N-{next(counter)}")
    graph.load()
    return graph


class TestLoad:
    """Tests for laying out a stored bracket."""

    def test_nodes_and_edges(self, graph):
        """Test every match becomes a node and every pointer an edge."""
        assert set(graph.nodes) == {"R1-B1", "R1-B2", "R2-B1"}
        assert sorted(graph.edges) == [("R1-B1", "R2-B1"), ("R1-B2", "R2-B1")]

    def test_grid_coordinates(self, graph):
        """Test nodes sit on the configured grid."""
        node = graph.nodes["R2-B1"]

        assert (node.x, node.y) == graph.grid_point(2, 1)
        assert graph.grid_point(2, 1) == (280, 60)
        assert (node.round, node.bracket_pos) == (2, 1)

    def test_commit_after_load_changes_nothing(self, graph, recorder):
        """Test a freshly loaded canvas matches storage."""
        committed = recorder()
        graph.links_committed.connect(committed)

        assert graph.commit() == []
        assert len(committed) == 0

    def test_missing_stage(self, store):
        """Test loading an unknown stage raises NotFoundError."""
        with pytest.raises(NotFoundError):
            BracketGraph(store, 404).load()

    def test_off_canvas_pointer_is_kept(self, build, store, knockout, find_match):
        """Test a pointer to a position with no box survives a commit."""
        build.match(knockout, round=2, bracket_pos=2, home_source=(1, 5, "W"))
        graph = BracketGraph(store, knockout.id)
        graph.load()

        assert graph.commit() == []
        assert find_match(knockout.id, 2, 2).source("home") == (1, 5, "W")


class TestLinks:
    """Tests for connecting and disconnecting boxes."""

    def test_disconnect_clears_pointer(self, graph, knockout, find_match, recorder):
        """Test removing a link clears the matching side only."""
        committed = recorder()
        graph.links_committed.connect(committed)

        changes = graph.disconnect("R1-B2", "R2-B1")

        assert [(c.field, c.before, c.after) for c in changes] == [("away_source", (1, 2, "W"), None)]
        final = find_match(knockout.id, 2, 1)
        assert final.source("home") == (1, 1, "W")
        assert final.source("away") is None
        stage_id, payload = committed.calls[0]
        assert stage_id == knockout.id
        assert payload[0]["field"] == "away_source"

    def test_reconnect_restores_pointer(self, graph, knockout, find_match):
        """Test linking back writes the pointer again."""
        graph.disconnect("R1-B2", "R2-B1")

        graph.connect("R1-B2", "R2-B1")

        assert find_match(knockout.id, 2, 1).source("away") == (1, 2, "W")

    def test_changed_pointer_drops_team(self, store, graph, knockout, find_match):
        """Test a side whose pointer changes loses its team."""
        final = find_match(knockout.id, 2, 1)
        store.update_match(final.id, home_team_id=1)

        graph.disconnect("R1-B1", "R2-B1")

        final = find_match(knockout.id, 2, 1)
        assert final.home_team_id is None
        assert final.source("home") == (1, 2, "W")
        assert final.source("away") is None

    def test_sides_follow_position(self, graph, knockout, find_match):
        """Test the lower position is home whatever order links are drawn in."""
        graph.disconnect("R1-B1", "R2-B1")
        graph.disconnect("R1-B2", "R2-B1")

        graph.connect("R1-B2", "R2-B1")
        graph.connect("R1-B1", "R2-B1")

        final = find_match(knockout.id, 2, 1)
        assert final.source("home") == (1, 1, "W")
        assert final.source("away") == (1, 2, "W")

    def test_loser_outcome_follows_moved_parent(self, build, store, knockout, find_match):
        """Test a moved parent keeps the outcome its child asked for."""
        build.match(knockout, round=2, bracket_pos=2, home_source=(1, 1, "L"), away_source=(1, 2, "L"))
        graph = BracketGraph(store, knockout.id)
        graph.load()

        graph.set_node_meta("R1-B2", 1, 3)

        third = find_match(knockout.id, 2, 2)
        assert third.source("home") == (1, 1, "L")
        assert third.source("away") == (1, 3, "L")
        assert find_match(knockout.id, 2, 1).source("away") == (1, 3, "W")

    def test_link_within_a_round_refused(self, graph):
        """Test links must join consecutive rounds."""
        with pytest.raises(GuardViolationError):
            graph.connect("R1-B1", "R1-B2")

    def test_link_skipping_a_round_refused(self, graph):
        """Test a round-1 box cannot feed round 3."""
        node_id = graph.add_node(*graph.grid_point(3, 1), round_no=3, bracket_pos=1)

        with pytest.raises(GuardViolationError):
            graph.connect("R1-B1", node_id)

    def test_third_input_refused(self, graph):
        """Test a box takes at most two inputs."""
        node_id = graph.add_node(*graph.grid_point(1, 3), round_no=1, bracket_pos=3)

        with pytest.raises(GuardViolationError):
            graph.connect(node_id, "R2-B1")

    def test_existing_link_is_noop(self, graph):
        """Test connecting an existing link writes nothing."""
        assert graph.connect("R1-B1", "R2-B1") == []

    def test_finished_match_not_rewritten(self, store, graph, knockout, find_match):
        """Test canvas edits never touch a finished match."""
        final = find_match(knockout.id, 2, 1)
        store.update_match(final.id, status=MatchStatus.FINISHED)

        assert graph.disconnect("R1-B2", "R2-B1") == []
        assert find_match(knockout.id, 2, 1).source("away") == (1, 2, "W")


class TestNodes:
    """Tests for adding, moving and removing boxes."""

    def test_add_node_with_meta(self, store, graph, knockout, find_match):
        """Test a new box becomes a match row at its declared position."""
        node_id = graph.add_node(*graph.grid_point(3, 1), round_no=3, bracket_pos=1)

        assert node_id == "N-1"
        match = find_match(knockout.id, 3, 1)
        assert graph.nodes[node_id].match_id == match.id

    def test_add_node_infers_position(self, graph, knockout, find_match):
        """Test a box without metadata takes its canvas column and row."""
        node_id = graph.add_node(*graph.grid_point(3, 1))

        assert graph.effective_position(node_id) == (3, 1)
        assert find_match(knockout.id, 3, 1).id == graph.nodes[node_id].match_id

    def test_default_ids_are_unique(self, store, knockout):
        """Test graphs without an id factory still hand out distinct ids."""
        graph = BracketGraph(store, knockout.id)
        graph.load()

        first = graph.add_node(*graph.grid_point(1, 3), round_no=1, bracket_pos=3)
        second = graph.add_node(*graph.grid_point(1, 4), round_no=1, bracket_pos=4)

        assert first != second
        assert first.startswith("N-") and second.startswith("N-")

    def test_duplicate_position_refused(self, graph):
        """Test two boxes may not share a round and position."""
        with pytest.raises(GuardViolationError):
            graph.set_node_meta("R1-B2", 1, 1)

        assert graph.effective_position("R1-B2") == (1, 2)

    def test_move_by_metadata(self, graph, knockout, find_match):
        """Test changing a box's position moves its match row."""
        changes = graph.set_node_meta("R2-B1", 2, 2)

        assert [(c.field, c.before, c.after) for c in changes] == [("position", (2, 1), (2, 2))]
        assert find_match(knockout.id, 2, 2).source("home") == (1, 1, "W")

    def test_moving_a_parent_repoints_its_child(self, graph, knockout, find_match):
        """Test a child follows its parent to the new position."""
        graph.set_node_meta("R1-B2", 1, 3)

        final = find_match(knockout.id, 2, 1)
        assert final.source("home") == (1, 1, "W")
        assert final.source("away") == (1, 3, "W")

    def test_move_node_without_meta(self, graph, knockout, find_match):
        """Test dragging a box without metadata re-buckets it."""
        node_id = graph.add_node(*graph.grid_point(3, 1))

        graph.move_node(node_id, *graph.grid_point(3, 2))

        assert graph.effective_position(node_id) == (3, 1)

    def test_soft_remove(self, store, graph, knockout, find_match, recorder):
        """Test a soft remove clears the match and its links but keeps the row."""
        removed = recorder()
        graph.node_removed.connect(removed)
        semi = find_match(knockout.id, 1, 2)

        graph.remove_node("R1-B2")

        cleared = store.get_match(semi.id)
        assert (cleared.home_team_id, cleared.away_team_id) == (None, None)
        assert find_match(knockout.id, 2, 1).source("away") is None
        assert graph.nodes["R1-B2"].cleared
        assert all("R1-B2" not in edge for edge in graph.edges)
        assert removed.calls == [("R1-B2", False)]

    def test_hard_remove(self, store, graph, knockout, find_match):
        """Test a hard remove deletes the match row and the box."""
        semi = find_match(knockout.id, 1, 2)

        graph.remove_node("R1-B2", hard=True)

        assert store.get_match(semi.id) is None
        assert "R1-B2" not in graph.nodes
        assert find_match(knockout.id, 2, 1).source("away") is None

    def test_finished_match_cannot_be_removed(self, store, graph, knockout, find_match):
        """Test finished matches are protected."""
        semi = find_match(knockout.id, 1, 1)
        store.update_match(semi.id, home_score=1, away_score=0, status=MatchStatus.FINISHED)

        with pytest.raises(GuardViolationError):
            graph.remove_node("R1-B1")

    def test_unknown_node(self, graph):
        """Test edits of unknown boxes raise NotFoundError."""
        with pytest.raises(NotFoundError):
            graph.move_node("R9-B9", 0, 0)


class TestBucketPositions:
    """Tests for inferring positions from coordinates."""

    def test_columns_and_rows(self):
        """Test x splits rounds and y orders positions."""
        nodes = [
            GraphNode("a", 0, 100),
            GraphNode("b", 40, 0),
            GraphNode("c", 300, 50),
        ]

        assert bucket_positions(nodes, gap=120) == {"b": (1, 1), "a": (1, 2), "c": (2, 1)}
