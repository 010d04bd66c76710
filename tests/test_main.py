"""
Tests for the command line entry point
"""

import json

import pytest
from app import TourneyProgressionApp
from main import create_parser, run


@pytest.fixture
def app(session_factory):
    return TourneyProgressionApp(session_factory)


class TestParser:
    """Tests for argument parsing."""

    def test_finalize_arguments(self):
        """Test finalize takes a match id and two scores."""
        args = create_parser().parse_args(["finalize", "7", "2", "1"])

        assert (args.command, args.match_id, args.home_score, args.away_score) == ("finalize", 7, 2, 1)

    def test_reseed_flag(self):
        """Test the destructive flag defaults off."""
        parser = create_parser()

        assert parser.parse_args(["reseed", "3"]).destructive is False
        assert parser.parse_args(["reseed", "3", "--destructive"]).destructive is True

    def test_command_required(self):
        """Test a command must be given."""
        with pytest.raises(SystemExit):
            create_parser().parse_args([])


class TestRun:
    """Tests for executing commands."""

    def test_finalize_prints_report(self, app, make_builder, capsys):
        """Test finalize prints the progression report as JSON."""
        build = make_builder(app.store)
        tournament = build.tournament()
        league = build.league(tournament)
        build.participants(league, [1, 2])
        match = build.match(league, home=1, away=2, matchday=1)

        code = run(create_parser().parse_args(["finalize", str(match.id), "1", "0"]), app)

        report = json.loads(capsys.readouterr().out)
        assert code == 0
        assert report["match_id"] == match.id
        assert report["ok"] is True

    def test_standings_prints_rows(self, app, make_builder, capsys):
        """Test standings prints one row per team."""
        build = make_builder(app.store)
        tournament = build.tournament()
        league = build.league(tournament)
        build.participants(league, [5, 6])
        app.engine.recompute_standings(league.id)

        code = run(create_parser().parse_args(["standings", str(league.id)]), app)

        rows = json.loads(capsys.readouterr().out)
        assert code == 0
        assert [row["team_id"] for row in rows] == [5, 6]

    def test_failed_reseed_exit_code(self, app, capsys):
        """Test a failed reseed exits non-zero."""
        code = run(create_parser().parse_args(["reseed", "404"]), app)

        assert code == 1
        assert json.loads(capsys.readouterr().out)["status"] == "failed"

    def test_unknown_match_reports_failure(self, app, capsys):
        """Test finalizing a missing match prints a failed report and exits 1."""
        code = run(create_parser().parse_args(["finalize", "999", "1", "0"]), app)

        report = json.loads(capsys.readouterr().out)
        assert code == 1
        assert report["ok"] is False
        assert report["steps"][0]["step"] == "load"
        assert "999" in report["steps"][0]["detail"]

    def test_negative_score_reports_failure(self, app, make_builder, capsys):
        """Test a negative score is refused with a structured result."""
        build = make_builder(app.store)
        tournament = build.tournament()
        league = build.league(tournament)
        build.participants(league, [1, 2])
        match = build.match(league, home=1, away=2, matchday=1)

        code = run(create_parser().parse_args(["finalize", str(match.id), "-1", "0"]), app)

        report = json.loads(capsys.readouterr().out)
        assert code == 1
        assert report["steps"][0]["status"] == "failed"
        assert app.store.get_match(match.id).is_finished is False
