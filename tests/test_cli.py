"""Tests for the operator CLI."""

from typer.testing import CliRunner

from delivery_lifecycle.cli import app

runner = CliRunner()


class TestTransitionsCommand:
    def test_lists_the_table(self):
        result = runner.invoke(app, ["transitions"])

        assert result.exit_code == 0
        assert "Status Transitions" in result.output

    def test_filters_by_status(self):
        result = runner.invoke(app, ["transitions", "pending"])

        assert result.exit_code == 0
        assert "start_work" in result.output
        assert "submit_for_review" not in result.output

    def test_unknown_status(self):
        result = runner.invoke(app, ["transitions", "archived"])

        assert result.exit_code == 1
        assert "Unknown status" in result.output
