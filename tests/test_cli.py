"""
Tests for the Leaseguard command line interface.
"""

import json

import pytest

from leaseguard.cli import load_config, main


class TestCLI:
    """Tests for CLI commands against a SQLite store."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_load_config_forces_sqlite(self, tmp_path):
        config = load_config(None, tmp_path / "cli.db")

        assert config.store.backend == "sqlite"
        assert config.store_path() == tmp_path / "cli.db"

    def test_seed_and_list_workflows(self, tmp_path, capsys):
        """Test seeded workflows persist between invocations."""
        db = str(tmp_path / "cli.db")

        assert main(["--db", db, "workflows", "seed"]) == 0
        created = json.loads(capsys.readouterr().out)
        assert len(created) == 3

        assert main(["--db", db, "workflows", "seed"]) == 0
        assert json.loads(capsys.readouterr().out) == []

        assert main(["--db", db, "workflows", "list"]) == 0
        listing = capsys.readouterr().out
        for workflow in created:
            assert workflow["id"] in listing

    def test_empty_queues(self, tmp_path, capsys):
        db = str(tmp_path / "cli.db")

        assert main(["--db", db, "approvals", "pending"]) == 0
        assert json.loads(capsys.readouterr().out) == []

        assert main(["--db", db, "executions", "list"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_errors_exit_with_status_two(self, tmp_path, capsys):
        """Test orchestration errors are printed as JSON."""
        db = str(tmp_path / "cli.db")

        assert main(["--db", db, "executions", "show", "missing"]) == 2
        error = json.loads(capsys.readouterr().out)
        assert error["error"] == "ExecutionNotFoundError"

        assert main(["--db", db, "approvals", "respond", "missing", "approve", "--by", "me"]) == 2
        error = json.loads(capsys.readouterr().out)
        assert error["error"] == "ApprovalNotFoundError"

    def test_status_filter_is_validated(self, tmp_path, capsys):
        """Test unknown execution statuses are rejected by the parser."""
        db = str(tmp_path / "cli.db")

        with pytest.raises(SystemExit) as exc_info:
            main(["--db", db, "executions", "list", "--status", "bogus"])
        assert exc_info.value.code == 2
        assert "invalid choice" in capsys.readouterr().err

        assert main(["--db", db, "executions", "list", "--status", "failed"]) == 0
        assert json.loads(capsys.readouterr().out) == []
