"""End-to-end tests for the click command line over a SQLite store."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from habitkeeper import cli


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("HABITKEEPER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("HABITKEEPER_STORE", "sql")
    monkeypatch.setenv("HABITKEEPER_STREAK_SOURCE", "history")
    monkeypatch.delenv("HABITKEEPER_DATABASE_URL", raising=False)
    monkeypatch.setattr(cli, "setup_logging", lambda config: None)
    return CliRunner()


def _invoke(runner, *args, input=None):
    return runner.invoke(cli.main, list(args), input=input)


def test_empty_list(runner):
    result = _invoke(runner, "list")
    assert result.exit_code == 0, result.output
    assert "No habits yet" in result.output


def test_add_complete_and_undo(runner):
    added = _invoke(runner, "add", "Read 20 pages", "-d", "Before bed")
    assert added.exit_code == 0, added.output
    assert "Created habit 1." in added.output

    listed = _invoke(runner, "list")
    assert "[ ]    1  Read 20 pages (daily) - start a streak!" in listed.output
    assert "Before bed" in listed.output

    done = _invoke(runner, "done", "1")
    assert done.exit_code == 0, done.output
    assert "Nice! 1 day streak." in done.output

    again = _invoke(runner, "done", "1")
    assert again.exit_code == 0
    assert "already completed" in again.output

    listed = _invoke(runner, "list")
    assert "[x]    1  Read 20 pages (daily) - 1 day streak" in listed.output

    undone = _invoke(runner, "undo", "1")
    assert undone.exit_code == 0
    assert "Completion removed." in undone.output
    assert "[ ]" in _invoke(runner, "list").output


def test_add_rejects_blank_title(runner):
    result = _invoke(runner, "add", "   ")
    assert result.exit_code != 0
    assert "Title is required" in result.output


def test_edit_habit(runner):
    _invoke(runner, "add", "Run")
    edited = _invoke(runner, "edit", "1", "--title", "Run 5k", "-f", "weekly")
    assert edited.exit_code == 0, edited.output
    assert "Run 5k (weekly)" in _invoke(runner, "list").output

    nothing = _invoke(runner, "edit", "1")
    assert nothing.exit_code != 0


def test_unknown_habit_fails(runner):
    result = _invoke(runner, "done", "42")
    assert result.exit_code == 1
    assert "Habit 42 not found." in result.output


def test_remove_asks_for_confirmation(runner):
    _invoke(runner, "add", "Meditate")

    declined = _invoke(runner, "rm", "1", input="n\n")
    assert declined.exit_code == 1
    assert "Meditate" in _invoke(runner, "list").output

    removed = _invoke(runner, "rm", "1", "--yes")
    assert removed.exit_code == 0
    assert "Habit deleted." in removed.output
    assert "No habits yet" in _invoke(runner, "list").output


def test_summary(runner):
    _invoke(runner, "add", "Stretch")
    _invoke(runner, "add", "Journal")
    _invoke(runner, "done", "2")

    result = _invoke(runner, "summary")

    assert result.exit_code == 0, result.output
    assert "Completed 1/2 due habits (50%)" in result.output
    assert "Longest streak: 1 day (Journal)" in result.output


def test_registered_users_are_isolated(runner):
    _invoke(runner, "add", "Local habit")

    created = _invoke(runner, "register", "alice", input="hunter2hunter2\nhunter2hunter2\n")
    assert created.exit_code == 0, created.output
    assert "Created user alice." in created.output

    listed = _invoke(runner, "--user", "alice", "list", input="hunter2hunter2\n")
    assert listed.exit_code == 0, listed.output
    assert "No habits yet" in listed.output

    foreign = _invoke(runner, "--user", "alice", "done", "1", input="hunter2hunter2\n")
    assert foreign.exit_code == 1

    denied = _invoke(runner, "--user", "alice", "list", input="wrong-password\n")
    assert denied.exit_code == 1
    assert "Invalid username or password." in denied.output
