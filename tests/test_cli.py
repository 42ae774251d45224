"""
Tests for the SimpleScrum CLI.

Each command opens the local owner's session against a temporary SQLite
database (set up by the SIMPLESCRUM_DB_PATH fixture in conftest).
"""

import json

import pytest
from click.testing import CliRunner

from simplescrum.cli.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, *args: str):
    return runner.invoke(cli, list(args), obj={})


def invoke_json(runner: CliRunner, *args: str):
    result = invoke(runner, "--json", *args)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_version(runner: CliRunner) -> None:
    result = invoke(runner, "version")
    assert result.exit_code == 0
    assert "SimpleScrum v" in result.output


def test_project_commands(runner: CliRunner) -> None:
    result = invoke(runner, "project", "list")
    assert result.exit_code == 0
    assert "No projects found" in result.output

    created = invoke_json(runner, "project", "create", "Webshop", "--goal", "Sell shoes")
    assert created["name"] == "Webshop"

    result = invoke(runner, "project", "update", created["id"], "--name", "Shoe shop")
    assert result.exit_code == 0
    assert "✓ Updated project: Shoe shop" in result.output

    projects = invoke_json(runner, "project", "list")
    assert [p["name"] for p in projects] == ["Shoe shop"]


def test_unknown_project_exits_with_error(runner: CliRunner) -> None:
    result = invoke(runner, "project", "show", "project-missing")
    assert result.exit_code == 1
    assert "✗ Error" in result.output


def test_story_points_must_be_on_the_scale(runner: CliRunner) -> None:
    project = invoke_json(runner, "project", "create", "Webshop")

    result = invoke(runner, "backlog", "add", project["id"], "Odd", "--points", "4")

    assert result.exit_code == 2
    assert invoke_json(runner, "backlog", "list", project["id"]) == []


def test_backlog_commands(runner: CliRunner) -> None:
    project = invoke_json(runner, "project", "create", "Webshop")
    first = invoke_json(runner, "backlog", "add", project["id"], "Login", "-p", "5", "--ready")
    second = invoke_json(runner, "backlog", "add", project["id"], "Search", "-p", "8")

    result = invoke(runner, "backlog", "move", project["id"], second["id"], "1")
    assert result.exit_code == 0
    assert "2 items moved" in result.output

    items = invoke_json(runner, "backlog", "list", project["id"])
    assert [i["id"] for i in items] == [second["id"], first["id"]]
    assert [i["label"] for i in items] == ["PBI-002", "PBI-001"]
    assert all(i["status"] == "to_do" for i in items)

    refined = invoke_json(runner, "backlog", "refine", second["id"])
    assert refined["refinement_status"] == "ready"

    overridden = invoke_json(runner, "backlog", "status", first["id"], "done")
    assert overridden["status"] == "done"
    restored = invoke_json(runner, "backlog", "status", first["id"], "auto")
    assert restored["status"] == "to_do"
    assert restored["status_override"] is None

    board = invoke_json(runner, "backlog", "board", project["id"])
    assert board["to_do"]["story_points"] == 13


def test_sprint_cycle(runner: CliRunner) -> None:
    project = invoke_json(runner, "project", "create", "Webshop")
    login = invoke_json(runner, "backlog", "add", project["id"], "Login", "-p", "5", "--ready")
    vague = invoke_json(runner, "backlog", "add", project["id"], "Wishlist", "-p", "3")

    result = invoke(runner, "sprint", "plan", project["id"], "--pbi", vague["id"])
    assert result.exit_code == 2
    assert "not ready" in result.output

    result = invoke(runner, "sprint", "plan", project["id"], "--capacity", "3", "--pbi", login["id"])
    assert result.exit_code == 0, result.output
    assert "Over capacity by 2 SP" in result.output

    sprint = invoke_json(runner, "sprint", "list", project["id"])[0]
    assert sprint["committed_sp"] == 5
    assert sprint["status"] == "active"

    task = invoke_json(runner, "task", "add", sprint["id"], "Build form", "--pbi", login["id"], "--hours", "2")
    assert task["task_id"] == "T-001-1"
    result = invoke(runner, "task", "move", task["id"], "done")
    assert "T-001-1 → done" in result.output

    review = invoke_json(runner, "sprint", "close", sprint["id"])
    assert review["completed_sp"] == 5
    assert review["completion_percent"] == 100

    result = invoke(runner, "sprint", "close", sprint["id"])
    assert result.exit_code == 2

    result = invoke(runner, "sprint", "retro", sprint["id"], "--action", "Automate deploys")
    assert result.exit_code == 0

    velocity = invoke_json(runner, "project", "velocity", project["id"])
    assert velocity["average_velocity"] == 5
    assert velocity["entries"][0]["completion_rate"] == 100

    pool = invoke_json(runner, "sprint", "pool", project["id"])
    assert pool["recommended_capacity"] == 5
    assert pool["pbis"] == []

    next_sprint = invoke_json(runner, "sprint", "plan", project["id"])
    assert [t["description"] for t in next_sprint["carried_tasks"]] == ["Automate deploys"]
    assert next_sprint["capacity"]["team_capacity"] == 5
