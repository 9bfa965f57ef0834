"""Tests for oversight CLI commands"""
import json

import pytest
from click.testing import CliRunner

from oversight.cli.main import cli


@pytest.fixture
def runner():
    """Create Click test runner"""
    return CliRunner()


@pytest.fixture
def task_file(tmp_path, auth_task):
    path = tmp_path / "task.json"
    path.write_text(json.dumps(auth_task))
    return path


@pytest.fixture
def context_file(tmp_path, auth_context):
    path = tmp_path / "sprint.json"
    path.write_text(json.dumps(auth_context))
    return path


def _invoke(runner, storage_dir, *args):
    return runner.invoke(cli, ["--no-color", "--storage-dir", str(storage_dir), *args])


def test_process_approved_task(runner, storage_dir, task_file, context_file):
    result = _invoke(runner, storage_dir, "process", str(task_file), "-c", str(context_file), "-a", "coder-1")

    assert result.exit_code == 0
    assert "APPROVED" in result.output
    assert "Verification Checks" in result.output
    assert (storage_dir / "agent-rankings.json").exists()


def test_process_json_output(runner, storage_dir, task_file, context_file):
    result = _invoke(
        runner, storage_dir, "process", str(task_file), "-c", str(context_file), "--json"
    )

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data[0]["status"] == "approved"
    assert data[0]["agent_id"] == "agent"
    assert data[0]["phases"]["rating_update"]["new_rating"] > 1500


def test_process_blocked_task_exits_nonzero(runner, storage_dir, tmp_path, context_file):
    bad_task = tmp_path / "bad.json"
    bad_task.write_text(json.dumps({"id": "bad", "description": "", "complexity": 1.5}))

    result = _invoke(runner, storage_dir, "process", str(bad_task), "-c", str(context_file))

    assert result.exit_code == 1
    assert "BLOCKED" in result.output
    assert "Suggested alternatives" in result.output


def test_process_batch_file(runner, storage_dir, tmp_path, auth_task, context_file):
    batch = tmp_path / "batch.json"
    batch.write_text(json.dumps([dict(auth_task, id=f"task-{i}") for i in range(3)]))

    result = _invoke(runner, storage_dir, "process", str(batch), "-c", str(context_file), "--json")

    assert result.exit_code == 0
    assert [r["task_id"] for r in json.loads(result.output)] == ["task-0", "task-1", "task-2"]


def test_process_unreadable_task_file(runner, storage_dir, tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    result = _invoke(runner, storage_dir, "process", str(broken))

    assert result.exit_code == 1
    assert "Could not read" in result.output


def test_leaderboard_empty(runner, storage_dir):
    result = _invoke(runner, storage_dir, "leaderboard")

    assert result.exit_code == 0
    assert "No rated agents yet" in result.output


def test_leaderboard_after_processing(runner, storage_dir, task_file, context_file):
    _invoke(runner, storage_dir, "process", str(task_file), "-c", str(context_file), "-a", "coder-1")

    result = _invoke(runner, storage_dir, "leaderboard", "--json")

    assert result.exit_code == 0
    performers = json.loads(result.output)
    assert performers[0]["agent_id"] == "coder-1"
    assert performers[0]["performance_class"] == "Developing"


def test_agent_command(runner, storage_dir, task_file, context_file):
    _invoke(runner, storage_dir, "process", str(task_file), "-c", str(context_file), "-a", "coder-1")

    result = _invoke(runner, storage_dir, "agent", "coder-1", "--json")

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["stats"]["total_tasks"] == 1
    assert data["stats"]["trending"] == "up"
    assert data["recommendations"]["agent_id"] == "coder-1"


def test_stats_command(runner, storage_dir, task_file, context_file):
    _invoke(runner, storage_dir, "process", str(task_file), "-c", str(context_file))

    result = _invoke(runner, storage_dir, "stats", "--json")

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["engine"]["total_tasks"] == 1
    assert data["verification"]["mode"] == "moderate"
    assert data["failures"]["total_failures"] == 0


def test_stats_table(runner, storage_dir):
    result = _invoke(runner, storage_dir, "stats")

    assert result.exit_code == 0
    assert "Engine Stats" in result.output


def test_global_output_format_defaults_to_json(runner, tmp_path, storage_dir):
    (tmp_path / ".oversight.toml").write_text('[global]\noutput_format = "json"\ncolor = false\n')

    result = runner.invoke(cli, ["--storage-dir", str(storage_dir), "stats"])

    assert result.exit_code == 0
    assert json.loads(result.output)["engine"]["total_tasks"] == 0


def test_config_show_uses_project_config(runner, tmp_path):
    (tmp_path / ".oversight.toml").write_text('[verification]\nmode = "strict"\n')

    result = runner.invoke(cli, ["--no-color", "config", "show"])

    assert result.exit_code == 0
    assert json.loads(result.output)["verification"]["mode"] == "strict"


def test_invalid_config_reported(runner, tmp_path, storage_dir):
    (tmp_path / ".oversight.toml").write_text('[verification]\nmode = "lenient"\n')

    result = _invoke(runner, storage_dir, "stats")

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
