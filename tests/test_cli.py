"""Tests for mabar.cli."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from mabar import __version__
from mabar.cli.commands import app
from mabar.core.config.schema import Config
from mabar.memory.models import AIResponse, SessionCard

runner = CliRunner()

_PATCH_CONFIG = "mabar.core.config.loader.load_config"
_PATCH_STORE = "mabar.memory.store.MemoryStore"
_PATCH_COORDINATOR = "mabar.agent.coordinator.MatchmakingCoordinator"


def test_cli_help():
    """--help works and shows command names."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "chat", "analyze", "tools", "status", "init"):
        assert command in result.output


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_chat_single_message(tmp_path):
    """chat -m sends one message through the coordinator and prints cards."""
    reply = AIResponse(
        text="Kemang Padel Club has a court tomorrow.",
        session_cards=[
            SessionCard(
                type="create-new",
                data={"venue": "Kemang Padel Club", "time": "7-9 PM", "cost": "Rp 200.000/hour"},
            )
        ],
    )
    mock_coordinator = MagicMock()
    mock_coordinator.process = AsyncMock(return_value=(reply, "sess-1"))

    with (
        patch(_PATCH_CONFIG, return_value=Config(database={"path": str(tmp_path / "t.db")})),
        patch(_PATCH_STORE, return_value=MagicMock()),
        patch(_PATCH_COORDINATOR, return_value=mock_coordinator),
    ):
        result = runner.invoke(app, ["chat", "-m", "court in kemang", "-t", "tok"])

    assert result.exit_code == 0
    assert "Kemang Padel Club has a court tomorrow." in result.output
    assert "7-9 PM" in result.output
    mock_coordinator.process.assert_called_once_with(
        "cli_user", "court in kemang", None, session_token="tok"
    )


def test_analyze_json():
    result = runner.invoke(app, ["analyze", "court in kemang tomorrow evening", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["slots"]["timeSlot"] == "tomorrow_evening"
    assert data["analysis"]["intent"] == "courts"


def test_analyze_table():
    result = runner.invoke(app, ["analyze", "intermediate player tonight"])
    assert result.exit_code == 0
    assert "Skill level" in result.output
    assert "intermediate" in result.output


def test_tools_lists_actions():
    with patch(_PATCH_CONFIG, return_value=Config()):
        result = runner.invoke(app, ["tools"])
    assert result.exit_code == 0
    assert "joinSession" in result.output
    assert "getAvailableVenues" in result.output


def test_status_output(tmp_path):
    """status shows models and DB path."""
    config = Config(
        assistant={"model": "openai/gpt-test"},
        database={"path": str(tmp_path / "test.db")},
    )
    fake_conn = MagicMock()
    fake_conn.execute.return_value.fetchone.return_value = [0]
    fake_conn.__enter__ = MagicMock(return_value=fake_conn)
    fake_conn.__exit__ = MagicMock(return_value=False)

    fake_db = MagicMock()
    fake_db._get_conn.return_value = fake_conn

    with (
        patch(_PATCH_CONFIG, return_value=config),
        patch(_PATCH_STORE, return_value=fake_db),
    ):
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "gpt-test" in result.output
    assert "not configured" in result.output
    assert "DB Path" in result.output


def test_init_writes_config(tmp_path):
    target = tmp_path / "config.yaml"
    result = runner.invoke(app, ["init", "--path", str(target)])
    assert result.exit_code == 0
    assert target.exists()
    assert "assistant:" in target.read_text()

    again = runner.invoke(app, ["init", "--path", str(target)])
    assert again.exit_code == 1
    assert "--force" in again.output

    forced = runner.invoke(app, ["init", "--path", str(target), "--force"])
    assert forced.exit_code == 0
