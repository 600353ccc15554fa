"""
Tests for the command-line interface.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
import structlog

from igent import __version__
from igent.cli import configure_logging, handle_command, main
from igent.storage import JSONStore


@pytest.fixture
def cli_settings(settings):
    with patch("igent.cli.get_settings", return_value=settings), patch("igent.cli.configure_logging"):
        yield settings


def test_version(capsys):
    """Test -v prints the version without loading settings."""
    main(["-v"])

    assert capsys.readouterr().out.strip() == f"igent {__version__}"


def test_memory_commands(cli_settings, capsys):
    """Test adding, listing and deleting memories from the command line."""
    main(["memory", "add", "preference", "likes", "green", "tea"])
    assert "Memory added successfully" in capsys.readouterr().out

    main(["memory", "list"])
    assert "[preference] likes green tea (relevance: 1.00)" in capsys.readouterr().out

    [memory] = JSONStore(cli_settings.work_dir).memories.load_all()
    main(["memory", "delete", memory.id])
    assert "Memory deleted" in capsys.readouterr().out


def test_missing_record_exits_non_zero(cli_settings, capsys):
    """Test deleting an unknown memory reports an error."""
    with pytest.raises(SystemExit) as exc:
        main(["memory", "delete", "missing"])

    assert exc.value.code == 1
    assert "memory not found: missing" in capsys.readouterr().err


def test_skill_commands(cli_settings, capsys):
    """Test adding, listing and removing skills."""
    main(["skill", "add", "sql", "Database Helper", "Write portable SQL.", "--trigger", "query=SELECT"])
    capsys.readouterr()

    main(["skill", "list"])
    assert "Database Helper (enabled)" in capsys.readouterr().out

    skill = JSONStore(cli_settings.work_dir).skills.load("sql")
    assert skill.parameters == {"trigger_query": "SELECT"}

    main(["skill", "remove", "sql"])
    main(["skill", "list"])
    assert "No skills found" in capsys.readouterr().out


def test_list_and_config_show(cli_settings, capsys):
    """Test list with no conversations and config show masking the key."""
    main(["list"])
    assert "No conversations found" in capsys.readouterr().out

    main(["config", "show"])
    out = capsys.readouterr().out
    assert "Provider: openai" in out
    assert "test-key" not in out


def test_handle_command():
    """Test REPL slash commands call through to the agent."""
    agent = MagicMock()
    agent.list_conversations.return_value = ["default", "work"]
    agent.conversation_id = "work"

    assert handle_command(agent, "/memory add fact hello world") is True
    agent.add_memory.assert_called_once_with("hello world", "fact")

    assert handle_command(agent, "/switch other") is True
    agent.set_conversation.assert_called_once_with("other")

    assert handle_command(agent, "/exit") is False


def test_handle_command_output(capsys):
    """Test usage messages and the current conversation marker."""
    agent = MagicMock()
    agent.list_conversations.return_value = ["default", "work"]
    agent.conversation_id = "work"

    handle_command(agent, "/list")
    handle_command(agent, "/delete")
    handle_command(agent, "/bogus")

    out = capsys.readouterr().out
    assert "  work *" in out
    assert "Usage: /delete <conversation-id>" in out
    assert "Unknown command: /bogus" in out


def test_configure_logging_level():
    """Test the configured level is applied to stdlib logging."""
    try:
        configure_logging("debug", "json")
        assert logging.getLogger().level == logging.DEBUG

        configure_logging("warn", "text")
        assert logging.getLogger().level == logging.WARNING
    finally:
        structlog.reset_defaults()
