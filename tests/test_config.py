"""
Tests for configuration module.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from igent.config import DEFAULT_SYSTEM_PROMPT, ProviderConfig, Settings


def test_settings_default_values():
    """Test that settings have sensible defaults."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.provider.type == "openai"
        assert settings.provider.model == "gpt-4o-mini"
        assert settings.provider.base_url == "https://api.openai.com/v1"
        assert settings.context.max_messages == 50
        assert settings.context.max_tokens == 4000
        assert settings.context.summarize_when == 30
        assert settings.agent.max_tool_iterations == 10
        assert settings.agent.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert settings.logging.level == "info"
        assert settings.work_dir == Path.home() / ".igent"


def test_settings_from_env():
    """Test loading nested settings from environment variables."""
    env = {
        "IGENT_PROVIDER__TYPE": "zhipu",
        "IGENT_PROVIDER__API_KEY": "test_key",
        "IGENT_CONTEXT__SUMMARIZE_WHEN": "12",
        "IGENT_AGENT__AUTO_APPROVE_SAFE_TOOLS": "true",
        "IGENT_LOGGING__LEVEL": "DEBUG",
        "IGENT_WORK_DIR": "/tmp/igent-test",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.provider.type == "zhipu"
        assert settings.provider.model == "glm-4-flash"
        assert settings.provider.base_url == "https://open.bigmodel.cn/api/paas/v4"
        assert settings.provider.api_key == "test_key"
        assert settings.context.summarize_when == 12
        assert settings.agent.auto_approve_safe_tools is True
        assert settings.logging.level == "debug"
        assert settings.work_dir == Path("/tmp/igent-test")


@pytest.mark.parametrize("var", ["IGENT_API_KEY", "OPENAI_API_KEY"])
def test_api_key_fallback(var):
    """Test flat API key variables fill in a missing provider key."""
    with patch.dict(os.environ, {var: "flat-key"}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.provider.api_key == "flat-key"


def test_explicit_provider_values_win():
    """Test explicit model and base URL are not overwritten by defaults."""
    config = ProviderConfig(type="openai", model="gpt-4o", base_url="http://localhost:8000/v1")

    assert config.model == "gpt-4o"
    assert config.base_url == "http://localhost:8000/v1"


def test_invalid_provider_rejected():
    """Test unknown provider types fail validation."""
    with pytest.raises(ValidationError):
        ProviderConfig(type="nope")


def test_env_file_round_trip(tmp_path):
    """Test to_env output can be read back as settings."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(
            _env_file=None,
            work_dir=tmp_path,
            provider=ProviderConfig(type="anthropic", api_key="secret"),
        )
        settings.ensure_work_dir()
        settings.env_path.write_text(settings.to_env())

        loaded = Settings(_env_file=settings.env_path)

        assert loaded.provider.type == "anthropic"
        assert loaded.provider.api_key == "secret"
        assert loaded.provider.model == "claude-sonnet-4-20250514"
        assert loaded.work_dir == tmp_path
