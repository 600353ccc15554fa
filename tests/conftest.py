"""Shared test fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from igent.config import ProviderConfig, Settings
from igent.storage import JSONStore


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings rooted in a temporary work dir, ignoring the caller's environment."""
    for var in ("IGENT_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    return Settings(
        _env_file=None,
        work_dir=tmp_path / "work",
        provider=ProviderConfig(api_key="test-key"),
    )


@pytest.fixture
def store(tmp_path):
    """A JSON store in a temporary directory."""
    return JSONStore(tmp_path / "store")


@pytest.fixture
def mock_llm():
    """An LLM whose generate() is an AsyncMock."""
    llm = MagicMock()
    llm.generate = AsyncMock()
    llm.model = "test-model"
    llm.provider_name = "mock"
    return llm
