"""Shared fixtures for backend tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic_ai.models.test import TestModel

from agentchat.config import Settings
from agentchat.services import Services, build_services
from fakes import FakeArtifactGenerator, ScriptedBackend, fixed_title


def pytest_configure(config):
    """Set pytest-asyncio mode to auto so async test functions work without markers."""
    config.option.asyncio_mode = "auto"


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Create a Settings instance suitable for tests.

    Uses ``_env_file=None`` so a developer's .env is never loaded.  Auth and
    rate limiting are off, and title retries do not sleep.
    """
    values = dict(
        _env_file=None,
        db_path=tmp_path / "test.sqlite",
        auth_enabled=False,
        rate_limit_enabled=False,
        title_retry_backoff_seconds=[0.0, 0.0],
        chat_ready_timeout_seconds=2.0,
    )
    values.update(overrides)
    return Settings(**values)


def make_services(settings: Settings, backend=None, title_generator=None, artifact_generator=None) -> Services:
    """Build the real service graph with every model call faked."""
    return build_services(
        settings,
        backend=backend or ScriptedBackend([]),
        title_generator=title_generator or fixed_title("Weather in Paris"),
        artifact_generator=artifact_generator or FakeArtifactGenerator(),
        model_factory=lambda spec: TestModel(),
    )


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)
