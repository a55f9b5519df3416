"""Pytest configuration and fixtures.

Provides environment isolation and a fresh error channel per test. Fixtures
here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import os
from typing import TYPE_CHECKING

import pytest

from sidechannel import ErrorChannel, channel_scope
from sidechannel import config as config_module

if TYPE_CHECKING:
    from collections.abc import Generator

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            config_module, "load_dotenv", lambda *_args, **_kwargs: False
        )


@pytest.fixture(autouse=True)
def isolate_env(request, monkeypatch):
    """Clear SIDECHANNEL_* variables and the cached environment config.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    config_module._env_default.cache_clear()
    if not request.node.get_closest_marker("allow_env_pollution"):
        for key in list(os.environ.keys()):
            if key.startswith(config_module.ENV_PREFIX):
                monkeypatch.delenv(key, raising=False)
    yield
    config_module._env_default.cache_clear()


# =============================================================================
# Channels
# =============================================================================


@pytest.fixture(autouse=True)
def channel(isolate_env, block_dotenv) -> Generator[ErrorChannel]:
    """Bind a fresh channel as current for the duration of each test."""
    with channel_scope() as ch:
        yield ch
