"""Pytest configuration helpers.

Puts ``backend/`` on ``sys.path`` so tests can import the ``cinegen`` package
regardless of how pytest is invoked, and provides shared doubles: a sleep
recorder (no test sleeps for real) and a provider-config factory.
"""
import os
import sys

import pytest
from pydantic import SecretStr

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from cinegen.schemas.provider_config import Capability, ProviderConfig, ProviderName  # noqa: E402

LLM_KEY = "sk-llm-AAAA1111BBBB2222CCCC"
IMAGE_KEY = "sk-img-DDDD3333EEEE4444FFFF"
VIDEO_KEY = "sk-vid-GGGG5555HHHH6666IIII"


class SleepRecorder:
    """Async stand-in for asyncio.sleep that only records delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


def make_config(
    config_id: str,
    provider: str,
    capability: Capability,
    *,
    api_key: str = "sk-test-0123456789abcdef",
    enabled: bool = True,
    model: str = "",
    api_url: str = "",
) -> ProviderConfig:
    return ProviderConfig(
        id=config_id,
        provider=ProviderName(provider),
        capability=capability,
        model=model,
        api_key=SecretStr(api_key),
        api_url=api_url,
        enabled=enabled,
    )


@pytest.fixture
def config_factory():
    return make_config
