"""Pytest configuration and fixtures for Digital Studio tests."""

from collections.abc import Callable
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import pytest

from digital_studio.invocation import GenerationGateway
from digital_studio.pool import AccessPool, Candidate


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end tests requiring real API keys")
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


def prompt_text(messages: list[Any]) -> str:
    """Text of the last user message, whether plain or multi-part."""
    content = messages[-1].content
    if isinstance(content, str):
        return content
    return "".join(getattr(part, "text", "") for part in content)


def image_count(messages: list[Any]) -> int:
    content = messages[-1].content
    if isinstance(content, str):
        return 0
    return sum(1 for part in content if getattr(part, "type", None) == "image_url")


@dataclass
class Call:
    candidate: Candidate
    prompt: str
    images: int


@dataclass
class FakeBackend:
    """Chat model stand-in shared by every candidate.

    ``respond`` receives the prompt text and returns the completion, or raises
    to simulate a failing endpoint.
    """

    respond: Callable[[str], str]
    calls: list[Call] = field(default_factory=list)

    def client_for(self, candidate: Candidate) -> Any:
        backend = self

        class _Client:
            async def ainvoke(self, messages: list[Any]) -> Any:
                text = prompt_text(messages)
                backend.calls.append(Call(candidate=candidate, prompt=text, images=image_count(messages)))
                return SimpleNamespace(completion=backend.respond(text))

        return _Client()

    def prompts_containing(self, marker: str) -> list[Call]:
        return [call for call in self.calls if marker in call.prompt]


def scripted(*outcomes: str | Exception) -> Callable[[str], str]:
    """Responder that replays outcomes in order; exceptions are raised."""
    queue = list(outcomes)

    def respond(_prompt: str) -> str:
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return respond


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_gateway(sleeper: RecordingSleep) -> Callable[..., tuple[GenerationGateway, FakeBackend]]:
    """Build a gateway over a fake backend."""

    def _make(
        respond: Callable[[str], str],
        credentials: tuple[str, ...] = ("key-alpha-0001",),
        models: tuple[str, ...] = ("model-a",),
    ) -> tuple[GenerationGateway, FakeBackend]:
        backend = FakeBackend(respond)
        pool = AccessPool(credentials=credentials, models=models)
        gateway = GenerationGateway(pool, backoff_seconds=2.0, client_factory=backend.client_for, sleep=sleeper)
        return gateway, backend

    return _make
