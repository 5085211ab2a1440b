"""Resilient invocation layer: the only code that talks to the generation service."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

from browser_use.llm.exceptions import ModelRateLimitError

from .config import KEYLESS_CREDENTIAL
from .exceptions import AllEndpointsExhausted
from .models import Attachment, OutputShape
from .observability import get_run_logger
from .pool import AccessPool, Candidate
from .providers import build_messages, get_llm

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Candidate], "BaseChatModel"]

DEFAULT_BACKOFF_SECONDS = 2.0

_CODE_FENCE = re.compile(r"```[\w+-]*")
_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate-limit", "ratelimit", "quota", "resource exhausted", "resource_exhausted", "too many requests")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (with optional language tag) and surrounding whitespace."""
    return _CODE_FENCE.sub("", text).strip()


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether an error is a throttle/quota signal from the generation service."""
    if isinstance(error, ModelRateLimitError):
        return True
    if getattr(error, "status_code", None) == 429 or getattr(error, "code", None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


class EmptyCompletionError(Exception):
    """The service answered without any text."""


class GenerationGateway:
    """Issues generation calls, failing over across every pool candidate.

    Each logical call walks the pool's failover order, so its attempt budget
    equals credentials x models and no endpoint is tried twice. Rate-limit
    errors wait a fixed backoff before moving on; any other error moves on
    immediately.
    """

    def __init__(
        self,
        pool: AccessPool,
        provider: str = "google",
        base_url: str | None = None,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize gateway.

        Args:
            pool: Shared credential/model pool
            provider: Provider name passed to the chat model factory
            base_url: Custom base URL for OpenAI-compatible APIs
            backoff_seconds: Delay after a rate-limit error
            client_factory: Creates a chat model for a candidate (defaults to get_llm)
            sleep: Awaitable delay, replaceable in tests
        """
        self.pool = pool
        self.provider = provider
        self.base_url = base_url
        self.backoff_seconds = backoff_seconds
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep
        self._clients: dict[Candidate, "BaseChatModel"] = {}

    @property
    def attempt_budget(self) -> int:
        return self.pool.size

    def _default_client(self, candidate: Candidate) -> "BaseChatModel":
        api_key = None if candidate.credential == KEYLESS_CREDENTIAL else candidate.credential
        return get_llm(self.provider, candidate.model, api_key=api_key, base_url=self.base_url)

    def _client_for(self, candidate: Candidate) -> "BaseChatModel":
        client = self._clients.get(candidate)
        if client is None:
            client = self._client_factory(candidate)
            self._clients[candidate] = client
        return client

    async def invoke(
        self,
        prompt: str,
        attachments: Sequence[Attachment] = (),
        shape: OutputShape = OutputShape.TEXT,
        system_prompt: str | None = None,
    ) -> str:
        """Run one logical generation call.

        Args:
            prompt: User prompt text
            attachments: Images sent with the prompt
            shape: TEXT responses lose their code fences; JSON passes through verbatim
            system_prompt: Optional role prompt

        Returns:
            The response text

        Raises:
            AllEndpointsExhausted: If every candidate failed
        """
        messages = build_messages(prompt, attachments, system_prompt)
        run_logger = get_run_logger()
        candidates = self.pool.failover_order()
        last_error: BaseException | None = None

        for attempt, candidate in enumerate(candidates, start=1):
            try:
                client = self._client_for(candidate)
                response = await client.ainvoke(messages)
                text = response.completion if isinstance(response.completion, str) else str(response.completion)
                if not text.strip():
                    raise EmptyCompletionError(f"Empty completion from {candidate.model}")
            except Exception as e:
                last_error = e
                rate_limited = is_rate_limit_error(e)
                run_logger.warning(
                    "invocation_failed",
                    attempt=attempt,
                    budget=len(candidates),
                    model=candidate.model,
                    credential=candidate.masked_credential,
                    rate_limited=rate_limited,
                    error=str(e)[:300],
                )
                if rate_limited and attempt < len(candidates):
                    logger.info(f"Rate limited on {candidate.describe()}, backing off {self.backoff_seconds:g}s")
                    await self._sleep(self.backoff_seconds)
                continue

            run_logger.debug("invocation_succeeded", attempt=attempt, model=candidate.model, credential=candidate.masked_credential)
            if shape is OutputShape.TEXT:
                return strip_code_fences(text)
            return text

        logger.error(f"All {len(candidates)} generation endpoints failed; last error: {last_error}")
        raise AllEndpointsExhausted(len(candidates), last_error)
