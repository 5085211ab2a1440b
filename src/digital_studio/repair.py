"""Structured response parsing with a bounded self-correction loop."""

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .exceptions import MalformedOutput
from .invocation import GenerationGateway, strip_code_fences
from .models import Attachment, OutputShape, Review
from .normalizer import to_pascal_case
from .observability import get_run_logger
from .prompts import get_repair_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REPAIR_ATTEMPTS = 3


@dataclass(frozen=True)
class ParseSuccess(Generic[T]):
    value: T


@dataclass(frozen=True)
class ParseFailure:
    raw_text: str
    error: str


ParseResult = ParseSuccess[T] | ParseFailure


_ENCLOSING_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def extract_json(content: str) -> Any:
    """Decode JSON from a model response, tolerating code fences and surrounding prose.

    The response is tried as-is first, so fences inside string values survive.
    Only a fence that encloses the whole response is unwrapped.
    """
    content = str(content).strip()

    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    fenced = _ENCLOSING_FENCE.match(content)
    if fenced:
        content = fenced.group(1)
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            pass

    first, last = content.find("{"), content.rfind("}")
    if first == -1 or last <= first:
        return json.loads(content)
    return json.loads(content[first : last + 1])


@dataclass(frozen=True)
class StructuredShape(Generic[T]):
    """Contract for one structured response: a name, a description for re-asking, and a converter."""

    name: str
    contract: str
    convert: Callable[[Any], T]

    def parse(self, raw_text: str) -> ParseSuccess[T] | ParseFailure:
        try:
            return ParseSuccess(self.convert(extract_json(raw_text)))
        except (ValueError, ValidationError) as e:
            return ParseFailure(raw_text=raw_text, error=str(e).splitlines()[0] if str(e) else type(e).__name__)


# --- Shapes ---


class PlanOutput(BaseModel):
    """Raw architect output; identifiers are normalized by the orchestrator."""

    model_config = ConfigDict(extra="ignore")

    pages: list[Any]
    reusable_components: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("reusableComponents", "reusable_components", "components"),
    )


PLAN_SHAPE: StructuredShape[PlanOutput] = StructuredShape(
    name="plan",
    contract='A JSON object with two keys: "pages" (array of strings) and "reusableComponents" (array of strings).',
    convert=PlanOutput.model_validate,
)

REVIEW_SHAPE: StructuredShape[Review] = StructuredShape(
    name="review",
    contract='A JSON object with "score" (a number from 0 to 100) and "justification" (a non-empty string).',
    convert=Review.model_validate,
)


def source_map_shape(identifiers: Sequence[str]) -> StructuredShape[dict[str, str]]:
    """Shape of a batched response mapping every identifier to its source text.

    A key matches its identifier exactly, or after both sides are normalized,
    so ``"nav bar"`` satisfies ``NavBar``. Sources are stored under the
    requested identifier. Unrequested keys are dropped; a missing identifier
    is a parse failure.
    """
    expected = list(dict.fromkeys(identifiers))
    by_normalized = {to_pascal_case(identifier): identifier for identifier in expected}

    def convert(data: Any) -> dict[str, str]:
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        sources: dict[str, str] = {}
        for key, value in data.items():
            identifier = key if key in expected else by_normalized.get(to_pascal_case(key))
            if identifier is None:
                logger.debug(f"Ignoring unrequested source entry: {key}")
                continue
            code = strip_code_fences(value) if isinstance(value, str) else ""
            if not code:
                raise ValueError(f"Source for '{key}' must be a non-empty string")
            sources[identifier] = code

        missing = [identifier for identifier in expected if identifier not in sources]
        if missing:
            raise ValueError(f"Missing source for: {', '.join(missing)}")
        return sources

    keys = ", ".join(f'"{identifier}"' for identifier in expected)
    return StructuredShape(
        name="source_map",
        contract=f"A JSON object whose keys are exactly {keys} and whose values are the complete source code strings.",
        convert=convert,
    )


class StructuredResponseRepairer:
    """Parses structured responses, re-asking the service to fix invalid ones.

    The bound counts parse attempts including the first, so the service is
    re-invoked at most ``max_attempts - 1`` times per structured request.
    """

    def __init__(self, gateway: GenerationGateway, max_attempts: int = DEFAULT_REPAIR_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.gateway = gateway
        self.max_attempts = max_attempts

    async def request(
        self,
        prompt: str,
        shape: StructuredShape[T],
        stage: str,
        attachments: Sequence[Attachment] = (),
        system_prompt: str | None = None,
    ) -> T:
        """Invoke the service for a structured result and repair it if needed."""
        raw = await self.gateway.invoke(prompt, attachments, OutputShape.JSON, system_prompt)
        return await self.resolve(raw, shape, stage, prompt, attachments, system_prompt)

    async def resolve(
        self,
        raw: str,
        shape: StructuredShape[T],
        stage: str,
        prompt: str,
        attachments: Sequence[Attachment] = (),
        system_prompt: str | None = None,
    ) -> T:
        """Parse ``raw`` against ``shape``, re-asking with the invalid text embedded.

        Raises:
            MalformedOutput: If no response parsed within ``max_attempts``
            AllEndpointsExhausted: If a correction request could not be delivered
        """
        run_logger = get_run_logger()
        last_error: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            result = shape.parse(raw)
            match result:
                case ParseSuccess(value=value):
                    if attempt > 1:
                        run_logger.info("structured_output_repaired", shape=shape.name, attempts=attempt)
                    return value
                case ParseFailure(raw_text=raw_text, error=error):
                    last_error = error
                    run_logger.warning(
                        "structured_output_invalid",
                        shape=shape.name,
                        attempt=attempt,
                        max_attempts=self.max_attempts,
                        error=error,
                        raw_preview=raw_text[:200],
                    )

            if attempt == self.max_attempts:
                break
            correction = get_repair_prompt(prompt, shape.contract, raw, last_error)
            raw = await self.gateway.invoke(correction, attachments, OutputShape.JSON, system_prompt)

        logger.error(f"Stage '{stage}' produced malformed {shape.name} output after {self.max_attempts} attempts: {raw[:200]}")
        raise MalformedOutput(stage=stage, raw_response=raw, attempts=self.max_attempts, error=last_error)
