"""Digital Studio: UI screens or a description in, runnable React scaffold out."""

from .config import settings
from .exceptions import (
    AllEndpointsExhausted,
    ConfigurationError,
    DigitalStudioError,
    GenerationTimeout,
    LLMProviderError,
    MalformedOutput,
    NoAttachmentsOrPrompt,
    PipelineFailure,
    UpstreamDesignFetchError,
)
from .invocation import GenerationGateway
from .models import Attachment, GenerationResult, Plan, PlatformHint, Review, Stage
from .normalizer import to_pascal_case
from .pipeline import ScaffoldPipeline
from .pool import AccessPool, Candidate
from .scaffold import assemble_project

__all__ = [
    "settings",
    "AccessPool",
    "Candidate",
    "GenerationGateway",
    "ScaffoldPipeline",
    "Attachment",
    "GenerationResult",
    "Plan",
    "PlatformHint",
    "Review",
    "Stage",
    "assemble_project",
    "to_pascal_case",
    "DigitalStudioError",
    "ConfigurationError",
    "LLMProviderError",
    "NoAttachmentsOrPrompt",
    "AllEndpointsExhausted",
    "MalformedOutput",
    "GenerationTimeout",
    "UpstreamDesignFetchError",
    "PipelineFailure",
]
