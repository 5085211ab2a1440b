"""Data models for scaffold generation runs."""

import base64
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints

# Relative path -> file content; last write wins.
ArtifactMap = dict[str, str]

SUPPORTED_IMAGE_TYPES = frozenset({"image/png", "image/jpeg", "image/gif", "image/webp"})


class Stage(str, Enum):
    """The five ordered pipeline stages."""

    PLAN = "plan"
    COMPONENTS = "components"
    PAGES = "pages"
    ENTRY = "entry"
    REVIEW = "review"


class OutputShape(str, Enum):
    """Declared output shape of one invocation."""

    TEXT = "text"
    JSON = "json"


class PlatformHint(str, Enum):
    """Target form factor used to steer layout in prompts."""

    WEB = "web"
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


@dataclass(frozen=True)
class Attachment:
    """A binary input (screen image) sent alongside a prompt."""

    name: str
    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_path(cls, path: str | Path) -> "Attachment":
        """Load an image file, guessing its MIME type from the extension."""
        path = Path(path).expanduser()
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, data=path.read_bytes(), mime_type=mime_type or "image/png")

    @property
    def media_type(self) -> str:
        """MIME type restricted to the image types the chat models accept."""
        return self.mime_type if self.mime_type in SUPPORTED_IMAGE_TYPES else "image/png"

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


@dataclass
class Plan:
    """Stage-1 output: normalized page and reusable component identifiers."""

    pages: list[str] = field(default_factory=list)
    reusable_components: list[str] = field(default_factory=list)


class Review(BaseModel):
    """Self-reported fidelity score of the first generated page."""

    score: float = Field(ge=0, le=100)
    justification: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    degraded: bool = Field(default=False, exclude=True)

    @classmethod
    def placeholder(cls, reason: str) -> "Review":
        """Zero-score review used when no review could be obtained."""
        return cls(score=0, justification=reason, degraded=True)


@dataclass
class PipelineState:
    """Plan plus growing artifact map, owned by a single run."""

    plan: Plan | None = None
    artifacts: ArtifactMap = field(default_factory=dict)
    review: Review | None = None


@dataclass
class GenerationResult:
    """Final output of one run."""

    artifacts: ArtifactMap
    review: Review
    plan: Plan

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifacts": self.artifacts,
            "review": self.review.model_dump(),
            "plan": {"pages": self.plan.pages, "reusableComponents": self.plan.reusable_components},
        }
