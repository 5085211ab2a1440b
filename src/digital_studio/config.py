"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .pool import AccessPool

# --- Paths ---

APP_NAME = "digital-studio"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/digital-studio)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path("~/.config").expanduser()

    path = base / APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_default_results_dir() -> Path:
    """Get the default directory for generated scaffolds."""
    base = Path("~/Documents").expanduser()
    if not base.exists():
        base = Path.home()

    return base / "digital-studio-projects"


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    if not CONFIG_FILE.exists():
        return {}

    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}


def save_config_file(config_data: dict[str, Any]) -> None:
    """Save settings to the JSON config file."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config_data, indent=2), encoding="utf-8")


# Standard environment variable names for API keys, first match wins.
# Plural names hold a comma-separated list of keys for rotation.
STANDARD_ENV_VAR_NAMES: dict[str, list[str]] = {
    "google": ["GEMINI_API_KEYS", "GEMINI_API_KEY", "GOOGLE_API_KEY"],
    "openai": ["OPENAI_API_KEYS", "OPENAI_API_KEY"],
    "anthropic": ["ANTHROPIC_API_KEYS", "ANTHROPIC_API_KEY"],
    "groq": ["GROQ_API_KEYS", "GROQ_API_KEY"],
    "openrouter": ["OPENROUTER_API_KEYS", "OPENROUTER_API_KEY"],
}

# Providers that don't require an API key
NO_KEY_PROVIDERS = frozenset({"ollama"})

# Placeholder credential for keyless providers so the pool is never empty
KEYLESS_CREDENTIAL = "no-key"

ProviderType = Literal["google", "openai", "anthropic", "groq", "openrouter", "ollama"]


def split_csv(value: Any) -> Any:
    """Split a comma-separated string into a list of non-empty, stripped items."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def dedupe(values: list[str]) -> list[str]:
    """Drop duplicates, keeping the first occurrence's position."""
    return list(dict.fromkeys(values))


class GenerationSettings(BaseSettings):
    """Generation service configuration: credential pool, models and retry budgets."""

    model_config = SettingsConfigDict(env_prefix="STUDIO_GENERATION_")

    provider: ProviderType = Field(default="google")
    api_keys: Annotated[list[SecretStr], NoDecode] = Field(default_factory=list, description="Ordered credential pool (comma-separated)")
    models: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["gemini-2.0-flash", "gemini-1.5-flash"],
        description="Ordered model list, first is preferred",
    )
    base_url: Optional[str] = Field(default=None, description="Custom base URL for OpenAI-compatible APIs")

    rate_limit_backoff_seconds: float = Field(default=2.0, ge=0)
    repair_attempts: int = Field(default=3, ge=1, description="Parse attempts per structured request, including the first")
    parallel_pages: bool = Field(default=False, description="Generate pages concurrently")
    max_parallel_pages: int = Field(default=4, ge=1)
    request_timeout_seconds: Optional[float] = Field(default=600.0, description="Per-run timeout; 0 or unset disables")

    @field_validator("api_keys", "models", mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        return split_csv(value)

    def resolve_api_keys(self) -> list[str]:
        """Resolve the credential pool with priority: explicit list > standard env vars.

        Priority order:
        1. STUDIO_GENERATION_API_KEYS (or ``api_keys`` in the config file)
        2. <PROVIDER>_API_KEYS, then <PROVIDER>_API_KEY (e.g. GEMINI_API_KEYS, GEMINI_API_KEY)

        Returns:
            Ordered, de-duplicated credentials. Empty if nothing is configured.
        """
        keys = [key.get_secret_value() for key in self.api_keys if key.get_secret_value()]
        if keys:
            return dedupe(keys)

        for var_name in STANDARD_ENV_VAR_NAMES.get(self.provider, []):
            value = os.environ.get(var_name)
            if value:
                return dedupe(split_csv(value))

        return []

    def requires_api_key(self) -> bool:
        """Check if the current provider requires an API key."""
        return self.provider not in NO_KEY_PROVIDERS and not self.base_url

    @property
    def timeout(self) -> float | None:
        """Per-run timeout in seconds, or None when disabled."""
        if not self.request_timeout_seconds or self.request_timeout_seconds <= 0:
            return None
        return self.request_timeout_seconds


class FigmaSettings(BaseSettings):
    """Figma design import configuration."""

    model_config = SettingsConfigDict(env_prefix="STUDIO_FIGMA_")

    api_token: Optional[SecretStr] = Field(default=None, description="Figma personal access token")
    api_base_url: str = Field(default="https://api.figma.com")
    timeout_seconds: float = Field(default=30.0)

    def get_api_token(self) -> Optional[str]:
        """Resolve the Figma token: STUDIO_FIGMA_API_TOKEN, then FIGMA_API_TOKEN."""
        if self.api_token:
            return self.api_token.get_secret_value()
        return os.environ.get("FIGMA_API_TOKEN")


TransportType = Literal["stdio", "streamable-http", "sse"]


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="STUDIO_SERVER_")

    logging_level: str = Field(default="INFO")
    transport: TransportType = Field(default="streamable-http", description="MCP transport: stdio, streamable-http, or sse")
    host: str = Field(default="127.0.0.1", description="Host for HTTP transports")
    port: int = Field(default=3001, description="Port for HTTP transports")
    results_dir: Optional[str] = Field(default=None, description="Directory to save generated projects")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="STUDIO_", extra="ignore")

    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    figma: FigmaSettings = Field(default_factory=FigmaSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    def save(self) -> Path:
        """Save current configuration to file (excluding secrets)."""
        data = self.model_dump(mode="json", exclude_none=True)
        data.get("generation", {}).pop("api_keys", None)
        data.get("figma", {}).pop("api_token", None)
        save_config_file(data)
        return CONFIG_FILE

    def get_results_dir(self) -> Path:
        """Get the results directory, creating if needed."""
        if self.server.results_dir:
            path = Path(self.server.results_dir).expanduser()
        else:
            path = get_default_results_dir()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def build_pool(self) -> "AccessPool":
        """Create the credential/model pool.

        Raises:
            ConfigurationError: If no credential or no model is configured.
        """
        from .pool import AccessPool

        keys = self.generation.resolve_api_keys()
        if not keys and not self.generation.requires_api_key():
            keys = [KEYLESS_CREDENTIAL]
        if not keys:
            candidates = ", ".join(STANDARD_ENV_VAR_NAMES.get(self.generation.provider, []))
            raise ConfigurationError(
                f"No API key configured for provider '{self.generation.provider}'. Set STUDIO_GENERATION_API_KEYS or one of: {candidates}."
            )

        models = dedupe([m for m in self.generation.models if m])
        if not models:
            raise ConfigurationError("No generation models configured. Set STUDIO_GENERATION_MODELS.")

        return AccessPool(credentials=keys, models=models)


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    return AppSettings(**file_data)


settings = _load_settings()
