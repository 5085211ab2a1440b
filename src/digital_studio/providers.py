"""LLM provider factory and message building using browser-use native chat models."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from browser_use import ChatAnthropic, ChatGoogle, ChatGroq, ChatOllama, ChatOpenAI
from browser_use.llm.messages import ContentPartImageParam, ContentPartTextParam, ImageURL, SystemMessage, UserMessage

# Available via direct import but not in __all__
from browser_use.llm.openrouter.chat import ChatOpenRouter

from .config import NO_KEY_PROVIDERS, STANDARD_ENV_VAR_NAMES
from .exceptions import LLMProviderError
from .models import Attachment

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel
    from browser_use.llm.messages import BaseMessage


def get_llm(
    provider: str,
    model: str,
    api_key: str | None = None,
    base_url: str | None = None,
) -> "BaseChatModel":
    """Create a chat model for one (credential, model) candidate.

    Supported providers (all vision capable):
    - google: Gemini models
    - openai: OpenAI GPT models, or any OpenAI-compatible API via base_url
    - anthropic: Claude models
    - groq: Groq-hosted models
    - openrouter: OpenRouter API
    - ollama: Local Ollama models (no API key required)

    Args:
        provider: LLM provider name
        model: Model name/identifier
        api_key: API key for the provider (not required for ollama)
        base_url: Custom base URL for OpenAI-compatible APIs

    Returns:
        Configured BaseChatModel instance

    Raises:
        LLMProviderError: If provider is unsupported or API key is missing
    """
    requires_api_key = provider not in NO_KEY_PROVIDERS and not base_url
    if requires_api_key and not api_key:
        standard_vars = " or ".join(STANDARD_ENV_VAR_NAMES.get(provider, ["an API key"]))
        raise LLMProviderError(f"API key required for provider '{provider}'. Set {standard_vars} or STUDIO_GENERATION_API_KEYS.")

    try:
        match provider:
            case "google":
                return ChatGoogle(model=model, api_key=api_key)

            case "openai":
                return ChatOpenAI(model=model, api_key=api_key, base_url=base_url)

            case "anthropic":
                return ChatAnthropic(model=model, api_key=api_key)

            case "groq":
                return ChatGroq(model=model, api_key=api_key)

            case "openrouter":
                return ChatOpenRouter(model=model, api_key=api_key)

            case "ollama":
                return ChatOllama(model=model, host=base_url)

            case _:
                raise LLMProviderError(f"Unsupported provider: {provider}")

    except LLMProviderError:
        raise
    except Exception as e:
        raise LLMProviderError(f"Failed to initialize {provider} LLM: {e}") from e


def build_messages(
    prompt: str,
    attachments: Sequence[Attachment] = (),
    system_prompt: str | None = None,
) -> list["BaseMessage"]:
    """Build the message list for one request: optional system role, then text plus images."""
    messages: list["BaseMessage"] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))

    if not attachments:
        messages.append(UserMessage(content=prompt))
        return messages

    parts: list[ContentPartTextParam | ContentPartImageParam] = [ContentPartTextParam(text=prompt)]
    for attachment in attachments:
        parts.append(ContentPartImageParam(image_url=ImageURL(url=attachment.data_url, media_type=attachment.media_type)))
    messages.append(UserMessage(content=parts))
    return messages
