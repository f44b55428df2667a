"""Shared pydantic-ai model construction helpers."""

from __future__ import annotations

from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.google import GoogleModel, GoogleModelSettings
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from reflect.core.settings import get_settings


def split_model_spec(model_spec: str) -> tuple[str | None, str]:
    """Split ``provider:model`` into its parts; a bare name has no provider."""
    if ":" in model_spec:
        provider_prefix, model_name = model_spec.split(":", 1)
        return provider_prefix, model_name
    return None, model_spec


def build_pydantic_model(model_spec: str) -> tuple[Model | str, GoogleModelSettings | None]:
    """Construct a pydantic-ai Model with explicit providers where required.

    Args:
        model_spec: Full model spec string (e.g., ``openai:gpt-4o-mini``).

    Returns:
        Tuple of (model, model_settings). ``model`` is either a configured ``Model`` instance
        or the raw ``model_spec`` when no specific provider wiring is required. ``model_settings``
        is only populated for Google models to suppress thinking traces.

    Raises:
        ValueError: The provider's API key is not configured.
    """
    settings = get_settings()
    provider_prefix, model_name = split_model_spec(model_spec)

    if provider_prefix in {"google-gla", "google"} or model_spec.startswith("gemini"):
        if not settings.google_api_key:
            raise ValueError("GOOGLE_API_KEY not configured in settings.")
        model = GoogleModel(model_name, provider=GoogleProvider(api_key=settings.google_api_key))
        model_settings = GoogleModelSettings(google_thinking_config={"include_thoughts": False})
        return model, model_settings

    if provider_prefix == "anthropic" or model_spec.startswith("claude-"):
        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not configured in settings.")
        provider = AnthropicProvider(api_key=settings.anthropic_api_key)
        return AnthropicModel(model_name, provider=provider), None

    if provider_prefix == "openai" or model_spec.startswith("gpt-"):
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY not configured in settings.")
        return (
            OpenAIChatModel(model_name, provider=OpenAIProvider(api_key=settings.openai_api_key)),
            None,
        )

    return model_spec, None
