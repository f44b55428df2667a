"""Factory helpers for pydantic-ai agents."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar, cast

from pydantic_ai import Agent

from reflect.services.llm_models import build_pydantic_model

OutputT = TypeVar("OutputT")


@lru_cache(maxsize=32)
def _cached_agent(model_spec: str, output_type: type[Any], system_prompt: str) -> Agent[None, Any]:
    """Build and cache a simple Agent with no dependencies."""
    model, model_settings = build_pydantic_model(model_spec)
    return Agent(
        model,
        deps_type=None,
        output_type=output_type,
        system_prompt=system_prompt,
        model_settings=model_settings,
    )


def get_basic_agent(model_spec: str, output_type: type[OutputT], system_prompt: str) -> Agent[None, OutputT]:
    """Return a cached agent for an arbitrary task."""
    agent = _cached_agent(model_spec, output_type, system_prompt)
    return cast(Agent[None, OutputT], agent)


def run_text_prompt(model_spec: str, system_prompt: str, prompt: str) -> str:
    """Run one prompt and return the raw text output.

    Journaling services parse model output themselves so that malformed JSON
    is reported as a parse failure instead of a model failure.
    """
    agent = get_basic_agent(model_spec, str, system_prompt)
    result = agent.run_sync(prompt)
    return result.output
