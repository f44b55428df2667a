"""Tests for pydantic-ai model construction."""

import pytest
from pydantic_ai.models.openai import OpenAIChatModel

from reflect.core.settings import get_settings
from reflect.services.llm_models import build_pydantic_model, split_model_spec


def test_split_model_spec():
    assert split_model_spec("openai:gpt-4o-mini") == ("openai", "gpt-4o-mini")
    assert split_model_spec("gpt-4o-mini") == (None, "gpt-4o-mini")


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.setattr(get_settings(), "openai_api_key", None)
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        build_pydantic_model("openai:gpt-4o-mini")


def test_openai_model_is_built(monkeypatch):
    monkeypatch.setattr(get_settings(), "openai_api_key", "sk-test")
    model, model_settings = build_pydantic_model("openai:gpt-4o-mini")
    assert isinstance(model, OpenAIChatModel)
    assert model_settings is None


def test_unknown_provider_passes_spec_through():
    assert build_pydantic_model("test") == ("test", None)
