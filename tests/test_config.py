import pytest
from pydantic import ValidationError as PydanticValidationError

from streamling.config import DEFAULT_CATALOG, RateLimit, SchedulerConfig, single_model_catalog
from streamling.exceptions import ConfigurationError


def test_default_catalog_providers():
    assert DEFAULT_CATALOG.provider_ids == ["gemini", "mistral", "openrouter", "cerebras", "groq"]


def test_rate_limit_lookup():
    assert DEFAULT_CATALOG.rate_limit_for("gemini", "gemini-2.5-flash") == RateLimit(
        limit=5, window_seconds=60
    )
    assert DEFAULT_CATALOG.rate_limit_for("mistral", "codestral-latest").window_seconds == 1


def test_default_model_is_first_listed():
    assert DEFAULT_CATALOG.get_default_model("groq").id == "llama-3.3-70b-versatile"


def test_unknown_provider_and_model():
    with pytest.raises(ConfigurationError, match="Unknown provider"):
        DEFAULT_CATALOG.get_provider("openai")
    with pytest.raises(ConfigurationError, match="Unknown model"):
        DEFAULT_CATALOG.get_model("gemini", "gpt-4o")


def test_single_model_catalog():
    catalog = single_model_catalog(provider_id="local", model_id="tiny", limit=2, window_seconds=0.5)
    assert catalog.rate_limit_for("local", "tiny").limit == 2


def test_scheduler_config_defaults():
    config = SchedulerConfig()
    assert config.max_concurrent is None
    assert config.flush_interval_seconds == 0.1
    assert config.flush_max_chars == 500
    assert config.store_max_age_seconds == 300
    assert config.confidence_tail_length == 250
    assert config.evaluate_confidence is True


def test_invalid_values_are_rejected():
    with pytest.raises(PydanticValidationError):
        RateLimit(limit=0, window_seconds=60)
    with pytest.raises(PydanticValidationError):
        SchedulerConfig(max_concurrent=0)
