import pytest

from streamling.exceptions import (
    ConfigurationError,
    ConfigurationFailure,
    DocumentReadError,
    EmptyStreamError,
    ProviderError,
    classify_error,
)
from streamling.utils.api import api_key_env_var, get_default_api_key_from_provider


def test_classified_errors_pass_through():
    error = EmptyStreamError("nothing")
    assert classify_error(error=error) is error


def test_configuration_errors_become_final_failures():
    classified = classify_error(error=ConfigurationError("bad model"))
    assert isinstance(classified, ConfigurationFailure)
    assert classified.kind == "configuration"
    assert classified.retryable is False


def test_unknown_errors_become_provider_errors():
    classified = classify_error(error=TimeoutError())
    assert isinstance(classified, ProviderError)
    assert classified.retryable is True
    assert str(classified) == "TimeoutError"


def test_retryable_defaults():
    assert ProviderError("x").retryable is True
    assert EmptyStreamError("x").retryable is True
    assert DocumentReadError("x").retryable is False
    assert ProviderError("x", retryable=False).retryable is False


def test_api_key_from_environment(monkeypatch):
    monkeypatch.setenv("CEREBRAS_API_KEY", "abc")
    assert api_key_env_var("cerebras") == "CEREBRAS_API_KEY"
    assert get_default_api_key_from_provider("cerebras") == "abc"


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    with pytest.raises(ConfigurationError, match="GROQ_API_KEY"):
        get_default_api_key_from_provider("groq")
