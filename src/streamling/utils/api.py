"""API utils"""

import os

from streamling.exceptions import ConfigurationError


def api_key_env_var(provider: str) -> str:
    return f"{provider.upper()}_API_KEY"


def get_default_api_key_from_provider(provider: str) -> str:
    api_key = os.getenv(api_key_env_var(provider))
    if not api_key:
        raise ConfigurationError(
            f"API key not found for provider: {provider}. Either set {api_key_env_var(provider)} in the environment variables or provide it through the api_key parameter."
        )
    return api_key
