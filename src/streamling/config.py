"""
Provider/model catalog and scheduler settings.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, PositiveFloat, PositiveInt

from streamling.exceptions import ConfigurationError


class RateLimit(BaseModel):
    """
    Requests allowed per sliding time window.

    Parameters
    ----------
    limit : int
        Maximum number of dispatch starts inside one window.
    window_seconds : float
        Length of the trailing window.
    """

    model_config = ConfigDict(frozen=True)

    limit: PositiveInt
    window_seconds: PositiveFloat


class ModelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rate_limit: RateLimit


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    base_url: str
    api_key_url: str | None = None
    models: tuple[ModelConfig, ...]


class ModelCatalog(BaseModel):
    """
    Lookup table of providers and their models.

    Notes
    -----
    Rate limits are owned by the catalog; the scheduler only consumes them.
    """

    model_config = ConfigDict(frozen=True)

    providers: tuple[ProviderConfig, ...]

    def get_provider(self, provider_id: str) -> ProviderConfig:
        """
        Return a provider by id.

        Parameters
        ----------
        provider_id : str
            Provider identifier, e.g. ``"gemini"``.

        Returns
        -------
        ProviderConfig
            Matching provider.

        Raises
        ------
        ConfigurationError
            If the provider is unknown.
        """
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        raise ConfigurationError(
            f"Unknown provider: '{provider_id}', supported providers are: "
            f"{', '.join(self.provider_ids)}"
        )

    def get_model(self, provider_id: str, model_id: str) -> ModelConfig:
        """
        Return a model of a provider.

        Parameters
        ----------
        provider_id : str
            Provider identifier.
        model_id : str
            Model identifier.

        Returns
        -------
        ModelConfig
            Matching model.

        Raises
        ------
        ConfigurationError
            If the provider or the model is unknown.
        """
        provider = self.get_provider(provider_id)
        for model in provider.models:
            if model.id == model_id:
                return model
        raise ConfigurationError(f"Unknown model: '{model_id}' for provider '{provider_id}'")

    def get_default_model(self, provider_id: str) -> ModelConfig:
        provider = self.get_provider(provider_id)
        if not provider.models:
            raise ConfigurationError(f"Provider '{provider_id}' has no models")
        return provider.models[0]

    def rate_limit_for(self, provider_id: str, model_id: str) -> RateLimit:
        return self.get_model(provider_id, model_id).rate_limit

    @property
    def provider_ids(self) -> list[str]:
        return [provider.id for provider in self.providers]


class SchedulerConfig(BaseModel):
    """
    Tunables of the scheduler loop, executors and response store.

    Parameters
    ----------
    max_concurrent : int | None
        In-flight cap. ``None`` uses the rate limit of the session's first job.
    poll_interval_seconds : float
        Upper bound of a single capacity wait.
    flush_interval_seconds : float
        Single-job mode: minimum time between observable text updates.
    flush_max_chars : int
        Single-job mode: buffer size forcing an immediate flush.
    store_max_age_seconds : float
        Out-of-band entries untouched for longer are swept.
    store_sweep_interval_seconds : float
        How often the scheduler loop sweeps the store.
    confidence_tail_length : int
        Number of trailing characters compared by the confidence scorer.
    evaluate_confidence : bool
        Score successful outputs and retry low-confidence ones.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrent: PositiveInt | None = None
    poll_interval_seconds: PositiveFloat = 1.0
    flush_interval_seconds: PositiveFloat = 0.1
    flush_max_chars: PositiveInt = 500
    store_max_age_seconds: PositiveFloat = 5 * 60
    store_sweep_interval_seconds: PositiveFloat = 60
    confidence_tail_length: PositiveInt = 250
    evaluate_confidence: bool = True


def _model(model_id: str, name: str, limit: int, window_seconds: float) -> ModelConfig:
    return ModelConfig(
        id=model_id,
        name=name,
        rate_limit=RateLimit(limit=limit, window_seconds=window_seconds),
    )


DEFAULT_PROVIDERS: tuple[ProviderConfig, ...] = (
    ProviderConfig(
        id="gemini",
        name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        api_key_url="https://aistudio.google.com/app/apikey",
        models=(
            _model("gemini-2.5-flash", "Gemini 2.5 Flash", 5, 60),
            _model("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", 10, 60),
            _model("gemini-2.0-flash", "Gemini 2.0 Flash", 15, 60),
        ),
    ),
    ProviderConfig(
        id="mistral",
        name="Mistral AI",
        base_url="https://api.mistral.ai/v1",
        api_key_url="https://console.mistral.ai/api-keys",
        models=(
            _model("mistral-large-latest", "Mistral Large", 1, 1),
            _model("mistral-small-latest", "Mistral Small", 1, 1),
            _model("codestral-latest", "Codestral", 1, 1),
        ),
    ),
    ProviderConfig(
        id="openrouter",
        name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
        api_key_url="https://openrouter.ai/keys",
        models=(
            _model("openai/gpt-4o", "GPT-4o (OpenAI)", 10, 60),
            _model("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", 10, 60),
            _model("google/gemini-2.0-flash-exp:free", "Gemini 2.0 Flash (Free)", 10, 60),
            _model("meta-llama/llama-3.3-70b-instruct", "Llama 3.3 70B", 10, 60),
        ),
    ),
    ProviderConfig(
        id="cerebras",
        name="Cerebras",
        base_url="https://api.cerebras.ai/v1",
        api_key_url="https://cloud.cerebras.ai/",
        models=(
            _model("llama-3.3-70b", "Llama 3.3 70B", 30, 60),
            _model("llama-4-scout-17b-16e-instruct", "Llama 4 Scout 17B", 30, 60),
        ),
    ),
    ProviderConfig(
        id="groq",
        name="Groq",
        base_url="https://api.groq.com/openai/v1",
        api_key_url="https://console.groq.com/keys",
        models=(
            _model("llama-3.3-70b-versatile", "Llama 3.3 70B Versatile", 30, 60),
            _model("llama-3.1-8b-instant", "Llama 3.1 8B Instant", 30, 60),
            _model("gemma2-9b-it", "Gemma 2 9B", 30, 60),
        ),
    ),
)

DEFAULT_CATALOG = ModelCatalog(providers=DEFAULT_PROVIDERS)


def single_model_catalog(
    *,
    provider_id: str,
    model_id: str,
    limit: int,
    window_seconds: float,
    base_url: str = "",
) -> ModelCatalog:
    """
    Build a catalog holding a single provider and model.

    Parameters
    ----------
    provider_id : str
        Provider identifier.
    model_id : str
        Model identifier.
    limit : int
        Requests per window.
    window_seconds : float
        Window length.
    base_url : str, optional
        Provider base URL handed to clients.

    Returns
    -------
    ModelCatalog
        Catalog usable by a ``Scheduler``.
    """
    return ModelCatalog(
        providers=(
            ProviderConfig(
                id=provider_id,
                name=provider_id,
                base_url=base_url,
                models=(_model(model_id, model_id, limit, window_seconds),),
            ),
        )
    )
