import typer

from streamling.config import DEFAULT_CATALOG


def complete_provider(value: str):
    for provider_id in DEFAULT_CATALOG.provider_ids:
        if provider_id.startswith(value):
            yield provider_id


def complete_model(ctx: typer.Context, value: str):
    provider_id = ctx.params.get("provider") or "gemini"
    if provider_id not in DEFAULT_CATALOG.provider_ids:
        return
    for model in DEFAULT_CATALOG.get_provider(provider_id).models:
        if model.id.startswith(value):
            yield model.id
