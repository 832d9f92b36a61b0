from pathlib import Path

import typer

from streamling.config import DEFAULT_CATALOG


def provider_callback(ctx: typer.Context, value: str | None):
    if ctx.resilient_parsing or value is None:
        return value
    if value not in DEFAULT_CATALOG.provider_ids:
        raise typer.BadParameter(
            message=f"'{value}' is not a supported provider, supported providers are: {', '.join(DEFAULT_CATALOG.provider_ids)}",
            param_hint="--provider, -p",
        )
    return value


def files_callback(ctx: typer.Context, value: list[Path]):
    if ctx.resilient_parsing:
        return value
    for path in value:
        if not path.exists():
            raise typer.BadParameter(message=f"file at path: '{path.as_posix()}' does not exist")
        if not path.is_file():
            raise typer.BadParameter(message=f"path: '{path.as_posix()}' is not a file")
    return value


def client_callback(ctx: typer.Context, value: str):
    if ctx.resilient_parsing:
        return value
    module_name, _, attr_name = value.partition(":")
    if not module_name or not attr_name:
        raise typer.BadParameter(
            message=f"'{value}' must look like 'module:attribute'",
            param_hint="--client",
        )
    return value
