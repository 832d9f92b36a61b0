import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from streamling.cli.callbacks import client_callback, files_callback, provider_callback
from streamling.cli.completions import complete_model, complete_provider
from streamling.clients import load_client
from streamling.config import DEFAULT_CATALOG, SchedulerConfig
from streamling.core import JobSpec, Scheduler
from streamling.exceptions import ConfigurationError, ValidationError
from streamling.models import JobSnapshot, SchedulerUpdate, SessionState
from streamling.sources import FileSource
from streamling.status import JobStatus
from streamling.utils.logging import setup_logging

app = typer.Typer(no_args_is_help=True)

STATUS_STYLES = {
    JobStatus.SUCCEEDED: "green",
    JobStatus.FAILED: "red",
    JobStatus.ABORTED: "yellow",
}


def print_results(snapshots: list[JobSnapshot]):
    table = Table("Document", "Status", "Attempts", "Confidence", "Error", title="Results")
    for snapshot in snapshots:
        style = STATUS_STYLES.get(snapshot.status, "white")
        confidence = (
            f"{snapshot.confidence.level.value} ({snapshot.confidence.score:.2f})"
            if snapshot.confidence
            else "-"
        )
        table.add_row(
            snapshot.name,
            f"[{style}]{snapshot.status.value}[/{style}]",
            str(snapshot.attempt_count + 1),
            confidence,
            snapshot.last_error or "",
        )
    console = Console()
    console.print(table)


def write_responses(snapshots: list[JobSnapshot], output_dir: Path) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for snapshot in snapshots:
        if snapshot.status != JobStatus.SUCCEEDED:
            continue
        path = output_dir / f"{Path(snapshot.name).stem}.md"
        path.write_text(snapshot.response_text, encoding="utf-8")
        written.append(path)
    return written


async def process_files(
    specs: list[JobSpec],
    scheduler: Scheduler,
    progress: Progress,
) -> list[JobSnapshot]:
    task_id = progress.add_task(description="Processing documents...", total=len(specs))

    def on_update(update: SchedulerUpdate) -> None:
        if isinstance(update, SessionState):
            finished = update.succeeded_count + update.failed_count + update.aborted_count
            description = (
                f"Waiting for rate limit window ({update.seconds_until_next_window}s)..."
                if update.is_waiting_for_next_window
                else "Processing documents..."
            )
            progress.update(task_id, completed=finished, description=description)

    unsubscribe = scheduler.subscribe(on_update)
    try:
        async with scheduler:
            handle = scheduler.submit(specs)
            return await handle.wait()
    finally:
        unsubscribe()


@app.command(name="run")
def run(
    files: Annotated[
        list[Path],
        typer.Argument(help="The documents to process", callback=files_callback),
    ],
    instruction: Annotated[
        str,
        typer.Option("-i", "--instruction", help="The instruction applied to every document"),
    ],
    provider: Annotated[
        str,
        typer.Option(
            "-p",
            "--provider",
            help="The provider to use, e.g. gemini, mistral, openrouter, cerebras, groq..",
            callback=provider_callback,
            autocompletion=complete_provider,
        ),
    ] = "gemini",
    model: Annotated[
        str | None,
        typer.Option(
            "-m",
            "--model",
            help="The model to use, defaults to the provider's first model",
            autocompletion=complete_model,
        ),
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option(
            help="Optional, the API key to use for the provider if not using standard naming / env variables"
        ),
    ] = None,
    client: Annotated[
        str,
        typer.Option(
            help="Import path of the streaming client, as module:attribute",
            callback=client_callback,
        ),
    ] = "streamling.clients:EchoStreamingClient",
    output_dir: Annotated[
        Path | None,
        typer.Option(
            "-o", "--output-dir", help="optional, the directory where responses are written as markdown"
        ),
    ] = None,
    max_concurrent: Annotated[
        int | None,
        typer.Option(min=1, help="Optional in-flight cap, defaults to the model's rate limit"),
    ] = None,
    confidence: Annotated[
        bool,
        typer.Option(
            "--confidence/--no-confidence",
            help="Whether to score outputs and retry low confidence ones",
        ),
    ] = True,
    verbose: Annotated[bool, typer.Option("-v", "--verbose", help="Show debug logs")] = False,
):
    """Process documents with a streaming model, respecting its rate limit"""
    load_dotenv()
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING)
    try:
        model_id = model or DEFAULT_CATALOG.get_default_model(provider).id
        streaming_client = load_client(client)
        specs = [
            JobSpec(
                source=FileSource(path),
                instruction=instruction,
                provider=provider,
                model=model_id,
                api_key=api_key,
            )
            for path in files
        ]
        scheduler = Scheduler(
            client=streaming_client,
            config=SchedulerConfig(max_concurrent=max_concurrent, evaluate_confidence=confidence),
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            transient=True,
        ) as progress:
            snapshots = asyncio.run(
                process_files(specs=specs, scheduler=scheduler, progress=progress)
            )
    except (ValidationError, ConfigurationError) as error:
        print(f"[red]Error:[/red] {error}")
        raise typer.Exit(1)

    print_results(snapshots)
    if output_dir is not None:
        written = write_responses(snapshots, output_dir)
        print(f"{len(written)} response(s) written to [green]{output_dir.as_posix()}[/green]")
    if any(snapshot.status == JobStatus.FAILED for snapshot in snapshots):
        raise typer.Exit(1)


@app.command(name="models")
def list_models(
    provider: Annotated[
        str | None,
        typer.Option(
            "-p",
            "--provider",
            help="Only list the models of this provider",
            callback=provider_callback,
            autocompletion=complete_provider,
        ),
    ] = None,
):
    """List available models and their rate limits"""
    table = Table("Provider", "Model", "Name", "Requests", "Window (s)", title="Models")
    providers = (
        [DEFAULT_CATALOG.get_provider(provider)] if provider else DEFAULT_CATALOG.providers
    )
    for provider_config in providers:
        for model_config in provider_config.models:
            table.add_row(
                provider_config.id,
                model_config.id,
                model_config.name,
                str(model_config.rate_limit.limit),
                f"{model_config.rate_limit.window_seconds:g}",
            )
    console = Console()
    console.print(table)
    if provider:
        provider_config = DEFAULT_CATALOG.get_provider(provider)
        if provider_config.api_key_url:
            console.print(
                Panel(
                    f"API keys: {provider_config.api_key_url}",
                    title=provider_config.name,
                    expand=False,
                    highlight=True,
                )
            )
