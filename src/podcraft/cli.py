"""Podcraft CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from ruamel.yaml import YAML

from podcraft.errors import ProcessingError, ValidationError
from podcraft.observability import close_file_logging, configure_logging, get_logger
from podcraft.pipeline.config import (
    DEFAULT_CONFIG_FILENAME,
    PipelineConfig,
    PipelineConfigError,
    create_default_config,
    load_pipeline_config,
)
from podcraft.pipeline.orchestrator import PipelineOrchestrator, describe_failure
from podcraft.pipeline.registry import STAGE_REGISTRY

if TYPE_CHECKING:
    from podcraft.pipeline.orchestrator import PipelineRun

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="podcraft",
    help="Podcraft: turn podcast transcripts into articles, posts and newsletters.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)
log = get_logger(__name__)

DEFAULT_OUTPUT_DIR = Path("output")

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False

STATUS_ICONS = {
    "completed": "[green]✓[/green] completed",
    "pending": "[dim]○[/dim] pending",
    "running": "[yellow]…[/yellow] running",
    "failed": "[red]✗[/red] failed",
}

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help=f"Pipeline config file (default: ./{DEFAULT_CONFIG_FILENAME} if present).",
        envvar="PODCRAFT_CONFIG",
    ),
]


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_to_file: Annotated[
        bool,
        typer.Option(
            "--log",
            help="Enable file logging to {output}/logs/debug.jsonl.",
        ),
    ] = False,
) -> None:
    """Podcraft: turn podcast transcripts into articles, posts and newsletters."""
    global _verbose, _log_enabled
    _verbose = verbose
    _log_enabled = log_to_file

    # Console logging now, file logging once the output directory is known
    configure_logging(verbosity=verbose)


def _configure_output_logging(output_dir: Path) -> None:
    if _log_enabled:
        configure_logging(verbosity=_verbose, log_to_file=True, log_dir=output_dir / "logs")
        atexit.register(close_file_logging)


def _load_config(config: Path | None) -> PipelineConfig:
    """Load the given config, the local default file, or built-in defaults."""
    if config is None:
        default = Path(DEFAULT_CONFIG_FILENAME)
        if not default.exists():
            return PipelineConfig()
        config = default
    try:
        return load_pipeline_config(config)
    except PipelineConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _read_transcript(path: Path) -> str:
    if not path.exists():
        err_console.print(f"[red]Error:[/red] Transcript not found: {path}")
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def write_outputs(pipeline_run: PipelineRun, output_dir: Path) -> list[Path]:
    """Write every stage output under ``output_dir``.

    Text outputs go to ``<NN>_<stage>.md`` (one file per article when a
    stage produced several), structured outputs to ``<NN>_<stage>.json``,
    and a ``run.json`` summary closes the set. Skipped stages write nothing.

    Returns:
        Paths written, in stage order.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    for key, result in pipeline_run.results.items():
        if result.skipped:
            continue
        prefix = f"{STAGE_REGISTRY.get(key).number:02d}_{key.value}"

        if isinstance(result.output_text, dict):
            for name, text in result.output_text.items():
                path = output_dir / f"{prefix}_{name}.md"
                path.write_text(text, encoding="utf-8")
                written.append(path)
        elif result.output_text:
            path = output_dir / f"{prefix}.md"
            path.write_text(result.output_text, encoding="utf-8")
            written.append(path)

        if result.output_data is not None:
            path = output_dir / f"{prefix}.json"
            path.write_text(result.output_data.model_dump_json(indent=2), encoding="utf-8")
            written.append(path)

    usage = pipeline_run.usage
    summary = {
        "run_id": pipeline_run.run_id,
        "phases": [
            {
                "name": report.name,
                "status": report.status.value,
                "stages": [k.value for k in report.stages],
                "cost_usd": round(report.usage.cost_usd, 6),
                "duration_ms": report.usage.duration_ms,
            }
            for report in pipeline_run.phases
        ],
        "input_tokens": usage.input_tokens,
        "output_tokens": usage.output_tokens,
        "cost_usd": round(usage.cost_usd, 6),
        "duration_ms": usage.duration_ms,
        "validation_issues": {k.value: v for k, v in pipeline_run.validation_issues.items()},
    }
    path = output_dir / "run.json"
    path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
    written.append(path)
    return written


def _print_run_summary(pipeline_run: PipelineRun) -> None:
    table = Table(title=f"Run {pipeline_run.run_id}")
    table.add_column("Phase", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Stages")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Duration", justify="right", style="dim")

    for report in pipeline_run.phases:
        table.add_row(
            report.name,
            STATUS_ICONS.get(report.status.value, report.status.value),
            ", ".join(k.value for k in report.stages),
            f"{report.usage.total_tokens:,}",
            f"${report.usage.cost_usd:.4f}",
            f"{report.usage.duration_ms / 1000:.1f}s",
        )

    usage = pipeline_run.usage
    table.add_section()
    table.add_row(
        "total",
        "",
        "",
        f"{usage.total_tokens:,}",
        f"${usage.cost_usd:.4f}",
        f"{usage.duration_ms / 1000:.1f}s",
    )

    console.print()
    console.print(table)

    issues = pipeline_run.validation_issues
    if issues:
        console.print()
        console.print(f"[yellow]Quality warnings in {len(issues)} stage(s):[/yellow]")
        for key, messages in issues.items():
            for message in messages:
                console.print(f"  [yellow]•[/yellow] {key.value}: {message}")


async def _execute(
    orchestrator: PipelineOrchestrator,
    transcript: str,
    run_id: str | None,
) -> PipelineRun:
    try:
        return await orchestrator.run(transcript, run_id=run_id)
    finally:
        await orchestrator.close()


@app.command()
def run(
    transcript: Annotated[Path, typer.Argument(help="Transcript text file.")],
    config: ConfigOption = None,
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory for generated content."),
    ] = DEFAULT_OUTPUT_DIR,
    run_id: Annotated[
        str | None,
        typer.Option("--run-id", help="Run identifier (generated when omitted)."),
    ] = None,
) -> None:
    """Process a transcript through every phase and write the results."""
    pipeline_config = _load_config(config)
    text = _read_transcript(transcript)
    _configure_output_logging(output)

    orchestrator = PipelineOrchestrator(pipeline_config)
    console.print(f"[dim]Processing {transcript} ...[/dim]")
    try:
        pipeline_run = asyncio.run(_execute(orchestrator, text, run_id))
    except ValidationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ProcessingError as e:
        log.debug("run_failed", error=str(e))
        err_console.print(f"[red]✗[/red] {describe_failure(e)}")
        raise typer.Exit(1) from e

    written = write_outputs(pipeline_run, output)
    _print_run_summary(pipeline_run)
    console.print()
    console.print(f"[green]✓[/green] Wrote {len(written)} files to [cyan]{output}[/cyan]")


@app.command()
def estimate(
    transcript: Annotated[Path, typer.Argument(help="Transcript text file.")],
    config: ConfigOption = None,
) -> None:
    """Project token usage and cost before running."""
    pipeline_config = _load_config(config)
    text = _read_transcript(transcript)
    try:
        projection = PipelineOrchestrator(pipeline_config).estimate(text)
    except ProcessingError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(title=f"Estimate for {transcript.name}")
    table.add_column("Stage", style="cyan")
    table.add_column("Model", style="dim")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cost", justify="right")
    for stage in projection.stages:
        table.add_row(
            stage.stage,
            stage.model,
            f"{stage.input_tokens:,}",
            f"{stage.output_tokens:,}",
            f"${stage.cost_usd:.4f}",
        )
    table.add_section()
    table.add_row(
        "total", "", "", f"{projection.total_tokens:,}", f"${projection.total_cost_usd:.4f}"
    )

    console.print()
    console.print(table)


@app.command()
def stages() -> None:
    """Show the stage plan: phases, models and stage kinds."""
    table = Table(title="Pipeline stages")
    for column in ("Phase", "#", "Key", "Name", "Provider", "Model", "Kind"):
        table.add_column(column, style="cyan" if column == "Key" else None)
    for row in STAGE_REGISTRY.stage_table():
        table.add_row(*row)

    console.print()
    console.print(table)


@app.command()
def init(
    path: Annotated[
        Path,
        typer.Argument(help="Where to write the config file."),
    ] = Path(DEFAULT_CONFIG_FILENAME),
    podcast_name: Annotated[str, typer.Option("--podcast-name", help="Show name.")] = "",
    host_name: Annotated[str, typer.Option("--host-name", help="Host name.")] = "",
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing file.")] = False,
) -> None:
    """Write a starter pipeline config."""
    if path.exists() and not force:
        err_console.print(f"[red]Error:[/red] {path} already exists (use --force).")
        raise typer.Exit(1)

    yaml = YAML()
    yaml.default_flow_style = False
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.dump(create_default_config(podcast_name, host_name), f)
    console.print(f"[green]✓[/green] Created config: [cyan]{path}[/cyan]")


@app.command()
def version() -> None:
    """Show version information."""
    from podcraft import __version__

    console.print(f"Podcraft v{__version__}")


if __name__ == "__main__":
    app()
