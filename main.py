#!/usr/bin/env python3
"""
Workflow Block Builder CLI

Turns narrated screen recordings into editable workflow block graphs.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from config import ModelConfig, get_config, update_config
from utils.logger import WorkflowLogger
from utils.tracking import CostTracker, Timer

load_dotenv()

# Create Typer app
app = typer.Typer(
    name="workflow-block-builder",
    help="Turn screen recordings into editable workflow block graphs",
    rich_markup_mode="rich",
)

console = Console()


def _load_record(path: Path):
    from analyzer.schema import WorkflowRecord

    if not path.exists():
        console.print(f"[red]✗[/red] Workflow record not found: {path}")
        raise typer.Exit(1)
    try:
        return WorkflowRecord.load(path)
    except (json.JSONDecodeError, KeyError, ValueError) as e:
        console.print(f"[red]✗[/red] Could not read workflow record {path}: {e}")
        raise typer.Exit(1)


@app.command()
def serve(
    host: Annotated[
        str,
        typer.Option("--host", help="Interface to bind"),
    ] = "0.0.0.0",
    port: Annotated[
        int,
        typer.Option("-p", "--port", help="Port to listen on"),
    ] = 5000,
    model: Annotated[
        Optional[str],
        typer.Option("-m", "--model", help="Use one model for every stage"),
    ] = None,
) -> None:
    """Run the HTTP API server."""
    import uvicorn

    from api.server import create_app
    from pipeline.blob_store import LocalBlobStore
    from pipeline.orchestrator import PipelineOrchestrator
    from pipeline.store import InMemoryWorkflowStore

    config = get_config()
    if model:
        update_config(models=ModelConfig.all_same(model))
    config.ensure_dirs()

    logger = WorkflowLogger("serve", logs_dir=config.logs_dir)
    logger.capture()
    logger.capture("uvicorn", level=logging.WARNING)

    try:
        logger.header("Workflow API Server")
        logger.info(f"Uploads: [cyan]{config.uploads_dir}[/cyan]")
        logger.info(f"Vision model: [cyan]{config.models.vision}[/cyan]")
        logger.info(f"Block generation model: [cyan]{config.models.block_generation}[/cyan]")

        store = InMemoryWorkflowStore()
        blob_store = LocalBlobStore(config.uploads_dir)
        orchestrator = PipelineOrchestrator.from_config(config, store, blob_store, logger=logger)
        api = create_app(config, store=store, blob_store=blob_store, orchestrator=orchestrator)

        uvicorn.run(api, host=host, port=port)
    finally:
        logger.close()


@app.command()
def process(
    video: Annotated[
        Path,
        typer.Argument(help="Path to video file (.mov or .mp4)"),
    ],
    title: Annotated[
        Optional[str],
        typer.Option("-t", "--title", help="Workflow title (defaults to file name)"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output path for the workflow record (.json)"),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("-m", "--model", help="Use one model for every stage"),
    ] = None,
    max_frames: Annotated[
        Optional[int],
        typer.Option("--max-frames", help="Maximum number of frames to describe"),
    ] = None,
) -> None:
    """Process a video through the whole pipeline and save the workflow record."""
    from pipeline.orchestrator import PipelineOrchestrator
    from pipeline.store import InMemoryWorkflowStore

    if not video.exists():
        console.print(f"[red]✗[/red] Video file not found: {video}")
        raise typer.Exit(1)

    config = get_config()
    if model:
        update_config(models=ModelConfig.all_same(model))
    if max_frames:
        update_config(max_frames=max_frames)
    config.ensure_dirs()

    logger = WorkflowLogger("process", logs_dir=config.logs_dir)
    cost_tracker = CostTracker()

    try:
        logger.header("Workflow Processing")
        logger.info(f"Video: [cyan]{video}[/cyan]")
        logger.info(f"Vision model: [cyan]{config.models.vision}[/cyan]")
        logger.info(f"Synthesis model: [cyan]{config.models.synthesis}[/cyan]")
        logger.info(f"Organization model: [cyan]{config.models.organization}[/cyan]")

        store = InMemoryWorkflowStore()
        orchestrator = PipelineOrchestrator.from_config(
            config,
            store,
            cost_tracker=cost_tracker,
            logger=logger,
            verbose=True,
        )
        record = store.create(title=title or video.stem, video_ref=str(video.resolve()))

        with Timer("Processing") as timer:
            completed = orchestrator.run(record.id)
        orchestrator.shutdown()

        record = store.get(record.id)
        output_path = output or Path("./workflows") / f"{video.stem}.json"
        record.save(output_path)

        logger.header("Processing Summary")
        if cost_tracker.stage_stats:
            logger.table(
                "Cost by Stage",
                ["Stage", "Model", "Calls", "Input", "Output", "Cost"],
                cost_tracker.get_stage_summary(),
            )
            logger.print()

        summary_data = {
            "Status": "[green]Completed[/green]" if completed else f"[red]Failed[/red]: {record.error}",
            "Duration": timer.elapsed_str,
            "Events": str(len(record.raw_extraction.transcript)) if record.raw_extraction else "-",
            "Steps": str(len(record.organized_workflow.steps)) if record.organized_workflow else "-",
            "Blocks": str(len(record.block_structure.blocks)) if record.block_structure else "-",
            **cost_tracker.get_summary(),
            "Record": str(output_path),
            "Log File": str(logger.log_file),
        }
        logger.summary("Processing Complete", summary_data, style="green" if completed else "red")

        if not completed:
            raise typer.Exit(1)
    finally:
        logger.close()


@app.command()
def validate(
    video: Annotated[
        Path,
        typer.Argument(help="Path to video file"),
    ],
) -> None:
    """Check whether a video would be accepted for processing."""
    from media.video_processor import VideoProcessor

    config = get_config()
    processor = VideoProcessor(
        max_video_bytes=config.max_video_bytes,
        allowed_formats=config.allowed_video_formats,
        max_video_seconds=config.max_video_seconds,
    )
    result = processor.validate(video)

    if not result.valid:
        console.print(f"[red]✗[/red] {video}: {result.reason}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] {video} is a valid recording")
    try:
        duration = processor.get_duration(video)
        console.print(f"  Duration: [cyan]{duration:.1f}s[/cyan]")
    except RuntimeError as e:
        console.print(f"  [yellow]⚠[/yellow] Could not read duration: {e}")


@app.command()
def show(
    record_path: Annotated[
        Path,
        typer.Argument(help="Path to a saved workflow record (.json)"),
    ],
) -> None:
    """Show the steps and blocks of a processed workflow."""
    from rich.table import Table

    record = _load_record(record_path)

    console.print(f"\n[bold blue]# {record.title}[/bold blue]")
    console.print(f"\n[dim]ID:[/dim] {record.id}")
    console.print(f"[dim]Status:[/dim] {record.status.value}")
    console.print(f"[dim]Created:[/dim] {record.created_at}")
    if record.error:
        console.print(f"[dim]Error:[/dim] [red]{record.error}[/red]")

    if record.organized_workflow:
        organized = record.organized_workflow
        console.print(f"\n[bold]## Steps ({len(organized.steps)})[/bold]")
        for step in organized.steps:
            console.print(f"\n  [cyan]{step.number}. {step.action}[/cyan]")
            console.print(f"    Applications: {', '.join(step.applications)}")
            if step.input.data:
                console.print(f"    Input: {step.input.data} [dim]({step.input.source})[/dim]")
            if step.output.data:
                console.print(f"    Output: {step.output.data} [dim]({step.output.destination})[/dim]")
        if organized.frequency:
            console.print(f"\n  [dim]Frequency:[/dim] {organized.frequency}")

    if record.block_structure:
        structure = record.block_structure
        table = Table(title=f"Blocks ({len(structure.blocks)})")
        for col in ["ID", "Intent", "Title", "Application"]:
            table.add_column(col)
        for block in structure.blocks:
            table.add_row(block.id, block.intent.value, block.title, block.application_name or "")
        console.print()
        console.print(table)

        for conn in structure.connections:
            console.print(
                f"  {conn.source_block_id} → {conn.target_block_id} "
                f"[dim]({conn.data_type or 'data'}, {conn.update_rules.value})[/dim]"
            )


@app.command()
def export(
    record_path: Annotated[
        Path,
        typer.Argument(help="Path to a saved workflow record (.json)"),
    ],
    format: Annotated[
        str,
        typer.Option("-f", "--format", help="json (block structure) or md (organized steps)"),
    ] = "json",
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output file"),
    ] = None,
) -> None:
    """Export a workflow's block structure as JSON or its steps as Markdown."""
    record = _load_record(record_path)

    if format == "json":
        if record.block_structure is None:
            console.print("[red]✗[/red] Workflow has no block structure to export")
            raise typer.Exit(1)
        output_path = output or Path(f"workflow-{record.id}.json")
        with open(output_path, "w") as f:
            json.dump(record.block_structure.to_dict(), f, indent=2)
    elif format == "md":
        if record.organized_workflow is None:
            console.print("[red]✗[/red] Workflow has no organized steps to export")
            raise typer.Exit(1)
        output_path = output or Path(f"workflow-{record.id}.md")
        output_path.write_text(record.organized_workflow.to_markdown(record.title))
    else:
        console.print(f"[red]✗[/red] Unknown format: {format} (use json or md)")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Exported: [cyan]{output_path}[/cyan]")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
