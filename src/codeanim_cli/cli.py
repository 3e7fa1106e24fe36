from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .config import CodeAnimConfig, ConfigError, find_config, load_config
from .export import ExportError, ExportOptions, ExportProgress, VideoExporter
from .io import load_project
from .preview import PreviewSession
from .render.timeline import (
    build_timeline_ir,
    describe_timeline,
    export_timeline_jsonschema,
    write_timeline,
)
from .reproducibility import stamp_version
from .schema import Project, VideoSettings
from .validate import validate_project

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Animate code walkthroughs from a slide project."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_path: Optional[Path]) -> CodeAnimConfig:
    try:
        return load_config(config_path or find_config())
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2) from e


def _load_project(project_yaml: Path) -> Project:
    try:
        return load_project(project_yaml)
    except Exception as e:
        console.print(f"[bold red]Failed to load project:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2) from e


@app.command()
def validate(project_yaml: Path = typer.Argument(..., exists=True, dir_okay=False)):
    res = validate_project(project_yaml)
    if res.errors:
        console.print("[bold red]Errors[/bold red]")
        for e in res.errors:
            console.print(f"- {escape(e)}")
    if res.warnings:
        console.print("[bold yellow]Warnings[/bold yellow]")
        for w in res.warnings:
            console.print(f"- {escape(w)}")
    if res.ok:
        console.print("[bold green]OK[/bold green]")
        raise typer.Exit(code=0)
    raise typer.Exit(code=2)


@app.command()
def timeline(
    project_yaml: Path = typer.Argument(..., exists=True, dir_okay=False),
    speed: Optional[float] = typer.Option(None, "--speed", min=0.01, help="Override global speed"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the timeline as JSON"),
):
    """Show the scheduled steps of a project."""
    project = _load_project(project_yaml)
    ir = build_timeline_ir(project, global_speed=speed)

    table = Table(title=f"Timeline: {project.name} ({ir.total_duration_ms / 1000.0:.2f}s)")
    for col in ("#", "Style", "Start", "End", "Added", "Removed", "Visible"):
        table.add_column(col)
    for row in describe_timeline(ir.steps):
        table.add_row(
            str(row["slide_index"]),
            row["style"],
            f"{row['start_sec']:.3f}",
            f"{row['end_sec']:.3f}",
            str(row["added"]),
            str(row["removed"]),
            str(row["visible"]),
        )
    console.print(table)

    if out is not None:
        write_timeline(ir, out)
        console.print(f"Wrote {out}")


@app.command()
def frame(
    project_yaml: Path = typer.Argument(..., exists=True, dir_okay=False),
    time_sec: float = typer.Option(0.0, "--time", "-t", min=0.0, help="Timeline position in seconds"),
    out: Path = typer.Option(Path("frame.png"), "--out"),
    config_path: Optional[Path] = typer.Option(None, "--config"),
):
    """Render a single preview frame at a timeline position."""
    config = _load_config(config_path)
    project = _load_project(project_yaml)

    session = PreviewSession(
        project.code,
        project.language,
        project.ordered_slides(),
        project.settings.global_speed,
        config=config,
    )
    location = session.seek(time_sec * 1000.0)
    image = session.render()
    out.parent.mkdir(parents=True, exist_ok=True)
    image.save(out)

    if location is None:
        console.print(f"[yellow]No slide active at {time_sec:.3f}s[/yellow]")
    else:
        console.print(
            f"Slide {location.slide_index} at {location.local_progress:.0%} of its transition"
        )
    console.print(f"Wrote {out}")


@app.command("export")
def export_cmd(
    project_yaml: Path = typer.Argument(..., exists=True, dir_okay=False),
    fmt: Optional[str] = typer.Option(None, "--format", "-f", help="mp4, webm or gif"),
    fps: Optional[int] = typer.Option(None, "--fps", min=1, max=120),
    resolution: Optional[str] = typer.Option(None, "--resolution", help="720p, 1080p or 4K"),
    out: Optional[Path] = typer.Option(None, "--out", "-o"),
    config_path: Optional[Path] = typer.Option(None, "--config"),
):
    """Render the project to a video or GIF. Ctrl-C cancels."""
    config = _load_config(config_path)
    project = _load_project(project_yaml)

    values = config.export.model_dump()
    values.update(project.settings.video.model_dump(exclude_unset=True))
    overrides = {"format": fmt, "frame_rate": fps, "resolution": resolution}
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        settings = VideoSettings.model_validate(values)
    except ValueError as e:
        console.print(f"[bold red]Invalid export settings:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2) from e

    out_path = out or project_yaml.parent / f"{project.name}.{settings.format}"
    exporter = VideoExporter(config)
    options = ExportOptions(video_settings=settings, project_name=project.name)

    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Preparing", total=1.0)

        def on_progress(p: ExportProgress) -> None:
            progress.update(task, description=p.phase.capitalize(), completed=p.progress)

        async def run():
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, exporter.cancel_export)
            except NotImplementedError:
                pass
            try:
                return await exporter.export_video(
                    project.code,
                    project.language,
                    project.ordered_slides(),
                    options,
                    on_progress,
                    project.settings.global_speed,
                )
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except NotImplementedError:
                    pass

        try:
            artifact = asyncio.run(run())
        except ExportError as e:
            progress.stop()
            console.print(f"[bold red]Export {e.kind}:[/bold red] {escape(e.message)}")
            raise typer.Exit(code=130 if e.kind == "cancelled" else 1) from e

    artifact.write(out_path)
    sidecar = stamp_version(
        out_path,
        {
            "project": project.name,
            "format": artifact.format,
            "resolution": settings.resolution,
            "frame_rate": artifact.frame_rate,
            "frame_count": artifact.frame_count,
            "duration_sec": artifact.duration_sec,
            "global_speed": project.settings.global_speed,
        },
    )
    console.print(
        f"[bold green]Exported[/bold green] {out_path} "
        f"({artifact.width}x{artifact.height}, {artifact.frame_count} frames)"
    )
    console.print(f"Version: {sidecar}")


schema_app = typer.Typer(add_completion=False, no_args_is_help=True)
app.add_typer(schema_app, name="schema")


@schema_app.command("export-jsonschema")
def export_schemas(out_dir: Path = typer.Option(Path("docs/jsonschema"), "--out-dir")):
    out_dir.mkdir(parents=True, exist_ok=True)
    project_path = out_dir / "project.schema.json"
    project_path.write_text(json.dumps(Project.model_json_schema(), indent=2), encoding="utf-8")
    console.print(f"Wrote {project_path}")

    timeline_path = out_dir / "timeline.schema.json"
    export_timeline_jsonschema(timeline_path)
    console.print(f"Wrote {timeline_path}")


if __name__ == "__main__":
    app()
