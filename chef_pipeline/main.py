"""
chef-pipeline - Main Entry Point
CLI interface for building and deploying front-end projects.
"""

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from chef_pipeline.config import get_config
from chef_pipeline.core.docker_client import DockerClient
from chef_pipeline.core.errors import InvalidBuildStateError, PipelineError
from chef_pipeline.core.logger import ConsoleReporter, setup_logging
from chef_pipeline.models.build import Build, BuildStatus
from chef_pipeline.pipeline.cleanup import CleanupManager
from chef_pipeline.pipeline.orchestrator import Pipeline
from chef_pipeline.utils.helpers import format_duration, generate_id

# CLI app
app = typer.Typer(
    name="chef-pipeline",
    help="Build front-end projects in containers and deploy them.",
    add_completion=False,
)

console = Console()


def print_header():
    """Print the application header."""
    console.print(Panel.fit(
        "[bold blue]chef-pipeline[/bold blue]\n"
        "[dim]Container builds for front-end projects[/dim]",
        border_style="blue",
    ))


@app.command()
def build(
    source_dir: Path = typer.Argument(
        ...,
        help="Path to the project directory",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    project: str = typer.Option(
        ...,
        "--project", "-p",
        help="Project id (names the deployment target)",
    ),
    framework: str = typer.Option(
        "react",
        "--framework", "-f",
        help="Framework tag: react, vue, svelte or angular",
    ),
    build_command: str = typer.Option(
        "build",
        "--command", "-c",
        help="package.json script that builds the project",
    ),
    output_dir: str = typer.Option(
        "dist",
        "--output-dir", "-o",
        help="Directory the build script writes to",
    ),
    commit: Optional[str] = typer.Option(
        None,
        "--commit",
        help="Commit hash used to tag the image",
    ),
    build_id: Optional[str] = typer.Option(
        None,
        "--build-id",
        help="Build id (generated when omitted)",
    ),
    platform: Optional[str] = typer.Option(
        None,
        "--platform",
        help="Override DEPLOY_PLATFORM (static or kubernetes)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output the build record as JSON",
    ),
):
    """
    Build a project and deploy the result.

    Example:
        chef-pipeline build ./my-app --project my-app --output-dir build
    """
    if not output_json:
        print_header()
    setup_logging(verbose)

    config = get_config()
    pipeline_config = config.pipeline
    if platform:
        pipeline_config = replace(pipeline_config, deploy=replace(pipeline_config.deploy, platform=platform))

    request = Build(
        id=build_id or generate_id("build", 12),
        project_id=project,
        framework=framework,
        build_command=build_command,
        output_dir=output_dir,
        builder_config={"sourceDir": str(source_dir)},
        commit_hash=commit,
    )

    try:
        pipeline = Pipeline.from_config(pipeline_config)
        result = asyncio.run(_run_build(pipeline, request, quiet=output_json))
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if output_json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _print_build(result)

    raise typer.Exit(0 if result.status == BuildStatus.SUCCESS else 1)


async def _run_build(pipeline: Pipeline, request: Build, quiet: bool = False) -> Build:
    reporter = ConsoleReporter("pipeline")
    await pipeline.start_build(request)
    if not quiet:
        reporter.step(f"Build {request.id} started for {request.project_id}")

    try:
        with console.status(f"Building {request.project_id}...", spinner="dots"):
            return await pipeline.wait_for_build(request.id)
    except asyncio.CancelledError:
        try:
            pipeline.cancel_build(request.id)
        except InvalidBuildStateError:
            pass
        await pipeline.shutdown()
        raise


@app.command()
def cleanup(
    max_age_hours: float = typer.Option(
        24.0,
        "--max-age-hours",
        help="Remove working directories older than this",
    ),
):
    """
    Remove stale build and cache directories. Artifacts are kept.
    """
    setup_logging(False)
    reporter = ConsoleReporter("cleanup")
    manager = CleanupManager(get_config().pipeline)

    try:
        removed = manager.cleanup_old_builds(max_age_hours * 3600)
    except PipelineError as e:
        reporter.error(str(e), e)
        raise typer.Exit(1)

    for path in removed:
        console.print(f"  🗑  {path}")
    reporter.success(f"Removed {len(removed)} directories")


@app.command()
def check():
    """
    Check configuration and the Docker engine.
    """
    print_header()

    config = get_config()
    pipeline = config.pipeline

    table = Table(title="Prerequisites Check")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    docker_ok = asyncio.run(DockerClient().ping())
    if docker_ok:
        table.add_row("Docker", "✅ Reachable", pipeline.nodejs.runtime_image)
    else:
        table.add_row("Docker", "❌ Unreachable", "Start Docker or set DOCKER_HOST")

    table.add_row("Deploy platform", "✅ Set", pipeline.deploy.platform)
    if pipeline.deploy.platform == "static":
        table.add_row("Static path", "✅ Set", str(pipeline.deploy.static_path))
    else:
        table.add_row("Namespace", "✅ Set", pipeline.deploy.namespace)
        table.add_row("Ingress domain", "✅ Set" if pipeline.deploy.ingress_domain else "❌ Missing",
                      pipeline.deploy.ingress_domain or "Set DEPLOY_INGRESS_DOMAIN")

    if pipeline.deploy.registry:
        table.add_row("Registry", "✅ Set", pipeline.deploy.registry)
    else:
        table.add_row("Registry", "⚠️ Not set", "Images stay local to the Docker host")

    console.print()
    console.print(table)

    issues = config.validate()
    if issues:
        console.print("\n[yellow]Configuration warnings:[/yellow]")
        for issue in issues:
            console.print(f"  • {issue}")
        raise typer.Exit(1)


def _print_build(build: Build):
    """Print the final build record."""
    status_color = {
        BuildStatus.SUCCESS: "green",
        BuildStatus.CANCELLED: "yellow",
        BuildStatus.FAILED: "red",
    }
    color = status_color.get(build.status, "white")
    duration = build.duration_seconds

    console.print(Panel(
        f"[bold {color}]{build.status.value.upper()}[/bold {color}]\n"
        f"Duration: {format_duration(duration) if duration is not None else '-'}",
        title=f"Build: {build.id}",
        border_style=color,
    ))

    table = Table(title="Build Details")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Project", build.project_id)
    table.add_row("Framework", build.framework)
    table.add_row("Image", build.image_id or "-")
    table.add_row("Artifact", build.artifact_path or "-")
    console.print(table)

    if build.error_message:
        console.print(f"\n[bold red]Error:[/bold red] {build.error_message}")
    if build.rollback_error:
        console.print(f"[bold yellow]Rollback:[/bold yellow] {build.rollback_error}")


if __name__ == "__main__":
    app()
