"""CLI interface for Digital Studio."""

import asyncio
from pathlib import Path

import typer

from .config import settings
from .exceptions import ConfigurationError, DigitalStudioError
from .models import Attachment, GenerationResult, PlatformHint, Stage
from .scaffold import assemble_project
from .utils import save_project, write_archive

app = typer.Typer(help="Generate React project scaffolds from UI screens or a description")


@app.command()
def generate(
    images: list[Path] = typer.Option(None, "--image", "-i", help="Screen image (repeat for multiple pages)"),
    prompt: str = typer.Option(None, "--prompt", "-p", help="Text description of the application"),
    figma_url: str = typer.Option(None, "--figma", "-f", help="Figma file URL to import screens from"),
    name: str = typer.Option("react-project", "--name", "-n", help="Project name"),
    platform: PlatformHint = typer.Option(PlatformHint.WEB, "--platform", help="Target form factor"),
    output: Path = typer.Option(None, "--output", "-o", help="Output directory, or a .zip file path"),
) -> None:
    """Generate a project scaffold."""
    from .server import build_figma_source, build_pipeline

    try:
        pipeline = build_pipeline(settings)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2) from e

    async def _progress(stage: Stage, message: str) -> None:
        typer.echo(f"[{stage.value}] {message}", err=True)

    async def _generate() -> GenerationResult:
        attachments = [Attachment.from_path(path) for path in images or []]
        if figma_url:
            attachments.extend(await build_figma_source(settings).fetch(figma_url))
        return await pipeline.run(name, attachments or prompt, platform, progress=_progress)

    try:
        result = asyncio.run(_generate())
    except (DigitalStudioError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    files = assemble_project(name, result.artifacts)
    if output and output.suffix == ".zip":
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(write_archive(files, name))
        destination = output
    else:
        destination = save_project(files, name, metadata={"review": result.review.model_dump()}, results_dir=output)

    typer.echo(f"Pages: {', '.join(result.plan.pages) or '(none)'}")
    typer.echo(f"Components: {', '.join(result.plan.reusable_components) or '(none)'}")
    typer.echo(f"Review score: {result.review.score:g} - {result.review.justification}")
    typer.echo(f"Saved {len(files)} files to {destination}")


@app.command()
def config() -> None:
    """Show current configuration."""
    generation = settings.generation
    keys = generation.resolve_api_keys()
    print(f"Provider: {generation.provider}")
    print(f"Models: {', '.join(generation.models)}")
    print(f"Credentials: {len(keys)} configured")
    print(f"Base URL: {generation.base_url or '(default)'}")
    print(f"Rate-limit backoff: {generation.rate_limit_backoff_seconds:g}s")
    print(f"Repair attempts: {generation.repair_attempts}")
    print(f"Parallel pages: {generation.parallel_pages} (max {generation.max_parallel_pages})")
    print(f"Request timeout: {generation.timeout or '(none)'}")
    print(f"Figma token: {'set' if settings.figma.get_api_token() else '(none)'}")
    print(f"Results dir: {settings.server.results_dir or '(default)'}")


@app.command()
def server() -> None:
    """Start the MCP server."""
    from .server import main

    main()


if __name__ == "__main__":
    app()
