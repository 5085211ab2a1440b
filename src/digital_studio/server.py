"""MCP server exposing scaffold generation as tools."""

import json
import logging
import os
import sys
import time
from pathlib import Path


def _configure_stdio_logging() -> None:
    """Send all logging to stderr.

    In stdio mode, stdout is reserved exclusively for JSON-RPC messages.
    Any logging or print() to stdout corrupts the protocol stream.
    """
    os.environ.setdefault("BROWSER_USE_LOGGING_LEVEL", "warning")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.handlers = [stderr_handler]
    root.setLevel(logging.WARNING)

    for logger_name in ["httpx", "httpcore", "asyncio", "browser_use", "google_genai", "openai", "anthropic"]:
        dep_logger = logging.getLogger(logger_name)
        dep_logger.setLevel(logging.WARNING)
        dep_logger.handlers = [stderr_handler]
        dep_logger.propagate = False


# Configure logging BEFORE importing browser_use and other noisy dependencies
_configure_stdio_logging()

# ruff: noqa: E402 - Intentional late imports after logging configuration
from fastmcp import FastMCP
from fastmcp.dependencies import CurrentContext
from fastmcp.server.context import Context

from .config import AppSettings, settings
from .exceptions import AllEndpointsExhausted, GenerationTimeout, MalformedOutput, NoAttachmentsOrPrompt, PipelineFailure, UpstreamDesignFetchError
from .figma import FigmaDesignSource, extract_file_key
from .invocation import GenerationGateway
from .models import Attachment, Stage
from .observability import setup_structured_logging
from .pipeline import STAGE_ORDER, ScaffoldPipeline
from .scaffold import assemble_project
from .utils import save_project

logger = logging.getLogger("digital_studio")
logger.setLevel(getattr(logging, settings.server.logging_level.upper()))

_server_start_time = time.time()


def build_pipeline(app_settings: AppSettings) -> ScaffoldPipeline:
    """Create the pipeline and its access pool from settings.

    Raises:
        ConfigurationError: If no credential is configured.
    """
    generation = app_settings.generation
    pool = app_settings.build_pool()
    gateway = GenerationGateway(
        pool,
        provider=generation.provider,
        base_url=generation.base_url,
        backoff_seconds=generation.rate_limit_backoff_seconds,
    )
    logger.info(f"Access pool ready: {len(pool.credentials)} credentials x {len(pool.models)} models")
    return ScaffoldPipeline(
        gateway,
        repair_attempts=generation.repair_attempts,
        parallel_pages=generation.parallel_pages,
        max_parallel_pages=generation.max_parallel_pages,
        timeout=generation.timeout,
    )


def build_figma_source(app_settings: AppSettings) -> FigmaDesignSource:
    return FigmaDesignSource(
        api_token=app_settings.figma.get_api_token(),
        base_url=app_settings.figma.api_base_url,
        timeout=app_settings.figma.timeout_seconds,
    )


def serve(pipeline: ScaffoldPipeline | None = None, figma: FigmaDesignSource | None = None) -> FastMCP:
    """Create and configure the MCP server.

    The access pool is built here, so a process without credentials fails
    before it accepts a single request.
    """
    setup_structured_logging(settings.server.logging_level)

    pipeline = pipeline or build_pipeline(settings)
    figma = figma or build_figma_source(settings)
    server = FastMCP("digital_studio")

    @server.tool()
    async def generate_scaffold(
        project_name: str = "react-project",
        description: str | None = None,
        image_paths: list[str] | None = None,
        figma_url: str | None = None,
        platform: str = "web",
        save: bool = True,
        ctx: Context = CurrentContext(),
    ) -> str:
        """
        Generate a runnable React + Vite + Tailwind project from UI screens or a description.

        Screens come from image_paths and/or figma_url (in that order). When any
        screen is supplied the description is not used; otherwise the description
        alone drives generation.

        Args:
            project_name: Name of the generated project
            description: Text description of the application (text-driven mode)
            image_paths: Local paths of screen images, one page per screen
            figma_url: Figma file URL whose frames become screens
            platform: Target form factor: web, mobile, tablet, or desktop
            save: Write the project to the results directory

        Returns:
            JSON with the review score, plan, file list, and the saved location
            (or the file contents when save is false).
        """
        try:
            attachments = [Attachment.from_path(path) for path in image_paths or []]
            if figma_url:
                await ctx.info("Importing Figma frames...")
                attachments.extend(await figma.fetch(figma_url))
        except UpstreamDesignFetchError as e:
            logger.error(f"Figma import failed ({e.reason}): {e}")
            return f"Error: {e}"
        except OSError as e:
            return f"Error: Could not read screen image: {e}"

        source = attachments or description
        total = len(STAGE_ORDER)

        async def report(stage: Stage, message: str) -> None:
            await ctx.report_progress(progress=STAGE_ORDER.index(stage), total=total)
            await ctx.info(message)

        try:
            result = await pipeline.run(project_name, source, platform, progress=report)
        except NoAttachmentsOrPrompt as e:
            return f"Error: {e}"
        except (AllEndpointsExhausted, MalformedOutput, GenerationTimeout) as e:
            stage = getattr(e, "stage", None)
            raise PipelineFailure(stage, e) from e
        await ctx.report_progress(progress=total, total=total)

        files = assemble_project(project_name, result.artifacts)
        payload = {
            "project": project_name,
            "review": result.review.model_dump(),
            "plan": result.to_dict()["plan"],
        }
        if save:
            saved_to = save_project(files, project_name, metadata={"review": payload["review"], "plan": payload["plan"]})
            payload["saved_to"] = str(saved_to)
            payload["files"] = sorted(files)
        else:
            payload["files"] = files
        return json.dumps(payload, indent=2)

    @server.tool()
    async def import_figma_frames(figma_url: str) -> str:
        """
        Download every frame of a Figma file as PNG screens.

        Args:
            figma_url: Figma file URL

        Returns:
            JSON list of saved screen paths, usable as image_paths for generate_scaffold
        """
        try:
            attachments = await figma.fetch(figma_url)
            target = settings.get_results_dir() / "figma" / extract_file_key(figma_url)
        except UpstreamDesignFetchError as e:
            return json.dumps({"success": False, "reason": e.reason, "error": str(e)})

        target.mkdir(parents=True, exist_ok=True)
        saved = []
        for attachment in attachments:
            path = target / Path(attachment.name).name
            path.write_bytes(attachment.data)
            saved.append({"fileName": attachment.name, "path": str(path)})
        return json.dumps({"success": True, "frames": saved}, indent=2)

    @server.tool()
    async def health_check() -> str:
        """
        Health check with uptime, memory usage, and access pool size.

        Returns:
            JSON object with server health status
        """
        import psutil

        process = psutil.Process()
        pool = pipeline.gateway.pool
        return json.dumps(
            {
                "status": "healthy",
                "uptime_seconds": round(time.time() - _server_start_time, 1),
                "memory_mb": round(process.memory_info().rss / 1024 / 1024, 1),
                "provider": pipeline.gateway.provider,
                "models": list(pool.models),
                "credentials": len(pool.credentials),
                "candidates": pool.size,
            },
            indent=2,
        )

    return server


def main() -> None:
    """Entry point for the MCP server."""
    transport = settings.server.transport
    server_instance = serve()

    if transport == "stdio":
        server_instance.run(transport="stdio")
    elif transport in ("streamable-http", "sse"):
        logger.info(f"Starting Digital Studio server (provider: {settings.generation.provider}, transport: {transport})")
        logger.info(f"HTTP server at http://{settings.server.host}:{settings.server.port}/mcp")
        server_instance.run(transport=transport, host=settings.server.host, port=settings.server.port)
    else:
        raise ValueError(f"Unknown transport: {transport}")


if __name__ == "__main__":
    main()
