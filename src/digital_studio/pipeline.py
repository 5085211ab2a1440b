"""Five-stage scaffold generation pipeline: plan, components, pages, entry, review."""

import asyncio
import logging
import random
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from .exceptions import AllEndpointsExhausted, GenerationTimeout, MalformedOutput, NoAttachmentsOrPrompt
from .invocation import GenerationGateway
from .models import Attachment, GenerationResult, OutputShape, PipelineState, Plan, PlatformHint, Review, Stage
from .normalizer import normalize_all
from .observability import bind_run_context, bind_stage, clear_run_context, get_run_logger
from .prompts import (
    ARCHITECT_SYSTEM_PROMPT,
    COMPONENT_BUILDER_SYSTEM_PROMPT,
    FINISHER_SYSTEM_PROMPT,
    PAGE_COMPOSER_SYSTEM_PROMPT,
    REVIEWER_SYSTEM_PROMPT,
    get_components_prompt,
    get_entry_prompt,
    get_page_prompt,
    get_plan_prompt,
    get_review_prompt,
)
from .repair import DEFAULT_REPAIR_ATTEMPTS, PLAN_SHAPE, REVIEW_SHAPE, StructuredResponseRepairer, source_map_shape
from .scaffold import APP_PATH, FALLBACK_APP

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Stage, str], Awaitable[None]]

STAGE_ORDER = (Stage.PLAN, Stage.COMPONENTS, Stage.PAGES, Stage.ENTRY, Stage.REVIEW)

NO_PAGES_REVIEW = "No pages were generated, so there was nothing to review."


def component_path(identifier: str) -> str:
    return f"src/components/{identifier}.jsx"


def page_path(identifier: str) -> str:
    return f"src/pages/{identifier}.jsx"


@dataclass
class _Run:
    """Inputs and mutable state of one run; never shared between runs."""

    project_name: str
    attachments: list[Attachment]
    description: str | None
    platform: str
    state: PipelineState = field(default_factory=PipelineState)
    stage: Stage | None = None


class ScaffoldPipeline:
    """Sequences the five dependent generation stages for one request at a time.

    Stage N+1 never starts before stage N completes. Failures in PLAN,
    COMPONENTS, PAGES and ENTRY abort the run; a failed REVIEW degrades to a
    zero-score placeholder. One pipeline instance can serve concurrent runs:
    the only state shared between them is the gateway's access pool.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        repair_attempts: int = DEFAULT_REPAIR_ATTEMPTS,
        parallel_pages: bool = False,
        max_parallel_pages: int = 4,
        timeout: float | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize pipeline.

        Args:
            gateway: Invocation layer used by every stage
            repair_attempts: Parse attempts per structured request
            parallel_pages: Issue per-page requests concurrently
            max_parallel_pages: Concurrency bound when parallel_pages is set
            timeout: Per-run timeout in seconds (None disables)
            rng: Random source for fallback identifiers
        """
        self.gateway = gateway
        self.repairer = StructuredResponseRepairer(gateway, max_attempts=repair_attempts)
        self.parallel_pages = parallel_pages
        self.max_parallel_pages = max_parallel_pages
        self.timeout = timeout
        self.rng = rng

    async def run(
        self,
        project_name: str,
        source: Sequence[Attachment] | str | None,
        platform: PlatformHint | str = PlatformHint.WEB,
        progress: ProgressCallback | None = None,
    ) -> GenerationResult:
        """Generate the artifacts of one project.

        Args:
            project_name: Name of the project being generated
            source: Screen images, or a text description of the application
            platform: Target form factor hint
            progress: Awaitable callback invoked as each stage starts

        Returns:
            Generated artifacts, the plan, and the review

        Raises:
            NoAttachmentsOrPrompt: If neither images nor text were supplied
            AllEndpointsExhausted: If a required stage could not reach the service
            MalformedOutput: If a required structured stage never parsed
            GenerationTimeout: If the run exceeded the configured timeout
        """
        run = self._prepare(project_name, source, platform)
        run_logger = get_run_logger()
        bind_run_context(uuid.uuid4().hex[:12], project_name)
        mode = "text" if run.description else "images"
        run_logger.info("run_started", mode=mode, attachments=len(run.attachments), platform=run.platform)
        logger.info(f"Generating '{project_name}' ({mode}, platform: {run.platform})")

        try:
            async with asyncio.timeout(self.timeout):
                await self._run_stages(run, progress)
        except TimeoutError as e:
            run_logger.error("run_timed_out", timeout=self.timeout)
            logger.error(f"Generation of '{project_name}' timed out during {run.stage.value if run.stage else 'setup'}")
            raise GenerationTimeout(run.stage.value if run.stage else None, self.timeout or 0) from e
        except (AllEndpointsExhausted, MalformedOutput) as e:
            raw = e.raw_response[:500] if isinstance(e, MalformedOutput) else None
            run_logger.error("run_failed", error=str(e), error_type=type(e).__name__, raw_response=raw)
            logger.error(f"Generation of '{project_name}' failed during {run.stage.value if run.stage else 'setup'}: {e}")
            raise
        finally:
            clear_run_context()

        state = run.state
        run_logger.info("run_completed", artifacts=len(state.artifacts), score=state.review.score if state.review else None)
        return GenerationResult(artifacts=state.artifacts, review=state.review, plan=state.plan)

    def _prepare(self, project_name: str, source: Sequence[Attachment] | str | None, platform: PlatformHint | str) -> _Run:
        platform_value = platform.value if isinstance(platform, PlatformHint) else str(platform or PlatformHint.WEB.value).lower()

        if isinstance(source, str):
            if not source.strip():
                raise NoAttachmentsOrPrompt()
            return _Run(project_name, [], source.strip(), platform_value)

        attachments = list(source or [])
        if not attachments:
            raise NoAttachmentsOrPrompt()
        return _Run(project_name, attachments, None, platform_value)

    async def _enter(self, run: _Run, stage: Stage, message: str, progress: ProgressCallback | None) -> None:
        run.stage = stage
        bind_stage(stage.value)
        logger.info(message)
        if progress:
            await progress(stage, message)

    async def _run_stages(self, run: _Run, progress: ProgressCallback | None) -> None:
        state = run.state

        await self._enter(run, Stage.PLAN, "Agent [Architect]: Analyzing project structure...", progress)
        state.plan = await self._plan(run)

        await self._enter(run, Stage.COMPONENTS, "Agent [Component Builder]: Building reusable components...", progress)
        if state.plan.reusable_components:
            await self._components(run)

        await self._enter(run, Stage.PAGES, "Agent [Page Composer]: Building pages...", progress)
        if state.plan.pages:
            await self._pages(run)

        await self._enter(run, Stage.ENTRY, "Agent [Finisher]: Assembling the application...", progress)
        await self._entry(run)

        await self._enter(run, Stage.REVIEW, "Agent [QA Reviewer]: Performing quality check...", progress)
        state.review = await self._review(run)

    # --- Stages ---

    async def _plan(self, run: _Run) -> Plan:
        prompt = get_plan_prompt(run.platform, run.description)
        output = await self.repairer.request(prompt, PLAN_SHAPE, Stage.PLAN.value, run.attachments, ARCHITECT_SYSTEM_PROMPT)
        plan = Plan(
            pages=normalize_all(output.pages, self.rng),
            reusable_components=normalize_all(output.reusable_components, self.rng),
        )
        self._warn_duplicates("page", plan.pages)
        self._warn_duplicates("component", plan.reusable_components)
        get_run_logger().info("plan_created", pages=plan.pages, components=plan.reusable_components)
        return plan

    async def _components(self, run: _Run) -> None:
        components = run.state.plan.reusable_components
        prompt = get_components_prompt(components, run.platform, run.description)
        sources = await self.repairer.request(
            prompt,
            source_map_shape(components),
            Stage.COMPONENTS.value,
            run.attachments,
            COMPONENT_BUILDER_SYSTEM_PROMPT,
        )
        for identifier, code in sources.items():
            run.state.artifacts[component_path(identifier)] = code
        logger.info(f"Built {len(sources)} components")

    def _page_attachments(self, run: _Run, index: int) -> list[Attachment]:
        if run.description:
            return []
        if index < len(run.attachments):
            return [run.attachments[index]]
        # More pages than screens: let the model see every screen.
        return run.attachments

    async def _build_page(self, run: _Run, index: int, page: str) -> str:
        logger.info(f" -> Building: {page}")
        prompt = get_page_prompt(page, run.state.plan.reusable_components, run.platform, run.description)
        return await self.gateway.invoke(prompt, self._page_attachments(run, index), OutputShape.TEXT, PAGE_COMPOSER_SYSTEM_PROMPT)

    async def _pages(self, run: _Run) -> None:
        pages = run.state.plan.pages

        if not self.parallel_pages or len(pages) == 1:
            for index, page in enumerate(pages):
                run.state.artifacts[page_path(page)] = await self._build_page(run, index, page)
            return

        semaphore = asyncio.Semaphore(self.max_parallel_pages)

        async def bounded(index: int, page: str) -> str:
            async with semaphore:
                return await self._build_page(run, index, page)

        tasks = [asyncio.create_task(bounded(index, page)) for index, page in enumerate(pages)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for page, code in zip(pages, results):
            run.state.artifacts[page_path(page)] = code

    async def _entry(self, run: _Run) -> None:
        pages = list(dict.fromkeys(run.state.plan.pages))
        if not pages:
            logger.info("No pages planned, using the static App.jsx")
            run.state.artifacts[APP_PATH] = FALLBACK_APP
            return
        prompt = get_entry_prompt(pages, run.platform)
        run.state.artifacts[APP_PATH] = await self.gateway.invoke(prompt, (), OutputShape.TEXT, FINISHER_SYSTEM_PROMPT)

    async def _review(self, run: _Run) -> Review:
        if not run.state.plan.pages:
            return Review.placeholder(NO_PAGES_REVIEW)

        first_page = run.state.plan.pages[0]
        prompt = get_review_prompt(first_page, run.state.artifacts[page_path(first_page)], run.description)
        attachments = run.attachments[:1]
        try:
            review = await self.repairer.request(prompt, REVIEW_SHAPE, Stage.REVIEW.value, attachments, REVIEWER_SYSTEM_PROMPT)
        except (MalformedOutput, AllEndpointsExhausted) as e:
            raw = e.raw_response[:500] if isinstance(e, MalformedOutput) else None
            get_run_logger().warning("review_degraded", error=str(e), raw_response=raw)
            logger.warning(f"Review unavailable, using placeholder: {e}")
            return Review.placeholder(f"Review unavailable: {e}")

        logger.info(f"Agent [QA Reviewer]: Accuracy score calculated: {review.score:g}")
        return review

    @staticmethod
    def _warn_duplicates(kind: str, identifiers: list[str]) -> None:
        for identifier, count in Counter(identifiers).items():
            if count > 1:
                get_run_logger().warning("duplicate_identifier", kind=kind, identifier=identifier, count=count)
                logger.warning(f"{count} {kind}s normalize to '{identifier}'; they share one artifact path")
