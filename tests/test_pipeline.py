"""Tests for the five-stage scaffold pipeline."""

import asyncio
import json
import random
from types import SimpleNamespace

import pytest

from digital_studio.exceptions import AllEndpointsExhausted, GenerationTimeout, MalformedOutput, NoAttachmentsOrPrompt
from digital_studio.invocation import GenerationGateway
from digital_studio.models import Attachment, PlatformHint, Stage
from digital_studio.pipeline import NO_PAGES_REVIEW, STAGE_ORDER, ScaffoldPipeline, component_path, page_path
from digital_studio.pool import AccessPool
from digital_studio.scaffold import APP_PATH, FALLBACK_APP

REPAIR = "could not be parsed"
PLAN = "identify all distinct pages"
COMPONENTS = "Generate the React JSX code for each of these reusable components"
PAGE = 'page named "'
ENTRY = "Create the main App.jsx"
REVIEW = "percentage score"

SCREENS = [Attachment("login.png", b"png-login"), Attachment("home.png", b"png-home")]


def page_name(prompt: str) -> str:
    return prompt.split(PAGE, 1)[1].split('"', 1)[0]


def router(
    plan: dict | str | None = None,
    components: dict | str | None = None,
    review: str = '{"score": 88, "justification": "Layout and colors closely match."}',
    fail: tuple[str, ...] = (),
    fenced_components: bool = True,
):
    """Responder that answers each stage by recognizing its prompt."""
    plan = plan if plan is not None else {"pages": ["login page", "home"], "reusableComponents": ["nav bar"]}

    def respond(prompt: str) -> str:
        if REPAIR in prompt:
            stage = next(marker for marker in (PLAN, COMPONENTS, REVIEW) if marker in prompt)
        else:
            stage = next(marker for marker in (PLAN, COMPONENTS, PAGE, ENTRY, REVIEW) if marker in prompt)
        if stage in fail:
            raise ConnectionError(f"stage down: {stage}")
        if stage == PLAN:
            return plan if isinstance(plan, str) else json.dumps(plan)
        if stage == COMPONENTS:
            if components is not None:
                return components if isinstance(components, str) else json.dumps(components)
            names = [line[2:] for line in prompt.splitlines() if line.startswith("- ")]
            sources = {name: f"export default function {name}() {{ return null; }}" for name in names}
            if fenced_components:
                sources = {name: f"```jsx\n{code}\n```" for name, code in sources.items()}
            return json.dumps(sources)
        if stage == PAGE:
            name = page_name(prompt)
            return f"```jsx\nexport default function {name}() {{ return <div>{name}</div>; }}\n```"
        if stage == ENTRY:
            return "```jsx\nexport default function App() { return null; }\n```"
        return review

    return respond


class TestEndToEnd:
    @pytest.mark.anyio
    async def test_full_run_produces_every_artifact(self, make_gateway):
        gateway, backend = make_gateway(router())
        result = await ScaffoldPipeline(gateway).run("Shop", SCREENS)

        assert result.plan.pages == ["LoginPage", "Home"]
        assert result.plan.reusable_components == ["NavBar"]
        assert set(result.artifacts) == {
            component_path("NavBar"),
            page_path("LoginPage"),
            page_path("Home"),
            APP_PATH,
        }
        assert result.artifacts[page_path("LoginPage")] == "export default function LoginPage() { return <div>LoginPage</div>; }"
        assert result.artifacts[APP_PATH] == "export default function App() { return null; }"
        assert result.review.score == 88
        assert not result.review.degraded
        assert len(backend.calls) == 6

    @pytest.mark.anyio
    @pytest.mark.parametrize("fenced", [True, False])
    async def test_multiword_components_echoed_verbatim(self, make_gateway, fenced):
        plan = {"pages": ["home"], "reusableComponents": ["nav bar", "primary button"]}
        gateway, backend = make_gateway(router(plan=plan, fenced_components=fenced))
        result = await ScaffoldPipeline(gateway).run("Shop", SCREENS)

        assert result.artifacts[component_path("NavBar")] == "export default function NavBar() { return null; }"
        assert result.artifacts[component_path("PrimaryButton")] == "export default function PrimaryButton() { return null; }"
        assert backend.prompts_containing(REPAIR) == []

    @pytest.mark.anyio
    async def test_stages_run_in_order(self, make_gateway):
        gateway, backend = make_gateway(router())
        seen: list[Stage] = []

        async def progress(stage, _message):
            seen.append(stage)

        await ScaffoldPipeline(gateway).run("Shop", SCREENS, progress=progress)

        assert tuple(seen) == STAGE_ORDER
        markers = [next(m for m in (PLAN, COMPONENTS, PAGE, ENTRY, REVIEW) if m in call.prompt) for call in backend.calls]
        assert markers == [PLAN, COMPONENTS, PAGE, PAGE, ENTRY, REVIEW]

    @pytest.mark.anyio
    async def test_attachments_per_stage(self, make_gateway):
        gateway, backend = make_gateway(router())
        await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        assert [call.images for call in backend.calls] == [2, 2, 1, 1, 0, 1]

    @pytest.mark.anyio
    async def test_pages_import_normalized_components(self, make_gateway):
        gateway, backend = make_gateway(router())
        await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        for call in backend.prompts_containing(PAGE):
            assert "import NavBar from '../components/NavBar';" in call.prompt

    @pytest.mark.anyio
    async def test_entry_routes_first_page_at_root(self, make_gateway):
        gateway, backend = make_gateway(router())
        await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        (entry,) = backend.prompts_containing(ENTRY)
        assert '"LoginPage" at "/"' in entry.prompt
        assert '"Home" at "/home"' in entry.prompt

    @pytest.mark.anyio
    async def test_result_serializes(self, make_gateway):
        gateway, _ = make_gateway(router())
        result = await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        payload = result.to_dict()
        assert payload["plan"] == {"pages": ["LoginPage", "Home"], "reusableComponents": ["NavBar"]}
        assert payload["review"] == {"score": 88, "justification": "Layout and colors closely match."}


class TestEmptyPlans:
    @pytest.mark.anyio
    async def test_zero_pages_uses_fallback_app(self, make_gateway):
        gateway, backend = make_gateway(router(plan={"pages": [], "reusableComponents": []}))
        result = await ScaffoldPipeline(gateway).run("Empty", SCREENS)

        assert result.artifacts == {APP_PATH: FALLBACK_APP}
        assert result.review.score == 0
        assert result.review.justification == NO_PAGES_REVIEW
        assert len(backend.calls) == 1

    @pytest.mark.anyio
    async def test_no_components_skips_component_request(self, make_gateway):
        gateway, backend = make_gateway(router(plan={"pages": ["home"], "reusableComponents": []}))
        result = await ScaffoldPipeline(gateway).run("Solo", SCREENS[:1])

        assert backend.prompts_containing(COMPONENTS) == []
        assert set(result.artifacts) == {page_path("Home"), APP_PATH}


class TestFailures:
    @pytest.mark.anyio
    async def test_malformed_plan_is_fatal(self, make_gateway):
        gateway, backend = make_gateway(router(plan="I think there are two pages"))

        with pytest.raises(MalformedOutput) as exc_info:
            await ScaffoldPipeline(gateway, repair_attempts=3).run("Shop", SCREENS)

        assert exc_info.value.stage == "plan"
        assert len(backend.calls) == 3
        assert backend.prompts_containing(COMPONENTS) == []

    @pytest.mark.anyio
    async def test_malformed_components_are_fatal(self, make_gateway):
        gateway, backend = make_gateway(router(components={"Footer": "x"}))
        with pytest.raises(MalformedOutput) as exc_info:
            await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        assert exc_info.value.stage == "components"
        assert backend.prompts_containing(PAGE) == []

    @pytest.mark.anyio
    async def test_page_failure_aborts_before_entry(self, make_gateway):
        gateway, backend = make_gateway(router(fail=(PAGE,)))
        with pytest.raises(AllEndpointsExhausted):
            await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        assert backend.prompts_containing(ENTRY) == []

    @pytest.mark.anyio
    async def test_entry_failure_is_fatal(self, make_gateway):
        gateway, _ = make_gateway(router(fail=(ENTRY,)))
        with pytest.raises(AllEndpointsExhausted):
            await ScaffoldPipeline(gateway).run("Shop", SCREENS)

    @pytest.mark.anyio
    async def test_malformed_review_degrades(self, make_gateway):
        gateway, backend = make_gateway(router(review="Looks great, 9/10!"))
        result = await ScaffoldPipeline(gateway, repair_attempts=3).run("Shop", SCREENS)

        assert result.review.score == 0
        assert result.review.degraded
        assert APP_PATH in result.artifacts
        assert len(backend.prompts_containing(REVIEW)) == 3

    @pytest.mark.anyio
    async def test_unreachable_review_degrades(self, make_gateway):
        gateway, _ = make_gateway(router(fail=(REVIEW,)))
        result = await ScaffoldPipeline(gateway).run("Shop", SCREENS)
        assert result.review.score == 0
        assert "Review unavailable" in result.review.justification

    @pytest.mark.anyio
    @pytest.mark.parametrize("source", [[], None, "", "   "])
    async def test_missing_input_rejected_before_any_call(self, make_gateway, source):
        gateway, backend = make_gateway(router())
        with pytest.raises(NoAttachmentsOrPrompt):
            await ScaffoldPipeline(gateway).run("Nothing", source)
        assert backend.calls == []

    @pytest.mark.anyio
    async def test_timeout_reports_stage(self, sleeper):
        class SlowClient:
            async def ainvoke(self, messages):
                await asyncio.sleep(5)
                return SimpleNamespace(completion="{}")

        gateway = GenerationGateway(AccessPool(("key-slow-0001",), ("model-a",)), client_factory=lambda _c: SlowClient(), sleep=sleeper)

        with pytest.raises(GenerationTimeout) as exc_info:
            await ScaffoldPipeline(gateway, timeout=0.05).run("Slow", SCREENS)

        assert exc_info.value.stage == "plan"


class TestTextMode:
    @pytest.mark.anyio
    async def test_description_drives_every_stage(self, make_gateway):
        gateway, backend = make_gateway(router())
        result = await ScaffoldPipeline(gateway).run("Todo", "A todo app with a login screen", platform=PlatformHint.MOBILE)

        assert set(result.artifacts) == {component_path("NavBar"), page_path("LoginPage"), page_path("Home"), APP_PATH}
        assert all(call.images == 0 for call in backend.calls)
        (plan_call,) = backend.prompts_containing(PLAN)
        assert "A todo app with a login screen" in plan_call.prompt
        assert "mobile-first" in plan_call.prompt


class TestPageAttachments:
    @pytest.mark.anyio
    async def test_extra_pages_see_every_screen(self, make_gateway):
        plan = {"pages": ["one", "two", "three"], "reusableComponents": []}
        gateway, backend = make_gateway(router(plan=plan))
        await ScaffoldPipeline(gateway).run("Pages", SCREENS)
        assert [call.images for call in backend.prompts_containing(PAGE)] == [1, 1, 2]


class TestIdentifiers:
    @pytest.mark.anyio
    async def test_colliding_names_share_one_artifact(self, make_gateway):
        plan = {"pages": ["home"], "reusableComponents": ["nav bar", "Nav-Bar"]}
        gateway, _ = make_gateway(router(plan=plan))
        result = await ScaffoldPipeline(gateway).run("Dupes", SCREENS)

        assert result.plan.reusable_components == ["NavBar", "NavBar"]
        assert [path for path in result.artifacts if path.startswith("src/components/")] == [component_path("NavBar")]

    @pytest.mark.anyio
    async def test_invalid_names_get_fallback_identifiers(self, make_gateway):
        plan = {"pages": [None, "home"], "reusableComponents": []}
        gateway, _ = make_gateway(router(plan=plan))
        result = await ScaffoldPipeline(gateway, rng=random.Random(3)).run("Odd", SCREENS)

        assert result.plan.pages[0].startswith("Component")
        assert page_path(result.plan.pages[0]) in result.artifacts


class TestParallelPages:
    @pytest.mark.anyio
    async def test_parallel_pages_match_their_names(self, make_gateway):
        plan = {"pages": ["alpha", "beta", "gamma", "delta"], "reusableComponents": []}
        gateway, _ = make_gateway(router(plan=plan), ("key-one-1111", "key-two-2222"))
        result = await ScaffoldPipeline(gateway, parallel_pages=True, max_parallel_pages=2).run("Fast", SCREENS)

        for name in ("Alpha", "Beta", "Gamma", "Delta"):
            assert f"<div>{name}</div>" in result.artifacts[page_path(name)]

    @pytest.mark.anyio
    async def test_parallel_page_failure_aborts(self, make_gateway):
        plan = {"pages": ["alpha", "beta"], "reusableComponents": []}
        gateway, backend = make_gateway(router(plan=plan, fail=(PAGE,)))
        with pytest.raises(AllEndpointsExhausted):
            await ScaffoldPipeline(gateway, parallel_pages=True).run("Fast", SCREENS)
        assert backend.prompts_containing(ENTRY) == []


class TestConcurrentRuns:
    @pytest.mark.anyio
    async def test_runs_do_not_share_artifacts(self, make_gateway):
        def respond(prompt: str) -> str:
            if PLAN in prompt:
                page = "alpha" if "Alpha shop" in prompt else "beta"
                return json.dumps({"pages": [page], "reusableComponents": []})
            return router()(prompt)

        gateway, _ = make_gateway(respond, ("key-one-1111", "key-two-2222"), ("model-a", "model-b"))
        pipeline = ScaffoldPipeline(gateway)

        first, second = await asyncio.gather(pipeline.run("A", "Alpha shop"), pipeline.run("B", "Beta shop"))

        assert set(first.artifacts) == {page_path("Alpha"), APP_PATH}
        assert set(second.artifacts) == {page_path("Beta"), APP_PATH}
