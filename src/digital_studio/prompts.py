"""LLM prompts for each scaffold generation stage."""

from collections.abc import Sequence

ARCHITECT_SYSTEM_PROMPT = (
    "You are an expert software architect. "
    "You analyze user interface designs holistically and break them into pages and reusable components."
)

COMPONENT_BUILDER_SYSTEM_PROMPT = (
    "You are an expert React developer who builds small, reusable, functional components styled with Tailwind CSS."
)

PAGE_COMPOSER_SYSTEM_PROMPT = "You are an expert React developer who turns screen designs into complete pages styled with Tailwind CSS."

FINISHER_SYSTEM_PROMPT = "You are an expert React developer who wires pages together with react-router-dom."

REVIEWER_SYSTEM_PROMPT = (
    "You are a UI/UX quality assurance expert. "
    "You compare designs with generated React code, judging layout, color, typography, and component structure."
)

PLATFORM_GUIDANCE = {
    "web": "Target a responsive web layout that works from mobile to wide desktop screens.",
    "mobile": "Target a mobile-first layout (around 390px wide) with touch-friendly controls.",
    "tablet": "Target a tablet layout (around 820px wide) that also degrades gracefully to mobile.",
    "desktop": "Target a desktop layout (1280px and wider) with full-width navigation.",
}


def _platform_line(platform: str) -> str:
    return PLATFORM_GUIDANCE.get(platform, PLATFORM_GUIDANCE["web"])


def _source_line(description: str | None) -> str:
    if description:
        return f'The application is described as follows:\n"""\n{description}\n"""'
    return "The application is shown in the provided UI screens."


def get_plan_prompt(platform: str, description: str | None = None) -> str:
    """Stage 1: identify pages and reusable components."""
    return f"""{_source_line(description)}

Your task is to identify all distinct pages and all common, reusable components (like navbars, buttons, cards, footers, etc.).
{_platform_line(platform)}

Provide your output as a single JSON object with two keys:
- "pages": an array of strings with descriptive names for each page, e.g. "LoginPage"
- "reusableComponents": an array of strings with descriptive names for each common component, e.g. "PrimaryButton", "SiteHeader"

IMPORTANT: All names must be in PascalCase. Return ONLY the JSON object, nothing else."""


def get_components_prompt(components: Sequence[str], platform: str, description: str | None = None) -> str:
    """Stage 2: build every reusable component in one batched request."""
    names = "\n".join(f"- {name}" for name in components)
    return f"""{_source_line(description)}

Generate the React JSX code for each of these reusable components:
{names}

Each component must be a functional component with a default export, use Tailwind CSS, and be highly reusable through props.
{_platform_line(platform)}

Return ONLY a JSON object whose keys are the component names above and whose values are the complete JSX source of each component as a string. No explanations."""


def get_page_prompt(page: str, components: Sequence[str], platform: str, description: str | None = None) -> str:
    """Stage 3: build one page, importing the reusable components."""
    imports = "\n".join(f"import {name} from '../components/{name}';" for name in components)
    import_block = f"You must import and use the available reusable components where appropriate:\n{imports}\n" if components else ""
    screen = (
        f'Generate the React JSX code for the page named "{page}", based on this description:\n"""\n{description}\n"""'
        if description
        else f'Generate the React JSX code for the page named "{page}", based on the corresponding screen design.'
    )
    return f"""{screen}
{import_block}
The page should be a functional component with a default export, use Tailwind CSS, and correctly import components from '../components/'.
{_platform_line(platform)}
Do not include any explanations, just the raw JSX code."""


def get_entry_prompt(pages: Sequence[str], platform: str) -> str:
    """Stage 4: compose App.jsx with routes to every page."""
    imports = "\n".join(f"- import {page} from './pages/{page}';" for page in pages)
    routes = "\n".join(f'- "{page}" at "{"/" if i == 0 else "/" + page.lower()}"' for i, page in enumerate(pages))
    return f"""Create the main App.jsx component that sets up routing for the following pages using react-router-dom.
You MUST import the page components using these exact names and paths:
{imports}

Use these routes:
{routes}

The first page, "{pages[0]}", must be the home route ('/'). Create a simple navigation bar with a NavLink for each page.
Do not wrap the app in a BrowserRouter; main.jsx already does that. Export App as the default export.
{_platform_line(platform)}
Do not include any explanations, just the raw JSX code."""


def get_review_prompt(page: str, page_code: str, description: str | None = None) -> str:
    """Stage 5: score the first generated page against its design."""
    reference = (
        f'Compare this description of the intended user interface:\n"""\n{description}\n"""\nwith the generated React code below.'
        if description
        else "Compare the provided user interface image with the generated React code below."
    )
    return f"""{reference}

Page: {page}
```jsx
{page_code}
```

Based on your analysis of layout, color, typography, and component structure, provide a percentage score (0-100) representing the accuracy of the code, and a brief one-sentence justification for your score.
Respond only in JSON format with the keys "score" (a number) and "justification" (a string)."""


def get_repair_prompt(original_prompt: str, contract: str, invalid_text: str, error: str | None) -> str:
    """Ask the service to correct its own invalid structured output."""
    reason = f"\nThe problem was: {error}\n" if error else "\n"
    return f"""Your previous response to the request below could not be parsed.
{reason}
Expected format: {contract}

Your previous response was:
<<<
{invalid_text}
>>>

Original request:
<<<
{original_prompt}
>>>

Return ONLY the corrected, valid JSON. No explanations, no markdown."""
