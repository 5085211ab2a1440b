"""Identifier normalization for page and component names supplied by the model."""

import random
import re
from typing import Any

FALLBACK_PREFIX = "Component"
FALLBACK_RANGE = 1000

_SEPARATORS = re.compile(r"[^a-zA-Z0-9]+")

_default_rng = random.Random()


def to_pascal_case(value: Any, rng: random.Random | None = None) -> str:
    """Turn a free-form name into a PascalCase identifier.

    Runs of non-alphanumeric characters become word breaks; each word is
    capitalized and the rest lowercased. ``"login page"`` -> ``"LoginPage"``.

    Invalid input (non-string, or nothing alphanumeric) never raises: it yields
    ``Component<n>`` with ``n`` drawn from ``rng``. An identifier that would
    start with a digit gets the same prefix so it stays a valid JSX name.

    Args:
        value: The name to normalize.
        rng: Random source for the fallback suffix.

    Returns:
        A non-empty identifier of ASCII letters and digits.
    """
    if not isinstance(value, str) or not value:
        return _fallback(rng)

    words = [word for word in _SEPARATORS.split(value) if word]
    if not words:
        return _fallback(rng)

    identifier = "".join(word[0].upper() + word[1:].lower() for word in words)
    if identifier[0].isdigit():
        identifier = FALLBACK_PREFIX + identifier
    return identifier


def normalize_all(values: Any, rng: random.Random | None = None) -> list[str]:
    """Normalize every entry of a list; a non-list yields an empty list."""
    if not isinstance(values, list):
        return []
    return [to_pascal_case(value, rng) for value in values]


def _fallback(rng: random.Random | None) -> str:
    source = rng or _default_rng
    return f"{FALLBACK_PREFIX}{source.randrange(FALLBACK_RANGE)}"
