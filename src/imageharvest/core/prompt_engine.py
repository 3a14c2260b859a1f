"""Prompt template engine: expand a raw prompt into a generation prompt.

The engine tokenizes the prompt, resolves every variable token through a
:class:`~imageharvest.core.variable_resolver.VariableResolver`, then applies
structural transforms in a fixed order.

Build Pipeline
--------------
1. Validate the prompt (non-empty string)
2. Parse custom variables (``key1=a,b;key2=c``)
3. Tokenize, preserving exact spacing and punctuation
4. Resolve each token and join without added delimiters
5. Style injection: one stock phrase, avatar over artistic over photogenic
6. Multiplier: resolve variables in the multiplier, append as ``prompt, mult``
7. Group-shuffle: reorder comma (or connective-word) separated segments
8. Word-shuffle: reorder individual words

Any failure inside steps 2-8 is logged and converted into a
``PromptBuildResult`` carrying the generic error message; ``build`` never
raises.

Randomness
----------
Every random choice goes through one ``random.Random`` per build call, taken
from the ``rng`` argument or the engine's own instance. Passing a seeded
instance makes the whole build reproducible:

    >>> engine = PromptTemplateEngine(resolver, rng=random.Random(42))
    >>> result = await engine.build("a ${color} cat")
    >>> result.prompt
    'a teal cat'
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import InternalTemplatingError
from .results import PROMPT_BUILD_ERROR, PromptBuildResult
from .variable_resolver import ResolutionScope, VariableResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOKEN_PATTERN = re.compile(r"(\$\$\{[^}]+\})|(\$\{[^}]+\})|\b(\w+)\b|[^\s]+|\s")
CONNECTIVE_PATTERN = re.compile(
    r"\s+(and|or|with|in|on|at|by|for|to|of|the|a|an)\s+", re.IGNORECASE
)

FLOURISH_WORDS = (
    "beautiful",
    "aesthetic",
    "stunning",
    "gorgeous",
    "glamorous",
    "fantastic",
    "magnificent",
    "incredible",
    "spectacular",
    "marvelous",
)

STYLE_TEXT = {
    "photogenic": "8k high-resolution, photogenic, ultra-realism, distinct details",
    "artistic": "artistic creative, illustration, ultra-detailed, expressive",
    "avatar": (
        "professional headshot, portrait photography, clean background, "
        "professional lighting, high quality, detailed facial features"
    ),
}


@dataclass(frozen=True)
class StyleFlags:
    """Which stock style phrases to append."""

    photogenic: bool = False
    artistic: bool = False
    avatar: bool = False

    def selected(self) -> str | None:
        """The one style to apply: avatar over artistic over photogenic."""
        chosen = None
        for name in STYLE_TEXT:
            if getattr(self, name):
                chosen = name
        return chosen


@dataclass(frozen=True)
class PromptOptions:
    """Build options carried with a queued request."""

    multiplier: str | None = None
    group_shuffle: bool = False
    word_shuffle: bool = False
    custom_variables: str = ""
    style: StyleFlags = field(default_factory=StyleFlags)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def parse_custom_variables(custom_variables: str | None) -> dict[str, list[str]]:
    """Parse ``key1=a,b;key2=c`` into ``{"key1": ["a", "b"], "key2": ["c"]}``.

    Pairs without a key or a value are skipped with a warning. An empty or
    missing string yields an empty dict.
    """
    variables: dict[str, list[str]] = {}
    if not custom_variables or custom_variables == "undefined":
        return variables

    for pair in custom_variables.split(";"):
        if not pair.strip():
            continue
        key, sep, values = pair.partition("=")
        key = key.strip()
        if not sep or not key or not values:
            logger.warning(f"Skipping malformed custom variable pair: {pair!r}")
            continue
        variables[key] = values.split(",")

    return variables


def tokenize_prompt(prompt: str) -> list[str]:
    """Split a prompt into variable, word, punctuation and whitespace tokens.

    ``"".join(tokenize_prompt(p)) == p`` holds for every string.
    """
    return [match.group(0) for match in TOKEN_PATTERN.finditer(prompt)]


def fisher_yates_shuffle(items: Sequence[T], rng: random.Random) -> list[T]:
    """Return a shuffled copy of ``items`` using the supplied random source."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def shuffle_groups(prompt: str, rng: random.Random) -> str:
    """Shuffle prompt segments.

    Splits on ``", "``, then ``","``, then connective words, using the first
    split that yields more than one segment, and rejoins with the same
    delimiter. Connective words are kept as their own segments. A prompt that
    cannot be split is returned unchanged.
    """
    for delimiter in (", ", ","):
        parts = prompt.split(delimiter)
        if len(parts) > 1:
            return delimiter.join(fisher_yates_shuffle(parts, rng))

    parts = CONNECTIVE_PATTERN.split(prompt)
    if len(parts) > 1:
        return " ".join(fisher_yates_shuffle(parts, rng))

    return prompt


def shuffle_words(prompt: str, rng: random.Random) -> str:
    """Collapse ``", "`` to a space, then shuffle space-separated words."""
    return " ".join(fisher_yates_shuffle(prompt.replace(", ", " ").split(" "), rng))


def append_style_text(prompt: str, style: StyleFlags, rng: random.Random) -> str:
    """Append the selected style's stock phrase plus one flourish word.

    Only one phrase is used when several flags are set. The appended words
    are shuffled before being joined to the prompt.
    """
    name = style.selected()
    if name is None:
        return prompt

    stock = f"{STYLE_TEXT[name]}, {rng.choice(FLOURISH_WORDS)}"
    stock = " ".join(fisher_yates_shuffle(stock.split(" "), rng))
    return f"{prompt}, {stock}"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PromptTemplateEngine:
    """Expands prompt templates.

    Args:
        resolver: Resolves individual variable tokens
        rng: Default random source, used when ``build`` gets none
    """

    def __init__(self, resolver: VariableResolver, rng: random.Random | None = None):
        self.resolver = resolver
        self._rng = rng if rng is not None else random.Random()

    async def build(
        self,
        prompt: str,
        multiplier: str | bool | None = None,
        group_shuffle: bool = False,
        word_shuffle: bool = False,
        custom_variables: str | None = "",
        style: StyleFlags | None = None,
        rng: random.Random | None = None,
    ) -> PromptBuildResult:
        """Build a generation prompt from a template.

        Args:
            prompt: Raw user prompt, possibly with variables
            multiplier: Suffix phrase appended after resolution (falsy disables)
            group_shuffle: Shuffle comma separated segments
            word_shuffle: Shuffle individual words
            custom_variables: ``key=a,b;key2=c`` request-scoped variables
            style: Style flags; one stock phrase is appended
            rng: Random source for this call only

        Returns:
            PromptBuildResult with ``original`` and ``prompt`` set, or with
            ``error`` set on any failure
        """
        if not isinstance(prompt, str) or not prompt.strip():
            logger.error(f"Invalid prompt received: {prompt!r}")
            return PromptBuildResult(error=PROMPT_BUILD_ERROR)

        try:
            result = await self._expand(
                prompt, multiplier, group_shuffle, word_shuffle, custom_variables, style, rng
            )
        except InternalTemplatingError as e:
            logger.error(f"Error building prompt: {prompt[:50]}...: {e.message}", exc_info=True)
            return PromptBuildResult(error=PROMPT_BUILD_ERROR)

        if not result:
            result = prompt

        logger.debug(f"Built prompt: {result[:50]}...")
        return PromptBuildResult(original=prompt, prompt=result)

    async def _expand(
        self,
        prompt: str,
        multiplier: str | bool | None,
        group_shuffle: bool,
        word_shuffle: bool,
        custom_variables: str | None,
        style: StyleFlags | None,
        rng: random.Random | None,
    ) -> str:
        try:
            scope = self.resolver.new_scope(
                parse_custom_variables(custom_variables), rng or self._rng
            )
            result = await self.resolve_text(prompt, scope)
            result = append_style_text(result, style or StyleFlags(), scope.rng)

            if multiplier and isinstance(multiplier, str):
                result = await self._apply_multiplier(result, multiplier, scope)
            if group_shuffle:
                result = shuffle_groups(result, scope.rng)
            if word_shuffle:
                result = shuffle_words(result, scope.rng)
        except Exception as e:
            raise InternalTemplatingError(str(e) or type(e).__name__) from e
        return result

    async def resolve_text(self, text: str, scope: ResolutionScope) -> str:
        """Resolve every token in ``text`` in order and join the results."""
        resolved = [await self.resolver.resolve(token, scope) for token in tokenize_prompt(text)]
        return "".join(resolved)

    async def _apply_multiplier(
        self, prompt: str, multiplier: str, scope: ResolutionScope
    ) -> str:
        try:
            resolved = await self.resolve_text(multiplier, scope)
        except Exception as e:
            logger.warning(f"Multiplier resolution failed, appending raw multiplier: {e}")
            resolved = multiplier
        return f"{prompt}, {resolved}" if resolved else prompt
