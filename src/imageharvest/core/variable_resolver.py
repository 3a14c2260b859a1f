"""Resolve template variable tokens to concrete strings.

Supported token forms:

- ``${word}``: re-resolved at every occurrence
- ``$${word}``: sticky; resolved once per prompt build and reused
- ``${['red','blue']}``: inline array literal; one element picked at random
- ``$word`` / ``$$word``: brace-less shorthand, trailing punctuation is kept

Resolution order for a name is: custom variables supplied with the request,
inline array literal, then the word-lookup collaborator. A name with no
candidates anywhere resolves to the bare name.

All randomness and the sticky memo live in a :class:`ResolutionScope` that is
created for one build call and discarded afterwards.
"""

from __future__ import annotations

import json
import logging
import random
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from .word_lookup import WordLookup

logger = logging.getLogger(__name__)

BRACED_VARIABLE = re.compile(r"^(\$\$?)\{([^}]+)\}$")
BARE_VARIABLE = re.compile(r"^(\$\$?)([A-Za-z_]\w*)([^\w$]*)$")


@dataclass
class ResolutionScope:
    """Per-build state: custom variables, random source and sticky memo."""

    custom_variables: Mapping[str, list[str]] = field(default_factory=dict)
    rng: random.Random = field(default_factory=random.Random)
    memo: dict[str, str] = field(default_factory=dict)


class VariableResolver:
    """Turns one token into its replacement text.

    Args:
        word_lookup: Collaborator consulted for category words
    """

    def __init__(self, word_lookup: WordLookup):
        self.word_lookup = word_lookup

    def new_scope(
        self,
        custom_variables: Mapping[str, list[str]] | None = None,
        rng: random.Random | None = None,
    ) -> ResolutionScope:
        return ResolutionScope(
            custom_variables=dict(custom_variables or {}),
            rng=rng if rng is not None else random.Random(),
        )

    async def resolve(self, token: str, scope: ResolutionScope) -> str:
        """Resolve a single token.

        Non-variable tokens are returned unchanged.

        Args:
            token: One token produced by the prompt tokenizer
            scope: State for the current build call

        Returns:
            Replacement text
        """
        if not token.startswith("$"):
            return token

        suffix = ""
        match = BRACED_VARIABLE.match(token)
        if match is None:
            match = BARE_VARIABLE.match(token)
            if match is None:
                return token
            suffix = match.group(3)

        sticky = match.group(1) == "$$"
        name = match.group(2)

        if sticky and name in scope.memo:
            return scope.memo[name] + suffix

        value = await self._resolve_name(name, token, scope)
        if sticky:
            scope.memo[name] = value
        return value + suffix

    async def _resolve_name(self, name: str, token: str, scope: ResolutionScope) -> str:
        custom = scope.custom_variables.get(name)
        if custom:
            return scope.rng.choice(custom)

        if name.lstrip().startswith("["):
            return self._pick_from_array(name, token, scope.rng)

        word = name.strip()
        candidates = await self.word_lookup.lookup(word)
        if candidates:
            return scope.rng.choice(candidates)

        logger.warning(f"No types found for word: {word}")
        return word

    @staticmethod
    def _pick_from_array(body: str, token: str, rng: random.Random) -> str:
        """Pick from an inline ``['a','b']`` literal, or return ``token`` if malformed."""
        try:
            values = json.loads(body.replace("'", '"'))
        except json.JSONDecodeError as e:
            logger.warning(f"Malformed inline array {token!r}: {e}")
            return token

        if not isinstance(values, list) or not values:
            logger.warning(f"Inline array is empty or not a list: {token!r}")
            return token

        return str(rng.choice(values))
