"""Pydantic request models for the Image Harvest API.

Models
------
PromptBuildRequest
    Payload for ``POST /api/prompt/build``: a prompt template plus build
    options.
GenerateRequest
    Payload for ``POST /api/generate``: build options plus provider
    candidates, guidance and user id.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from imageharvest.core.prompt_engine import PromptOptions, StyleFlags


class PromptBuildRequest(BaseModel):
    """Request body for the ``POST /api/prompt/build`` endpoint.

    Attributes:
        prompt: Template text, may contain ``${word}``, ``$${word}`` and
            inline ``${['a','b']}`` arrays.
        multiplier: Suffix phrase appended after resolution.
        group_shuffle: Shuffle comma separated segments.
        word_shuffle: Shuffle individual words.
        custom_variables: ``key=a,b;key2=c`` request-scoped variables.
        photogenic: Append photographic stock phrases.
        artistic: Append illustration stock phrases.
        avatar: Append headshot stock phrases.
    """

    prompt: str = Field(..., min_length=1)
    multiplier: str | None = None
    group_shuffle: bool = False
    word_shuffle: bool = False
    custom_variables: str = ""
    photogenic: bool = False
    artistic: bool = False
    avatar: bool = False

    def style(self) -> StyleFlags:
        return StyleFlags(photogenic=self.photogenic, artistic=self.artistic, avatar=self.avatar)

    def options(self) -> PromptOptions:
        return PromptOptions(
            multiplier=self.multiplier,
            group_shuffle=self.group_shuffle,
            word_shuffle=self.word_shuffle,
            custom_variables=self.custom_variables,
            style=self.style(),
        )


class GenerateRequest(PromptBuildRequest):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        providers: Candidate provider ids; one is chosen at random.
        guidance: Guidance scale in [0, 20]; omitted means provider default.
        user_id: Caller identifier passed to providers that accept it.
        seed: Optional seed for provider selection and generation.
    """

    providers: list[str] = Field(..., min_length=1)
    guidance: float | None = Field(default=None, ge=0, le=20)
    user_id: str = "undefined"
    seed: int | None = None
