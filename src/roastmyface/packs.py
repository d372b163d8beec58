"""Pack catalog loading and prompt selection.

A pack is a themed set of prompt items. Question items carry the number of
pictures the question compares, e.g. "Rank these" over three faces.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from roastmyface.errors import CatalogLoadError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from roastmyface.session import SessionState

logger = logging.getLogger(__name__)

CATALOG_FETCH_TIMEOUT_SECONDS: float = 10.0


class PromptKind(StrEnum):
    STATEMENT = "statement"
    QUESTION = "question"


class PromptItem(BaseModel):
    """A single statement or question belonging to a pack."""

    model_config = ConfigDict(frozen=True)

    type: PromptKind
    text: str = Field(min_length=1)
    required_pictures: int | None = Field(default=None, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _question_defaults(cls, data: Any) -> Any:
        # Questions without an explicit count compare at least one picture;
        # statements never carry a count.
        if isinstance(data, dict):
            kind = data.get("type")
            if kind == PromptKind.QUESTION and data.get("required_pictures") is None:
                data = {**data, "required_pictures": 1}
            elif kind == PromptKind.STATEMENT:
                data = {**data, "required_pictures": None}
        return data

    @property
    def is_question(self) -> bool:
        return self.type is PromptKind.QUESTION

    @property
    def required_image_count(self) -> int:
        return self.required_pictures or 0


class Pack(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    items: tuple[PromptItem, ...] = ()

    @property
    def questions(self) -> list[PromptItem]:
        return [item for item in self.items if item.is_question]


class Catalog(BaseModel):
    packs: list[Pack] = Field(min_length=1)


DEFAULT_CATALOG = Catalog.model_validate(
    {
        "packs": [
            {
                "id": "politician",
                "title": "Politician Pack",
                "items": [
                    {"type": "statement", "text": "Campaign season is here."},
                    {
                        "type": "question",
                        "text": "Who is most likely to promise free Wi-Fi and deliver nothing?",
                        "required_pictures": 2,
                    },
                    {
                        "type": "question",
                        "text": "Rank these candidates by how fast they'd flee the country",
                        "required_pictures": 3,
                    },
                    {
                        "type": "question",
                        "text": "Who would lose an election to a goat?",
                        "required_pictures": 2,
                    },
                ],
            },
            {
                "id": "celebrity",
                "title": "Celebrity Pack",
                "items": [
                    {"type": "statement", "text": "Red carpet, meet reality."},
                    {
                        "type": "question",
                        "text": "Rank these",
                        "required_pictures": 3,
                    },
                    {
                        "type": "question",
                        "text": "Who looks like they'd charge for a selfie?",
                        "required_pictures": 2,
                    },
                    {
                        "type": "question",
                        "text": "Who is the stunt double of the other?",
                        "required_pictures": 2,
                    },
                ],
            },
            {
                "id": "meme",
                "title": "Meme Pack",
                "items": [
                    {"type": "statement", "text": "Certified meme material."},
                    {
                        "type": "question",
                        "text": "Who is the main character and who is the NPC?",
                        "required_pictures": 2,
                    },
                    {
                        "type": "question",
                        "text": "Who replies 'k' to a paragraph?",
                        "required_pictures": 2,
                    },
                    {
                        "type": "question",
                        "text": "Rank these by group-chat chaos",
                        "required_pictures": 4,
                    },
                ],
            },
        ]
    }
)


async def _read_source(source: str, client: httpx.AsyncClient | None) -> bytes:
    if source.startswith(("http://", "https://")):
        if client is None:
            async with httpx.AsyncClient(timeout=CATALOG_FETCH_TIMEOUT_SECONDS) as owned:
                response = await owned.get(source)
        else:
            response = await client.get(source)
        response.raise_for_status()
        return response.content
    return await asyncio.to_thread(Path(source).read_bytes)


async def fetch_catalog(source: str, *, client: httpx.AsyncClient | None = None) -> Catalog:
    """Read and validate a catalog document, raising ``CatalogLoadError`` on any failure."""
    try:
        raw = await _read_source(source, client)
        return Catalog.model_validate_json(raw)
    except (httpx.HTTPError, OSError, ValidationError) as exc:
        raise CatalogLoadError(f"Could not load the pack catalog from {source}: {exc}") from exc


async def load_catalog(source: str | None, *, client: httpx.AsyncClient | None = None) -> list[Pack]:
    """Load packs from a URL or file, falling back to the built-in catalog on any failure."""
    if source is None:
        logger.info("No catalog source configured, using %d built-in packs", len(DEFAULT_CATALOG.packs))
        return list(DEFAULT_CATALOG.packs)

    try:
        catalog = await fetch_catalog(source, client=client)
    except CatalogLoadError as exc:
        logger.warning("%s; using built-in packs", exc.message)
        return list(DEFAULT_CATALOG.packs)

    logger.info("Loaded %d pack(s) from %s", len(catalog.packs), source)
    return list(catalog.packs)


def find_pack(packs: Sequence[Pack], pack_id: str) -> Pack | None:
    return next((pack for pack in packs if pack.id == pack_id), None)


def select_pack(state: SessionState, pack: Pack, rng: random.Random | None = None) -> PromptItem | None:
    """Make ``pack`` current, clear images and results, and pick one of its questions at random.

    A pack without questions leaves no prompt selected, which disables uploads.
    """
    chooser = rng or random.Random()  # noqa: S311
    state.pack = pack
    state.images = []
    state.results = None
    state.error = None

    questions = pack.questions
    state.prompt = chooser.choice(questions) if questions else None
    if state.prompt is None:
        logger.warning("Pack %s has no question items", pack.id)
    else:
        logger.info("Selected pack %s with prompt %r", pack.id, state.prompt.text)
    return state.prompt


def reroll_prompt(state: SessionState, rng: random.Random | None = None) -> PromptItem | None:
    """Swap the current prompt for a different question from the same pack.

    Never returns a prompt whose text equals the current one; with a single
    question this is a no-op.
    """
    if state.pack is None or state.prompt is None:
        return state.prompt

    current = state.prompt.text
    candidates = [question for question in state.pack.questions if question.text != current]
    if not candidates:
        return state.prompt

    chooser = rng or random.Random()  # noqa: S311
    state.prompt = chooser.choice(candidates)
    state.results = None
    state.error = None
    logger.info("Rerolled prompt for pack %s: %r", state.pack.id, state.prompt.text)
    return state.prompt
