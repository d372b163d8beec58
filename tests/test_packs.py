"""Tests for pack catalog loading and prompt selection."""

from __future__ import annotations

import json
import random
from pathlib import Path

import httpx
import pytest
from conftest import make_upload

from roastmyface.errors import CatalogLoadError
from roastmyface.packs import (
    DEFAULT_CATALOG,
    Pack,
    PromptItem,
    fetch_catalog,
    find_pack,
    load_catalog,
    reroll_prompt,
    select_pack,
)
from roastmyface.session import SessionState

CATALOG_DOC = {
    "packs": [
        {
            "id": "celebrity",
            "title": "Celebrity Pack",
            "items": [{"type": "question", "text": "Rank these", "required_pictures": 3}],
        },
        {
            "id": "office",
            "title": "Office Pack",
            "items": [
                {"type": "statement", "text": "Monday again."},
                {"type": "question", "text": "Who replies all?", "required_pictures": 2},
                {"type": "question", "text": "Who microwaves fish?"},
            ],
        },
    ]
}


def _pack(*questions: str, statements: tuple[str, ...] = ()) -> Pack:
    items = [{"type": "statement", "text": s} for s in statements]
    items += [{"type": "question", "text": q, "required_pictures": 2} for q in questions]
    return Pack.model_validate({"id": "test", "title": "Test Pack", "items": items})


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestPromptItem:
    def test_question_without_count_defaults_to_one(self) -> None:
        item = PromptItem.model_validate({"type": "question", "text": "Who?"})
        assert item.required_pictures == 1

    def test_statement_drops_count(self) -> None:
        item = PromptItem.model_validate({"type": "statement", "text": "Hi", "required_pictures": 4})
        assert item.required_pictures is None
        assert not item.is_question

    def test_zero_required_pictures_rejected(self) -> None:
        with pytest.raises(ValueError):
            PromptItem.model_validate({"type": "question", "text": "Who?", "required_pictures": 0})

    def test_default_catalog_packs_all_have_questions(self) -> None:
        assert [pack.title for pack in DEFAULT_CATALOG.packs] == ["Politician Pack", "Celebrity Pack", "Meme Pack"]
        assert all(pack.questions for pack in DEFAULT_CATALOG.packs)


# ---------------------------------------------------------------------------
# Catalog loading
# ---------------------------------------------------------------------------


class TestLoadCatalog:
    async def test_no_source_uses_default(self) -> None:
        packs = await load_catalog(None)
        assert packs == list(DEFAULT_CATALOG.packs)

    async def test_loads_from_file(self, tmp_path: Path) -> None:
        source = tmp_path / "packs.json"
        source.write_text(json.dumps(CATALOG_DOC))

        packs = await load_catalog(str(source))

        assert [pack.id for pack in packs] == ["celebrity", "office"]
        assert packs[0].questions[0].required_pictures == 3

    async def test_missing_file_falls_back(self, tmp_path: Path) -> None:
        packs = await load_catalog(str(tmp_path / "missing.json"))
        assert packs == list(DEFAULT_CATALOG.packs)

    async def test_malformed_json_falls_back(self, tmp_path: Path) -> None:
        source = tmp_path / "packs.json"
        source.write_text("{ not json")
        assert await load_catalog(str(source)) == list(DEFAULT_CATALOG.packs)

    async def test_empty_pack_list_falls_back(self, tmp_path: Path) -> None:
        source = tmp_path / "packs.json"
        source.write_text(json.dumps({"packs": []}))
        assert await load_catalog(str(source)) == list(DEFAULT_CATALOG.packs)

    async def test_loads_from_url(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/packs.json"
            return httpx.Response(200, json=CATALOG_DOC)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            packs = await load_catalog("https://cdn.test/packs.json", client=client)

        assert [pack.title for pack in packs] == ["Celebrity Pack", "Office Pack"]

    async def test_http_error_falls_back(self) -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as client:
            packs = await load_catalog("https://cdn.test/packs.json", client=client)
        assert packs == list(DEFAULT_CATALOG.packs)

    async def test_network_error_falls_back(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            packs = await load_catalog("https://cdn.test/packs.json", client=client)
        assert packs == list(DEFAULT_CATALOG.packs)

    async def test_fetch_catalog_raises_for_invalid_document(self, tmp_path: Path) -> None:
        source = tmp_path / "packs.json"
        source.write_text(json.dumps({"packs": [{"id": "", "title": "Blank"}]}))

        with pytest.raises(CatalogLoadError) as excinfo:
            await fetch_catalog(str(source))

        assert str(source) in excinfo.value.message

    def test_find_pack(self) -> None:
        packs = list(DEFAULT_CATALOG.packs)
        assert find_pack(packs, "meme") is packs[2]
        assert find_pack(packs, "nope") is None


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestSelectPack:
    def test_picks_a_question_and_resets(self) -> None:
        state = SessionState(images=[make_upload("a.png")], results=["old"], error="boom")
        pack = _pack("Q1", "Q2", statements=("S1",))

        prompt = select_pack(state, pack, random.Random(1))

        assert state.pack is pack
        assert prompt is state.prompt
        assert prompt is not None and prompt.text in {"Q1", "Q2"}
        assert state.images == []
        assert state.results is None
        assert state.error is None

    def test_statement_only_pack_clears_prompt(self) -> None:
        state = SessionState()
        select_pack(state, _pack(statements=("Just vibes",)))

        assert state.prompt is None
        assert not state.upload_enabled

    def test_required_images_follow_prompt(self) -> None:
        state = SessionState()
        select_pack(state, find_pack(list(DEFAULT_CATALOG.packs), "meme"), random.Random(0))  # type: ignore[arg-type]
        assert state.prompt is not None
        assert state.required_images == state.prompt.required_pictures


class TestRerollPrompt:
    @pytest.mark.parametrize("seed", range(25))
    def test_never_repeats_current_prompt(self, seed: int) -> None:
        rng = random.Random(seed)
        state = SessionState()
        select_pack(state, _pack("Q1", "Q2", "Q3"), rng)

        for _ in range(10):
            before = state.prompt
            after = reroll_prompt(state, rng)
            assert before is not None and after is not None
            assert after.text != before.text

    def test_single_question_is_noop(self) -> None:
        state = SessionState()
        select_pack(state, _pack("Only one", statements=("S",)))
        before = state.prompt

        assert reroll_prompt(state) is before
        assert state.prompt is before

    def test_duplicate_texts_are_noop(self) -> None:
        state = SessionState()
        select_pack(state, _pack("Same", "Same"))
        before = state.prompt
        assert reroll_prompt(state) is before

    def test_without_pack_is_noop(self) -> None:
        state = SessionState()
        assert reroll_prompt(state) is None

    def test_reroll_keeps_images(self) -> None:
        state = SessionState()
        select_pack(state, _pack("Q1", "Q2"))
        state.images = [make_upload("a.png"), make_upload("b.png")]
        state.results = ["stale"]

        reroll_prompt(state)

        assert len(state.images) == 2
        assert state.results is None
