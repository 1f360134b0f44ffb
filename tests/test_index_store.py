"""Tests for the index upserter, index queries and checkpoint store."""

import pytest

from tribe_ai.indexer.index_store import post_link
from tribe_ai.services.models import IndexDocumentInput


def make_doc(content="Hello tribe", embedding=None, title="Welcome", is_private=False):
    return IndexDocumentInput(
        discussion_id=3,
        post_number=2,
        title=title,
        slug="welcome",
        content=content,
        username="asha",
        embedding=embedding or [1.0, 0.0, 0.0],
        is_private=is_private,
    )


class TestIndexStore:

    async def test_insert_then_update_keeps_single_row(self, index_store):
        await index_store.upsert(42, make_doc("first version"))
        original = await index_store.get(42)

        await index_store.upsert(42, make_doc("second version", embedding=[0.0, 1.0, 0.0], title="Renamed"))
        updated = await index_store.get(42)

        assert await index_store.count() == 1
        assert updated["id"] == original["id"]
        assert updated["created_at"] == original["created_at"]
        assert updated["content"] == "second version"
        assert updated["title"] == "Renamed"
        assert updated["embedding"] == [0.0, 1.0, 0.0]

    async def test_get_missing_returns_none(self, index_store):
        assert await index_store.get(999) is None

    async def test_clear_removes_everything(self, index_store):
        await index_store.upsert(1, make_doc())
        await index_store.upsert(2, make_doc())

        assert await index_store.clear() == 2
        assert await index_store.count() == 0

    async def test_keyword_search_is_case_insensitive_and_public_only(self, index_store):
        await index_store.upsert(1, make_doc("Annual Tech FEST next week"))
        await index_store.upsert(2, make_doc("Private fest planning", is_private=True))
        await index_store.upsert(3, make_doc("Nothing relevant"))

        results = await index_store.keyword_search(["fest"], limit=8)

        assert [r["source_item_id"] for r in results] == [1]

    async def test_keyword_search_treats_wildcards_literally(self, index_store):
        await index_store.upsert(1, make_doc("100% placement record"))
        await index_store.upsert(2, make_doc("100 points"))

        results = await index_store.keyword_search(["100%"], limit=8)

        assert [r["source_item_id"] for r in results] == [1]

    async def test_keyword_search_without_terms(self, index_store):
        assert await index_store.keyword_search([], limit=8) == []

    async def test_semantic_search_ranks_by_similarity(self, index_store):
        await index_store.upsert(1, make_doc("near", embedding=[0.9, 0.1, 0.0]))
        await index_store.upsert(2, make_doc("far", embedding=[0.0, 0.0, 1.0]))
        await index_store.upsert(3, make_doc("exact", embedding=[1.0, 0.0, 0.0]))

        results = await index_store.semantic_search([1.0, 0.0, 0.0], limit=5, min_similarity=0.3)

        assert [doc["content"] for doc, _ in results] == ["exact", "near"]
        assert results[0][1] == pytest.approx(1.0)


class TestPostLink:

    def test_builds_forum_deep_link(self):
        assert post_link("https://forum.example/", 12, "ai-club", 3) == "https://forum.example/d/12-ai-club/3"


class TestCheckpointStore:

    async def test_cursor_defaults_to_zero(self, checkpoints):
        assert await checkpoints.get_cursor("flarum_posts") == 0

    async def test_advance_is_monotonic_and_counts_accumulate(self, checkpoints):
        await checkpoints.advance("flarum_posts", 10, 4)
        state = await checkpoints.advance("flarum_posts", 7, 2)

        assert state.last_item_id == 10
        assert state.items_indexed == 6

    async def test_keys_are_independent(self, checkpoints):
        await checkpoints.advance("flarum_posts", 10, 1)
        await checkpoints.advance("other", 3, 1)

        assert await checkpoints.get_cursor("flarum_posts") == 10
        assert await checkpoints.get_cursor("other") == 3
        assert await checkpoints.count() == 2

    async def test_reset_removes_row(self, checkpoints):
        await checkpoints.advance("flarum_posts", 10, 1)
        await checkpoints.reset("flarum_posts")
        assert await checkpoints.get("flarum_posts") is None

    async def test_negative_count_rejected(self, checkpoints):
        with pytest.raises(ValueError):
            await checkpoints.advance("flarum_posts", 1, -1)
