"""Visibility, ordering and batching rules for the forum source reader."""

import pytest


class TestSourceFetcher:

    async def test_orders_ascending_and_respects_limit(self, fetcher, forum):
        for post_id in (5, 2, 9, 1):
            forum.post(post_id)

        items = await fetcher.fetch_batch(0, 3)

        assert [i.id for i in items] == [1, 2, 5]

    async def test_only_items_above_cursor(self, fetcher, forum):
        for post_id in (1, 2, 3):
            forum.post(post_id)

        items = await fetcher.fetch_batch(2, 10)

        assert [i.id for i in items] == [3]

    @pytest.mark.parametrize("kwargs", [
        {"hidden": True},
        {"is_approved": False},
        {"type": "discussionRenamed"},
    ])
    async def test_excludes_ineligible_posts(self, fetcher, forum, kwargs):
        forum.post(1)
        forum.post(2, **kwargs)

        items = await fetcher.fetch_batch(0, 10)

        assert [i.id for i in items] == [1]

    async def test_excludes_hidden_and_private_discussions(self, fetcher, forum):
        forum.discussion(1)
        forum.discussion(2, title="Staff only", slug="staff", is_private=True)
        forum.discussion(3, title="Removed", slug="removed", hidden=True)
        forum.post(10, discussion_id=1)
        forum.post(11, discussion_id=2)
        forum.post(12, discussion_id=3)

        items = await fetcher.fetch_batch(0, 10)

        assert [i.id for i in items] == [10]
        assert await fetcher.count_pending(0) == 1

    async def test_maps_fields_and_defaults(self, fetcher, forum):
        forum.discussion(4, title="Hackathon team", slug="hackathon-team")
        forum.post(20, discussion_id=4, user_id=None, number=0, content="<p>Looking for teammates</p>")

        (item,) = await fetcher.fetch_batch(0, 10)

        assert item.discussion_id == 4
        assert item.discussion_title == "Hackathon team"
        assert item.discussion_slug == "hackathon-team"
        assert item.username == "User"
        assert item.post_number == 1
        assert item.is_private is False
        assert item.content == "<p>Looking for teammates</p>"

    async def test_non_positive_limit_returns_nothing(self, fetcher, forum):
        forum.post(1)
        assert await fetcher.fetch_batch(0, 0) == []
