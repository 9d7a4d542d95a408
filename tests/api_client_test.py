"""Tests for the dump_exporter.infrastructure.api_client module."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from dump_exporter.application.domain import ArtistPost, PopularTag
from dump_exporter.application.exceptions import APIError
from dump_exporter.infrastructure.api_client import HttpLeaderboardSource

BASE_URL = "https://api.example.net"

TAGS = [
    {"id": 1, "name": "solo", "post_count": 2000, "category": 0,
     "related_tags": "solo 300"},
    {"id": 2, "name": "male", "post_count": 1500, "category": 0},
]

POSTS = {
    "posts": [
        {
            "id": 10,
            "created_at": "2024-05-01T12:00:00.000-04:00",
            "score": {"up": 12, "down": -2, "total": 10},
            "fav_count": 33,
            "tags": {"artist": ["someone"]},
        },
    ]
}


def _source(handler) -> HttpLeaderboardSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpLeaderboardSource(
        client=client, user_agent="tests/1.0", base_url=BASE_URL, timeout=5
    )


class TestPopularTags:
    """Tests for the tag search endpoint."""

    def test_list_payload(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=TAGS)

        tags = asyncio.run(_source(handler).popular_tags(page=2, limit=10))

        assert tags == [PopularTag("solo", 2000), PopularTag("male", 1500)]
        params = requests[0].url.params
        assert requests[0].url.path == "/tags.json"
        assert params["search[category]"] == "0"
        assert params["search[order]"] == "count"
        assert params["limit"] == "10"
        assert params["page"] == "2"
        assert requests[0].headers["User-Agent"] == "tests/1.0"

    def test_empty_object_payload(self):
        def handler(request):
            return httpx.Response(200, json={"tags": []})

        assert asyncio.run(_source(handler).popular_tags(1, 10)) == []

    def test_malformed_payload(self):
        def handler(request):
            return httpx.Response(200, json=[{"name": "no id"}])

        with pytest.raises(APIError):
            asyncio.run(_source(handler).popular_tags(1, 10))

    def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(APIError):
            asyncio.run(_source(handler).popular_tags(1, 10))

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ReadError("connection reset", request=request)

        with pytest.raises(APIError):
            asyncio.run(_source(handler).popular_tags(1, 10))


class TestPostsFor:
    """Tests for the post search endpoint."""

    def test_maps_posts(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=POSTS)

        posts = asyncio.run(_source(handler).posts_for("someone", 1, 5))

        assert len(posts) == 1
        post = posts[0]
        assert isinstance(post, ArtistPost)
        assert (post.id, post.score, post.fav_count) == (10, 10, 33)
        assert post.created_at == datetime(2024, 5, 1, 16, tzinfo=timezone.utc)
        assert requests[0].url.path == "/posts.json"
        assert requests[0].url.params["tags"] == "someone"
        assert requests[0].url.params["limit"] == "5"

    def test_missing_posts_key(self):
        def handler(request):
            return httpx.Response(200, json={"success": False})

        with pytest.raises(APIError):
            asyncio.run(_source(handler).posts_for("someone", 1, 5))
