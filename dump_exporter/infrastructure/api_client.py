"""HTTP implementation of the LeaderboardSource port."""

from typing import Any, Dict, List

import httpx
from pydantic import ValidationError

from ..application.domain import ArtistPost, LeaderboardSource, PopularTag
from ..application.exceptions import APIError

from .api_models import PostDetails, PostsResponse, TagDetails, TagsResponse
from .base_client import BaseClient
from .decorators import retry_on_network_error

_TAGS_ENDPOINT = "/tags.json"
_POSTS_ENDPOINT = "/posts.json"

# Tag category of general (non-artist, non-species, ...) tags.
_GENERAL_CATEGORY = 0


class HttpLeaderboardSource(BaseClient, LeaderboardSource):
    """A leaderboard source backed by the site's search endpoints."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        base_url: str,
        timeout: int,
    ):
        """Initializes the data source adapter."""
        super().__init__(client, user_agent)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _map_tag(self, dto: TagDetails) -> PopularTag:
        """Maps a tag DTO to a domain model."""
        return PopularTag(name=dto.name, post_count=dto.post_count)

    def _map_post(self, dto: PostDetails) -> ArtistPost:
        """Maps a post DTO to a domain model."""
        return ArtistPost(
            id=dto.id,
            score=dto.score.total,
            fav_count=dto.fav_count,
            created_at=dto.created_at,
        )

    @retry_on_network_error
    async def _execute_fetch(self, endpoint: str, params: Dict) -> Any:
        """Executes the raw HTTP GET request."""
        response = await self.client.get(
            self.base_url + endpoint,
            params=params,
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def _fetch(self, endpoint: str, params: Dict) -> Any:
        """Fetches a page and maps transport failures to APIError."""
        try:
            return await self._execute_fetch(endpoint, params)
        except (httpx.HTTPError, ValueError) as e:
            raise APIError(f"Request to {endpoint} failed: {e}") from e

    async def popular_tags(self, page: int, limit: int) -> List[PopularTag]:
        """
        Fetches one page of general tags ordered by post count.

        Raises:
            APIError: If the request fails or the payload is malformed.
        """
        params = {
            "search[category]": _GENERAL_CATEGORY,
            "search[order]": "count",
            "limit": limit,
            "page": page,
        }
        raw_data = await self._fetch(_TAGS_ENDPOINT, params)
        if isinstance(raw_data, list):
            raw_data = {"tags": raw_data}

        try:
            validated = TagsResponse.model_validate(raw_data)
        except ValidationError as e:
            raise APIError(f"Unexpected tag payload: {e}") from e

        return [self._map_tag(dto) for dto in validated.tags]

    async def posts_for(
        self, tags: str, page: int, limit: int
    ) -> List[ArtistPost]:
        """
        Fetches one page of posts matching a tag query.

        Raises:
            APIError: If the request fails or the payload is malformed.
        """
        params = {"tags": tags, "limit": limit, "page": page}
        raw_data = await self._fetch(_POSTS_ENDPOINT, params)

        try:
            validated = PostsResponse.model_validate(raw_data)
        except ValidationError as e:
            raise APIError(f"Unexpected post payload: {e}") from e

        return [self._map_post(dto) for dto in validated.posts]
