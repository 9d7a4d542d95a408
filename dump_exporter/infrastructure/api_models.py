"""
Pydantic models for validating the structure of responses from the site's
JSON API.

These models serve as a strict contract for the expected JSON data, ensuring
that any deviation from this structure is caught at the infrastructure layer
before being passed to the application core. Only the fields the exporter
reads are declared; everything else in the payload is ignored.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel


class TagDetails(BaseModel):
    """A single entry of the tag search endpoint."""

    id: int
    name: str
    post_count: int = 0
    category: int = 0


class PostScore(BaseModel):
    """The vote breakdown nested in every post."""

    up: int = 0
    down: int = 0
    total: int = 0


class PostDetails(BaseModel):
    """A single entry of the post search endpoint."""

    id: int
    created_at: datetime
    score: PostScore
    fav_count: int = 0


class TagsResponse(BaseModel):
    """
    The tag search payload.

    The API answers with a bare JSON list, except when nothing matches, in
    which case it returns an object with an empty 'tags' list. The client
    normalizes the former into this shape.
    """

    tags: List[TagDetails]


class PostsResponse(BaseModel):
    """The post search payload."""

    posts: List[PostDetails]
