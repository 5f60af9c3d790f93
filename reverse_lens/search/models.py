# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Search request and result models shared by the extractor, cache, and service."""
from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

SearchStatus = Literal["ready", "pending"]

MAX_IMAGE_URL_LENGTH = 2048

ImageUrl = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_IMAGE_URL_LENGTH)
]
ImageHash = Annotated[str, StringConstraints(pattern=r"^[A-Fa-f0-9]{64}$", to_lower=True)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchResult(_CamelModel):
    """Normalized reverse-image-search match.

    Attributes:
        title (str): Title of the matching page.
        page_url (str): URL of the page containing the image.
        image_url (Optional[str]): URL of the matched image, when known.
        domain (Optional[str]): Host of ``page_url``.
    """

    title: str
    page_url: str
    image_url: Optional[str] = None
    domain: Optional[str] = None


class CachedSearchResult(_CamelModel):
    """Result set stored in the result cache.

    Attributes:
        task_id (Optional[str]): Provider task that produced the results.
        results (List[SearchResult]): Matches; may be empty.
        check_url (Optional[str]): Provider URL for checking the search manually.
        cached_at (datetime): When the entry was written.
    """

    task_id: Optional[str] = None
    results: List[SearchResult]
    check_url: Optional[str] = None
    cached_at: datetime


class SearchResponse(_CamelModel):
    """Outcome of a search or poll returned to the caller.

    Attributes:
        status (SearchStatus): "ready" when results are available, else "pending".
        task_id (Optional[str]): Provider task id to poll with.
        results (List[SearchResult]): Matches found so far.
        check_url (Optional[str]): Provider URL for checking the search manually.
        cached (bool): Whether the response came from the result cache.
        rate_limit_remaining (Optional[int]): Admissions left today, if limited.
    """

    status: SearchStatus
    task_id: Optional[str] = None
    results: List[SearchResult] = []
    check_url: Optional[str] = None
    cached: bool = False
    rate_limit_remaining: Optional[int] = None


class SearchRequest(BaseModel):
    """Client arguments of a search, checked before any other work.

    Attributes:
        image_url (ImageUrl): Untrusted image URL, at most 2048 characters.
        image_hash (Optional[ImageHash]): Hex SHA-256 of the image bytes,
            lower-cased. An empty string means no hash.
    """

    model_config = ConfigDict(strict=True)

    image_url: ImageUrl
    image_hash: Optional[ImageHash] = None

    @field_validator("image_hash", mode="before")
    @classmethod
    def _empty_hash_is_none(cls, value):
        return None if value == "" else value
