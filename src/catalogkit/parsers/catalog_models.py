"""Pydantic models for catalog API responses."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ItemKind(str, Enum):
    """Catalog resource collections addressable per storefront.

    Each value is the URL path segment under ``catalog/{storefront}/``.
    """

    GENRES = "genres"
    STATION_GENRES = "station-genres"
    SONGS = "songs"
    ALBUMS = "albums"
    ARTISTS = "artists"
    PLAYLISTS = "playlists"
    MUSIC_VIDEOS = "music-videos"
    STATIONS = "stations"
    CURATORS = "curators"
    RECORD_LABELS = "record-labels"

    @property
    def path(self) -> str:
        return self.value


class Storefront(BaseModel):
    """A regional catalog (``/storefronts`` resource)."""

    id: str = Field(description="Storefront identifier, e.g. 'us'")
    type: Optional[str] = Field(default="storefronts", description="Resource type")
    name: Optional[str] = Field(default=None, description="Localized storefront name")
    default_language_tag: Optional[str] = Field(default=None, description="Default language")
    supported_language_tags: List[str] = Field(
        default_factory=list, description="Supported language tags"
    )

    model_config = {
        "extra": "ignore",
        "frozen": True,
    }

    @model_validator(mode="before")
    @classmethod
    def _flatten_attributes(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("attributes"), dict):
            attrs = data["attributes"]
            data = {
                **data,
                "name": data.get("name", attrs.get("name")),
                "default_language_tag": attrs.get("defaultLanguageTag"),
                "supported_language_tags": attrs.get("supportedLanguageTags") or [],
            }
        return data


class CatalogItem(BaseModel):
    """
    A unit of catalog metadata (genre, song, album, ...).

    Only ``id`` and ``name`` matter to aggregation. Everything else is carried
    through untouched: the wire ``attributes`` object is kept as-is and unknown
    top-level fields are preserved as extras.
    """

    id: str = Field(description="Catalog identifier, unique within a kind")
    name: str = Field(description="Display name")
    type: Optional[str] = Field(default=None, description="Resource type, e.g. 'genres'")
    href: Optional[str] = Field(default=None, description="API path of the resource")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Raw attributes")

    model_config = {
        "extra": "allow",
        "frozen": True,
    }

    @model_validator(mode="before")
    @classmethod
    def _name_from_attributes(cls, data: Any) -> Any:
        if isinstance(data, dict) and "name" not in data:
            attrs = data.get("attributes")
            if isinstance(attrs, dict) and "name" in attrs:
                data = {**data, "name": attrs["name"]}
        return data


class ResourceResponse(BaseModel):
    """Envelope of a catalog collection response: ``{"data": [...], "next": ...}``."""

    data: List[CatalogItem] = Field(default_factory=list)
    next: Optional[str] = Field(default=None, description="Path of the next page")

    model_config = {"extra": "ignore"}


class StorefrontsResponse(BaseModel):
    """Envelope of the ``/storefronts`` response."""

    data: List[Storefront] = Field(default_factory=list)
    next: Optional[str] = Field(default=None, description="Path of the next page")

    model_config = {"extra": "ignore"}
