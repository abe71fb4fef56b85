"""Shared pytest fixtures for all tests."""

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
import respx

from catalogkit.common.config import (
    CatalogAPIConfig,
    HTTPConfig,
    RateLimitConfig,
    RetryConfig,
)

BASE_URL = "https://api.music.apple.com/v1"


def genre(item_id: str, name: str, **attributes: Any) -> Dict[str, Any]:
    """Build a catalog resource in wire format."""
    return {
        "id": item_id,
        "type": "genres",
        "href": f"/v1/catalog/us/genres/{item_id}",
        "attributes": {"name": name, **attributes},
    }


def storefront(storefront_id: str, name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": storefront_id,
        "type": "storefronts",
        "attributes": {
            "name": name or storefront_id.upper(),
            "defaultLanguageTag": "en-US",
            "supportedLanguageTags": ["en-US"],
        },
    }


def collection(data: List[Dict[str, Any]], next_path: Optional[str] = None) -> bytes:
    body: Dict[str, Any] = {"data": data}
    if next_path:
        body["next"] = next_path
    return json.dumps(body).encode()


@pytest.fixture
def http_config() -> HTTPConfig:
    """HTTP config with a single attempt so failures surface immediately."""
    return HTTPConfig(
        timeout=10,
        max_redirects=3,
        retry=RetryConfig(max_attempts=1, min_wait=0.01, max_wait=0.05),
    )


@pytest.fixture
def catalog_config() -> CatalogAPIConfig:
    """Catalog config without rate limiting and with a static developer token."""
    return CatalogAPIConfig(
        base_url=BASE_URL,
        developer_token="test-developer-token",
        rate_limit=RateLimitConfig(enabled=False),
    )


@pytest.fixture
def mock_http():
    """Provide a respx mock for httpx requests."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def payloads() -> SimpleNamespace:
    """Builders for catalog wire payloads."""
    return SimpleNamespace(
        base_url=BASE_URL,
        genre=genre,
        storefront=storefront,
        collection=collection,
    )
