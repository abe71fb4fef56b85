"""Music catalog API client: storefront listing and per-storefront fetches."""

import re
from typing import Any, Iterable, List, NoReturn, Optional, Union

import httpx
import structlog

from .base_client import RateLimitedAPIClient
from ..common.concurrency_limiter import ConcurrencyLimiter
from ..common.config import CatalogAPIConfig, HTTPConfig
from ..common.rate_limiter import RateLimiter
from ..core.exceptions import ConfigError, NotFoundError, TransportError
from ..parsers.catalog_models import CatalogItem, ItemKind, Storefront
from ..parsers.catalog_parser import CatalogParser

logger = structlog.get_logger(__name__)

_STOREFRONT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
# Catalog ids are numeric ("14") or dotted ("pl.u-8aAVZAo", "ra.1234")
_RESOURCE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def resolve_item_kind(kind: Union[ItemKind, str]) -> ItemKind:
    """Return ``kind`` as an ItemKind, raising ConfigError for unknown paths."""
    if isinstance(kind, ItemKind):
        return kind
    try:
        return ItemKind(kind)
    except ValueError:
        raise ConfigError(f"Unknown catalog item kind: {kind!r}", value=str(kind)) from None


def build_request_url(base_url: str, storefront: str, kind: Union[ItemKind, str]) -> str:
    """
    Build the collection URL for one storefront and item kind.

    Pure and deterministic: ``{base_url}/catalog/{storefront}/{kind}``.

    Args:
        base_url: API base URL, e.g. ``https://api.music.apple.com/v1``
        storefront: Storefront identifier, e.g. ``"us"``
        kind: Item kind or its path segment

    Returns:
        Absolute request URL

    Raises:
        ConfigError: If the storefront, kind or resulting URL is malformed

    Example:
        >>> build_request_url("https://api.music.apple.com/v1", "gb", ItemKind.GENRES)
        'https://api.music.apple.com/v1/catalog/gb/genres'
    """
    if not isinstance(storefront, str) or not _STOREFRONT_RE.match(storefront):
        raise ConfigError(f"Invalid storefront identifier: {storefront!r}", value=str(storefront))

    item_kind = resolve_item_kind(kind)
    url = f"{base_url.rstrip('/')}/catalog/{storefront}/{item_kind.path}"

    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ConfigError(f"Malformed request URL: {url}", value=url) from e

    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigError(f"Malformed request URL: {url}", value=url)

    return str(parsed)


class CatalogClient(RateLimitedAPIClient):
    """
    Client for a storefront-partitioned music catalog API.

    Storefronts are always passed explicitly; the client holds no notion of a
    "current" storefront.

    Error mapping:
    - network failures and non-2xx responses raise ``TransportError``
    - malformed payloads raise ``DecodeError``
    - malformed storefronts, kinds or URLs raise ``ConfigError``

    Example:
        >>> async def main():
        ...     async with CatalogClient.from_config(CatalogAPIConfig(developer_token="...")) as client:
        ...         storefronts = await client.list_storefronts()
        ...         genres = await client.fetch_items("us", ItemKind.GENRES)
    """

    MAX_IDS_PER_REQUEST = 300
    MAX_PAGES = 200

    def __init__(self, *args: Any, page_limit: int = 100, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.page_limit = page_limit

    @classmethod
    def from_config(
        cls,
        config: CatalogAPIConfig,
        http_config: Optional[HTTPConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CatalogClient":
        """
        Create a catalog client from configuration.

        Args:
            config: Catalog API configuration (base URL, tokens, limits)
            http_config: HTTP configuration, defaults to ``HTTPConfig()``
            transport: Optional custom httpx transport

        Returns:
            Configured CatalogClient (enter it with ``async with``)
        """
        return cls(
            http_config=http_config or HTTPConfig(),
            base_url=config.base_url,
            rate_limiter=RateLimiter.from_config(config.rate_limit),
            concurrency_limiter=ConcurrencyLimiter(config.concurrency.max_concurrent_requests),
            auth_headers=config.auth_headers(),
            transport=transport,
            page_limit=config.page_limit,
        )

    def build_request_url(self, storefront: str, kind: Union[ItemKind, str]) -> str:
        """Build the collection URL for ``storefront`` against this client's base URL."""
        return build_request_url(self.base_url, storefront, kind)

    def _resolve_next(self, next_path: str) -> str:
        # "next" links are origin-relative ("/v1/catalog/us/genres?offset=100")
        return str(httpx.URL(self.base_url).join(next_path))

    def _raise_page_limit(self, next_url: str, fetched: int) -> NoReturn:
        # never hand back a truncated collection
        self.logger.error(
            "catalog_page_limit_exceeded",
            max_pages=self.MAX_PAGES,
            fetched=fetched,
            next_url=next_url,
        )
        raise TransportError(
            f"Collection still has more pages after {self.MAX_PAGES} pages",
            url=next_url,
        )

    async def _get_body(self, url: str, **kwargs: Any) -> bytes:
        """GET ``url`` and return the body of a 2xx response, mapping httpx errors."""
        try:
            response = await self.get(url, **kwargs)
        except httpx.InvalidURL as e:
            raise ConfigError(f"Malformed request URL: {url}", value=url) from e
        except httpx.UnsupportedProtocol as e:
            raise ConfigError(f"Unsupported URL scheme: {url}", value=url) from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"HTTP {e.response.status_code} from {url}",
                status_code=e.response.status_code,
                url=url,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"{type(e).__name__}: {e}", url=url) from e

        if not response.is_success:
            self.logger.warning(
                "catalog_request_failed",
                url=url,
                status_code=response.status_code,
            )
            raise TransportError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
                url=url,
            )
        return response.content

    async def get_storefronts(self) -> List[Storefront]:
        """
        Fetch every storefront, following pagination.

        Raises:
            TransportError: If the directory listing cannot be retrieved
            DecodeError: If the listing payload is malformed
        """
        storefronts: List[Storefront] = []
        url = f"{self.base_url.rstrip('/')}/storefronts"
        params: Optional[dict] = {"limit": self.page_limit}

        for _ in range(self.MAX_PAGES):
            body = await self._get_body(url, params=params)
            page = CatalogParser.parse_storefronts(body, url=url)
            storefronts.extend(page.data)
            if not page.next or not page.data:
                break
            url, params = self._resolve_next(page.next), None
        else:
            self._raise_page_limit(url, fetched=len(storefronts))

        self.logger.info("storefronts_listed", count=len(storefronts))
        return storefronts

    async def list_storefronts(self) -> List[str]:
        """
        Return all storefront identifiers (de-duplicated, order preserved).

        Raises:
            TransportError: If the directory listing cannot be retrieved
            DecodeError: If the listing payload is malformed
        """
        storefronts = await self.get_storefronts()
        return list(dict.fromkeys(sf.id for sf in storefronts))

    async def get_storefront(self, storefront: str) -> Storefront:
        """Fetch a single storefront by identifier."""
        if not _STOREFRONT_RE.match(storefront or ""):
            raise ConfigError(f"Invalid storefront identifier: {storefront!r}", value=storefront)

        url = f"{self.base_url.rstrip('/')}/storefronts/{storefront}"
        try:
            body = await self._get_body(url)
        except TransportError as e:
            if e.status_code == 404:
                raise NotFoundError(f"Storefront not found: {storefront}", item_id=storefront, url=url) from e
            raise

        page = CatalogParser.parse_storefronts(body, url=url)
        if not page.data:
            raise NotFoundError(f"Storefront not found: {storefront}", item_id=storefront, url=url)
        return page.data[0]

    async def fetch_items(self, storefront: str, kind: Union[ItemKind, str]) -> List[CatalogItem]:
        """
        Fetch the full collection of ``kind`` for one storefront.

        Follows ``next`` links until the collection is exhausted.

        Raises:
            ConfigError: If the storefront or kind cannot form a valid URL
            TransportError: For network failures and non-2xx responses
            DecodeError: If a page payload is malformed
        """
        url = self.build_request_url(storefront, kind)
        params: Optional[dict] = {"limit": self.page_limit}
        items: List[CatalogItem] = []

        for page_number in range(self.MAX_PAGES):
            body = await self._get_body(url, params=params)
            page = CatalogParser.parse_resources(body, url=url)
            items.extend(page.data)
            if not page.next or not page.data:
                break
            url, params = self._resolve_next(page.next), None
            self.logger.debug(
                "catalog_pagination",
                storefront=storefront,
                page=page_number + 1,
                fetched=len(items),
            )
        else:
            self._raise_page_limit(url, fetched=len(items))

        self.logger.debug(
            "catalog_items_fetched",
            storefront=storefront,
            kind=resolve_item_kind(kind).value,
            count=len(items),
        )
        return items

    async def get_items(
        self,
        storefront: str,
        kind: Union[ItemKind, str],
        ids: Iterable[str],
    ) -> List[CatalogItem]:
        """
        Fetch several items of one kind by identifier.

        Requests are batched at ``MAX_IDS_PER_REQUEST`` ids. Unknown ids are
        simply absent from the result.
        """
        id_list = list(dict.fromkeys(ids))
        if not id_list:
            return []

        url = self.build_request_url(storefront, kind)
        items: List[CatalogItem] = []

        for i in range(0, len(id_list), self.MAX_IDS_PER_REQUEST):
            batch = id_list[i : i + self.MAX_IDS_PER_REQUEST]
            body = await self._get_body(url, params={"ids": ",".join(batch)})
            items.extend(CatalogParser.parse_resources(body, url=url).data)

        self.logger.info(
            "catalog_get_items_complete",
            storefront=storefront,
            requested=len(id_list),
            fetched=len(items),
        )
        return items

    async def get_genre(self, storefront: str, genre_id: str) -> CatalogItem:
        """
        Fetch one genre by identifier.

        Raises:
            ConfigError: If ``genre_id`` is not a plain resource identifier
            NotFoundError: If the catalog has no genre with this identifier
        """
        if not isinstance(genre_id, str) or not _RESOURCE_ID_RE.match(genre_id):
            raise ConfigError(f"Invalid genre identifier: {genre_id!r}", value=str(genre_id))

        url =f"{self.build_request_url(storefront, ItemKind.GENRES)}/{genre_id}"
        try:
            body = await self._get_body(url)
        except TransportError as e:
            if e.status_code == 404:
                raise NotFoundError(f"Genre not found: {genre_id}", item_id=genre_id, url=url) from e
            raise

        page = CatalogParser.parse_resources(body, url=url)
        if not page.data:
            raise NotFoundError(f"Genre not found: {genre_id}", item_id=genre_id, url=url)
        return page.data[0]

    async def get_genres(self, storefront: str, genre_ids: Iterable[str]) -> List[CatalogItem]:
        """Fetch several genres by identifier."""
        return await self.get_items(storefront, ItemKind.GENRES, genre_ids)

    async def top_genres(self, storefront: str) -> List[CatalogItem]:
        """Fetch the top-level genres of one storefront."""
        return await self.fetch_items(storefront, ItemKind.GENRES)

    async def station_genres(self, storefront: str) -> List[CatalogItem]:
        """Fetch the station genres available in one storefront."""
        return await self.fetch_items(storefront, ItemKind.STATION_GENRES)
