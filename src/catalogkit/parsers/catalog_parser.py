"""Parser for catalog API responses."""

from typing import Optional, Union

import structlog
from pydantic import ValidationError

from ..core.exceptions import DecodeError
from .catalog_models import ResourceResponse, StorefrontsResponse

logger = structlog.get_logger(__name__)

Payload = Union[bytes, str]


class CatalogParser:
    """Decode raw catalog response bodies into validated models.

    Every failure (invalid JSON, wrong shape, missing ``id``/``name``) surfaces
    as ``DecodeError`` so callers never see pydantic internals.
    """

    @staticmethod
    def parse_resources(content: Payload, url: Optional[str] = None) -> ResourceResponse:
        """
        Parse a collection response.

        Args:
            content: Raw response body
            url: Request URL, attached to the error for context

        Returns:
            Validated ResourceResponse

        Raises:
            DecodeError: If the payload does not match the expected shape
        """
        try:
            return ResourceResponse.model_validate_json(content)
        except ValidationError as e:
            logger.warning(
                "catalog_decode_failed",
                url=url,
                error_count=e.error_count(),
            )
            raise DecodeError(f"Malformed catalog response: {e.errors()[0]['msg']}", url=url) from e

    @staticmethod
    def parse_storefronts(content: Payload, url: Optional[str] = None) -> StorefrontsResponse:
        """
        Parse a ``/storefronts`` response.

        Raises:
            DecodeError: If the payload does not match the expected shape
        """
        try:
            return StorefrontsResponse.model_validate_json(content)
        except ValidationError as e:
            logger.warning(
                "storefronts_decode_failed",
                url=url,
                error_count=e.error_count(),
            )
            raise DecodeError(f"Malformed storefronts response: {e.errors()[0]['msg']}", url=url) from e
