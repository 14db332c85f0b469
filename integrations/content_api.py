"""
WordPress media API client.

Used to swap a first-party page or attachment URL for the direct
asset URL before fetching. Every failure degrades to the URL given.
"""

import re
from typing import Optional

import requests
import structlog

from config import get_settings

logger = structlog.get_logger(__name__)

DIRECT_ASSET_PATTERN = re.compile(r"\.(jpeg|jpg|gif|png|webp)$", re.IGNORECASE)
DEFAULT_TIMEOUT_SECONDS = 10


class WordPressMediaClient:
    """
    Read-only client for the WordPress /media endpoint.

    Not configured (no base URL or host) means every URL is returned
    untouched.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        host: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.content_api_url or "").rstrip("/")
        self.host = host or settings.content_api_host
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.host)

    def is_first_party(self, url: str) -> bool:
        """True if url points at the configured WordPress site."""
        return bool(self.host) and self.host in (url or "")

    def find_media_by_name(self, name: str, per_page: int = 50) -> Optional[dict]:
        """
        Search media items by name or slug.

        Returns:
            First matching media item, or None on no match or any error
        """
        if not self.configured:
            return None

        params = {"search": name, "per_page": per_page, "page": 1, "media_type": "image"}
        try:
            response = self.session.get(f"{self.base_url}/media", params=params, timeout=self.timeout)
            response.raise_for_status()
            items = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("content_api_search_failed", name=name, error=str(e))
            return None

        if not isinstance(items, list) or not items:
            logger.debug("content_api_no_match", name=name)
            return None
        return items[0]

    def resolve_asset_url(self, url: str) -> str:
        """
        Direct asset URL for a first-party URL.

        Non first-party URLs and URLs already ending in an image
        extension are returned as given. Otherwise the last path segment
        is searched as a slug and the match's source_url is used.
        """
        if not self.configured or not self.is_first_party(url):
            return url

        if DIRECT_ASSET_PATTERN.search(url):
            return url

        segments = url.split("/")
        slug = segments[-1] or (segments[-2] if len(segments) > 1 else "")
        if not slug:
            return url

        media = self.find_media_by_name(slug)
        if media and media.get("source_url"):
            logger.info("content_api_url_resolved", url=url, source_url=media["source_url"])
            return media["source_url"]
        return url
