"""
Clients for third-party Zig package catalogs.

Every client turns a remote catalog into ``Package`` records that the
importer can submit to a registry store. HTTP access goes through httpx
with a small retry loop; transient failures (transport errors, 5xx, 429)
are retried with linear backoff.
"""
from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from zepplin.domain.errors import CatalogNetworkError, CatalogParseError
from zepplin.domain.models import Package
from zepplin.domain.text_utils import clean_text, matches_any

logger = logging.getLogger(__name__)

ZIGLIBS_CONTENTS_URL = "https://api.github.com/repos/ziglibs/repository/contents/libs"
ZIGISTRY_BASE_URL = "https://zigistry.dev"

_GIT_URL_RE = re.compile(r"^(?:https?://|git@)[^/:]+[/:]([^/]+)/([^/]+?)(?:\.git)?/?$")


def parse_git_url(url: str) -> Optional[Tuple[str, str]]:
    """Extract ``(owner, repo)`` from a GitHub-style git URL."""
    match = _GIT_URL_RE.match(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def _limited(packages: List[Package], limit: Optional[int]) -> List[Package]:
    if limit is None:
        return packages
    return packages[:max(limit, 0)]


def _by_stars(packages: Iterable[Package]) -> List[Package]:
    return sorted(packages, key=lambda p: p.stars, reverse=True)


class CatalogClient(ABC):
    """A source of candidate packages for the importer."""

    name: str = "catalog"

    @abstractmethod
    async def fetch_packages(self) -> List[Package]:
        """Every package the catalog lists."""
        pass

    async def search(self, query: str, limit: Optional[int] = None) -> List[Package]:
        packages = await self.fetch_packages()
        return _limited([p for p in packages if matches_any((p.name, p.description), query)], limit)

    async def get_trending(self, limit: Optional[int] = None) -> List[Package]:
        return _limited(_by_stars(await self.fetch_packages()), limit)


class StaticCatalogClient(CatalogClient):
    """In-memory catalog serving a fixed list of packages."""

    name = "static"

    def __init__(self, packages: Iterable[Package]):
        self._packages = [p.model_copy(deep=True) for p in packages]

    async def fetch_packages(self) -> List[Package]:
        return [p.model_copy(deep=True) for p in self._packages]


class HttpCatalogClient(CatalogClient):
    """Shared HTTP plumbing: headers, timeouts and the retry loop."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max(max_retries, 1)
        self.backoff = backoff
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings, http_client: Optional[httpx.AsyncClient] = None):
        return cls(
            cls._settings_url(settings),
            token=settings.github_token,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
            backoff=settings.backoff_seconds,
            http_client=http_client,
        )

    @staticmethod
    def _settings_url(settings) -> str:
        raise NotImplementedError

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "User-Agent": "zepplin-importer"}

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(url, params=params, headers=self._headers())
        async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
            return await client.get(url, params=params, headers=self._headers())

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        last_error: Optional[str] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._send(url, params)
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code == 429 or response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                elif response.status_code >= 400:
                    raise CatalogNetworkError(f"GET {url} failed with HTTP {response.status_code}")
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise CatalogParseError(f"GET {url} returned malformed JSON: {e}") from e

            if attempt < self.max_retries:
                logger.warning(f"GET {url} failed (attempt {attempt}/{self.max_retries}): {last_error}. Retrying...")
                await asyncio.sleep(self.backoff * attempt)

        raise CatalogNetworkError(f"GET {url} failed after {self.max_retries} attempts: {last_error}")


class ZiglibsCatalogClient(HttpCatalogClient):
    """
    The ziglibs community package list.

    The list lives as one JSON file per library under ``libs/`` in the
    ziglibs repository; the GitHub contents API enumerates them.
    """

    name = "ziglibs"

    def __init__(self, base_url: str = ZIGLIBS_CONTENTS_URL, **kwargs):
        super().__init__(base_url, **kwargs)

    @staticmethod
    def _settings_url(settings) -> str:
        return settings.ziglibs_url

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch_packages(self) -> List[Package]:
        listing = await self._get_json(self.base_url)
        if not isinstance(listing, list):
            raise CatalogParseError(f"Expected a directory listing from {self.base_url}")

        packages: List[Package] = []
        for entry in listing:
            if not isinstance(entry, dict) or entry.get("type") != "file":
                continue
            if not str(entry.get("name", "")).endswith(".json") or not entry.get("download_url"):
                continue

            raw = await self._get_json(entry["download_url"])
            package = self.to_package(raw)
            if package is None:
                logger.warning(f"Skipping ziglibs entry {entry.get('name')}: no usable git URL")
                continue
            packages.append(package)

        logger.info(f"Fetched {len(packages)} packages from ziglibs")
        return packages

    @staticmethod
    def to_package(raw: Any) -> Optional[Package]:
        if not isinstance(raw, dict):
            return None
        git_url = raw.get("git") or raw.get("source")
        if not isinstance(git_url, str):
            return None
        identity = parse_git_url(git_url)
        if identity is None:
            return None

        owner, repo = identity
        homepage = git_url[:-4] if git_url.endswith(".git") else git_url
        tags = raw.get("tags") or []
        try:
            return Package(
                owner=owner,
                repo=repo,
                description=clean_text(raw.get("description")),
                topics=[t for t in tags if isinstance(t, str)],
                license=clean_text(raw.get("license")),
                author=clean_text(raw.get("author")),
                homepage=homepage,
                repository_url=git_url,
            )
        except ValidationError as e:
            logger.warning(f"Rejected ziglibs entry {owner}/{repo}: {e}")
            return None


class ZigistryCatalogClient(HttpCatalogClient):
    """Client for a Zigistry-compatible JSON API."""

    name = "zigistry"

    def __init__(self, base_url: str = ZIGISTRY_BASE_URL, **kwargs):
        super().__init__(base_url, **kwargs)

    @staticmethod
    def _settings_url(settings) -> str:
        return settings.zigistry_url

    async def fetch_packages(self) -> List[Package]:
        return self._to_packages(await self._get_json(f"{self.base_url}/api/packages"))

    async def search(self, query: str, limit: Optional[int] = None) -> List[Package]:
        params: Dict[str, Any] = {"q": query}
        if limit is not None:
            params["limit"] = limit
        packages = self._to_packages(await self._get_json(f"{self.base_url}/api/search", params))
        return _limited(packages, limit)

    async def get_trending(self, limit: Optional[int] = None) -> List[Package]:
        params = {"limit": limit} if limit is not None else None
        packages = self._to_packages(await self._get_json(f"{self.base_url}/api/trending", params))
        return _limited(_by_stars(packages), limit)

    def _to_packages(self, payload: Any) -> List[Package]:
        if isinstance(payload, dict):
            payload = payload.get("packages", payload.get("items"))
        if not isinstance(payload, list):
            raise CatalogParseError(f"Unexpected payload from {self.base_url}")

        packages: List[Package] = []
        for raw in payload:
            package = self.to_package(raw)
            if package is None:
                logger.warning(f"Skipping zigistry entry {raw.get('name') if isinstance(raw, dict) else raw!r}")
                continue
            packages.append(package)
        return packages

    @staticmethod
    def to_package(raw: Any) -> Optional[Package]:
        if not isinstance(raw, dict):
            return None
        github_url = raw.get("github_url")
        identity = parse_git_url(github_url) if isinstance(github_url, str) else None
        if identity is None:
            return None

        owner, repo = identity
        updated = raw.get("last_updated")
        try:
            fields: Dict[str, Any] = {
                "owner": owner,
                "repo": repo,
                "description": clean_text(raw.get("description")),
                "topics": [t for t in raw.get("topics") or [] if isinstance(t, str)],
                "license": clean_text(raw.get("license")),
                "homepage": github_url,
                "repository_url": github_url,
                "stars": raw.get("github_stars") or 0,
            }
            if isinstance(updated, (int, float)):
                fields["updated_at"] = datetime.fromtimestamp(updated, timezone.utc)
                fields["created_at"] = fields["updated_at"]
            return Package(**fields)
        except (ValidationError, ValueError, OverflowError, OSError) as e:
            logger.warning(f"Rejected zigistry entry {owner}/{repo}: {e}")
            return None
