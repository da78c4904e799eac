"""Registry lookups for published package metadata.

Only the data contract matters to the analyzers: for a package name, the
published versions with their dependencies and peer dependencies (and the
unpacked size when the registry reports it). ``NpmRegistryClient`` talks to
an npm-compatible registry over HTTP; ``StaticRegistry`` serves documents
from memory for offline runs and tests.

Lookups never raise for network or data problems: failures are logged and
reported as ``None`` so callers can degrade to local-only results.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError

from depdoctor.config import DEFAULT_REGISTRY_URL
from depdoctor.logging import get_logger

logger = get_logger(__name__)

# Abbreviated metadata is much smaller and still carries dependencies,
# peerDependencies and dist.unpackedSize.
ACCEPT_HEADER = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8"


class PackageVersionInfo(BaseModel):
    """Metadata of one published version."""

    version: str = Field(description="Version string")
    dependencies: dict[str, str] = Field(default_factory=dict, description="Runtime dependencies")
    peer_dependencies: dict[str, str] = Field(
        default_factory=dict, alias="peerDependencies", description="Peer dependencies"
    )
    unpacked_size: int | None = Field(
        default=None, description="dist.unpackedSize in bytes, when published"
    )

    model_config = {"populate_by_name": True}


class PackageInfo(BaseModel):
    """Published versions of one package."""

    name: str = Field(description="Package name")
    versions: dict[str, PackageVersionInfo] = Field(
        default_factory=dict, description="Version string -> metadata"
    )

    @classmethod
    def from_document(cls, name: str, document: dict[str, Any]) -> "PackageInfo":
        """Build from a registry packument, skipping malformed version entries."""
        versions: dict[str, PackageVersionInfo] = {}

        raw_versions = document.get("versions")
        if not isinstance(raw_versions, dict):
            raw_versions = {}

        for version, entry in raw_versions.items():
            if not isinstance(version, str) or not isinstance(entry, dict):
                continue
            dist = entry.get("dist") if isinstance(entry.get("dist"), dict) else {}
            size = dist.get("unpackedSize")
            try:
                versions[version] = PackageVersionInfo(
                    version=version,
                    dependencies=_string_map(entry.get("dependencies")),
                    peer_dependencies=_string_map(entry.get("peerDependencies")),
                    unpacked_size=size if isinstance(size, int) and size >= 0 else None,
                )
            except ValidationError:
                continue

        doc_name = document.get("name")
        return cls(name=doc_name if isinstance(doc_name, str) else name, versions=versions)


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str)}


class RegistryLookup(ABC):
    """Source of published-version metadata."""

    @abstractmethod
    async def get_package_info(self, name: str) -> PackageInfo | None:
        """Metadata for ``name``, or None when unavailable or not found."""
        ...

    async def aclose(self) -> None:
        """Release resources held by the lookup."""
        return None

    async def __aenter__(self) -> "RegistryLookup":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


class StaticRegistry(RegistryLookup):
    """Serves registry documents from memory.

    Args:
        documents: Package name -> packument-shaped dict
            (``{"versions": {"1.0.0": {"dependencies": {...}}}}``) or a
            ready ``PackageInfo``.
    """

    def __init__(self, documents: dict[str, dict[str, Any] | PackageInfo] | None = None) -> None:
        self._documents = dict(documents or {})

    async def get_package_info(self, name: str) -> PackageInfo | None:
        document = self._documents.get(name)
        if document is None:
            return None
        if isinstance(document, PackageInfo):
            return document
        return PackageInfo.from_document(name, document)


class NpmRegistryClient(RegistryLookup):
    """Fetches packuments from an npm-compatible registry.

    Results (including failures) are cached per instance, so one client
    should be used for exactly one analysis run.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._log = log or logger
        self._cache: dict[str, asyncio.Task] = {}

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": ACCEPT_HEADER},
                follow_redirects=True,
            )
        return self._client

    def package_url(self, name: str) -> str:
        """Registry URL for a package (``@scope/pkg`` -> ``@scope%2Fpkg``)."""
        return f"{self.base_url}/{quote(name, safe='@')}"

    async def get_package_info(self, name: str) -> PackageInfo | None:
        task = self._cache.get(name)
        if task is None:
            task = asyncio.ensure_future(self._fetch_with_timeout(name))
            self._cache[name] = task
        return await asyncio.shield(task)

    async def _fetch_with_timeout(self, name: str) -> PackageInfo | None:
        try:
            return await asyncio.wait_for(self._fetch(name), timeout=self.timeout)
        except TimeoutError:
            self._log.warning(
                "Timed out fetching package info for %s after %.1fs", name, self.timeout
            )
            return None

    async def _fetch(self, name: str) -> PackageInfo | None:
        url = self.package_url(name)
        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as e:
            self._log.warning("Error fetching package info for %s: %s", name, e)
            return None

        if response.status_code == 404:
            self._log.debug("Package %s not found in registry", name)
            return None
        if response.is_error:
            self._log.warning(
                "Failed to fetch package info for %s: %d %s",
                name,
                response.status_code,
                response.reason_phrase,
            )
            return None

        try:
            document = response.json()
        except ValueError as e:
            self._log.warning("Invalid registry response for %s: %s", name, e)
            return None

        if not isinstance(document, dict):
            self._log.warning("Unexpected registry document for %s", name)
            return None

        return PackageInfo.from_document(name, document)

    async def aclose(self) -> None:
        for task in self._cache.values():
            task.cancel()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
