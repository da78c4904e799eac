"""Package manifest (package.json) model and parse boundary.

Manifests in an installed tree are arbitrary JSON written by thousands of
different authors. ``parse_manifest`` is the only place that touches the raw
document; everything downstream works with the validated ``Manifest``.
"""

import json
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ManifestError(Exception):
    """Base class for manifest problems."""

    pass


class ManifestParseError(ManifestError):
    """A manifest could not be decoded or is not a JSON object."""

    def __init__(self, path: str | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f" {path}" if path else ""
        super().__init__(f"Invalid manifest{where}: {reason}")


class MissingRootManifest(ManifestError):
    """The root package.json is absent or unparsable; no analysis is possible."""

    def __init__(self, path: str, reason: str = "not found") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Root manifest {path}: {reason}")


def _string_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _string_map(value: Any) -> dict[str, str]:
    """Keep only name -> range string entries, in declaration order."""
    if not isinstance(value, dict):
        return {}
    return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str)}


class Manifest(BaseModel):
    """A parsed package descriptor.

    Missing or malformed fields fall back to ``None`` (scalars) or an empty
    mapping (dependency maps) instead of failing the whole manifest.
    """

    name: str | None = Field(default=None, description="Package name")
    version: str | None = Field(default=None, description="Published version")
    dependencies: dict[str, str] = Field(
        default_factory=dict, description="Runtime dependency name -> range"
    )
    dev_dependencies: dict[str, str] = Field(
        default_factory=dict,
        alias="devDependencies",
        description="Development dependency name -> range",
    )
    peer_dependencies: dict[str, str] = Field(
        default_factory=dict,
        alias="peerDependencies",
        description="Peer dependency name -> range",
    )
    type: str | None = Field(
        default=None, description="Module type field ('module' or 'commonjs')"
    )
    main: str | None = Field(default=None, description="Main entry path")
    exports: Any = Field(
        default=None, description="Conditional exports (string, list or condition map)"
    )

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    @field_validator("name", "version", "type", "main", mode="before")
    @classmethod
    def _coerce_scalar(cls, value: Any) -> str | None:
        return _string_or_none(value)

    @field_validator("dependencies", "dev_dependencies", "peer_dependencies", mode="before")
    @classmethod
    def _coerce_map(cls, value: Any) -> dict[str, str]:
        return _string_map(value)

    def walked_dependencies(self) -> dict[str, str]:
        """Dependencies followed by the tree walk: runtime first, then dev.

        Peer dependencies are intentionally absent. A name declared in both
        maps keeps its runtime range.
        """
        merged = dict(self.dependencies)
        for name, spec in self.dev_dependencies.items():
            merged.setdefault(name, spec)
        return merged


def parse_manifest(raw: str | bytes, path: str | None = None) -> Manifest:
    """Parse raw package.json content into a ``Manifest``.

    Args:
        raw: File contents (bytes are decoded as UTF-8, a BOM is tolerated).
        path: Optional path, used only in error messages.

    Returns:
        The validated manifest.

    Raises:
        ManifestParseError: If the content is not valid JSON or not an object.
    """
    if isinstance(raw, bytes | bytearray):
        try:
            raw = bytes(raw).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ManifestParseError(path, f"not UTF-8 ({e.reason})") from e
    elif raw.startswith("\ufeff"):
        raw = raw[1:]

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestParseError(path, f"invalid JSON at line {e.lineno}: {e.msg}") from e

    if not isinstance(data, dict):
        raise ManifestParseError(path, f"expected a JSON object, got {type(data).__name__}")

    return Manifest.model_validate(data)
