"""Runtime configuration for depdoctor.

Settings are read from environment variables at call time (``.env`` is
loaded by the package ``__init__``). CLI flags override individual fields
via ``AnalysisSettings.model_copy(update=...)``.

Environment variables:
    DEPDOCTOR_REGISTRY_URL: Base URL of the npm-compatible registry.
    DEPDOCTOR_REGISTRY_TIMEOUT: Per-fetch timeout in seconds.
    DEPDOCTOR_REGISTRY_CONCURRENCY: Maximum concurrent registry fetches.
    DEPDOCTOR_WALK_CONCURRENCY: Maximum concurrent manifest reads per parent.
    DEPDOCTOR_DEADLINE: Overall budget in seconds for registry enrichment.
"""

import os

from pydantic import BaseModel, Field

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class AnalysisSettings(BaseModel):
    """Tunables for one analysis run."""

    registry_url: str = Field(
        default=DEFAULT_REGISTRY_URL, description="npm-compatible registry base URL"
    )
    registry_timeout: float = Field(
        default=10.0, gt=0, description="Per-fetch registry timeout in seconds"
    )
    registry_concurrency: int = Field(
        default=8, ge=1, description="Maximum concurrent registry fetches"
    )
    walk_concurrency: int = Field(
        default=8, ge=1, description="Maximum concurrent sibling manifest reads"
    )
    deadline: float | None = Field(
        default=None,
        gt=0,
        description="Overall seconds allowed for registry enrichment (None = unbounded)",
    )

    @classmethod
    def from_env(cls) -> "AnalysisSettings":
        """Build settings from DEPDOCTOR_* environment variables."""
        return cls(
            registry_url=os.getenv("DEPDOCTOR_REGISTRY_URL", "").strip() or DEFAULT_REGISTRY_URL,
            registry_timeout=_env_float("DEPDOCTOR_REGISTRY_TIMEOUT", 10.0),
            registry_concurrency=_env_int("DEPDOCTOR_REGISTRY_CONCURRENCY", 8),
            walk_concurrency=_env_int("DEPDOCTOR_WALK_CONCURRENCY", 8),
            deadline=_env_float("DEPDOCTOR_DEADLINE", None),
        )
