"""Pytest configuration and shared fixtures."""

import json
import logging
from pathlib import Path
from typing import Any

import pytest


def write_manifest(directory: Path, manifest: dict[str, Any]) -> Path:
    """Write ``manifest`` as directory/package.json, creating directories."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(manifest, indent=2))
    return path


def install(
    base: Path,
    name: str,
    version: str,
    dependencies: dict[str, str] | None = None,
    **fields: Any,
) -> Path:
    """Install a package under base/node_modules/<name> and return its directory."""
    directory = base / "node_modules" / name
    manifest: dict[str, Any] = {"name": name, "version": version}
    if dependencies:
        manifest["dependencies"] = dependencies
    manifest.update(fields)
    write_manifest(directory, manifest)
    return directory


@pytest.fixture(autouse=True)
def no_progress_bars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tqdm output out of captured stderr."""
    monkeypatch.setenv("DEPDOCTOR_DISABLE_PROGRESS", "1")


@pytest.fixture
def test_logger() -> logging.Logger:
    """Logger passed explicitly into components under test."""
    log = logging.getLogger("depdoctor.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def simple_project(tmp_path: Path) -> Path:
    """Root with two direct dependencies and no duplicates."""
    write_manifest(
        tmp_path,
        {
            "name": "simple-app",
            "version": "1.0.0",
            "dependencies": {"left-pad": "^1.0.0", "chalk": "^4.0.0"},
            "devDependencies": {"jest": "^29.0.0"},
        },
    )
    install(tmp_path, "left-pad", "1.3.0", main="index.js")
    install(tmp_path, "chalk", "4.1.2", type="module", main="index.mjs")
    return tmp_path


@pytest.fixture
def conflict_project(tmp_path: Path) -> Path:
    """Two consumers pinning different versions of shared-lib.

    package-b gets its own nested copy while package-a uses the hoisted one.
    """
    write_manifest(
        tmp_path,
        {
            "name": "root-app",
            "version": "1.0.0",
            "dependencies": {"package-a": "^1.0.0", "package-b": "^1.0.0"},
        },
    )
    install(tmp_path, "package-a", "1.0.0", {"shared-lib": "^1.0.0"})
    package_b = install(tmp_path, "package-b", "1.0.0", {"shared-lib": "^2.0.0"})
    install(tmp_path, "shared-lib", "1.0.0")
    install(package_b, "shared-lib", "2.0.0")
    return tmp_path


@pytest.fixture
def exact_duplicate_project(tmp_path: Path) -> Path:
    """Two consumers each carrying a nested copy of the same version."""
    write_manifest(
        tmp_path,
        {
            "name": "root-app",
            "version": "1.0.0",
            "dependencies": {"package-a": "^1.0.0", "package-b": "^1.0.0"},
        },
    )
    package_a = install(tmp_path, "package-a", "1.0.0", {"shared-lib": "^2.0.0"})
    package_b = install(tmp_path, "package-b", "1.0.0", {"shared-lib": "^2.0.0"})
    install(package_a, "shared-lib", "2.0.0")
    install(package_b, "shared-lib", "2.0.0")
    return tmp_path
