"""Tests for the analysis pipeline and text report."""

import os
from pathlib import Path

import pytest

from conftest import install, write_manifest
from depdoctor.config import AnalysisSettings
from depdoctor.models.manifest import MissingRootManifest
from depdoctor.registry import StaticRegistry
from depdoctor.reporter import (
    analyze_dependencies,
    count_module_types,
    format_bytes,
    format_report,
    is_package_manifest,
)
from depdoctor.stores import ArchiveManifestStore, LocalManifestStore
from depdoctor.stores.archive import PackFile

SHARED_LIB_DOCUMENT = {
    "versions": {
        "1.0.0": {"dependencies": {}, "dist": {"unpackedSize": 1000}},
        "2.0.0": {"dependencies": {}, "dist": {"unpackedSize": 2000}},
        "2.3.1": {"dependencies": {}, "dist": {"unpackedSize": 2100}},
    },
}


class TestIsPackageManifest:
    """Tests for is_package_manifest."""

    def test_package_roots(self) -> None:
        """Top-level and scoped package manifests count."""
        assert is_package_manifest("/app/node_modules/a/package.json")
        assert is_package_manifest("/app/node_modules/@scope/a/package.json")
        assert is_package_manifest("/app/node_modules/a/node_modules/b/package.json")

    def test_nested_manifests(self) -> None:
        """Manifests inside a package or at the root do not count."""
        assert not is_package_manifest("/app/node_modules/a/dist/esm/package.json")
        assert not is_package_manifest("/app/package.json")


class TestCountModuleTypes:
    """Tests for count_module_types."""

    @pytest.mark.asyncio
    async def test_archive_counts(self) -> None:
        """cjs, esm and dual packages should be tallied once per installed copy."""
        store = ArchiveManifestStore(
            [
                PackFile("package/package.json", '{"name": "packed"}'),
                PackFile("package/node_modules/a/package.json", '{"name": "a", "main": "a.js"}'),
                PackFile("package/node_modules/b/package.json", '{"name": "b", "type": "module"}'),
                PackFile(
                    "package/node_modules/c/package.json",
                    '{"name": "c", "exports": {"import": "./c.mjs", "require": "./c.cjs"}}',
                ),
                PackFile(
                    "package/node_modules/b/dist/package.json",
                    '{"name": "b-dist", "type": "commonjs"}',
                ),
                PackFile(
                    "package/node_modules/c/node_modules/a/package.json",
                    '{"name": "a", "main": "a.js"}',
                ),
            ]
        )

        assert await count_module_types(store) == (3, 2)

    @pytest.mark.asyncio
    async def test_copies_classified_separately(self, tmp_path: Path) -> None:
        """Two installs of one name with different formats each count."""
        write_manifest(tmp_path, {"name": "app"})
        consumer = install(tmp_path, "consumer", "1.0.0")
        install(tmp_path, "lib", "1.0.0", main="index.js")
        install(consumer, "lib", "2.0.0", type="module")

        assert await count_module_types(LocalManifestStore(tmp_path)) == (2, 1)

    @pytest.mark.asyncio
    async def test_symlinked_copy_counted_once(self, tmp_path: Path) -> None:
        """A package listed by link and by real path is one install."""
        write_manifest(tmp_path, {"name": "app"})
        virtual = tmp_path / "node_modules" / ".pnpm" / "x@1.0.0"
        target = install(virtual, "x", "1.0.0", main="index.js")
        os.symlink(target, tmp_path / "node_modules" / "x")

        assert await count_module_types(LocalManifestStore(tmp_path)) == (1, 0)

    @pytest.mark.asyncio
    async def test_unknown_and_broken_skipped(self) -> None:
        """Unknown formats and unparsable manifests count toward neither total."""
        store = ArchiveManifestStore(
            [
                PackFile("package/package.json", '{"name": "packed"}'),
                PackFile(
                    "package/node_modules/odd/package.json",
                    '{"name": "odd", "type": "weird", "main": "odd.wasm"}',
                ),
                PackFile("package/node_modules/broken/package.json", "{nope"),
            ]
        )

        assert await count_module_types(store) == (0, 0)


class TestAnalyzeDependencies:
    """Tests for analyze_dependencies."""

    @pytest.mark.asyncio
    async def test_simple_project(self, simple_project: Path, test_logger) -> None:
        """Root counts, module census and size should be reported."""
        stats = await analyze_dependencies(LocalManifestStore(simple_project), log=test_logger)

        assert stats.package_name == "simple-app"
        assert stats.version == "1.0.0"
        assert stats.direct_dependencies == 2
        assert stats.dev_dependencies == 1
        assert stats.total_dependencies == 3
        assert stats.cjs_dependencies == 1
        assert stats.esm_dependencies == 1
        assert stats.install_size > 0
        assert stats.tarball_files is None

    @pytest.mark.asyncio
    async def test_no_duplicates_field_absent(self, tmp_path: Path) -> None:
        """Without duplicates the field is None and dropped from JSON."""
        write_manifest(tmp_path, {"name": "root-app", "dependencies": {"package-a": "1.0.0"}})
        install(tmp_path, "package-a", "1.0.0")

        stats = await analyze_dependencies(LocalManifestStore(tmp_path))

        assert stats.duplicate_count == 0
        assert stats.duplicate_dependencies is None
        assert "duplicate_dependencies" not in stats.model_dump(exclude_none=True)

    @pytest.mark.asyncio
    async def test_duplicates_without_registry(self, conflict_project: Path) -> None:
        """Offline analysis reports groups with local suggestions only."""
        stats = await analyze_dependencies(LocalManifestStore(conflict_project))

        assert stats.duplicate_count == 1
        group = stats.duplicate_dependencies[0]
        assert group.severity == "conflict"
        assert group.suggested_fix is None
        assert group.suggestions

    @pytest.mark.asyncio
    async def test_duplicates_with_registry(self, conflict_project: Path) -> None:
        """With registry data, groups carry an upgrade target and strategies."""
        registry = StaticRegistry({"shared-lib": SHARED_LIB_DOCUMENT})
        settings = AnalysisSettings(registry_concurrency=2, walk_concurrency=2)

        stats = await analyze_dependencies(
            LocalManifestStore(conflict_project), registry, settings
        )

        group = stats.duplicate_dependencies[0]
        assert group.suggested_fix is not None
        assert group.suggested_fix.version == "2.3.1"
        assert {s.type for s in group.deduplication_strategies} == {"upgrade", "dedupe", "hoist"}
        assert group.deduplication_impact.size_reduction == 900

    @pytest.mark.asyncio
    async def test_archive(self) -> None:
        """Archive analysis reports member names and byte size."""
        store = ArchiveManifestStore(
            [
                PackFile("package/package.json", '{"name": "packed", "version": "3.0.0"}'),
                PackFile("package/index.js", "module.exports = 1"),
            ]
        )

        stats = await analyze_dependencies(store)

        assert stats.package_name == "packed"
        assert stats.version == "3.0.0"
        assert sorted(stats.tarball_files) == ["package/index.js", "package/package.json"]
        assert stats.install_size > 0

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path: Path) -> None:
        """A missing root manifest fails the analysis."""
        with pytest.raises(MissingRootManifest):
            await analyze_dependencies(LocalManifestStore(tmp_path))


class TestFormatReport:
    """Tests for the text report."""

    def test_format_bytes(self) -> None:
        """Sizes should use binary units."""
        assert format_bytes(512) == "512.0 B"
        assert format_bytes(2048) == "2.0 KB"
        assert format_bytes(5 * 1024 * 1024) == "5.0 MB"

    @pytest.mark.asyncio
    async def test_report_without_duplicates(self, simple_project: Path) -> None:
        """A clean tree says so."""
        stats = await analyze_dependencies(LocalManifestStore(simple_project))

        report = format_report(stats)

        assert "Name     simple-app" in report
        assert "No duplicated dependencies were found." in report

    @pytest.mark.asyncio
    async def test_report_with_duplicates(self, conflict_project: Path) -> None:
        """Duplicate groups, strategies and fixes are rendered."""
        registry = StaticRegistry({"shared-lib": SHARED_LIB_DOCUMENT})
        stats = await analyze_dependencies(LocalManifestStore(conflict_project), registry)

        report = format_report(stats)

        assert "Duplicate Dependencies (1)" in report
        assert "Package: shared-lib (conflict)" in report
        assert "Versions: 1.0.0, 2.0.0" in report
        assert "Command: npm install shared-lib@2.3.1" in report
        assert "Upgrading to version 2.3.1 would resolve duplicate dependencies" in report
