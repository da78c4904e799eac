"""Analysis orchestration and report rendering.

``analyze_dependencies`` runs the whole pipeline for one tree: root manifest
counts, module-format census, tree walk, duplicate detection and (when a
registry is supplied) remediation suggestions.
"""

import asyncio
import logging
from pathlib import PurePosixPath

from depdoctor.analyzers.duplicates import detect_duplicates
from depdoctor.analyzers.module_type import classify
from depdoctor.analyzers.suggestions import enrich_all
from depdoctor.analyzers.tree_builder import DependencyTreeBuilder, read_root_manifest
from depdoctor.config import AnalysisSettings
from depdoctor.logging import ProgressBar, get_logger, log_operation
from depdoctor.models.manifest import Manifest, ManifestParseError, parse_manifest
from depdoctor.models.tree import DependencyStats, DuplicateDependency, ModuleType
from depdoctor.registry import RegistryLookup
from depdoctor.stores.base import MANIFEST_NAME, NODE_MODULES, ManifestStore

logger = get_logger(__name__)


def is_package_manifest(path: str) -> bool:
    """True for ``node_modules/<pkg>/package.json`` and ``node_modules/@scope/<pkg>/package.json``.

    Nested manifests inside a package (``dist/esm/package.json``) are not
    packages of their own.
    """
    parts = PurePosixPath(path).parts
    if len(parts) < 3 or parts[-1] != MANIFEST_NAME:
        return False
    if parts[-3] == NODE_MODULES:
        return True
    return len(parts) >= 4 and parts[-3].startswith("@") and parts[-4] == NODE_MODULES


async def count_module_types(
    store: ManifestStore,
    concurrency: int = 8,
    log: logging.Logger | None = None,
) -> tuple[int, int]:
    """Count installed CommonJS and ESM packages.

    Every installed package manifest is counted, so two copies of a package
    count twice and each copy is classified on its own. A manifest reached
    through a symlink and by its real path is counted once. ``dual`` packages
    count toward both totals, ``unknown`` toward neither. Unreadable or
    nameless manifests are skipped.

    Returns:
        Tuple of (cjs count, esm count).
    """
    log = log or logger
    paths = sorted(p for p in await store.list_manifest_paths() if is_package_manifest(p))
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def load(path: str) -> Manifest | None:
        async with semaphore:
            try:
                return parse_manifest(await store.read_manifest(path), path)
            except (OSError, ManifestParseError) as e:
                log.debug("Skipping %s: %s", path, e)
                return None

    with ProgressBar(total=len(paths), desc="Classifying", unit="pkg") as pbar:

        async def tracked(path: str) -> Manifest | None:
            manifest = await load(path)
            pbar.update()
            return manifest

        manifests = await asyncio.gather(*(tracked(p) for p in paths))

    real_paths = [await store.resolve_path(p) for p in paths]
    counted: set[str] = set()
    cjs = esm = 0
    for real, manifest in zip(real_paths, manifests, strict=True):
        if manifest is None or not manifest.name or real in counted:
            continue
        counted.add(real)

        module_type: ModuleType = classify(manifest)
        log.debug(
            "Package %s: %s (type=%s, main=%s)",
            manifest.name,
            module_type,
            manifest.type,
            manifest.main,
        )
        if module_type in ("cjs", "dual"):
            cjs += 1
        if module_type in ("esm", "dual"):
            esm += 1

    return cjs, esm


async def analyze_dependencies(
    store: ManifestStore,
    registry: RegistryLookup | None = None,
    settings: AnalysisSettings | None = None,
    log: logging.Logger | None = None,
) -> DependencyStats:
    """Analyze the installed tree behind ``store``.

    Args:
        store: Source of manifests (filesystem or archive).
        registry: Registry for remediation suggestions; None skips them.
        settings: Tunables (defaults from the environment).
        log: Logger to report to.

    Returns:
        The aggregated DependencyStats. ``duplicate_dependencies`` is None
        when no duplicates were found.

    Raises:
        MissingRootManifest: If the root package.json is absent or unparsable.
    """
    settings = settings or AnalysisSettings.from_env()
    log = log or logger

    with log_operation("analyze_dependencies", {"root": await store.get_root_path()}, log):
        _, root = await read_root_manifest(store)
        direct = len(root.dependencies)
        dev = len(root.dev_dependencies)

        cjs, esm = await count_module_types(store, settings.walk_concurrency, log)

        nodes = await DependencyTreeBuilder(settings.walk_concurrency, log).build(store)
        duplicates: list[DuplicateDependency] = detect_duplicates(nodes)
        log.info(
            "  %d installed occurrences, %d duplicated packages",
            len(nodes) - 1,
            len(duplicates),
        )

        if duplicates and registry is not None:
            duplicates = await enrich_all(
                duplicates,
                registry,
                concurrency=settings.registry_concurrency,
                deadline=settings.deadline,
                log=log,
            )

        return DependencyStats(
            total_dependencies=direct + dev,
            direct_dependencies=direct,
            dev_dependencies=dev,
            cjs_dependencies=cjs,
            esm_dependencies=esm,
            install_size=await store.get_install_size(),
            package_name=root.name,
            version=root.version,
            tarball_files=await store.list_files(),
            duplicate_count=len(duplicates),
            duplicate_dependencies=duplicates or None,
        )


def format_bytes(size: int) -> str:
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {units[unit]}"


def format_report(stats: DependencyStats) -> str:
    """Render a plain-text report."""
    lines = [
        "Local Analysis",
        f"Total deps      {stats.total_dependencies}",
        f"Direct deps     {stats.direct_dependencies}",
        f"Dev deps        {stats.dev_dependencies}",
        f"CJS deps        {stats.cjs_dependencies}",
        f"ESM deps        {stats.esm_dependencies}",
        f"Install size    {format_bytes(stats.install_size)}",
        "",
        "Package info",
        f"Name     {stats.package_name or '-'}",
        f"Version  {stats.version or '-'}",
        "",
        "Package report",
    ]

    if not stats.duplicate_dependencies:
        lines.append("No duplicated dependencies were found.")
        return "\n".join(lines)

    lines.append(f"Duplicate Dependencies ({stats.duplicate_count})")
    for dup in stats.duplicate_dependencies:
        lines.append(f"Package: {dup.name} ({dup.severity})")
        lines.append(f"Versions: {', '.join(dup.version_strings())}")
        lines.append(f"Locations: {', '.join(node.path for node in dup.versions)}")

        if dup.related_duplicates:
            lines.append(f"Related duplicates: {', '.join(dup.related_duplicates)}")

        for suggestion in dup.suggestions:
            lines.append(f"  - {suggestion}")

        if dup.deduplication_impact:
            lines.append("Potential impact:")
            lines.append(
                f"  - Size reduction: {format_bytes(dup.deduplication_impact.size_reduction)}"
            )
            lines.append(
                "  - Dependency count reduction: "
                f"{dup.deduplication_impact.dependency_count_reduction}"
            )

        if dup.deduplication_strategies:
            lines.append("Deduplication strategies:")
            for strategy in dup.deduplication_strategies:
                lines.append(f"  - {strategy.description} ({strategy.confidence} confidence)")
                if strategy.command:
                    lines.append(f"    Command: {strategy.command}")

        if dup.suggested_fix:
            lines.append("Suggested Fix:")
            lines.append(f"  - {dup.suggested_fix.reason}")
            if dup.suggested_fix.breaking_changes:
                lines.append("  - This upgrade may include breaking changes")
            if dup.suggested_fix.peer_dependencies:
                lines.append("  - Peer dependencies:")
                for dep, range_ in dup.suggested_fix.peer_dependencies.items():
                    lines.append(f"    - {dep}: {range_}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
