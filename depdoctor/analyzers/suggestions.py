"""Registry-backed remediation for duplicate groups.

For each duplicate group the engine looks up the package's published
versions and proposes:

- an upgrade target: the newest release in the major line of the highest
  installed version (non-breaking), else the newest newer-major release
  whose peer dependency ranges remain satisfiable (breaking);
- ``npm dedupe`` (always applicable) and hoisting (when a copy is nested);
- an impact estimate: redundant transitive dependency references and,
  when the registry publishes unpacked sizes, the bytes saved.

Suggestions are best effort. When the lookup fails or times out the group
is returned exactly as the detector produced it.
"""

import asyncio
import logging
from pathlib import PurePosixPath

from depdoctor.analyzers.versions import (
    compare_versions,
    highest_version,
    is_prerelease,
    major_of,
    ranges_compatible,
    sort_versions,
)
from depdoctor.logging import ProgressBar, get_logger
from depdoctor.models.tree import (
    DeduplicationImpact,
    DeduplicationStrategy,
    DependencyNode,
    DuplicateDependency,
    SuggestedFix,
)
from depdoctor.registry import PackageInfo, RegistryLookup
from depdoctor.stores.base import NODE_MODULES

logger = get_logger(__name__)


def peers_satisfiable(recorded: dict[str, str], candidate: dict[str, str]) -> bool:
    """Whether every recorded peer constraint is compatible with a candidate's ranges.

    Peers the candidate does not declare impose nothing.
    """
    return all(
        ranges_compatible(range_, candidate[name])
        for name, range_ in recorded.items()
        if name in candidate
    )


def find_upgrade_target(current: str, package_info: PackageInfo) -> SuggestedFix | None:
    """Pick the version every occurrence could move to.

    Args:
        current: Highest version present in the group.
        package_info: Registry metadata for the package.

    Returns:
        A SuggestedFix, or None when nothing suitable is published.
    """
    current_major = major_of(current)
    if current_major is None:
        logger.debug("Invalid version format for %s", current)
        return None

    allow_prerelease = is_prerelease(current)
    candidates = [
        v
        for v in sort_versions(package_info.versions, newest_first=True)
        if allow_prerelease or not is_prerelease(v)
    ]

    for version in candidates:
        if major_of(version) == current_major and compare_versions(version, current) >= 0:
            return SuggestedFix(
                version=version,
                reason=f"Upgrading to version {version} would resolve duplicate dependencies",
                breaking_changes=False,
                peer_dependencies=package_info.versions[version].peer_dependencies or None,
            )

    current_info = package_info.versions.get(current)
    recorded_peers = current_info.peer_dependencies if current_info else {}

    for version in candidates:
        major = major_of(version)
        if major is None or major <= current_major:
            continue
        declared = package_info.versions[version].peer_dependencies
        if peers_satisfiable(recorded_peers, declared):
            return SuggestedFix(
                version=version,
                reason=(
                    f"Upgrading to version {version} would resolve duplicate dependencies "
                    f"(new major version from {current})"
                ),
                breaking_changes=True,
                peer_dependencies=declared or None,
            )

    return None


def calculate_deduplication_impact(
    occurrences: list[DependencyNode],
    package_info: PackageInfo,
    kept_version: str | None = None,
) -> DeduplicationImpact:
    """Estimate what collapsing the group to a single copy removes.

    Dependency-count reduction is the number of dependency and peer
    dependency names declared by every occurrence's version minus the
    number of distinct names, so N copies of one version still collapse.
    Size reduction is only reported when the registry publishes
    ``unpackedSize`` for every occurrence and the kept version.
    """
    total_refs = 0
    unique_refs: set[str] = set()
    sizes: list[int | None] = []

    for node in occurrences:
        info = package_info.versions.get(node.version)
        if info is None:
            sizes.append(None)
            continue
        sizes.append(info.unpacked_size)
        for names in (info.dependencies, info.peer_dependencies):
            total_refs += len(names)
            unique_refs.update(names)

    size_reduction = 0
    kept = package_info.versions.get(kept_version) if kept_version else None
    if kept is not None and kept.unpacked_size is not None and all(s is not None for s in sizes):
        size_reduction = max(sum(sizes) - kept.unpacked_size, 0)  # type: ignore[arg-type]

    return DeduplicationImpact(
        size_reduction=size_reduction,
        dependency_count_reduction=total_refs - len(unique_refs),
    )


def is_nested_install(node: DependencyNode) -> bool:
    """True when the copy lives below another package's node_modules."""
    return PurePosixPath(node.package_path).parts.count(NODE_MODULES) > 1


def build_strategies(
    group: DuplicateDependency,
    fix: SuggestedFix | None,
) -> list[DeduplicationStrategy]:
    strategies: list[DeduplicationStrategy] = []

    if fix is not None:
        strategies.append(
            DeduplicationStrategy(
                type="upgrade",
                description=f"Upgrade to version {fix.version}",
                command=f"npm install {group.name}@{fix.version}",
                confidence="medium" if fix.breaking_changes else "high",
            )
        )

    strategies.append(
        DeduplicationStrategy(
            type="dedupe",
            description="Use npm dedupe to remove duplicate dependencies",
            command="npm dedupe",
            confidence="high",
        )
    )

    if any(is_nested_install(node) for node in group.versions):
        strategies.append(
            DeduplicationStrategy(
                type="hoist",
                description="Hoist common dependencies to the root node_modules",
                confidence="medium",
            )
        )

    return strategies


def registry_related_duplicates(
    group: DuplicateDependency,
    package_info: PackageInfo,
    duplicated_names: set[str],
) -> list[str] | None:
    """Merge the locally found related duplicates with registry-declared ones."""
    related = set(group.related_duplicates or [])
    for version in group.version_strings():
        info = package_info.versions.get(version)
        if info is None:
            continue
        related.update(dep for dep in info.dependencies if dep in duplicated_names)

    related.discard(group.name)
    return sorted(related) or None


async def suggest(
    group: DuplicateDependency,
    registry: RegistryLookup,
    duplicated_names: set[str] | None = None,
    log: logging.Logger | None = None,
) -> DuplicateDependency:
    """Enrich one duplicate group with registry-backed remediation.

    Args:
        group: Output of the duplicate detector.
        registry: Source of published-version metadata.
        duplicated_names: Every duplicated package name in the same tree,
            used for related-duplicate lookup.
        log: Logger to report lookup failures to.

    Returns:
        A new group with suggested_fix, deduplication_strategies,
        deduplication_impact and related_duplicates filled in, or ``group``
        itself when the registry lookup failed.
    """
    log = log or logger

    try:
        package_info = await registry.get_package_info(group.name)
    except Exception as e:
        log.warning("Registry lookup for %s failed: %s", group.name, e)
        return group

    if package_info is None:
        log.debug("No registry data for %s, keeping local analysis", group.name)
        return group

    highest = highest_version(group.version_strings())
    fix = find_upgrade_target(highest, package_info) if highest else None

    return group.model_copy(
        update={
            "suggested_fix": fix,
            "deduplication_strategies": build_strategies(group, fix),
            "deduplication_impact": calculate_deduplication_impact(
                group.versions, package_info, fix.version if fix else highest
            ),
            "related_duplicates": registry_related_duplicates(
                group, package_info, duplicated_names or set()
            ),
        }
    )


async def enrich_all(
    groups: list[DuplicateDependency],
    registry: RegistryLookup,
    concurrency: int = 8,
    deadline: float | None = None,
    log: logging.Logger | None = None,
) -> list[DuplicateDependency]:
    """Run ``suggest`` for every group with bounded concurrency.

    Args:
        groups: Duplicate groups, in report order.
        registry: Source of published-version metadata.
        concurrency: Maximum lookups in flight.
        deadline: Seconds allowed for the whole batch; groups still waiting
            when it expires are returned unmodified.
        log: Logger to report to.

    Returns:
        Groups in the same order as ``groups``.
    """
    log = log or logger
    if not groups:
        return []

    duplicated = {g.name for g in groups}
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run(group: DuplicateDependency) -> DuplicateDependency:
        async with semaphore:
            return await suggest(group, registry, duplicated_names=duplicated, log=log)

    with ProgressBar(total=len(groups), desc="Registry lookups", unit="pkg") as pbar:
        tasks = [asyncio.ensure_future(run(g)) for g in groups]
        for task in tasks:
            task.add_done_callback(lambda _: pbar.update())

        done, pending = await asyncio.wait(tasks, timeout=deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            log.warning(
                "Deadline of %.1fs reached, %d registry lookups abandoned",
                deadline,
                len(pending),
            )

    results: list[DuplicateDependency] = []
    for group, task in zip(groups, tasks, strict=True):
        if task not in done or task.cancelled():
            results.append(group)
        elif task.exception() is not None:
            log.warning("Suggestion for %s failed: %s", group.name, task.exception())
            results.append(group)
        else:
            results.append(task.result())
    return results
