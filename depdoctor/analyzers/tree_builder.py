"""Dependency tree construction from installed manifests.

Walks the root manifest's dependencies and devDependencies (peer
dependencies are not walked) and, for every one that is installed, records
a ``DependencyNode`` and descends into its own manifest.

Resolution follows node's lookup: ``node_modules/<name>`` in the consuming
package's directory first, then in each ancestor directory up to the root.

Guards
------
- Every occurrence is recorded, but descent is pruned when the
  (manifest path, tree path) pair was already visited or when the manifest
  is already among the occurrence's ancestors (a dependency cycle).
- Symlinked packages are recorded by real path and only descended into
  when the real path lies under a node_modules directory.
- The walk uses an explicit stack, so deep trees never hit the recursion
  limit. Sibling manifests are read concurrently, but nodes are appended in
  declaration order within each parent.
"""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import PurePosixPath

from depdoctor.logging import get_logger
from depdoctor.models.manifest import (
    Manifest,
    ManifestParseError,
    MissingRootManifest,
    parse_manifest,
)
from depdoctor.models.tree import ROOT_TREE_PATH, TREE_PATH_SEPARATOR, DependencyNode
from depdoctor.stores.base import MANIFEST_NAME, NODE_MODULES, ManifestStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Frame:
    """A package whose dependencies still have to be walked."""

    name: str
    manifest: Manifest
    manifest_path: str
    tree_path: str
    depth: int
    ancestors: frozenset[str]


@dataclass(frozen=True)
class _Resolved:
    """An installed dependency found for a declared name."""

    name: str
    declared: str
    manifest_path: str
    manifest: Manifest


def candidate_manifest_paths(name: str, consumer_dir: str, root_dir: str) -> Iterator[str]:
    """Yield lookup candidates for ``name`` from nearest to farthest.

    Args:
        name: Declared dependency name (``pkg``, ``@scope/pkg`` or ``scope/pkg``).
        consumer_dir: Real directory of the package declaring the dependency.
        root_dir: Directory of the root manifest; the search stops there.
    """
    root = PurePosixPath(root_dir)
    names = [name]
    if "/" in name and not name.startswith("@"):
        scope, _, rest = name.partition("/")
        names.append(f"@{scope}/{rest}")

    searched: set[PurePosixPath] = set()
    directory = PurePosixPath(consumer_dir)
    while True:
        if directory.name != NODE_MODULES:
            searched.add(directory)
            for candidate in names:
                yield str(directory / NODE_MODULES / candidate / MANIFEST_NAME)
        if directory == root or directory.parent == directory:
            break
        directory = directory.parent

    if root not in searched:
        for candidate in names:
            yield str(root / NODE_MODULES / candidate / MANIFEST_NAME)


async def read_root_manifest(store: ManifestStore) -> tuple[str, Manifest]:
    """Read the root package.json.

    Returns:
        Tuple of (manifest path, parsed manifest).

    Raises:
        MissingRootManifest: If it is absent, unreadable or unparsable.
    """
    path = await store.get_root_manifest_path()
    try:
        raw = await store.read_manifest(path)
    except FileNotFoundError as e:
        raise MissingRootManifest(path) from e
    except OSError as e:
        raise MissingRootManifest(path, f"unreadable ({e})") from e

    try:
        return path, parse_manifest(raw, path)
    except ManifestParseError as e:
        raise MissingRootManifest(path, e.reason) from e


class DependencyTreeBuilder:
    """Builds the ordered list of installed ``DependencyNode`` occurrences.

    One instance can be reused; every ``build`` call starts from empty state.
    """

    def __init__(self, concurrency: int = 8, log: logging.Logger | None = None) -> None:
        self.concurrency = max(1, concurrency)
        self._log = log or logger
        self._reset()

    def _reset(self) -> None:
        self._visited: set[tuple[str, str]] = set()
        self._nodes: list[DependencyNode] = []
        self._manifests: dict[str, asyncio.Task] = {}
        self._known_paths: set[str] = set()
        self.missing_count = 0
        self.unparsable_count = 0
        self.cycle_count = 0

    async def build(self, store: ManifestStore) -> list[DependencyNode]:
        """Walk the installed tree behind ``store``.

        Args:
            store: Source of manifests.

        Returns:
            Root node first, then every installed occurrence.

        Raises:
            MissingRootManifest: If the root package.json is absent or unparsable.
        """
        self._reset()

        root_dir = await store.get_root_path()
        self._known_paths = set(await store.list_manifest_paths())
        self._log.debug("Found %d package.json files", len(self._known_paths))

        root_manifest_path, root_manifest = await read_root_manifest(store)
        root_real = await store.resolve_path(root_manifest_path)

        root_name = root_manifest.name or PurePosixPath(root_dir).name
        self._nodes.append(
            DependencyNode(
                name=root_name,
                version=root_manifest.version or "",
                path=ROOT_TREE_PATH,
                parent=None,
                depth=0,
                package_path=root_real,
            )
        )

        semaphore = asyncio.Semaphore(self.concurrency)
        stack: list[_Frame] = [
            _Frame(
                name=root_name,
                manifest=root_manifest,
                manifest_path=root_real,
                tree_path=ROOT_TREE_PATH,
                depth=0,
                ancestors=frozenset({root_real}),
            )
        ]

        try:
            while stack:
                frame = stack.pop()
                children = await self._resolve_children(store, root_dir, frame, semaphore)
                # Reversed so the first declared dependency is walked first.
                stack.extend(reversed(self._record_children(frame, children)))
        finally:
            for task in self._manifests.values():
                task.cancel()

        self._log.debug(
            "Built dependency tree with %d nodes (%d not installed, %d unparsable, %d cycles)",
            len(self._nodes),
            self.missing_count,
            self.unparsable_count,
            self.cycle_count,
        )
        return list(self._nodes)

    def _record_children(self, frame: _Frame, children: list[_Resolved | None]) -> list[_Frame]:
        """Append nodes for a parent's children and return those to descend into."""
        to_walk: list[_Frame] = []

        for child in children:
            if child is None:
                continue

            tree_path = f"{frame.tree_path}{TREE_PATH_SEPARATOR}{child.name}"
            key = (child.manifest_path, tree_path)
            if key in self._visited:
                self._log.debug("Already processed %s at path %s", child.name, tree_path)
                continue
            self._visited.add(key)

            self._nodes.append(
                DependencyNode(
                    name=child.name,
                    version=child.manifest.version or child.declared,
                    path=tree_path,
                    parent=frame.name,
                    depth=frame.depth + 1,
                    package_path=child.manifest_path,
                )
            )

            if child.manifest_path in frame.ancestors:
                self.cycle_count += 1
                self._log.debug("Dependency cycle at %s, not descending", tree_path)
                continue

            if NODE_MODULES not in PurePosixPath(child.manifest_path).parts:
                self._log.debug(
                    "%s resolves outside node_modules (%s), not descending",
                    child.name,
                    child.manifest_path,
                )
                continue

            to_walk.append(
                _Frame(
                    name=child.name,
                    manifest=child.manifest,
                    manifest_path=child.manifest_path,
                    tree_path=tree_path,
                    depth=frame.depth + 1,
                    ancestors=frame.ancestors | {child.manifest_path},
                )
            )

        return to_walk

    async def _resolve_children(
        self,
        store: ManifestStore,
        root_dir: str,
        frame: _Frame,
        semaphore: asyncio.Semaphore,
    ) -> list[_Resolved | None]:
        consumer_dir = str(PurePosixPath(frame.manifest_path).parent)

        async def resolve(name: str, declared: str) -> _Resolved | None:
            path = self._locate(name, consumer_dir, root_dir)
            if path is None:
                self.missing_count += 1
                self._log.debug("Could not find package.json for %s (%s)", name, frame.tree_path)
                return None

            async with semaphore:
                real = await store.resolve_path(path)
                manifest = await self._load(store, real)

            if manifest is None:
                return None
            return _Resolved(name=name, declared=declared, manifest_path=real, manifest=manifest)

        dependencies = frame.manifest.walked_dependencies()
        return list(
            await asyncio.gather(*(resolve(name, spec) for name, spec in dependencies.items()))
        )

    def _locate(self, name: str, consumer_dir: str, root_dir: str) -> str | None:
        for candidate in candidate_manifest_paths(name, consumer_dir, root_dir):
            if candidate in self._known_paths:
                return candidate
        return None

    async def _load(self, store: ManifestStore, path: str) -> Manifest | None:
        """Read and parse a manifest once per run; None if unusable."""
        task = self._manifests.get(path)
        if task is None:
            task = asyncio.ensure_future(self._read(store, path))
            self._manifests[path] = task
        return await asyncio.shield(task)

    async def _read(self, store: ManifestStore, path: str) -> Manifest | None:
        try:
            raw = await store.read_manifest(path)
        except OSError as e:
            self._log.warning("Could not read %s: %s", path, e)
            self.unparsable_count += 1
            return None

        try:
            return parse_manifest(raw, path)
        except ManifestParseError as e:
            self._log.warning("Skipping unparsable manifest: %s", e)
            self.unparsable_count += 1
            return None


async def build_dependency_tree(
    store: ManifestStore,
    concurrency: int = 8,
    log: logging.Logger | None = None,
) -> list[DependencyNode]:
    """Convenience wrapper around ``DependencyTreeBuilder.build``."""
    return await DependencyTreeBuilder(concurrency=concurrency, log=log).build(store)
