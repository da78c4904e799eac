"""ManifestStore backed by a real directory.

Enumerates the root package.json and every package.json under the root's
node_modules tree. Directory symlinks (npm link, pnpm, workspaces) are
followed exactly once: the link's own manifest is listed under the link
path, and the target is only walked when its real path lies under a
node_modules directory. Targets are walked by real path, so manifests found
there are listed by real path too.
"""

import asyncio
import logging
import os
from pathlib import Path

from depdoctor.logging import get_logger
from depdoctor.stores.base import MANIFEST_NAME, NODE_MODULES, ManifestStore

logger = get_logger(__name__)


class LocalManifestStore(ManifestStore):
    """Manifests read from the filesystem under ``root``."""

    def __init__(self, root: str | Path, log: logging.Logger | None = None) -> None:
        self.root = Path(root).resolve()
        self._log = log or logger
        self._manifests: list[str] | None = None
        self._install_size = 0
        self._lock = asyncio.Lock()
        self._realpaths: dict[str, str] = {}

    async def get_root_path(self) -> str:
        return self.root.as_posix()

    async def list_manifest_paths(self) -> list[str]:
        async with self._lock:
            if self._manifests is None:
                self._manifests, self._install_size = await asyncio.to_thread(self._scan)
                self._log.debug(
                    "Found %d package.json files under %s", len(self._manifests), self.root
                )
        return list(self._manifests)

    async def read_manifest(self, path: str) -> bytes:
        return await asyncio.to_thread(Path(path).read_bytes)

    async def resolve_path(self, path: str) -> str:
        cached = self._realpaths.get(path)
        if cached is None:
            cached = Path(await asyncio.to_thread(os.path.realpath, path)).as_posix()
            self._realpaths[path] = cached
        return cached

    async def get_install_size(self) -> int:
        await self.list_manifest_paths()
        return self._install_size

    def _scan(self) -> tuple[list[str], int]:
        """Walk root/node_modules with an explicit stack.

        Returns:
            Tuple of (manifest paths, total bytes of regular files).
        """
        manifests: list[str] = []
        total_size = 0

        root_manifest = self.root / MANIFEST_NAME
        if root_manifest.is_file():
            manifests.append(root_manifest.as_posix())

        node_modules = self.root / NODE_MODULES
        if not node_modules.is_dir():
            return manifests, total_size

        seen_real_dirs: set[str] = {node_modules.as_posix()}
        stack: list[Path] = [node_modules]

        while stack:
            directory = stack.pop()
            try:
                entries = sorted(os.scandir(directory), key=lambda e: e.name)
            except OSError as e:
                self._log.debug("Cannot list %s: %s", directory, e)
                continue

            for entry in entries:
                entry_path = Path(entry.path)

                if entry.is_symlink():
                    target = self._follow_symlink(entry_path, seen_real_dirs, manifests)
                    if target is not None:
                        stack.append(target)
                    continue

                if entry.is_dir(follow_symlinks=False):
                    key = entry_path.as_posix()
                    if key not in seen_real_dirs:
                        seen_real_dirs.add(key)
                        stack.append(entry_path)
                    continue

                if entry.is_file(follow_symlinks=False):
                    try:
                        total_size += entry.stat(follow_symlinks=False).st_size
                    except OSError:
                        self._log.debug("Cannot stat %s", entry_path)
                    if entry.name == MANIFEST_NAME:
                        manifests.append(entry_path.as_posix())

        return manifests, total_size

    def _follow_symlink(
        self,
        link: Path,
        seen_real_dirs: set[str],
        manifests: list[str],
    ) -> Path | None:
        """Record a symlinked package and decide whether to walk its target.

        Returns:
            The real directory to walk, or None.
        """
        real = os.path.realpath(link)
        if not os.path.exists(real):
            self._log.debug("Broken symlink %s -> %s", link, real)
            return None
        if not os.path.isdir(real):
            return None

        if os.path.isfile(os.path.join(real, MANIFEST_NAME)):
            manifests.append((link / MANIFEST_NAME).as_posix())

        if NODE_MODULES not in Path(real).parts:
            self._log.debug("Not following symlink outside node_modules: %s -> %s", link, real)
            return None
        if real in seen_real_dirs:
            return None

        seen_real_dirs.add(real)
        return Path(real)
