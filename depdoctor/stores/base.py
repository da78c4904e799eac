"""ManifestStore contract.

A store hides where manifests come from (a real directory or an archive held
in memory). Paths are absolute POSIX-style strings; the root manifest lives
at ``<root>/package.json``.
"""

from abc import ABC, abstractmethod
from pathlib import PurePosixPath

MANIFEST_NAME = "package.json"
NODE_MODULES = "node_modules"


class ManifestStore(ABC):
    """Read-only source of package manifests for one tree."""

    @abstractmethod
    async def get_root_path(self) -> str:
        """Directory holding the root package.json."""
        ...

    @abstractmethod
    async def list_manifest_paths(self) -> list[str]:
        """Every package.json path in the tree, root included."""
        ...

    @abstractmethod
    async def read_manifest(self, path: str) -> str | bytes:
        """Raw contents of a manifest.

        Raises:
            FileNotFoundError: If the path is not part of the store.
            OSError: If the manifest cannot be read.
        """
        ...

    async def resolve_path(self, path: str) -> str:
        """Real path of a manifest (symlinks resolved). Identity by default."""
        return path

    async def get_install_size(self) -> int:
        """Total bytes occupied by the tree. 0 when the store cannot tell."""
        return 0

    async def list_files(self) -> list[str] | None:
        """Every file in the store, for stores that can enumerate cheaply."""
        return None

    async def get_root_manifest_path(self) -> str:
        root = await self.get_root_path()
        return str(PurePosixPath(root) / MANIFEST_NAME)
