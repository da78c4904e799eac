"""ManifestStore backed by an in-memory file list (a packed archive).

npm packs put every member under a single top-level directory (``package/``).
Paths handed out by this store are that directory joined with the member's
relative path, rooted at ``/`` so they behave like absolute paths.
"""

import io
import tarfile
from dataclasses import dataclass
from pathlib import PurePosixPath

from depdoctor.stores.base import MANIFEST_NAME, ManifestStore


@dataclass(frozen=True)
class PackFile:
    """One member of an unpacked archive."""

    name: str
    data: bytes | str


def _normalize(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return str(PurePosixPath("/") / name.lstrip("/"))


class ArchiveManifestStore(ManifestStore):
    """Manifests read from archive members held in memory."""

    def __init__(self, files: list[PackFile], root_dir: str = "package") -> None:
        self.root_dir = _normalize(root_dir)
        self._files: dict[str, PackFile] = {_normalize(f.name): f for f in files}

    @classmethod
    def from_tarball(cls, data: bytes) -> "ArchiveManifestStore":
        """Read a (gzipped) tarball into memory.

        The root directory is the first path segment shared by the members,
        ``package`` for archives produced by ``npm pack``.

        Raises:
            tarfile.TarError: If the data is not a readable tar archive.
        """
        files: list[PackFile] = []
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                extracted = archive.extractfile(member)
                if extracted is None:
                    continue
                files.append(PackFile(name=member.name, data=extracted.read()))

        roots = {PurePosixPath(_normalize(f.name)).parts[1] for f in files}
        root_dir = "package" if "package" in roots or len(roots) != 1 else roots.pop()
        return cls(files, root_dir=root_dir)

    async def get_root_path(self) -> str:
        return self.root_dir

    async def list_manifest_paths(self) -> list[str]:
        return [
            path
            for path in self._files
            if PurePosixPath(path).name == MANIFEST_NAME
            and PurePosixPath(path).is_relative_to(self.root_dir)
        ]

    async def read_manifest(self, path: str) -> str | bytes:
        try:
            return self._files[_normalize(path)].data
        except KeyError:
            raise FileNotFoundError(path) from None

    async def get_install_size(self) -> int:
        return sum(
            len(f.data.encode("utf-8")) if isinstance(f.data, str) else len(f.data)
            for f in self._files.values()
        )

    async def list_files(self) -> list[str]:
        return [f.name for f in self._files.values()]
