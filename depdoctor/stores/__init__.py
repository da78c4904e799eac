"""Manifest sources: a real directory or an archive held in memory."""

from depdoctor.stores.archive import ArchiveManifestStore, PackFile
from depdoctor.stores.base import ManifestStore
from depdoctor.stores.filesystem import LocalManifestStore

__all__ = [
    "ArchiveManifestStore",
    "LocalManifestStore",
    "ManifestStore",
    "PackFile",
]
