"""Data models for manifests, dependency trees and reports."""

from depdoctor.models.manifest import (
    Manifest,
    ManifestError,
    ManifestParseError,
    MissingRootManifest,
    parse_manifest,
)
from depdoctor.models.tree import (
    DeduplicationImpact,
    DeduplicationStrategy,
    DependencyNode,
    DependencyStats,
    DuplicateDependency,
    ModuleType,
    SuggestedFix,
    nodes_to_graph,
)

__all__ = [
    "DeduplicationImpact",
    "DeduplicationStrategy",
    "DependencyNode",
    "DependencyStats",
    "DuplicateDependency",
    "Manifest",
    "ManifestError",
    "ManifestParseError",
    "MissingRootManifest",
    "ModuleType",
    "SuggestedFix",
    "nodes_to_graph",
    "parse_manifest",
]
