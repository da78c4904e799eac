"""Dependency tree, duplicate and report models.

Includes Pydantic models for serialization and a NetworkX conversion of the
installed tree.
"""

from typing import Literal

import networkx as nx
from pydantic import BaseModel, Field

ModuleType = Literal["cjs", "esm", "dual", "unknown"]

ROOT_TREE_PATH = "root"
TREE_PATH_SEPARATOR = " > "


class DependencyNode(BaseModel):
    """One installed occurrence of a package in the tree."""

    name: str = Field(description="Package name")
    version: str = Field(description="Installed version (declared range if the manifest has none)")
    path: str = Field(description="Position in the tree, e.g. 'root > pkg-a > shared-lib'")
    parent: str | None = Field(default=None, description="Name of the consuming package")
    depth: int = Field(ge=0, description="Distance from the root (root = 0)")
    package_path: str = Field(description="Absolute path to the manifest (symlinks resolved)")

    model_config = {"frozen": True}

    @property
    def is_root(self) -> bool:
        return self.depth == 0

    @property
    def parent_path(self) -> str | None:
        """Tree path of the parent occurrence, None for the root."""
        if self.depth == 0:
            return None
        return self.path.rsplit(TREE_PATH_SEPARATOR, 1)[0]


class SuggestedFix(BaseModel):
    """A version every occurrence could be moved to."""

    version: str = Field(description="Target version")
    reason: str = Field(description="Why this target resolves the duplicate")
    breaking_changes: bool = Field(
        default=False, description="Target crosses a major version boundary"
    )
    peer_dependencies: dict[str, str] | None = Field(
        default=None, description="Peer dependency ranges the target declares"
    )


class DeduplicationStrategy(BaseModel):
    """A remediation the user can apply."""

    type: Literal["upgrade", "dedupe", "hoist"] = Field(description="Strategy kind")
    description: str = Field(description="Human readable description")
    command: str | None = Field(default=None, description="Command that applies it")
    confidence: Literal["high", "medium", "low"] = Field(
        description="How likely the strategy removes the duplicate"
    )


class DeduplicationImpact(BaseModel):
    """Estimated effect of collapsing a duplicate group to one copy.

    ``size_reduction`` is 0 whenever the registry does not publish the
    unpacked size of every version involved; it is never guessed.
    """

    size_reduction: int = Field(default=0, ge=0, description="Bytes saved (0 when unknown)")
    dependency_count_reduction: int = Field(
        default=0, ge=0, description="Redundant transitive dependency references removed"
    )


class DuplicateDependency(BaseModel):
    """All installed occurrences of one package name (at least two)."""

    name: str = Field(description="Package name")
    versions: list[DependencyNode] = Field(description="Every installed occurrence")
    severity: Literal["exact", "conflict"] = Field(
        description="exact = all occurrences share a version, conflict = they differ"
    )
    potential_savings: int = Field(
        default=0,
        ge=0,
        description="Rough estimate: number of extra copies (occurrences - 1)",
    )
    suggestions: list[str] = Field(default_factory=list, description="Local suggestions")
    suggested_fix: SuggestedFix | None = Field(default=None, description="Upgrade target")
    deduplication_strategies: list[DeduplicationStrategy] = Field(
        default_factory=list, description="Applicable remediation strategies"
    )
    deduplication_impact: DeduplicationImpact | None = Field(
        default=None, description="Estimated impact of deduplication"
    )
    related_duplicates: list[str] | None = Field(
        default=None,
        description="Other duplicated packages that these versions depend on",
    )

    def version_strings(self) -> list[str]:
        """Distinct versions present in the group, sorted."""
        return sorted({node.version for node in self.versions})

    def locations(self) -> list[str]:
        """Manifest paths of every occurrence."""
        return [node.package_path for node in self.versions]


class DependencyStats(BaseModel):
    """Aggregated report for one analysis run."""

    total_dependencies: int = Field(default=0, description="Direct + dev dependencies")
    direct_dependencies: int = Field(default=0, description="Root runtime dependencies")
    dev_dependencies: int = Field(default=0, description="Root dev dependencies")
    cjs_dependencies: int = Field(default=0, description="Installed CommonJS packages")
    esm_dependencies: int = Field(default=0, description="Installed ESM packages")
    install_size: int = Field(default=0, description="Bytes on disk / in the archive")
    package_name: str | None = Field(default=None, description="Root package name")
    version: str | None = Field(default=None, description="Root package version")
    tarball_files: list[str] | None = Field(
        default=None, description="Archive members (archive analysis only)"
    )
    duplicate_count: int = Field(default=0, description="Number of duplicate groups")
    duplicate_dependencies: list[DuplicateDependency] | None = Field(
        default=None,
        description="Duplicate groups; None when none were found",
    )


def nodes_to_graph(nodes: list[DependencyNode]) -> nx.DiGraph:
    """Convert a node list into a directed tree keyed by tree path.

    Args:
        nodes: Output of the tree builder.

    Returns:
        DiGraph with one graph node per occurrence (attributes: name,
        version, depth, package_path) and parent -> child edges.
    """
    G = nx.DiGraph()

    for node in nodes:
        G.add_node(
            node.path,
            name=node.name,
            version=node.version,
            depth=node.depth,
            package_path=node.package_path,
        )

    for node in nodes:
        parent_path = node.parent_path
        if parent_path is not None and parent_path in G:
            G.add_edge(parent_path, node.path)

    return G
