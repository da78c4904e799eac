"""Duplicate dependency detection.

Finds package names installed more than once across the tree and
classifies each group as an exact duplicate (same version everywhere) or a
version conflict. Everything here is local; registry-backed remediation is
added later by the suggestion engine.
"""

from collections import Counter, defaultdict

from depdoctor.analyzers.versions import version_key
from depdoctor.models.tree import DependencyNode, DuplicateDependency, nodes_to_graph


def _severity(nodes: list[DependencyNode]) -> str:
    return "exact" if len({n.version for n in nodes}) == 1 else "conflict"


def calculate_potential_savings(nodes: list[DependencyNode]) -> int:
    """Rough estimate of removable copies: every occurrence beyond the first.

    This is a count, not bytes; there is no size model behind it.
    """
    return max(len(nodes) - 1, 0)


def most_common_version(nodes: list[DependencyNode]) -> tuple[str, int] | None:
    """Most frequent version and its count.

    Ties go to the lowest version (semver precedence, then string order),
    so the result does not depend on node order.
    """
    if not nodes:
        return None

    counts = Counter(n.version for n in nodes)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], version_key(item[0]), item[0]))
    return ordered[0]


def generate_suggestions(nodes: list[DependencyNode]) -> list[str]:
    """Suggestions that need no network access.

    Args:
        nodes: All occurrences of one package name.

    Returns:
        Human readable suggestions, possibly empty.
    """
    suggestions: list[str] = []

    common = most_common_version(nodes)
    if common is not None and common[1] > 1:
        version, count = common
        suggestions.append(
            f"Consider standardizing on version {version} (used by {count} dependencies)"
        )

    parents = sorted({n.parent for n in nodes if n.parent})
    if len(parents) > 1:
        suggestions.append(
            "Check if newer versions of consuming packages "
            f"({', '.join(parents)}) would resolve this duplicate"
        )

    return suggestions


def find_related_duplicates(
    name: str,
    nodes: list[DependencyNode],
    children_by_path: dict[str, list[str]],
    duplicated: set[str],
) -> list[str] | None:
    """Duplicated packages installed as dependencies of this group's occurrences."""
    related = {
        child
        for node in nodes
        for child in children_by_path.get(node.path, [])
        if child != name and child in duplicated
    }
    return sorted(related) or None


def detect_duplicates(nodes: list[DependencyNode]) -> list[DuplicateDependency]:
    """Group installed occurrences by package name and report duplicates.

    The root node is never part of a group. Output is sorted by package
    name and each group's occurrences by (version, tree path), so the result
    is the same for any ordering of ``nodes``.

    Args:
        nodes: Output of the tree builder.

    Returns:
        One DuplicateDependency per name with two or more occurrences.
    """
    groups: dict[str, list[DependencyNode]] = defaultdict(list)
    for node in nodes:
        if node.is_root:
            continue
        groups[node.name].append(node)

    duplicated = {name for name, members in groups.items() if len(members) > 1}
    if not duplicated:
        return []

    G = nodes_to_graph(nodes)
    children_by_path = {
        path: [G.nodes[child]["name"] for child in G.successors(path)] for path in G.nodes
    }

    results: list[DuplicateDependency] = []
    for name in sorted(duplicated):
        members = sorted(groups[name], key=lambda n: (version_key(n.version), n.version, n.path))
        results.append(
            DuplicateDependency(
                name=name,
                versions=members,
                severity=_severity(members),
                potential_savings=calculate_potential_savings(members),
                suggestions=generate_suggestions(members),
                related_duplicates=find_related_duplicates(
                    name, members, children_by_path, duplicated
                ),
            )
        )

    return results
