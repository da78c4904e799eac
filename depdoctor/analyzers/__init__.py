"""Analyzers for installed dependency trees."""

from depdoctor.analyzers.duplicates import detect_duplicates, generate_suggestions
from depdoctor.analyzers.module_type import classify, classify_raw
from depdoctor.analyzers.suggestions import (
    calculate_deduplication_impact,
    enrich_all,
    find_upgrade_target,
    suggest,
)
from depdoctor.analyzers.tree_builder import (
    DependencyTreeBuilder,
    build_dependency_tree,
    read_root_manifest,
)

__all__ = [
    "DependencyTreeBuilder",
    "build_dependency_tree",
    "calculate_deduplication_impact",
    "classify",
    "classify_raw",
    "detect_duplicates",
    "enrich_all",
    "find_upgrade_target",
    "generate_suggestions",
    "read_root_manifest",
    "suggest",
]
