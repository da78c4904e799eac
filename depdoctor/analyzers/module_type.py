"""Module-format classification of a single manifest.

Mirrors node's packaging rules: ``type`` is authoritative unless the exports
conditions show both a CommonJS and an ESM entry; the entry file's extension
breaks the tie when ``type`` is absent.
"""

from typing import Any

from pydantic import ValidationError

from depdoctor.models.manifest import Manifest
from depdoctor.models.tree import ModuleType

CJS_CONDITIONS = frozenset({"require"})
ESM_CONDITIONS = frozenset({"import", "module"})

CJS_EXTENSIONS = frozenset({".cjs", ".js"})
ESM_EXTENSIONS = frozenset({".mjs"})


def _collect_conditions(exports: Any, found: set[str]) -> None:
    """Gather every condition key used anywhere in an exports tree.

    Subpath keys (starting with ".") are descended into but not recorded.
    """
    if isinstance(exports, dict):
        for key, value in exports.items():
            if isinstance(key, str) and not key.startswith("."):
                found.add(key)
            _collect_conditions(value, found)
    elif isinstance(exports, list):
        for item in exports:
            _collect_conditions(item, found)


def is_dual_exports(exports: Any) -> bool:
    """True when exports expose both a CommonJS and an ESM condition."""
    conditions: set[str] = set()
    _collect_conditions(exports, conditions)
    return bool(conditions & CJS_CONDITIONS) and bool(conditions & ESM_CONDITIONS)


def _default_export_target(exports: Any) -> str | None:
    """The file a plain ``require``/``import`` of the package resolves to."""
    if isinstance(exports, str):
        return exports
    if isinstance(exports, list):
        for item in exports:
            target = _default_export_target(item)
            if target:
                return target
        return None
    if not isinstance(exports, dict):
        return None

    if "." in exports:
        return _default_export_target(exports["."])
    if any(isinstance(k, str) and k.startswith(".") for k in exports):
        return None

    for condition in ("default", "require", "node"):
        if condition in exports:
            target = _default_export_target(exports[condition])
            if target:
                return target
    return None


def _extension(entry: str) -> str:
    name = entry.rsplit("/", 1)[-1]
    if "." not in name.lstrip("."):
        return ""
    return "." + name.rsplit(".", 1)[-1].lower()


def classify(manifest: Manifest) -> ModuleType:
    """Classify a manifest as cjs, esm, dual or unknown.

    Never raises; ``unknown`` must not be counted toward CJS or ESM totals.
    """
    if manifest.exports is not None and is_dual_exports(manifest.exports):
        return "dual"

    if manifest.type == "module":
        return "esm"

    entry = manifest.main or _default_export_target(manifest.exports)
    extension = _extension(entry) if entry else ""

    if manifest.type in (None, "commonjs") and (not extension or extension in CJS_EXTENSIONS):
        return "cjs"

    if extension in ESM_EXTENSIONS:
        return "esm"

    return "unknown"


def classify_raw(data: Any) -> ModuleType:
    """Classify an unvalidated manifest mapping (``unknown`` if it is not one)."""
    if not isinstance(data, dict):
        return "unknown"
    try:
        manifest = Manifest.model_validate(data)
    except ValidationError:
        return "unknown"
    return classify(manifest)
