"""Path roles and library import references.

Everything here is pure: no filesystem access, no logging.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import AbstractSet, Iterable, Literal, Set, Tuple, Union


FileRole = Literal["CompiledArtifact", "SourceModule", "Asset", "Ignorable"]

COMPILED_ARTIFACT_SUFFIXES = frozenset({".js", ".mjs"})
SOURCE_MODULE_SUFFIXES = frozenset({".ts"})
ASSET_SUFFIXES = frozenset(
    {
        ".json",
        ".lang",
        ".tga",
        ".png",
        ".jpg",
        ".jpeg",
        ".ogg",
        ".wav",
        ".fsb",
        ".mcfunction",
        ".material",
    }
)
# Files the scanner reads for import statements.
SCANNABLE_SUFFIXES = SOURCE_MODULE_SUFFIXES | COMPILED_ARTIFACT_SUFFIXES

TEMP_CONFIG_SUFFIX = ".temp.json"
SOURCE_MAP_SUFFIX = ".map"


@dataclass(frozen=True)
class Classification:
    role: FileRole
    is_excluded: bool = False


def is_excluded(dir_name: str, exclusions: AbstractSet[str]) -> bool:
    return dir_name in exclusions


def is_ignorable_name(name: str) -> bool:
    """File names never mirrored: source maps, temp compiler configs, dotfiles."""
    return (
        not name
        or name.startswith(".")
        or name.endswith(SOURCE_MAP_SUFFIX)
        or name.endswith(TEMP_CONFIG_SUFFIX)
    )


def _role_for_name(name: str) -> FileRole:
    if is_ignorable_name(name):
        return "Ignorable"
    lower = name.lower()
    if lower.endswith(".d.ts"):
        return "Ignorable"
    suffix = PurePath(lower).suffix
    if suffix in SOURCE_MODULE_SUFFIXES:
        return "SourceModule"
    if suffix in COMPILED_ARTIFACT_SUFFIXES:
        return "CompiledArtifact"
    if suffix in ASSET_SUFFIXES:
        return "Asset"
    return "Ignorable"


def classify(path: Union[str, PurePath], exclusions: Iterable[str] = ()) -> Classification:
    try:
        p = PurePath(path)
    except TypeError:
        return Classification(role="Ignorable")
    if not str(path) or not p.name:
        return Classification(role="Ignorable")
    excluded = set(exclusions)
    in_excluded_dir = any(is_excluded(part, excluded) for part in p.parts[:-1])
    return Classification(role=_role_for_name(p.name), is_excluded=in_excluded_dir)


# Module specifiers inside import/export statements, including multi-line
# named imports and `import type`.
_STATIC_IMPORT = re.compile(
    r"""\b(?:import|export)\s*(?:[\w$*{}\s,]*?\bfrom\s*)?(['"`])(?P<spec>[^'"`\n]+)\1"""
)
_DYNAMIC_IMPORT = re.compile(r"""\bimport\s*\(\s*(['"`])(?P<spec>[^'"`\n]+)\1\s*\)""")

# (label, pattern) pairs applied to a module specifier; group 1 is the library name.
LIBRARY_REFERENCE_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("relative", re.compile(r"^(?:\.\.?/)+libraries/([^/]+)")),
    ("bare", re.compile(r"^libraries/([^/]+)")),
    ("alias", re.compile(r"^@workspace/([^/]+)")),
)


def module_specifiers(text: str) -> Iterable[str]:
    for rx in (_STATIC_IMPORT, _DYNAMIC_IMPORT):
        for m in rx.finditer(text):
            yield m.group("spec").strip()


def library_for_specifier(spec: str) -> str:
    """Library name referenced by one module specifier, or "" if it is not a library import."""
    if "${" in spec:
        return ""
    for _label, rx in LIBRARY_REFERENCE_PATTERNS:
        m = rx.match(spec)
        if m:
            return m.group(1)
    return ""


def library_references(text: str) -> Set[str]:
    found: Set[str] = set()
    for spec in module_specifiers(text or ""):
        name = library_for_specifier(spec)
        if name:
            found.add(name)
    return found
