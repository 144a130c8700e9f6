from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from .constants import RESOLVE_EXTENSIONS, TS_SIBLING_EXTENSIONS


def is_local_specifier(specifier: str) -> bool:
    return specifier.startswith((".", "/"))


def module_candidates(target: Path) -> List[Path]:
    candidates = [target]
    candidates.extend(Path(f"{target}{ext}") for ext in RESOLVE_EXTENSIONS)
    candidates.extend(target / f"index{ext}" for ext in RESOLVE_EXTENSIONS)
    # TypeScript ESM sources import "./user.js" while the file on disk is user.ts.
    for ext in TS_SIBLING_EXTENSIONS.get(target.suffix, ()):
        candidates.append(target.with_suffix(ext))
    return candidates


def resolve_local_import(specifier: str, importer: str, project_root: str) -> Optional[str]:
    """Absolute path of the file a local specifier points at, or None.

    Relative specifiers resolve from the importing file's directory and
    ``/``-rooted ones from the project root. Bare package specifiers are never
    resolved.
    """
    if specifier.startswith("."):
        base = Path(importer).parent / specifier
    elif specifier.startswith("/"):
        if not project_root:
            return None
        base = Path(project_root) / specifier.lstrip("/")
    else:
        return None
    target = Path(os.path.normpath(base))
    for candidate in module_candidates(target):
        if candidate.is_file():
            return str(candidate)
    return None
