from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional

from .constants import (
    ENTRY_EXTENSIONS,
    ENTRY_NAME_PRIORITY,
    ENTRY_SEARCH_DIRS,
    EXCLUDE_DIRS,
    FRAMEWORK_SIGNATURE_RE,
)
from .discovery import in_node_modules, list_source_files
from .errors import Diagnostic
from .imports import module_candidates
from .repo_config import load_package_json


def entry_from_package_json(root: Path, diagnostics: List[Diagnostic]) -> Optional[str]:
    data = load_package_json(root, diagnostics)
    main = data.get("main")
    if not isinstance(main, str) or not main.strip():
        return None
    target = Path(os.path.normpath(root / main.strip()))
    for candidate in module_candidates(target):
        if candidate.is_file():
            return str(candidate)
    return None


def conventional_entry_files(root: Path) -> List[str]:
    found: List[str] = []
    for folder in ENTRY_SEARCH_DIRS:
        base = root / folder if folder else root
        if not base.is_dir():
            continue
        for name in ENTRY_NAME_PRIORITY:
            for ext in ENTRY_EXTENSIONS:
                path = base / f"{name}{ext}"
                if path.is_file():
                    found.append(str(path))
    return found


def has_framework_signature(path: Path, max_bytes: int) -> bool:
    try:
        if path.stat().st_size > max_bytes:
            return False
        text = path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return False
    return FRAMEWORK_SIGNATURE_RE.search(text) is not None


def signature_entry_files(
    root: Path,
    exclude_dirs: Iterable[str] = EXCLUDE_DIRS,
    *,
    max_bytes: int,
) -> List[str]:
    return [
        str(path)
        for path in list_source_files(root, exclude_dirs)
        if has_framework_signature(path, max_bytes)
    ]


def find_entry_points(
    root: Path,
    *,
    exclude_dirs: Iterable[str] = EXCLUDE_DIRS,
    max_bytes: int = 1_000_000,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> List[str]:
    """Candidate backend entry files, highest confidence first.

    package.json ``main`` wins, then conventional names (server, index, app,
    main) in the root and usual source folders, then every source file whose
    text carries an Express signature. An empty list means nothing qualified.
    """
    if diagnostics is None:
        diagnostics = []
    root = root.resolve()
    ordered: List[str] = []
    main = entry_from_package_json(root, diagnostics)
    if main:
        ordered.append(main)
    ordered.extend(conventional_entry_files(root))
    ordered.extend(signature_entry_files(root, exclude_dirs, max_bytes=max_bytes))

    seen = set()
    result: List[str] = []
    for path in ordered:
        if path in seen or in_node_modules(path):
            continue
        seen.add(path)
        result.append(path)
    return result
