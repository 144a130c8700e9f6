from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional

from .constants import DECLARATION_SUFFIX, EXCLUDE_DIRS, SOURCE_EXTENSIONS


def is_excluded_dir(name: str, exclude_dirs: Iterable[str] = EXCLUDE_DIRS) -> bool:
    return name.startswith(".") or name in exclude_dirs


def is_source_file(name: str) -> bool:
    return name.endswith(SOURCE_EXTENSIONS) and not name.endswith(DECLARATION_SUFFIX)


def in_node_modules(path: str) -> bool:
    return "node_modules" in Path(path).parts


def list_source_files(root: Path, exclude_dirs: Optional[Iterable[str]] = None) -> List[Path]:
    """Source files under ``root`` in sorted walk order.

    Excluded directories are pruned before descent, so they are never opened.
    Symlinked files are skipped.
    """
    excluded = set(EXCLUDE_DIRS if exclude_dirs is None else exclude_dirs)
    files: List[Path] = []
    for current, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if not is_excluded_dir(d, excluded))
        for filename in sorted(filenames):
            if not is_source_file(filename):
                continue
            full = Path(current) / filename
            if full.is_symlink():
                continue
            files.append(full)
    return files
