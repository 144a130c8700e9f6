from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, Iterable

from .constants import DECLARATION_SUFFIX


def language_for_path(path: str) -> str:
    if path.endswith(DECLARATION_SUFFIX):
        return "unknown"
    if path.endswith(".tsx"):
        return "tsx"
    if path.endswith(".ts"):
        return "ts"
    if path.endswith(".jsx"):
        return "jsx"
    if path.endswith((".js", ".mjs", ".cjs")):
        return "js"
    return "unknown"


def hash_file(path: Path) -> str:
    digest = hashlib.sha1()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(8192)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def build_file_hashes(root: Path, files: Iterable[str]) -> Dict[str, str]:
    """sha1 per analyzed file keyed by root-relative path; lets watchers skip unchanged rescans."""
    hashes: Dict[str, str] = {}
    for path in files:
        full = Path(path)
        if not full.is_file():
            continue
        try:
            rel = full.relative_to(root).as_posix()
        except ValueError:
            rel = full.as_posix()
        try:
            hashes[rel] = hash_file(full)
        except OSError:
            continue
    return hashes
