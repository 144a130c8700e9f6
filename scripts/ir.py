"""Endpoint catalogue envelope: the JSON document a scan is saved as."""
from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional, Sequence


CATALOGUE_VERSION = 1


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def relative_path(path: str, root: Path) -> str:
    try:
        return Path(path).relative_to(root).as_posix()
    except ValueError:
        return Path(path).as_posix()


def new_catalogue(
    root: Path,
    endpoints: Sequence[Dict[str, Any]],
    *,
    entry_files: Sequence[str],
    analyzed_files: Sequence[str],
    file_hashes: Dict[str, str],
    warnings: Sequence[str],
    generation: int = 0,
) -> Dict[str, Any]:
    return {
        "meta": {
            "version": CATALOGUE_VERSION,
            "generated_at": now_iso(),
            "project_root": root.as_posix(),
            "generation": generation,
            "entry_files": [relative_path(path, root) for path in entry_files],
            "analyzed_files": [relative_path(path, root) for path in analyzed_files],
            "file_hashes": file_hashes,
            "warnings": list(warnings),
        },
        "endpoints": list(endpoints),
    }


def load_catalogue(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        return None
    if payload.get("meta", {}).get("version") != CATALOGUE_VERSION:
        return None
    return payload


def save_catalogue(path: Path, catalogue: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(catalogue, ensure_ascii=True, indent=2), encoding="utf-8")
