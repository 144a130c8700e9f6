from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

WORKSPACE_DIR = Path("workspace")
CATALOGUE_FILENAME = "endpoints.json"


def parse_entries(values: Optional[Sequence[str]]) -> List[str]:
    """Flatten repeated and comma-separated ``--entry`` values."""
    entries: List[str] = []
    for value in values or []:
        for part in value.split(","):
            part = part.strip()
            if part and part not in entries:
                entries.append(part)
    return entries


def resolve_out_path(root: Path, out_arg: Optional[str], *, workspace_root: Path = WORKSPACE_DIR) -> Path:
    """Catalogue destination: ``--out`` (file or directory) or workspace/route-map/<project>/."""
    if out_arg:
        out_path = Path(out_arg)
        if not out_path.is_absolute():
            out_str = out_path.as_posix()
            if out_str.startswith("workspace/"):
                out_path = Path(out_str[len("workspace/") :])
            out_path = workspace_root / out_path
        if out_path.suffix == ".json":
            return out_path.resolve()
        return (out_path / CATALOGUE_FILENAME).resolve()
    return (workspace_root / "route-map" / root.name / CATALOGUE_FILENAME).resolve()
