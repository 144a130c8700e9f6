from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .constants import ROUTEMAP_CONFIG_FILES
from .errors import CONFIG, Diagnostic


def load_repo_config(root: Path, diagnostics: List[Diagnostic]) -> Tuple[Dict[str, object], Optional[str]]:
    """Read ``.routemap.json`` (or ``routemap.json``) from the project root.

    Comments are allowed. A broken file yields a diagnostic and an empty config.
    """
    for filename in ROUTEMAP_CONFIG_FILES:
        path = root / filename
        if not path.exists():
            continue
        try:
            payload = json.loads(strip_json_comments(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as exc:
            diagnostics.append(Diagnostic(CONFIG, filename, f"failed to parse: {exc}"))
            return {}, filename
        if not isinstance(payload, dict):
            diagnostics.append(Diagnostic(CONFIG, filename, "expected a JSON object"))
            return {}, filename

        def as_positive_int(key: str) -> Optional[int]:
            value = payload.get(key)
            if value is None:
                return None
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                diagnostics.append(Diagnostic(CONFIG, filename, f"ignoring {key}: expected a positive integer"))
                return None
            return value

        config = {
            "entrypoints": normalize_str_list(payload.get("entrypoints")),
            "exclude_dirs": normalize_str_list(payload.get("exclude_dirs")),
            "max_file_bytes": as_positive_int("max_file_bytes"),
            "workers": as_positive_int("workers"),
        }
        return config, filename
    return {}, None


def normalize_str_list(value: Any) -> List[str]:
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def load_package_json(root: Path, diagnostics: List[Diagnostic]) -> Dict[str, Any]:
    path = root / "package.json"
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        diagnostics.append(Diagnostic(CONFIG, "package.json", f"failed to parse: {exc}"))
        return {}
    return data if isinstance(data, dict) else {}


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments from JSON-like text."""
    out: List[str] = []
    in_str = False
    escape = False
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if in_str:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            idx += 1
            continue
        if ch == '"':
            in_str = True
            out.append(ch)
            idx += 1
            continue
        if ch == "/" and idx + 1 < len(text):
            nxt = text[idx + 1]
            if nxt == "/":
                idx = text.find("\n", idx + 2)
                if idx == -1:
                    break
                continue
            if nxt == "*":
                end = text.find("*/", idx + 2)
                if end == -1:
                    break
                idx = end + 2
                continue
        out.append(ch)
        idx += 1
    return "".join(out)
