from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ir import new_catalogue
from utils import plural, progress

from .analyzer import analyze_source
from .cache import build_file_hashes
from .composer import compose_routes
from .constants import DEFAULT_MAX_FILE_BYTES, DEFAULT_WORKERS, EXCLUDE_DIRS
from .entrypoints import find_entry_points
from .errors import CONFIG, Diagnostic, ProjectRootError
from .handlers import infer_routes
from .models import EndpointDescriptor
from .repo_config import load_repo_config
from .walker import ProjectAnalysisState, walk_project

PathLike = Union[str, Path]


@dataclass
class DiscoveryOptions:
    entrypoints: List[str] = field(default_factory=list)
    exclude_dirs: List[str] = field(default_factory=list)
    max_file_bytes: Optional[int] = None
    workers: Optional[int] = None
    show_progress: bool = False


@dataclass
class ScanResult:
    project_root: str
    endpoints: List[EndpointDescriptor]
    entry_files: List[str]
    analyzed_files: List[str]
    diagnostics: List[Diagnostic]
    generation: int = 0

    @property
    def warnings(self) -> List[str]:
        return [str(diagnostic) for diagnostic in self.diagnostics]

    def to_catalogue(self) -> Dict[str, Any]:
        root = Path(self.project_root)
        return new_catalogue(
            root,
            [endpoint.to_dict() for endpoint in self.endpoints],
            entry_files=self.entry_files,
            analyzed_files=self.analyzed_files,
            file_hashes=build_file_hashes(root, self.analyzed_files),
            warnings=self.warnings,
            generation=self.generation,
        )


class ScanTracker:
    """Generation counter for overlapping rescans.

    Each scan takes a generation from ``begin``; ``complete`` accepts a result
    only if no newer scan has completed first, so a slow stale scan never
    overwrites a fresh catalogue.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._issued = 0
        self._completed = 0

    def begin(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def complete(self, generation: int) -> bool:
        with self._lock:
            if generation <= self._completed:
                return False
            self._completed = generation
            return True

    @property
    def latest(self) -> int:
        with self._lock:
            return self._completed


def resolve_options(
    root: Path,
    options: Optional[DiscoveryOptions],
    diagnostics: List[Diagnostic],
) -> DiscoveryOptions:
    """Explicit options win; ``.routemap.json`` fills whatever was left unset."""
    options = options or DiscoveryOptions()
    config, _ = load_repo_config(root, diagnostics)
    return DiscoveryOptions(
        entrypoints=list(options.entrypoints or config.get("entrypoints") or []),
        exclude_dirs=list(options.exclude_dirs) + list(config.get("exclude_dirs") or []),
        max_file_bytes=options.max_file_bytes or config.get("max_file_bytes") or DEFAULT_MAX_FILE_BYTES,
        workers=options.workers or config.get("workers") or DEFAULT_WORKERS,
        show_progress=options.show_progress,
    )


def pinned_entry_files(root: Path, entries: List[str], diagnostics: List[Diagnostic]) -> List[str]:
    found: List[str] = []
    for entry in entries:
        path = Path(entry)
        full = path if path.is_absolute() else root / path
        full = Path(os.path.normpath(full))
        if not full.is_file():
            diagnostics.append(Diagnostic(CONFIG, entry, "pinned entry file not found"))
            continue
        if str(full) not in found:
            found.append(str(full))
    return found


def select_entry_files(root: Path, options: DiscoveryOptions, diagnostics: List[Diagnostic]) -> List[str]:
    """Pinned entries when any are configured, otherwise the locator's candidates."""
    if options.entrypoints:
        return pinned_entry_files(root, options.entrypoints, diagnostics)
    return find_entry_points(
        root,
        exclude_dirs=EXCLUDE_DIRS | set(options.exclude_dirs),
        max_bytes=options.max_file_bytes or DEFAULT_MAX_FILE_BYTES,
        diagnostics=diagnostics,
    )


def locate_entry_files(
    project_root: PathLike,
    options: Optional[DiscoveryOptions] = None,
) -> Tuple[List[str], List[Diagnostic]]:
    """Entry files a scan of ``project_root`` would start from, with config diagnostics."""
    root = Path(project_root)
    if not root.is_dir():
        raise ProjectRootError(f"Project root is not a directory: {project_root}")
    root = root.resolve()
    diagnostics: List[Diagnostic] = []
    options = resolve_options(root, options, diagnostics)
    return select_entry_files(root, options, diagnostics), diagnostics


def scan_project(
    project_root: PathLike,
    options: Optional[DiscoveryOptions] = None,
    *,
    tracker: Optional[ScanTracker] = None,
) -> ScanResult:
    """Discover every endpoint of the project rooted at ``project_root``.

    Each call builds fresh state, so repeated scans of an unchanged tree give
    the same catalogue. An empty ``entry_files`` in the result means no entry
    point was found; the caller should supply one explicitly.
    """
    generation = tracker.begin() if tracker is not None else 0
    root = Path(project_root)
    if not root.is_dir():
        raise ProjectRootError(f"Project root is not a directory: {project_root}")
    root = root.resolve()
    diagnostics: List[Diagnostic] = []
    options = resolve_options(root, options, diagnostics)
    max_bytes = options.max_file_bytes or DEFAULT_MAX_FILE_BYTES

    if options.show_progress:
        progress("Locating entry points...")
    entry_files = select_entry_files(root, options, diagnostics)
    if options.show_progress:
        progress(f"Found {plural(len(entry_files), 'entry file')}", done=True)
    if not entry_files:
        return ScanResult(str(root), [], [], [], diagnostics, generation)

    if options.show_progress:
        progress("Analyzing files...")
    state = walk_project(
        str(root),
        entry_files,
        max_file_bytes=max_bytes,
        workers=options.workers or DEFAULT_WORKERS,
        show_progress=options.show_progress,
    )
    endpoints = finish_state(state)
    diagnostics.extend(sorted(state.diagnostics, key=lambda item: (item.path, item.kind)))
    if options.show_progress:
        progress(
            f"Found {plural(len(endpoints), 'endpoint')} in {plural(len(state.file_cache), 'file')}",
            done=True,
        )
    return ScanResult(
        project_root=str(root),
        endpoints=endpoints,
        entry_files=entry_files,
        analyzed_files=state.analyzed_files,
        diagnostics=diagnostics,
        generation=generation,
    )


def finish_state(state: ProjectAnalysisState) -> List[EndpointDescriptor]:
    analyses = state.ordered_analyses()
    infer_routes(analyses, state.file_cache)
    return compose_routes(analyses, state.file_cache)


def discover_endpoints(
    project_root: PathLike,
    options: Optional[DiscoveryOptions] = None,
) -> List[EndpointDescriptor]:
    return scan_project(project_root, options).endpoints


def discover_source_endpoints(code: str, language: str = "js") -> List[EndpointDescriptor]:
    """Endpoints of a single source text with no project context.

    Only handlers defined in the same text are analyzed; imports are never
    followed. Invalid syntax yields an empty list.
    """
    analysis = analyze_source(code, language)
    if not analysis.ok:
        return []
    state = ProjectAnalysisState(project_root="")
    state.store(analysis)
    state.walk_order.append(analysis.file_path)
    return finish_state(state)
