from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from utils import progress

from .analyzer import analyze_file
from .cache import language_for_path
from .discovery import in_node_modules
from .errors import Diagnostic
from .models import FileAnalysis, RouteRecord
from .syntax import supports_language


@dataclass
class ProjectAnalysisState:
    """Everything one scan accumulates. Created per scan and never shared."""

    project_root: str
    file_cache: Dict[str, FileAnalysis] = field(default_factory=dict)
    visited: Set[str] = field(default_factory=set)
    walk_order: List[str] = field(default_factory=list)
    aggregated_routes: List[RouteRecord] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim(self, path: str) -> bool:
        """Mark ``path`` visited; False when another visit already claimed it."""
        with self.lock:
            if path in self.visited:
                return False
            self.visited.add(path)
            return True

    def store(self, analysis: FileAnalysis) -> None:
        with self.lock:
            self.file_cache[analysis.file_path] = analysis
            if analysis.diagnostic is not None:
                self.diagnostics.append(analysis.diagnostic)

    def depth_first_order(self, entry_files: Iterable[str]) -> List[str]:
        """Cached files in depth-first import order from the entries.

        Imports are followed in source order, so the result does not depend on
        which thread analyzed which file.
        """
        order: List[str] = []
        seen: Set[str] = set()
        for entry in entry_files:
            stack = [entry]
            while stack:
                path = stack.pop()
                analysis = self.file_cache.get(path)
                if analysis is None or path in seen:
                    continue
                seen.add(path)
                order.append(path)
                stack.extend(reversed(analysis.local_import_paths()))
        return order

    def ordered_analyses(self) -> List[FileAnalysis]:
        return [self.file_cache[path] for path in self.walk_order]

    @property
    def analyzed_files(self) -> List[str]:
        return list(self.walk_order)


def is_analyzable(path: str) -> bool:
    return supports_language(language_for_path(path)) and not in_node_modules(path)


class ProjectWalker:
    """Follows local imports from entry files, analyzing each file exactly once.

    With one worker the walk is a plain depth-first traversal. With more, each
    wave of newly reached files is analyzed on a thread pool and their
    unvisited imports form the next wave. Both record the same walk order.
    """

    def __init__(
        self,
        state: ProjectAnalysisState,
        *,
        max_file_bytes: int,
        workers: int = 1,
        show_progress: bool = False,
    ) -> None:
        self.state = state
        self.max_file_bytes = max_file_bytes
        self.workers = max(1, workers)
        self.show_progress = show_progress

    def admit(self, path: str) -> bool:
        return is_analyzable(path) and self.state.claim(path)

    def analyze(self, path: str) -> FileAnalysis:
        analysis = analyze_file(path, self.state.project_root, max_bytes=self.max_file_bytes)
        self.state.store(analysis)
        return analysis

    def walk(self, entry_files: Iterable[str]) -> None:
        entries = list(entry_files)
        if self.workers > 1:
            self.walk_concurrently(entries)
        else:
            for entry in entries:
                self.visit(entry)
        self.state.walk_order = self.state.depth_first_order(entries)

    def visit(self, path: str) -> None:
        # Depth-first over an explicit stack; a file is claimed before its
        # imports are pushed, so import cycles terminate.
        stack = [path]
        while stack:
            current = stack.pop()
            if not self.admit(current):
                continue
            analysis = self.analyze(current)
            stack.extend(reversed(analysis.local_import_paths()))

    def walk_concurrently(self, entry_files: List[str]) -> None:
        wave = [path for path in entry_files if self.admit(path)]
        depth = 0
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            while wave:
                if self.show_progress:
                    progress(f"Analyzing {len(wave)} files (import depth {depth})...")
                futures = [executor.submit(self.analyze, path) for path in wave]
                reached: Set[str] = set()
                for future in as_completed(futures):
                    reached.update(future.result().local_import_paths())
                wave = [path for path in sorted(reached) if self.admit(path)]
                depth += 1


def walk_project(
    project_root: str,
    entry_files: Iterable[str],
    *,
    max_file_bytes: int,
    workers: int = 1,
    show_progress: bool = False,
) -> ProjectAnalysisState:
    state = ProjectAnalysisState(project_root=project_root)
    walker = ProjectWalker(
        state, max_file_bytes=max_file_bytes, workers=workers, show_progress=show_progress
    )
    walker.walk(entry_files)
    state.aggregated_routes = [
        route for analysis in state.ordered_analyses() for route in analysis.routes
    ]
    return state
