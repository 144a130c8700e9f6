from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterator, List, Mapping, Set, Tuple

from .models import EndpointDescriptor, FileAnalysis, RouteRecord, url_params


def combine_paths(prefix: str, path: str) -> str:
    """Join a mount prefix and a sub-route with exactly one ``/`` between them."""
    base = prefix.rstrip("/")
    if path in ("", "/"):
        return base or "/"
    return f"{base}/{path.lstrip('/')}"


@dataclass
class Candidate:
    record: RouteRecord
    url: str
    prefix_params: Tuple[str, ...]
    # collected from a file that is itself mounted elsewhere
    superseded: bool


def expand_mounts(
    analysis: FileAnalysis,
    cache: Mapping[str, FileAnalysis],
    trail: FrozenSet[str],
) -> Iterator[Tuple[RouteRecord, str, Tuple[str, ...]]]:
    """Routes reachable through ``analysis``'s mounts, prefixed, nested mounts included."""
    for mount in analysis.route_mounts:
        target = cache.get(mount.resolved_router_file_path or "")
        if target is None or target.file_path in trail:
            continue
        outer = tuple(url_params(mount.prefix))
        inner: List[Tuple[RouteRecord, str, Tuple[str, ...]]] = [
            (record, record.url, ()) for record in target.routes
        ]
        inner.extend(expand_mounts(target, cache, trail | {target.file_path}))
        for record, url, params in inner:
            yield record, combine_paths(mount.prefix, url), outer + params


def mounted_files(analyses: List[FileAnalysis]) -> Set[str]:
    return {
        mount.resolved_router_file_path
        for analysis in analyses
        for mount in analysis.route_mounts
        if mount.resolved_router_file_path
    }


def compose_routes(
    analyses: List[FileAnalysis],
    cache: Mapping[str, FileAnalysis],
) -> List[EndpointDescriptor]:
    """Final catalogue: direct routes, then mount-derived ones, deduplicated.

    Every route form remembers the route record it came from. A form collected
    from a file that is mounted somewhere is dropped in favour of its prefixed
    form; when every form of a record is dropped (mount cycles) the longest URL
    survives. Remaining duplicates by (method, url) keep the first occurrence.
    """
    targets = mounted_files(analyses)
    candidates: List[Candidate] = []
    for analysis in analyses:
        for record in analysis.routes:
            candidates.append(Candidate(record, record.url, (), analysis.file_path in targets))
    for analysis in analyses:
        for record, url, params in expand_mounts(analysis, cache, frozenset([analysis.file_path])):
            candidates.append(Candidate(record, url, params, analysis.file_path in targets))

    forms: Dict[int, List[Candidate]] = {}
    for candidate in candidates:
        forms.setdefault(id(candidate.record), []).append(candidate)
    keep: Set[int] = set()
    for group in forms.values():
        live = [candidate for candidate in group if not candidate.superseded]
        if not live:
            live = [max(group, key=lambda candidate: len(candidate.url))]
        keep.update(id(candidate) for candidate in live)

    catalogue: List[EndpointDescriptor] = []
    seen: Set[Tuple[str, str]] = set()
    for candidate in candidates:
        if id(candidate) not in keep:
            continue
        key = (candidate.record.method, candidate.url)
        if key in seen:
            continue
        seen.add(key)
        catalogue.append(candidate.record.freeze(candidate.url, candidate.prefix_params))
    return catalogue
