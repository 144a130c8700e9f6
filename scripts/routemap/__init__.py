from __future__ import annotations

from .analyzer import FileAnalyzer, analyze_file, analyze_source
from .cache import build_file_hashes, hash_file, language_for_path
from .composer import combine_paths, compose_routes
from .constants import EXCLUDE_DIRS, HTTP_METHODS, TEMPLATE_PLACEHOLDER
from .core import (
    DiscoveryOptions,
    ScanResult,
    ScanTracker,
    discover_endpoints,
    discover_source_endpoints,
    locate_entry_files,
    scan_project,
)
from .discovery import list_source_files
from .entrypoints import find_entry_points
from .errors import Diagnostic, ParseFailure, ProjectRootError, RouteMapError
from .handlers import infer_handler, infer_routes, resolve_handler
from .imports import resolve_local_import
from .models import (
    EndpointDescriptor,
    FileAnalysis,
    ImportDescriptor,
    ParamType,
    RouteMountDescriptor,
    RouteRecord,
    url_params,
)
from .repo_config import load_repo_config, strip_json_comments
from .syntax import SyntaxVisitor, parse_source
from .walker import ProjectAnalysisState, ProjectWalker, walk_project
