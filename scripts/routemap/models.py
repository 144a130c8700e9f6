from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from tree_sitter import Node, Tree

from .constants import BUCKET_REQUIRED, URL_PARAM_RE
from .errors import Diagnostic


def url_params(url: str) -> List[str]:
    """``:name`` segments of a URL pattern, in order, without repeats."""
    names: List[str] = []
    for match in URL_PARAM_RE.finditer(url):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


@dataclass(frozen=True)
class ParamType:
    name: str
    type: str = "string"
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "required": self.required}


@dataclass(frozen=True)
class EndpointDescriptor:
    method: str
    url: str
    headers: Tuple[str, ...] = ()
    request_data_type: str = "none"
    param_types: Tuple[ParamType, ...] = ()
    query_param_types: Tuple[ParamType, ...] = ()
    body_param_types: Tuple[ParamType, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return self.method, self.url

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "headers": list(self.headers),
            "requestDataType": self.request_data_type,
            "paramTypes": [param.to_dict() for param in self.param_types],
            "queryParamTypes": [param.to_dict() for param in self.query_param_types],
            "bodyParamTypes": [param.to_dict() for param in self.body_param_types],
        }


def request_data_type(body: Sequence[Any], query: Sequence[Any], params: Sequence[Any]) -> str:
    if body:
        return "body"
    if query:
        return "query"
    if params:
        return "params"
    return "none"


@dataclass
class RouteRecord:
    """A route as collected from one file, before prefixing. Mutable until frozen."""

    method: str
    url: str
    file_path: str
    handler_candidates: List[Node] = field(default_factory=list, repr=False)
    headers: List[str] = field(default_factory=list)
    params: Dict[str, ParamType] = field(default_factory=dict)
    query: Dict[str, ParamType] = field(default_factory=dict)
    body: Dict[str, ParamType] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in url_params(self.url):
            self.params.setdefault(name, ParamType(name, "string", True))

    def bucket(self, name: str) -> Dict[str, ParamType]:
        if name == "body":
            return self.body
        if name == "query":
            return self.query
        if name == "params":
            return self.params
        raise KeyError(name)

    def record_field(self, bucket: str, name: str, type_name: str = "string") -> None:
        fields = self.bucket(bucket)
        if name not in fields:
            fields[name] = ParamType(name, type_name, BUCKET_REQUIRED[bucket])

    def upgrade_field(self, bucket: str, name: str, type_name: str) -> None:
        fields = self.bucket(bucket)
        current = fields.get(name)
        if current is not None and current.type == "string" and type_name != "string":
            fields[name] = replace(current, type=type_name)

    def add_header(self, name: str) -> None:
        if name and name not in self.headers:
            self.headers.append(name)

    def freeze(self, url: Optional[str] = None, prefix_params: Iterable[str] = ()) -> EndpointDescriptor:
        params: Dict[str, ParamType] = {}
        for name in prefix_params:
            params.setdefault(name, self.params.get(name, ParamType(name, "string", True)))
        for name, param in self.params.items():
            params.setdefault(name, param)
        return EndpointDescriptor(
            method=self.method,
            url=self.url if url is None else url,
            headers=tuple(sorted(self.headers)),
            request_data_type=request_data_type(self.body, self.query, params),
            param_types=tuple(params.values()),
            query_param_types=tuple(self.query.values()),
            body_param_types=tuple(self.body.values()),
        )


@dataclass
class ImportDescriptor:
    source: str
    imported_names: List[str] = field(default_factory=list)
    default_import_name: Optional[str] = None
    namespace_import_name: Optional[str] = None
    # local binding -> name exported by the source module
    export_names: Dict[str, str] = field(default_factory=dict)
    resolved_path: Optional[str] = None

    def binds(self, name: str) -> bool:
        return (
            name == self.default_import_name
            or name == self.namespace_import_name
            or name in self.imported_names
        )

    def exported_name_for(self, local: str) -> Optional[str]:
        if local == self.default_import_name:
            return "default"
        if local in self.imported_names:
            return self.export_names.get(local, local)
        return None


@dataclass
class RouteMountDescriptor:
    prefix: str
    router_binding_name: str
    resolved_router_file_path: Optional[str] = None


@dataclass
class FileAnalysis:
    file_path: str
    imports: List[ImportDescriptor] = field(default_factory=list)
    exported_names: List[str] = field(default_factory=list)
    export_bindings: Dict[str, Node] = field(default_factory=dict, repr=False)
    local_functions: Dict[str, Node] = field(default_factory=dict, repr=False)
    routes: List[RouteRecord] = field(default_factory=list)
    route_mounts: List[RouteMountDescriptor] = field(default_factory=list)
    diagnostic: Optional[Diagnostic] = None
    # Nodes above point into this tree; holding it keeps them valid.
    tree: Optional[Tree] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.diagnostic is None

    def import_for(self, name: str) -> Optional[ImportDescriptor]:
        for descriptor in self.imports:
            if descriptor.binds(name):
                return descriptor
        return None

    def local_import_paths(self) -> List[str]:
        paths: List[str] = []
        for descriptor in self.imports:
            if descriptor.resolved_path and descriptor.resolved_path not in paths:
                paths.append(descriptor.resolved_path)
        return paths

    def add_export(self, name: str, node: Optional[Node]) -> None:
        if name not in self.exported_names:
            self.exported_names.append(name)
        if node is not None:
            self.export_bindings[name] = node
