"""Handler inference: which request fields a route handler reads, and their types."""
from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Set, Tuple

from tree_sitter import Node

from .constants import (
    ARITHMETIC_OPERATORS,
    BOOLEAN_COERCIONS,
    HEADER_ACCESSORS,
    HEADERS_PROPERTY,
    NUMERIC_COERCIONS,
    REQUEST_BUCKETS,
    STRING_COERCIONS,
)
from .models import FileAnalysis, RouteRecord
from .syntax import (
    WRAPPER_TYPES,
    SyntaxVisitor,
    arguments_of,
    function_body,
    function_params,
    is_function,
    property_name,
    same_node,
    string_value,
    text_of,
    unwrap,
)

REQUEST_PROPERTIES = REQUEST_BUCKETS + (HEADERS_PROPERTY,)

LITERAL_TYPES = {
    "number": "number",
    "true": "boolean",
    "false": "boolean",
    "string": "string",
    "template_string": "string",
    "array": "array",
    "object": "object",
}


def literal_type(node: Optional[Node]) -> str:
    node = unwrap(node)
    if node is None:
        return "string"
    return LITERAL_TYPES.get(node.type, "string")


def coercion_hint(node: Node) -> Optional[str]:
    """Type implied by the expression that consumes ``node``, if any."""
    current = node
    parent = current.parent
    while parent is not None and parent.type in WRAPPER_TYPES:
        current, parent = parent, parent.parent
    if parent is None:
        return None
    if parent.type == "arguments":
        call = parent.parent
        args = [child for child in parent.named_children if child.type != "comment"]
        if call is None or call.type != "call_expression" or not args or not same_node(args[0], current):
            return None
        return _callee_hint(call.child_by_field_name("function"))
    if parent.type == "member_expression" and same_node(parent.child_by_field_name("object"), current):
        # value.toString() / value.toLowerCase()
        if text_of(parent.child_by_field_name("property")) in STRING_COERCIONS:
            return "string"
        return None
    if parent.type == "unary_expression":
        if text_of(parent.child_by_field_name("operator")) == "+":
            return "number"
        return None
    if parent.type == "binary_expression":
        operator = parent.child_by_field_name("operator")
        op = operator.type if operator is not None else ""
        if op in ARITHMETIC_OPERATORS:
            return "number"
        if op == "+":
            left = parent.child_by_field_name("left")
            other = parent.child_by_field_name("right") if same_node(left, current) else left
            if unwrap(other) is not None and unwrap(other).type == "number":
                return "number"
    return None


def _callee_hint(callee: Optional[Node]) -> Optional[str]:
    if callee is None:
        return None
    if callee.type == "identifier":
        name = text_of(callee)
    elif callee.type == "member_expression":
        # Number.parseInt(...), Number.parseFloat(...)
        if text_of(callee.child_by_field_name("object")) != "Number":
            return None
        name = text_of(callee.child_by_field_name("property"))
    else:
        return None
    if name in NUMERIC_COERCIONS:
        return "number"
    if name in BOOLEAN_COERCIONS:
        return "boolean"
    if name in STRING_COERCIONS:
        return "string"
    return None


class HandlerInference(SyntaxVisitor):
    """Walks one handler body and records request field reads on a route.

    ``request`` is the name of the handler's first parameter; ``aliases`` maps
    names destructured from that parameter (``({ body }, res)``) to the request
    property they stand for.
    """

    def __init__(self, record: RouteRecord, request: Optional[str], aliases: Mapping[str, str]) -> None:
        self.record = record
        self.request = request
        self.aliases = dict(aliases)
        self.sites: List[Tuple[Node, str, str]] = []
        # local name -> (bucket, field) for names destructured out of the request
        self.bindings: Dict[str, Tuple[str, str]] = {}

    def visit_arrow_function(self, node: Node) -> Optional[bool]:
        # A nested callback that rebinds the request name reads something else.
        shadowed = {self.request, *self.aliases}
        for param in function_params(node):
            if shadowed & parameter_names(param):
                return False
        return None

    visit_function = visit_arrow_function
    visit_function_expression = visit_arrow_function
    visit_function_declaration = visit_arrow_function
    visit_generator_function = visit_arrow_function
    visit_generator_function_declaration = visit_arrow_function
    visit_method_definition = visit_arrow_function

    def request_property(self, node: Optional[Node]) -> Optional[str]:
        """``body``/``query``/``params``/``headers`` when ``node`` denotes that request property."""
        node = unwrap(node)
        if node is None:
            return None
        if node.type == "identifier":
            return self.aliases.get(text_of(node))
        if node.type != "member_expression" or self.request is None:
            return None
        obj = unwrap(node.child_by_field_name("object"))
        if obj is None or obj.type != "identifier" or text_of(obj) != self.request:
            return None
        prop = text_of(node.child_by_field_name("property"))
        return prop if prop in REQUEST_PROPERTIES else None

    def record_access(self, bucket: str, name: str, site: Optional[Node]) -> None:
        if not name:
            return
        if bucket == HEADERS_PROPERTY:
            self.record.add_header(name)
            return
        self.record.record_field(bucket, name)
        if site is not None:
            self.sites.append((site, bucket, name))

    def visit_member_expression(self, node: Node) -> None:
        bucket = self.request_property(node.child_by_field_name("object"))
        if bucket is not None:
            self.record_access(bucket, text_of(node.child_by_field_name("property")), node)
            return None
        self._header_call(node)
        return None

    def _header_call(self, node: Node) -> None:
        """``req.get('X-Token')`` / ``req.header('X-Token')``."""
        obj = unwrap(node.child_by_field_name("object"))
        if obj is None or obj.type != "identifier" or text_of(obj) != self.request:
            return
        if text_of(node.child_by_field_name("property")) not in HEADER_ACCESSORS:
            return
        call = node.parent
        if call is None or call.type != "call_expression":
            return
        if not same_node(call.child_by_field_name("function"), node):
            return
        args = arguments_of(call)
        if len(args) != 1:
            return
        name = string_value(args[0])
        if name:
            self.record.add_header(name)

    def visit_subscript_expression(self, node: Node) -> None:
        bucket = self.request_property(node.child_by_field_name("object"))
        if bucket is None:
            return None
        key = string_value(unwrap(node.child_by_field_name("index")))
        if key:
            self.record_access(bucket, key, node)
        return None

    def visit_variable_declarator(self, node: Node) -> None:
        bucket = self.request_property(node.child_by_field_name("value"))
        name = node.child_by_field_name("name")
        if bucket is None or name is None:
            return None
        if name.type == "object_pattern":
            self.destructure(bucket, name)
        elif name.type == "identifier" and bucket != HEADERS_PROPERTY:
            self.record.record_field(bucket, text_of(name), "object")
        return None

    def destructure(self, bucket: str, pattern: Node) -> None:
        for child in pattern.named_children:
            key = local = ""
            default: Optional[Node] = None
            if child.type == "shorthand_property_identifier_pattern":
                key = local = text_of(child)
            elif child.type == "object_assignment_pattern":
                key = local = text_of(child.child_by_field_name("left"))
                default = child.child_by_field_name("right")
            elif child.type == "pair_pattern":
                key = property_name(child.child_by_field_name("key"))
                value = child.child_by_field_name("value")
                if value is not None and value.type == "assignment_pattern":
                    default = value.child_by_field_name("right")
                    value = value.child_by_field_name("left")
                if value is not None and value.type == "identifier":
                    local = text_of(value)
                elif value is not None and value.type in ("object_pattern", "array_pattern"):
                    default = value
            if not key:
                continue
            if bucket == HEADERS_PROPERTY:
                self.record.add_header(key)
                continue
            self.record.record_field(bucket, key, self._pattern_type(default))
            if local:
                self.bindings[local] = (bucket, key)

    @staticmethod
    def _pattern_type(default: Optional[Node]) -> str:
        if default is None:
            return "string"
        if default.type == "object_pattern":
            return "object"
        if default.type == "array_pattern":
            return "array"
        return literal_type(default)

    def apply_type_hints(self, body: Node) -> None:
        """Upgrade ``string`` fields whose reads are coerced or used arithmetically."""
        for site, bucket, name in self.sites:
            hint = coercion_hint(site)
            if hint:
                self.record.upgrade_field(bucket, name, hint)
        if not self.bindings:
            return
        uses = _BindingUses(self.bindings)
        uses.traverse(body)
        for site, (bucket, name) in uses.sites:
            hint = coercion_hint(site)
            if hint:
                self.record.upgrade_field(bucket, name, hint)


class _BindingUses(SyntaxVisitor):
    def __init__(self, bindings: Mapping[str, Tuple[str, str]]) -> None:
        self.bindings = bindings
        self.sites: List[Tuple[Node, Tuple[str, str]]] = []

    def visit_identifier(self, node: Node) -> None:
        binding = self.bindings.get(text_of(node))
        if binding is not None:
            self.sites.append((node, binding))


def parameter_names(param: Node) -> Set[str]:
    """Names a parameter binds, including destructured ones; defaults are skipped."""
    names: Set[str] = set()
    stack = [param]
    while stack:
        node = stack.pop()
        if node.type in ("required_parameter", "optional_parameter"):
            pattern = node.child_by_field_name("pattern")
            if pattern is not None:
                stack.append(pattern)
        elif node.type in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            if left is not None:
                stack.append(left)
        elif node.type == "pair_pattern":
            value = node.child_by_field_name("value")
            if value is not None:
                stack.append(value)
        elif node.type in ("identifier", "shorthand_property_identifier_pattern"):
            names.add(text_of(node))
        elif node.type in ("object_pattern", "array_pattern", "rest_pattern"):
            stack.extend(node.named_children)
    return names


def request_binding(param: Node) -> Tuple[Optional[str], Dict[str, str]]:
    """Name of the request parameter, or aliases when it is destructured."""
    node: Optional[Node] = param
    if node.type in ("required_parameter", "optional_parameter"):
        node = node.child_by_field_name("pattern")
    if node is not None and node.type == "assignment_pattern":
        node = node.child_by_field_name("left")
    if node is None:
        return None, {}
    if node.type == "identifier":
        return text_of(node), {}
    aliases: Dict[str, str] = {}
    if node.type == "object_pattern":
        for child in node.named_children:
            if child.type == "shorthand_property_identifier_pattern":
                name = text_of(child)
                if name in REQUEST_PROPERTIES:
                    aliases[name] = name
            elif child.type == "pair_pattern":
                key = property_name(child.child_by_field_name("key"))
                value = child.child_by_field_name("value")
                if key in REQUEST_PROPERTIES and value is not None and value.type == "identifier":
                    aliases[text_of(value)] = key
    return None, aliases


def infer_handler(record: RouteRecord, handler: Node) -> None:
    params = function_params(handler)
    body = function_body(handler)
    if not params or body is None:
        return
    request, aliases = request_binding(params[0])
    inference = HandlerInference(record, request, aliases)
    first = params[0]
    if first.type in ("required_parameter", "optional_parameter"):
        first = first.child_by_field_name("pattern") or first
    if first.type == "object_pattern":
        # ({ body: { name } }, res) => ...
        for child in first.named_children:
            if child.type != "pair_pattern":
                continue
            key = property_name(child.child_by_field_name("key"))
            value = child.child_by_field_name("value")
            if key in REQUEST_PROPERTIES and value is not None and value.type == "object_pattern":
                inference.destructure(key, value)
    inference.traverse(body)
    inference.apply_type_hints(body)


def function_from_binding(analysis: FileAnalysis, node: Optional[Node]) -> Optional[Node]:
    """The function an export binding denotes, following one identifier hop."""
    node = unwrap(node)
    if node is None:
        return None
    if is_function(node):
        return node
    if node.type in ("identifier", "shorthand_property_identifier"):
        return analysis.local_functions.get(text_of(node))
    return None


def find_exported_function(analysis: FileAnalysis, name: str) -> Optional[Node]:
    return function_from_binding(analysis, analysis.export_bindings.get(name))


def resolve_handler(
    record: RouteRecord,
    analysis: FileAnalysis,
    cache: Mapping[str, FileAnalysis],
) -> Optional[Node]:
    """First resolvable handler scanning the route's arguments from last to first.

    Returns the function node, possibly from another file. Arguments that resolve
    to nothing are middleware (or unknown) and are skipped.
    """
    for candidate in record.handler_candidates:
        resolved = _resolve_candidate(unwrap(candidate), analysis, cache, allow_wrapped=True)
        if resolved is not None:
            return resolved
    return None


def _resolve_candidate(
    node: Optional[Node],
    analysis: FileAnalysis,
    cache: Mapping[str, FileAnalysis],
    *,
    allow_wrapped: bool,
) -> Optional[Node]:
    if node is None:
        return None
    if is_function(node):
        return node
    if node.type == "identifier":
        name = text_of(node)
        local = analysis.local_functions.get(name)
        if local is not None:
            return local
        descriptor = analysis.import_for(name)
        if descriptor is None or not descriptor.resolved_path:
            return None
        exported = descriptor.exported_name_for(name)
        target = cache.get(descriptor.resolved_path)
        if exported is None or target is None:
            return None
        return find_exported_function(target, exported)
    if node.type == "member_expression":
        # controller.list where controller is an imported module binding
        obj = unwrap(node.child_by_field_name("object"))
        if obj is None or obj.type != "identifier":
            return None
        descriptor = analysis.import_for(text_of(obj))
        if descriptor is None or not descriptor.resolved_path:
            return None
        target = cache.get(descriptor.resolved_path)
        if target is None:
            return None
        return find_exported_function(target, text_of(node.child_by_field_name("property")))
    if node.type == "call_expression" and allow_wrapped:
        # asyncHandler(async (req, res) => ...) style wrappers
        for arg in reversed(arguments_of(node)):
            resolved = _resolve_candidate(unwrap(arg), analysis, cache, allow_wrapped=False)
            if resolved is not None:
                return resolved
    return None


def infer_routes(analyses: List[FileAnalysis], cache: Mapping[str, FileAnalysis]) -> None:
    for analysis in analyses:
        for record in analysis.routes:
            resolved = resolve_handler(record, analysis, cache)
            if resolved is None:
                continue
            infer_handler(record, resolved)
