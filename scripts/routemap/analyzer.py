from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Set, Tuple

from tree_sitter import Node

from .cache import language_for_path
from .errors import PARSE_FAILURE, TOO_LARGE, UNREADABLE, Diagnostic, ParseFailure
from .imports import resolve_local_import
from .models import FileAnalysis, ImportDescriptor
from .routes import mount_from_call, route_from_call
from .syntax import (
    SyntaxVisitor,
    is_function,
    is_top_level,
    parse_source,
    property_name,
    require_specifier,
    string_value,
    text_of,
    unwrap,
)

SOURCE_PLACEHOLDER_PATH = "<source>"


def span(node: Node) -> Tuple[int, int]:
    return node.start_byte, node.end_byte


class FileAnalyzer(SyntaxVisitor):
    """Collects imports, exports, bindings, routes and mounts of one file in a single pass."""

    def __init__(self, file_path: str, project_root: str = "") -> None:
        self.analysis = FileAnalysis(file_path=file_path)
        self.project_root = project_root
        self._calls: List[Node] = []
        self._bound_requires: Set[Tuple[int, int]] = set()

    def resolve(self, specifier: str) -> Optional[str]:
        if not self.project_root:
            return None
        return resolve_local_import(specifier, self.analysis.file_path, self.project_root)

    def add_import(self, descriptor: ImportDescriptor) -> None:
        descriptor.resolved_path = self.resolve(descriptor.source)
        self.analysis.imports.append(descriptor)

    def bind_function(self, name: str, node: Node, top_level: bool) -> None:
        if top_level:
            self.analysis.local_functions[name] = node
        else:
            self.analysis.local_functions.setdefault(name, node)

    # imports

    def visit_import_statement(self, node: Node) -> bool:
        source = string_value(node.child_by_field_name("source"))
        descriptor = ImportDescriptor(source or "")
        for child in node.named_children:
            if child.type == "import_clause":
                self._read_import_clause(child, descriptor)
            elif child.type == "import_require_clause":
                for part in child.named_children:
                    if part.type == "identifier":
                        descriptor.default_import_name = text_of(part)
                    elif part.type == "string" and source is None:
                        source = string_value(part)
        if source is None:
            return False
        descriptor.source = source
        self.add_import(descriptor)
        return False

    def _read_import_clause(self, clause: Node, descriptor: ImportDescriptor) -> None:
        for part in clause.named_children:
            if part.type == "identifier":
                descriptor.default_import_name = text_of(part)
            elif part.type == "namespace_import":
                for child in part.named_children:
                    if child.type == "identifier":
                        descriptor.namespace_import_name = text_of(child)
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    local = text_of(alias or name)
                    descriptor.imported_names.append(local)
                    descriptor.export_names[local] = property_name(name)

    def _read_require_pattern(self, pattern: Node, descriptor: ImportDescriptor) -> None:
        for child in pattern.named_children:
            key = local = ""
            if child.type == "shorthand_property_identifier_pattern":
                key = local = text_of(child)
            elif child.type == "pair_pattern":
                key = property_name(child.child_by_field_name("key"))
                value = child.child_by_field_name("value")
                if value is not None and value.type == "assignment_pattern":
                    value = value.child_by_field_name("left")
                if value is not None and value.type == "identifier":
                    local = text_of(value)
            elif child.type == "object_assignment_pattern":
                key = local = text_of(child.child_by_field_name("left"))
            elif child.type == "rest_pattern":
                key = local = "".join(text_of(part) for part in child.named_children)
            if local:
                descriptor.imported_names.append(local)
                descriptor.export_names[local] = key

    # bindings

    def visit_variable_declarator(self, node: Node) -> None:
        name = node.child_by_field_name("name")
        value = node.child_by_field_name("value")
        if name is None:
            return None
        specifier = require_specifier(value)
        if specifier is not None:
            self._bound_requires.add(span(unwrap(value)))
            descriptor = ImportDescriptor(specifier)
            if name.type == "identifier":
                descriptor.default_import_name = text_of(name)
            elif name.type == "object_pattern":
                self._read_require_pattern(name, descriptor)
            self.add_import(descriptor)
        if name.type != "identifier" or value is None:
            return None
        local = text_of(name)
        top_level = node.parent is not None and is_top_level(node.parent)
        initializer = unwrap(value)
        if is_function(initializer):
            self.bind_function(local, initializer, top_level)
        return None

    def visit_function_declaration(self, node: Node) -> None:
        name = node.child_by_field_name("name")
        if name is not None:
            self.bind_function(text_of(name), node, is_top_level(node))

    visit_generator_function_declaration = visit_function_declaration

    # exports

    def visit_export_statement(self, node: Node) -> None:
        declaration = node.child_by_field_name("declaration")
        value = node.child_by_field_name("value")
        if any(child.type == "default" for child in node.children):
            target = value if value is not None else declaration
            self.analysis.add_export("default", unwrap(target))
            return None
        if declaration is not None:
            if declaration.type in ("lexical_declaration", "variable_declaration"):
                for declarator in declaration.named_children:
                    if declarator.type != "variable_declarator":
                        continue
                    name = declarator.child_by_field_name("name")
                    if name is not None and name.type == "identifier":
                        self.analysis.add_export(
                            text_of(name), unwrap(declarator.child_by_field_name("value"))
                        )
            else:
                name = declaration.child_by_field_name("name")
                if name is not None:
                    self.analysis.add_export(text_of(name), declaration)
        source = string_value(node.child_by_field_name("source"))
        for clause in node.named_children:
            if clause.type != "export_clause":
                continue
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                name = spec.child_by_field_name("name")
                alias = spec.child_by_field_name("alias")
                exported = property_name(alias or name)
                # Re-exported names live in another module; only the name is recorded.
                self.analysis.add_export(exported, None if source is not None else name)
        if source is not None:
            self.add_import(ImportDescriptor(source))
        return None

    def visit_assignment_expression(self, node: Node) -> None:
        left = node.child_by_field_name("left")
        right = unwrap(node.child_by_field_name("right"))
        if left is None or left.type != "member_expression" or right is None:
            return None
        target = text_of(left.child_by_field_name("object"))
        prop = text_of(left.child_by_field_name("property"))
        if target == "module" and prop == "exports":
            self.analysis.add_export("default", right)
            if right.type == "object":
                self._export_object_members(right)
        elif target in ("exports", "module.exports"):
            self.analysis.add_export(prop, right)
        return None

    def _export_object_members(self, obj: Node) -> None:
        for member in obj.named_children:
            if member.type == "pair":
                key = property_name(member.child_by_field_name("key"))
                self.analysis.add_export(key, unwrap(member.child_by_field_name("value")))
            elif member.type == "shorthand_property_identifier":
                self.analysis.add_export(text_of(member), member)
            elif member.type == "method_definition":
                self.analysis.add_export(text_of(member.child_by_field_name("name")), member)

    # calls

    def visit_call_expression(self, node: Node) -> Optional[bool]:
        specifier = require_specifier(node)
        if specifier is not None:
            if span(node) not in self._bound_requires:
                self.add_import(ImportDescriptor(specifier))
            return False
        self._calls.append(node)
        return None

    def finish(self) -> FileAnalysis:
        for call in self._calls:
            route = route_from_call(call, self.analysis.file_path)
            if route is not None:
                self.analysis.routes.append(route)
                continue
            mount = mount_from_call(call, self.analysis, self.resolve)
            if mount is not None:
                self.analysis.route_mounts.append(mount)
        return self.analysis


def analyze_source(
    text: str,
    language: str,
    *,
    file_path: str = SOURCE_PLACEHOLDER_PATH,
    project_root: str = "",
) -> FileAnalysis:
    """Analyze source text. Invalid syntax yields an empty analysis carrying a diagnostic."""
    try:
        tree = parse_source(text, language)
    except ParseFailure as exc:
        return FileAnalysis(file_path=file_path, diagnostic=Diagnostic(PARSE_FAILURE, file_path, str(exc)))
    analyzer = FileAnalyzer(file_path, project_root)
    analyzer.traverse(tree.root_node)
    analysis = analyzer.finish()
    analysis.tree = tree
    return analysis


def analyze_file(path: str, project_root: str, *, max_bytes: int) -> FileAnalysis:
    full = Path(path)
    try:
        size = full.stat().st_size
    except OSError as exc:
        return FileAnalysis(file_path=path, diagnostic=Diagnostic(UNREADABLE, path, str(exc)))
    if size > max_bytes:
        return FileAnalysis(
            file_path=path,
            diagnostic=Diagnostic(TOO_LARGE, path, f"{size} bytes exceeds limit of {max_bytes}"),
        )
    try:
        text = full.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return FileAnalysis(file_path=path, diagnostic=Diagnostic(UNREADABLE, path, str(exc)))
    return analyze_source(text, language_for_path(path), file_path=path, project_root=project_root)
