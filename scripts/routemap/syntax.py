"""tree-sitter binding: parsing, node helpers and a kind-dispatching visitor."""
from __future__ import annotations

from typing import Dict, List, Optional

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from .constants import TEMPLATE_PLACEHOLDER
from .errors import ParseFailure

# Compiled grammars are immutable and safe to share between scans and threads.
GRAMMARS: Dict[str, Language] = {
    "js": Language(tree_sitter_javascript.language()),
    "ts": Language(tree_sitter_typescript.language_typescript()),
    "tsx": Language(tree_sitter_typescript.language_tsx()),
}
GRAMMAR_FOR_LANGUAGE = {"js": "js", "jsx": "js", "ts": "ts", "tsx": "tsx"}

FUNCTION_TYPES = {
    "arrow_function",
    "function",
    "function_declaration",
    "function_expression",
    "generator_function",
    "generator_function_declaration",
    "method_definition",
}
WRAPPER_TYPES = {
    "as_expression",
    "await_expression",
    "non_null_expression",
    "parenthesized_expression",
    "satisfies_expression",
}

ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def supports_language(language: str) -> bool:
    return language in GRAMMAR_FOR_LANGUAGE


def parse_source(text: str, language: str) -> Tree:
    """Parse source text with the grammar for ``language``.

    Raises ParseFailure when the tree contains error or missing nodes; callers
    drop the file rather than analyze a partially recovered tree.
    """
    key = GRAMMAR_FOR_LANGUAGE.get(language)
    if key is None:
        raise ParseFailure(f"unsupported language: {language}")
    # Parser instances are not shared so threads can parse concurrently.
    parser = Parser(GRAMMARS[key])
    tree = parser.parse(text.encode("utf-8"))
    if tree.root_node.has_error:
        bad = first_error(tree.root_node)
        line, column = (bad.start_point[0] + 1, bad.start_point[1] + 1) if bad else (0, 0)
        raise ParseFailure(f"syntax error at line {line}, column {column}", line, column)
    return tree


def first_error(root: Node) -> Optional[Node]:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            return node
        if not node.has_error:
            continue
        stack.extend(reversed(node.children))
    return None


class SyntaxVisitor:
    """Pre-order walk dispatching each node to ``visit_<node.type>``.

    Traversal may start at any node. A handler returning ``False`` prunes the
    node's subtree. The walk is iterative so deeply nested sources do not hit
    the interpreter's recursion limit.
    """

    def traverse(self, node: Node) -> None:
        stack = [node]
        while stack:
            current = stack.pop()
            handler = getattr(self, f"visit_{current.type}", None)
            if handler is not None and handler(current) is False:
                continue
            stack.extend(reversed(current.named_children))


def text_of(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def same_node(left: Optional[Node], right: Optional[Node]) -> bool:
    if left is None or right is None:
        return False
    return (
        left.type == right.type
        and left.start_byte == right.start_byte
        and left.end_byte == right.end_byte
    )


def unwrap(node: Optional[Node]) -> Optional[Node]:
    """Strip parentheses, ``await`` and TypeScript assertion wrappers."""
    while node is not None and node.type in WRAPPER_TYPES:
        inner = [child for child in node.named_children if child.type != "comment"]
        if not inner:
            break
        node = inner[0]
    return node


def arguments_of(call: Node) -> List[Node]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    return [child for child in args.named_children if child.type != "comment"]


def string_value(node: Optional[Node]) -> Optional[str]:
    """Value of a plain string literal (or a template literal without substitutions)."""
    if node is None:
        return None
    if node.type == "string":
        parts: List[str] = []
        for child in node.named_children:
            if child.type == "escape_sequence":
                parts.append(decode_escape(text_of(child)))
            else:
                parts.append(text_of(child))
        return "".join(parts)
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            return None
        return render_template(node)
    return None


def decode_escape(sequence: str) -> str:
    if len(sequence) == 2:
        return ESCAPES.get(sequence[1], sequence[1])
    return sequence


def render_template(node: Node) -> str:
    """Template literal text with every substitution replaced by the placeholder."""
    raw = node.text or b""
    base = node.start_byte
    cursor = base + 1
    parts: List[str] = []
    for child in node.named_children:
        if child.type != "template_substitution":
            continue
        parts.append(raw[cursor - base : child.start_byte - base].decode("utf-8", errors="replace"))
        parts.append(TEMPLATE_PLACEHOLDER)
        cursor = child.end_byte
    parts.append(raw[cursor - base : len(raw) - 1].decode("utf-8", errors="replace"))
    return "".join(parts)


def url_literal(node: Optional[Node]) -> Optional[str]:
    if node is None:
        return None
    if node.type == "string":
        return string_value(node)
    if node.type == "template_string":
        return render_template(node)
    return None


def property_name(node: Optional[Node]) -> str:
    """Key text of an object/pattern key: identifiers as written, strings unquoted."""
    if node is None:
        return ""
    value = string_value(node)
    if value is not None:
        return value
    return text_of(node)


def is_function(node: Optional[Node]) -> bool:
    return node is not None and node.type in FUNCTION_TYPES


def function_params(node: Node) -> List[Node]:
    single = node.child_by_field_name("parameter")
    if single is not None:
        return [single]
    params = node.child_by_field_name("parameters")
    if params is None:
        return []
    return [child for child in params.named_children if child.type != "comment"]


def function_body(node: Node) -> Optional[Node]:
    return node.child_by_field_name("body")


def require_specifier(node: Optional[Node]) -> Optional[str]:
    """``'x'`` for a ``require('x')`` call, otherwise None."""
    node = unwrap(node)
    if node is None or node.type != "call_expression":
        return None
    callee = node.child_by_field_name("function")
    if callee is None or callee.type != "identifier" or text_of(callee) != "require":
        return None
    args = arguments_of(node)
    if len(args) != 1:
        return None
    return string_value(args[0])


def is_top_level(node: Node) -> bool:
    """True when ``node`` is a statement at module scope, directly or via ``export``."""
    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        parent = parent.parent
    return parent is not None and parent.type == "program"
