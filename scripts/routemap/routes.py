from __future__ import annotations

from typing import Callable, Optional

from tree_sitter import Node

from .constants import HTTP_METHODS, MOUNT_METHOD
from .imports import is_local_specifier
from .models import FileAnalysis, RouteMountDescriptor, RouteRecord
from .syntax import arguments_of, require_specifier, string_value, text_of, unwrap, url_literal

ImportResolver = Callable[[str], Optional[str]]


def call_property(node: Node) -> Optional[str]:
    """Property name of a ``receiver.name(...)`` call, otherwise None."""
    callee = node.child_by_field_name("function")
    if callee is None or callee.type != "member_expression":
        return None
    prop = callee.child_by_field_name("property")
    if prop is None:
        return None
    return text_of(prop)


def route_from_call(node: Node, file_path: str) -> Optional[RouteRecord]:
    if call_property(node) not in HTTP_METHODS:
        return None
    args = arguments_of(node)
    if len(args) < 2:
        return None
    url = url_literal(args[0])
    if url is None:
        return None
    return RouteRecord(
        method=call_property(node).upper(),
        url=url,
        file_path=file_path,
        # The handler is conventionally last; earlier arguments are middleware.
        handler_candidates=list(reversed(args[1:])),
    )


def mount_from_call(
    node: Node,
    analysis: FileAnalysis,
    resolve: ImportResolver,
) -> Optional[RouteMountDescriptor]:
    """``app.use('/prefix', router)`` where ``router`` is a required/imported binding.

    The router is the second argument. When that one is not a local import
    (``app.use('/x', auth, router)``) the last argument that is one, or an
    inline require, is taken instead.
    """
    if call_property(node) != MOUNT_METHOD:
        return None
    args = arguments_of(node)
    if len(args) < 2:
        return None
    prefix = string_value(args[0])
    if prefix is None or args[0].type != "string":
        return None
    for arg in [args[1]] + list(reversed(args[2:])):
        mount = router_mount(prefix, unwrap(arg), analysis, resolve)
        if mount is not None:
            return mount
    return None


def router_mount(
    prefix: str,
    arg: Optional[Node],
    analysis: FileAnalysis,
    resolve: ImportResolver,
) -> Optional[RouteMountDescriptor]:
    specifier = require_specifier(arg)
    if specifier is not None:
        if not is_local_specifier(specifier):
            return None
        return RouteMountDescriptor(prefix, text_of(arg), resolve(specifier))
    if arg is None or arg.type != "identifier":
        return None
    # package middleware such as cors or helmet is never the router
    descriptor = analysis.import_for(text_of(arg))
    if descriptor is None or not is_local_specifier(descriptor.source):
        return None
    return RouteMountDescriptor(prefix, text_of(arg), descriptor.resolved_path)
