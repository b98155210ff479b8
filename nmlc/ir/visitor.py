"""
Generic traversal of the AST.
"""

from __future__ import annotations

from dataclasses import fields

from beartype.typing import Iterator

from nmlc.ir.expr import Expr, VarRef
from nmlc.ir.node import Node


def _nodes_in(value) -> Iterator[Node]:
    if isinstance(value, Node):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _nodes_in(item)


def children(node: Node) -> Iterator[Node]:
    """Direct child nodes of ``node`` in field order."""
    for f in fields(node):
        if f.name in ("type", "pos", "scope_id"):
            continue
        yield from _nodes_in(getattr(node, f.name))


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of ``node`` and all of its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(children(current))))


def iter_expressions(node: Node) -> Iterator[Expr]:
    """Every expression node below ``node`` (including nested sub-expressions)."""
    for n in walk(node):
        if isinstance(n, Expr):
            yield n


def top_level_expressions(node: Node) -> Iterator[Expr]:
    """Maximal expressions below ``node``: those whose parent is not an expression."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Expr):
            yield current
            continue
        stack.extend(reversed(list(children(current))))


def var_refs(node: Node) -> Iterator[VarRef]:
    """All variable references below ``node``."""
    for n in walk(node):
        if isinstance(n, VarRef):
            yield n
