"""
Name related context conditions: uniqueness, type-name clashes, declaration
before use and self-referential initializers.
"""

from __future__ import annotations

from beartype.typing import Iterator, Optional

from nmlc.cocos.registry import context_condition
from nmlc.diagnostics import Diagnostic
from nmlc.errors import SelfReferentialInitializer, UndefinedSymbol, VariableHasTypeName
from nmlc.ir.equation import EquationsBlock, OdeAlias, Shape
from nmlc.ir.expr import VarRef
from nmlc.ir.model import Neuron
from nmlc.ir.node import Node
from nmlc.ir.statement import Declaration, Statement
from nmlc.ir.visitor import children, var_refs
from nmlc.symtab.registry import GLOBAL_SCOPE_ID
from nmlc.symtab.symbols import VariableSymbol
from nmlc.symtab.table import SymbolTable


@context_condition("unique_names")
def check_unique_names(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Names are unique per scope; variables and functions share one namespace."""
    return [dup.to_diagnostic() for dup in table.duplicates]


@context_condition("declared_types")
def check_declared_types(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Declared data types name a primitive type or a known unit."""
    return list(table.diagnostics)


@context_condition("variable_has_type_name")
def check_variable_has_type_name(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    diagnostics = []
    for scope in table.scopes:
        if scope.id == GLOBAL_SCOPE_ID:
            continue
        for sym in scope.symbols.values():
            if isinstance(sym, VariableSymbol) and table.registry.is_type_name(sym.name):
                pos = sym.node.pos if sym.node is not None else neuron.pos
                diagnostics.append(VariableHasTypeName(sym.name, pos).to_diagnostic())
    return diagnostics


Order = Optional[tuple[int, ...]]


def _uses(node: Node, order: Order) -> Iterator[tuple[VarRef, Order]]:
    """Variable references with the order of their enclosing statement (None in equations)."""
    if isinstance(node, EquationsBlock):
        order = None
    elif isinstance(node, Statement):
        order = node.order
    if isinstance(node, VarRef):
        yield node, order
    for child in children(node):
        yield from _uses(child, order)


@context_condition("defined_before_use")
def check_defined_before_use(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """
    Every name resolves, and inside one block a variable is declared before it
    is used. Variables of the equations block are visible regardless of order.
    """
    diagnostics = []
    for ref, use_order in _uses(neuron, None):
        sym = table.lookup(ref.name, ref.scope_id)
        if sym is None:
            diagnostics.append(UndefinedSymbol(ref.name, ref.pos).to_diagnostic())
            continue
        if not isinstance(sym, VariableSymbol) or not sym.order or not use_order:
            continue
        same_block = sym.order[0] == use_order[0]
        if same_block and sym.order > use_order:
            diagnostics.append(
                UndefinedSymbol(
                    ref.name,
                    ref.pos,
                    f"Cannot use variable '{ref.name}' before its definition.",
                ).to_diagnostic()
            )
    return diagnostics


def _self_references(name: str, node: Node) -> list[VarRef]:
    return [ref for ref in var_refs(node) if ref.name == name and ref.order == 0]


@context_condition("self_reference")
def check_self_reference(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """
    No variable appears in its own initializer, except through its derivative.
    Order-0 definitions of the equations block follow the same rule.
    """
    diagnostics = []
    symbols = [
        s
        for scope in table.scopes
        if scope.id != GLOBAL_SCOPE_ID
        for s in scope.symbols.values()
        if isinstance(s, VariableSymbol)
    ]
    for sym in symbols:
        node = sym.node
        if isinstance(node, Declaration) and node.expr is not None:
            refs = [
                r
                for r in _self_references(sym.name, node.expr)
                if table.lookup(r.name, r.scope_id) is sym
            ]
        elif isinstance(node, OdeAlias):
            refs = _self_references(sym.name, node.expr)
        elif isinstance(node, Shape) and node.is_function_of_time:
            refs = _self_references(sym.name, node.rhs)
        else:
            continue
        if refs:
            diagnostics.append(SelfReferentialInitializer(sym.name, refs[0].pos).to_diagnostic())
    return diagnostics
