"""
Type related context conditions.

These checks read the types annotated on the expressions; nodes that were not
annotated are inferred on the fly without modifying the AST. Expressions whose
type is an ``ErrorType`` are skipped, since the failure is already reported
where it happened.
"""

from __future__ import annotations

from nmlc.cocos.registry import context_condition
from nmlc.diagnostics import Diagnostic
from nmlc.errors import IllegalExpression, IncompatibleUnits, NonBooleanCondition
from nmlc.ir.equation import OdeAlias, OdeEquation, Shape
from nmlc.ir.expr import Expr
from nmlc.ir.model import Neuron
from nmlc.ir.statement import (
    Assignment,
    Declaration,
    ForStatement,
    IfStatement,
    ReturnStatement,
    WhileStatement,
)
from nmlc.ir.visitor import walk
from nmlc.kinds import BlockKind
from nmlc.symtab.symbols import VariableSymbol
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.inference import type_errors, type_of
from nmlc.typecheck.types import (
    VOID,
    TypeSymbol,
    dimension_of,
    is_assignable,
    is_boolean,
    is_error,
    is_numeric,
)


def _mismatch(message: str, target: TypeSymbol, value: TypeSymbol, expr: Expr) -> Diagnostic:
    if is_numeric(target) and is_numeric(value):
        return IncompatibleUnits(message, expr.pos).to_diagnostic()
    return IllegalExpression(message, expr.pos).to_diagnostic()


@context_condition("expression_types")
def check_expression_types(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Every expression has a well defined type."""
    return [err.to_diagnostic() for err in type_errors(neuron, table)]


@context_condition("initializer_types")
def check_initializer_types(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Initializers and order-0 definitions match the declared type."""
    diagnostics = []
    for node in walk(neuron):
        if isinstance(node, Declaration) and node.expr is not None:
            sym = table.lookup(node.names[0], node.scope_id)
            if not isinstance(sym, VariableSymbol) or sym.node is not node:
                continue
            target, value = sym.type, type_of(node.expr, table)
            if not is_assignable(target, value):
                diagnostics.append(
                    _mismatch(
                        f"Attempting to initialize variable {', '.join(node.names)} of type "
                        f"{target} with an expression of type {value}.",
                        target,
                        value,
                        node.expr,
                    )
                )
        elif isinstance(node, OdeAlias):
            sym = table.variable(node.name)
            if sym is None or sym.node is not node:
                continue
            target, value = sym.type, type_of(node.expr, table)
            if not is_assignable(target, value):
                diagnostics.append(
                    _mismatch(
                        f"Function '{node.name}' of type {target} is defined by an "
                        f"expression of type {value}.",
                        target,
                        value,
                        node.expr,
                    )
                )
    return diagnostics


@context_condition("assignment_types")
def check_assignment_types(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Assignments target writable variables with a compatible value."""
    diagnostics = []
    for node in walk(neuron):
        if not isinstance(node, Assignment):
            continue
        sym = table.lookup(node.target.name, node.target.scope_id)
        if not isinstance(sym, VariableSymbol):
            continue
        if sym.is_alias or sym.is_buffer or sym.block in (BlockKind.PREDEFINED, BlockKind.SHAPE):
            diagnostics.append(
                IllegalExpression(
                    f"Cannot assign to '{sym.name}'; it is not a variable.", node.pos
                ).to_diagnostic()
            )
            continue
        target, value = type_of(node.target, table), type_of(node.expr, table)
        if node.op in ("*=", "/="):
            dim = dimension_of(value)
            if dim is not None and not dim.is_dimensionless and not is_error(value):
                diagnostics.append(
                    IncompatibleUnits(
                        f"Compound assignment '{node.op}' to {sym.name} requires a "
                        f"dimensionless value, got {value}.",
                        node.expr.pos,
                    ).to_diagnostic()
                )
            elif dim is None and not is_error(value):
                diagnostics.append(
                    IllegalExpression(
                        f"Cannot apply '{node.op}' with a value of type {value}.", node.expr.pos
                    ).to_diagnostic()
                )
        elif not is_assignable(target, value):
            diagnostics.append(
                _mismatch(
                    f"Attempting to assign {value} to variable {sym.name} with type {target}.",
                    target,
                    value,
                    node.expr,
                )
            )
    return diagnostics


@context_condition("return_types")
def check_return_types(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Return statements match the declared return type of their function."""
    diagnostics = []
    for func in neuron.functions:
        sym = table.function(func.name)
        if sym is None or sym.node is not func:
            continue
        for node in walk(func.body):
            if not isinstance(node, ReturnStatement):
                continue
            if node.expr is None:
                if sym.return_type != VOID and not is_error(sym.return_type):
                    diagnostics.append(
                        IllegalExpression(
                            f"Function '{func.name}' must return a value of type {sym.return_type}.",
                            node.pos,
                        ).to_diagnostic()
                    )
                continue
            value = type_of(node.expr, table)
            if sym.return_type == VOID:
                diagnostics.append(
                    IllegalExpression(
                        f"Function '{func.name}' has no return type but returns {value}.",
                        node.pos,
                    ).to_diagnostic()
                )
            elif not is_assignable(sym.return_type, value):
                diagnostics.append(
                    _mismatch(
                        f"Function '{func.name}' returns {value} instead of {sym.return_type}.",
                        sym.return_type,
                        value,
                        node.expr,
                    )
                )
    return diagnostics


@context_condition("ode_types")
def check_ode_types(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Both sides of every equation have compatible units."""
    diagnostics = []
    block = neuron.equations_block
    if block is None:
        return diagnostics
    for element in block.elements:
        if isinstance(element, OdeEquation) or (
            isinstance(element, Shape) and not element.is_function_of_time
        ):
            lhs, rhs = type_of(element.lhs, table), type_of(element.rhs, table)
            if not is_assignable(lhs, rhs):
                diagnostics.append(
                    _mismatch(
                        f"Equation for {element.lhs.full_name} has type {lhs} but its "
                        f"right-hand side has type {rhs}.",
                        lhs,
                        rhs,
                        element.rhs,
                    )
                )
    return diagnostics


def _condition(expr: Expr, table: SymbolTable) -> list[Diagnostic]:
    t = type_of(expr, table)
    if is_boolean(t):
        return []
    return [NonBooleanCondition(str(t), expr.pos).to_diagnostic()]


@context_condition("boolean_conditions")
def check_boolean_conditions(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Conditions of if, elif and while statements are boolean."""
    diagnostics = []
    for node in walk(neuron):
        if isinstance(node, IfStatement):
            for cond, _ in node.branches:
                diagnostics.extend(_condition(cond, table))
        elif isinstance(node, WhileStatement):
            diagnostics.extend(_condition(node.condition, table))
    return diagnostics


@context_condition("boolean_invariants")
def check_boolean_invariants(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """Invariants of parameters, states and internals are boolean."""
    diagnostics = []
    for invariant in neuron.parameter_invariants():
        diagnostics.extend(_condition(invariant, table))
    for kind in (BlockKind.STATE, BlockKind.INTERNAL):
        block = neuron.variable_block(kind)
        if block is None:
            continue
        for decl in block.declarations:
            if decl.invariant is not None:
                diagnostics.extend(_condition(decl.invariant, table))
    return diagnostics


@context_condition("for_loops")
def check_for_loops(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """For-loop iterators and bounds are numeric."""
    diagnostics = []
    for node in walk(neuron):
        if not isinstance(node, ForStatement):
            continue
        it = type_of(node.iterator, table)
        if not is_numeric(it):
            diagnostics.append(
                IllegalExpression(
                    f"The type of the iterator variable {node.iterator.name} in a for-loop "
                    f"must be numeric and not: '{it}'.",
                    node.iterator.pos,
                ).to_diagnostic()
            )
        for bound in (node.start, node.stop):
            t = type_of(bound, table)
            if not is_numeric(t):
                diagnostics.append(
                    IllegalExpression(
                        f"The type of the loop bound must be numeric and not: '{t}'.",
                        bound.pos,
                    ).to_diagnostic()
                )
    return diagnostics

