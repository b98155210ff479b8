"""
Structural context conditions: vector declarations, unreachable code, the
left-hand sides of equations and the arguments of convolutions.
"""

from __future__ import annotations

from nmlc.cocos.registry import context_condition
from nmlc.diagnostics import Diagnostic
from nmlc.errors import (
    CodeAfterReturn,
    IllegalExpression,
    IllegalOdeLhs,
    UndefinedSymbol,
    VectorVariableInNonVectorDeclaration,
)
from nmlc.ir.equation import EquationsBlock, OdeEquation
from nmlc.ir.expr import FunctionCall, VarRef
from nmlc.ir.model import Neuron
from nmlc.ir.statement import Block, Declaration, ReturnStatement
from nmlc.ir.visitor import var_refs, walk
from nmlc.symtab.symbols import VariableSymbol
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.types import INTEGER, element_type, is_error

CONVOLUTIONS = ("convolve", "cond_sum", "curr_sum")
MAX_ODE_ORDER = 2


@context_condition("vector_declarations")
def check_vector_declarations(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """
    Vector variables are only used in declarations with a matching size parameter,
    and size parameters are integer variables.

    Example::

        n integer = 3
        three[n] integer = 3
        seven integer = three + 4     <- error: seven is not a vector
    """
    diagnostics = []
    for node in walk(neuron):
        if not isinstance(node, Declaration):
            continue
        if node.size_param is not None:
            size = table.lookup(node.size_param, node.scope_id)
            if size is None:
                diagnostics.append(UndefinedSymbol(node.size_param, node.pos).to_diagnostic())
            elif not isinstance(size, VariableSymbol) or (
                element_type(size.type) != INTEGER and not is_error(size.type)
            ):
                diagnostics.append(
                    IllegalExpression(
                        f"Vector size parameter '{node.size_param}' must be an integer variable.",
                        node.pos,
                    ).to_diagnostic()
                )
        if node.expr is None:
            continue
        reported = set()
        for ref in var_refs(node.expr):
            sym = table.lookup(ref.name, ref.scope_id)
            if not isinstance(sym, VariableSymbol) or not sym.is_vector or ref.index is not None:
                continue
            if ref.name in reported:
                continue
            if node.size_param is None:
                reported.add(ref.name)
                diagnostics.append(
                    VectorVariableInNonVectorDeclaration(ref.name, node.pos).to_diagnostic()
                )
            elif sym.size_param != node.size_param:
                reported.add(ref.name)
                diagnostics.append(
                    VectorVariableInNonVectorDeclaration(
                        ref.name,
                        node.pos,
                        f"Vector variable '{ref.name}' of size '{sym.size_param}' is used in a "
                        f"declaration of size '{node.size_param}'.",
                    ).to_diagnostic()
                )
    return diagnostics


@context_condition("code_after_return")
def check_code_after_return(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """No statement follows an unconditional return in the same block."""
    diagnostics = []
    for node in walk(neuron):
        if not isinstance(node, Block):
            continue
        for i, stmt in enumerate(node.statements[:-1]):
            if isinstance(stmt, ReturnStatement):
                following = node.statements[i + 1]
                diagnostics.append(
                    CodeAfterReturn(
                        "Code after a return statement is unreachable.", following.pos
                    ).to_diagnostic()
                )
                break
    return diagnostics


@context_condition("ode_lhs")
def check_ode_lhs(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """
    Every differential equation defines a real or unit typed state variable (or
    a shape), is of order 1 or 2, and appears only once.
    """
    diagnostics = []
    seen = set()
    for block in neuron.body:
        if not isinstance(block, EquationsBlock):
            continue
        for eq in block.odes:
            key = (eq.name, eq.derivative_order)
            if key in seen:
                diagnostics.append(
                    IllegalOdeLhs(
                        f"Multiple equations for {eq.lhs.full_name}.", eq.pos
                    ).to_diagnostic()
                )
                continue
            seen.add(key)
            diagnostics.extend(_ode_lhs(eq, table))
    return diagnostics


def _ode_lhs(eq: OdeEquation, table: SymbolTable) -> list[Diagnostic]:
    order = eq.derivative_order
    if order < 1 or order > MAX_ODE_ORDER:
        return [
            IllegalOdeLhs(
                f"Equation for '{eq.name}' has derivative order {order}; "
                f"only orders 1 to {MAX_ODE_ORDER} are supported.",
                eq.pos,
            ).to_diagnostic()
        ]
    sym = table.variable(eq.name, eq.scope_id)
    if sym is None:
        return []  # reported by defined_before_use
    if not (sym.is_state or sym.is_shape):
        return [
            IllegalOdeLhs(
                f"The left-hand side of an equation must be a state variable, "
                f"'{eq.name}' is declared in {sym.block.name.lower()}.",
                eq.pos,
            ).to_diagnostic()
        ]
    if not sym.is_continuous and not is_error(sym.type):
        return [
            IllegalOdeLhs(
                f"State variable '{eq.name}' of type {sym.type} cannot be defined by an equation.",
                eq.pos,
            ).to_diagnostic()
        ]
    return []


@context_condition("convolutions")
def check_convolutions(neuron: Neuron, table: SymbolTable) -> list[Diagnostic]:
    """
    Convolutions appear only in the equations block and convolve a shape with
    an input buffer. Argument types are checked during type inference.
    """
    diagnostics = []
    in_equations = set()
    for block in neuron.body:
        if isinstance(block, EquationsBlock):
            in_equations.update(id(n) for n in walk(block))
    for node in walk(neuron):
        if not isinstance(node, FunctionCall) or node.func not in CONVOLUTIONS:
            continue
        if table.function(node.func, node.scope_id) is None:
            continue
        if id(node) not in in_equations:
            diagnostics.append(
                IllegalExpression(
                    f"'{node.func}' can only be used in the equations block.", node.pos
                ).to_diagnostic()
            )
            continue
        if len(node.args) != 2:
            continue  # reported as FunctionDoesNotExist
        shape = node.args[0]
        if not isinstance(shape, VarRef) or shape.order != 0:
            diagnostics.append(
                IllegalExpression(
                    f"First argument of '{node.func}' must name a shape, got {shape}.", node.pos
                ).to_diagnostic()
            )
            continue
        sym = table.variable(shape.name, shape.scope_id)
        if sym is not None and not sym.is_shape and not sym.is_buffer:
            diagnostics.append(
                IllegalExpression(
                    f"First argument of '{node.func}' must be a shape, '{shape.name}' is not.",
                    node.pos,
                ).to_diagnostic()
            )
    return diagnostics
