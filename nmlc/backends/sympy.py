"""
SymPy backend: converts IR expressions to SymPy expressions.

The equation classifier works on the converted right-hand sides to compute
Jacobians and propagators. Quantities are represented by their magnitude in
the unit they are written in (``5 mV`` becomes ``5``), so coefficients stay
closed-form expressions in the model parameters.

Where annotated operands of ``+``, ``-``, comparisons, ternaries or builtin
calls differ in scale, the converter multiplies by the exact conversion
factor: with ``E`` in ``V`` and ``V_m`` in ``mV``, ``E - V_m`` becomes
``E - V_m/1000``, a magnitude in ``V``. :meth:`SympyConverter.convert` takes
an optional target type to express a result in another unit.

Naming:

- ``x`` is ``Symbol("x", real=True)``
- ``x'`` is ``Symbol("x__d", real=True)``, ``x''`` is ``Symbol("x__d__d", real=True)``
- the step size is ``Symbol("__h", positive=True)``
"""

from __future__ import annotations

import sympy as sp

from beartype.typing import Callable, Optional

from nmlc.ir.expr import BinaryOp, Expr, FunctionCall, IfExpr, Literal, UnaryOp, VarRef
from nmlc.kinds import BlockKind
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.types import REAL, TypeSymbol, dimension_of, is_error, scale_of

DERIVATIVE_SUFFIX = "__d"
CONVOLUTION_SEPARATOR = "__X__"
TIME = "t"

# Called with (func, shape, buffer) for convolve(shape, buffer); returns the symbol
# that stands for the convolution.
ConvolutionHook = Callable[[str, str, str], sp.Basic]


def derivative_name(name: str, order: int = 1) -> str:
    """``derivative_name("g", 2) == "g__d__d"``"""
    return name + DERIVATIVE_SUFFIX * order


def convolution_name(shape: str, buffer: str) -> str:
    return f"{shape}{CONVOLUTION_SEPARATOR}{buffer}"


def symbol(name: str) -> sp.Symbol:
    """The real valued SymPy symbol of a model variable."""
    return sp.Symbol(name, real=True)


def step_symbol(name: str = "__h") -> sp.Symbol:
    return sp.Symbol(name, positive=True)


def time_symbol() -> sp.Symbol:
    return symbol(TIME)


_BINARY_OPS = {
    "+": lambda l, r: l + r,
    "-": lambda l, r: l - r,
    "*": lambda l, r: l * r,
    "/": lambda l, r: l / r,
    "**": lambda l, r: l**r,
    "%": lambda l, r: sp.Mod(l, r),
    "==": lambda l, r: sp.Eq(l, r),
    "!=": lambda l, r: sp.Ne(l, r),
    "<": lambda l, r: sp.Lt(l, r),
    "<=": lambda l, r: sp.Le(l, r),
    ">": lambda l, r: sp.Gt(l, r),
    ">=": lambda l, r: sp.Ge(l, r),
    "and": lambda l, r: sp.And(l, r),
    "or": lambda l, r: sp.Or(l, r),
}

_FUNCTIONS = {
    "exp": sp.exp,
    "ln": sp.log,
    "log10": lambda x: sp.log(x, 10),
    "expm1": lambda x: sp.exp(x) - 1,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "erf": sp.erf,
    "erfc": sp.erfc,
    "sqrt": sp.sqrt,
    "abs": sp.Abs,
    "pow": lambda x, y: x**y,
    "max": sp.Max,
    "min": sp.Min,
    "clip": lambda x, lo, hi: sp.Min(sp.Max(x, lo), hi),
}

CONVOLUTIONS = ("convolve", "cond_sum", "curr_sum")

# builtins whose arguments and result share one unit
SAME_UNIT_FUNCTIONS = ("abs", "max", "min", "clip", "random_normal", "random_uniform")


def _is_dimensionless(t: Optional[TypeSymbol]) -> bool:
    dim = dimension_of(t) if t is not None else None
    return dim is not None and dim.is_dimensionless


def rescale(value: sp.Basic, source: Optional[TypeSymbol], target: Optional[TypeSymbol]) -> sp.Basic:
    """
    Express ``value``, a magnitude in the unit of ``source``, in the unit of ``target``.

    Unknown, erroneous or dimensionally different types leave ``value`` unchanged.
    """
    if source is None or target is None or is_error(source) or is_error(target):
        return value
    if dimension_of(source) is None or dimension_of(source) != dimension_of(target):
        return value
    factor = scale_of(source) / scale_of(target)
    if factor == 1:
        return value
    return sp.Rational(factor.numerator, factor.denominator) * value


class SympyConverter:
    """
    Convert IR expressions of one neuron to SymPy.

    Aliases (order-0 equations and ``function`` declarations) are inlined.
    Calls of user functions and of builtins without a closed form become
    undefined SymPy functions. Every inlined alias name is recorded in
    ``inlined`` so callers can map aliases to the equations that use them.
    """

    def __init__(
        self,
        table: SymbolTable,
        convolution: Optional[ConvolutionHook] = None,
        step: Optional[sp.Symbol] = None,
    ) -> None:
        self.table = table
        self.convolution = convolution
        self.step = step if step is not None else step_symbol()
        self.inlined: set[str] = set()
        self._expanding: list[str] = []

    def convert(self, expr: Expr, target: Optional[TypeSymbol] = None) -> sp.Basic:
        """
        Convert an IR expression to a SymPy expression.

        The result is a magnitude in the unit of ``expr.type``, or in the unit
        of ``target`` when one is given.
        """
        return rescale(self._convert(expr), expr.type, target)

    def _convert(self, expr: Expr) -> sp.Basic:
        if isinstance(expr, Literal):
            return self._literal(expr)
        elif isinstance(expr, VarRef):
            return self._var_ref(expr)
        elif isinstance(expr, BinaryOp):
            return self._binary_op(expr)
        elif isinstance(expr, UnaryOp):
            operand = self.convert(expr.operand)
            if expr.op == "-":
                return -operand
            elif expr.op == "+":
                return operand
            return sp.Not(operand)
        elif isinstance(expr, FunctionCall):
            return self._call(expr)
        elif isinstance(expr, IfExpr):
            cond = self.convert(expr.condition)
            true_val = self.convert(expr.true_expr, expr.type)
            false_val = self.convert(expr.false_expr, expr.type)
            return sp.Piecewise((true_val, cond), (false_val, True))
        raise ValueError(f"Unsupported expression type: {type(expr)}")

    def _binary_op(self, expr: BinaryOp) -> sp.Basic:
        if expr.op not in _BINARY_OPS:
            raise ValueError(f"Unsupported binary operator: {expr.op}")
        if expr.op in ("+", "-"):
            left = self.convert(expr.left, expr.type)
            right = self.convert(expr.right, expr.type)
        elif expr.op == "**":
            base_target = REAL if _is_dimensionless(expr.left.type) else None
            left = self.convert(expr.left, base_target)
            right = self.convert(expr.right, REAL)
        elif expr.op in ("*", "/", "%", "and", "or"):
            left = self.convert(expr.left)
            right = self.convert(expr.right)
        else:
            # comparison: right operand in the unit of the left one
            left = self.convert(expr.left)
            right = self.convert(expr.right, expr.left.type)
        return _BINARY_OPS[expr.op](left, right)

    def _literal(self, expr: Literal) -> sp.Basic:
        if isinstance(expr.value, bool):
            return sp.true if expr.value else sp.false
        elif isinstance(expr.value, int):
            return sp.Integer(expr.value)
        elif isinstance(expr.value, float):
            return sp.Float(expr.value)
        raise ValueError(f"String literal {expr} has no symbolic value")

    def _var_ref(self, expr: VarRef) -> sp.Basic:
        sym = self.table.variable(expr.name, expr.scope_id)
        if sym is not None and expr.order == 0:
            if sym.block == BlockKind.PREDEFINED:
                if expr.name == "e":
                    return sp.E
                if expr.name == "inf":
                    return sp.oo
            if sym.is_alias and sym.initializer is not None:
                return self._inline(expr.name, sym.initializer, sym.type)
        name = derivative_name(expr.name, expr.order)
        if expr.index is not None:
            return sp.IndexedBase(name)[self.convert(expr.index)]
        return symbol(name)

    def _inline(self, name: str, definition: Expr, declared: TypeSymbol) -> sp.Basic:
        if name in self._expanding:
            chain = " -> ".join(self._expanding + [name])
            raise ValueError(f"Recursive definition: {chain}")
        self._expanding.append(name)
        try:
            value = self.convert(definition, declared)
        finally:
            self._expanding.pop()
        self.inlined.add(name)
        return value

    def _call(self, expr: FunctionCall) -> sp.Basic:
        if expr.func in CONVOLUTIONS and len(expr.args) == 2:
            shape, buffer = expr.args
            if isinstance(shape, VarRef) and isinstance(buffer, VarRef):
                if self.convolution is not None:
                    return self.convolution(expr.func, shape.name, buffer.name)
                return symbol(convolution_name(shape.name, buffer.name))
        if expr.func == "resolution" and not expr.args:
            return self.step
        args = [self.convert(arg, target) for arg, target in zip(expr.args, self._arg_targets(expr))]
        if expr.func in _FUNCTIONS:
            return _FUNCTIONS[expr.func](*args)
        return sp.Function(expr.func)(*args)

    def _arg_targets(self, expr: FunctionCall) -> list[Optional[TypeSymbol]]:
        """Unit each argument of ``expr`` is passed in."""
        if expr.func in SAME_UNIT_FUNCTIONS:
            return [expr.type] * len(expr.args)
        func = self.table.function(expr.func, expr.scope_id)
        if func is not None and func.type_rule is None and len(func.param_types) == len(expr.args):
            return list(func.param_types)
        return [None] * len(expr.args)


def to_sympy(expr: Expr, table: SymbolTable) -> sp.Basic:
    """Convert a single expression with default settings."""
    return SympyConverter(table).convert(expr)
