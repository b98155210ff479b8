"""
Expression representation in the IR.

Expressions form a tree of dataclass nodes. After type annotation every node
carries its inferred type in ``Expr.type``.

Examples::

    -V_m / tau                      -> BinaryOp("/", UnaryOp("-", VarRef("V_m")), VarRef("tau"))
    5 mV                            -> Literal(5, "mV")
    g_ex'                           -> VarRef("g_ex", 1)
    convolve(g_in, spikes)          -> FunctionCall("convolve", (VarRef("g_in"), VarRef("spikes")))
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Optional, Union

from nmlc.ir.node import Node
from nmlc.typecheck.types import TypeSymbol

ARITHMETIC_OPS = ("+", "-", "*", "/", "**", "%")
COMPARISON_OPS = ("==", "!=", "<", "<=", ">", ">=")
LOGICAL_OPS = ("and", "or")


@dataclass(eq=False)
class Expr(Node):
    """Base class for all expressions."""

    type: Optional[TypeSymbol] = field(default=None, kw_only=True, repr=False)


@dataclass(eq=False)
class Literal(Expr):
    """Numeric, boolean or string constant with an optional unit suffix."""

    value: Union[int, float, bool, str]
    unit: Optional[str] = None

    def __str__(self):
        if self.unit:
            return f"{self.value} {self.unit}"
        if isinstance(self.value, str):
            return f'"{self.value}"'
        return str(self.value).lower() if isinstance(self.value, bool) else str(self.value)


@dataclass(eq=False)
class VarRef(Expr):
    """
    Variable reference, optionally differentiated and indexed.

    ``order`` is the number of primes: ``x''`` is ``VarRef("x", 2)``.
    """

    name: str
    order: int = 0
    index: Optional[Expr] = None

    def __post_init__(self):
        if self.order < 0:
            raise ValueError(f"Negative derivative order for '{self.name}'")

    @property
    def full_name(self) -> str:
        return self.name + "'" * self.order

    def __str__(self):
        idx = f"[{self.index}]" if self.index is not None else ""
        return f"{self.full_name}{idx}"


@dataclass(eq=False)
class BinaryOp(Expr):
    """Binary operation: left op right."""

    op: str  # "+", "-", "*", "/", "**", "%", "==", "<", "and", ...
    left: Expr
    right: Expr

    def __post_init__(self):
        if self.op not in ARITHMETIC_OPS + COMPARISON_OPS + LOGICAL_OPS:
            raise ValueError(f"Unknown binary operator '{self.op}'")

    def __str__(self):
        return f"({self.left} {self.op} {self.right})"


@dataclass(eq=False)
class UnaryOp(Expr):
    """Unary operation: op operand."""

    op: str  # "-", "+", "not"
    operand: Expr

    def __post_init__(self):
        if self.op not in ("-", "+", "not"):
            raise ValueError(f"Unknown unary operator '{self.op}'")

    def __str__(self):
        if self.op == "not":
            return f"not {self.operand}"
        return f"{self.op}{self.operand}"


@dataclass(eq=False)
class FunctionCall(Expr):
    """Function call: func(args...)."""

    func: str
    args: tuple[Expr, ...] = ()

    def __str__(self):
        args_str = ", ".join(str(a) for a in self.args)
        return f"{self.func}({args_str})"


@dataclass(eq=False)
class IfExpr(Expr):
    """Ternary expression: condition ? true_expr : false_expr."""

    condition: Expr
    true_expr: Expr
    false_expr: Expr

    def __str__(self):
        return f"({self.condition} ? {self.true_expr} : {self.false_expr})"


class ExprBuilder:
    """Helper class for building expressions with a fluent API."""

    @staticmethod
    def literal(value: Union[int, float, bool, str], unit: Optional[str] = None) -> Literal:
        """Create a literal, e.g. ``literal(5, "mV")``."""
        return Literal(value, unit)

    @staticmethod
    def var(name: str, order: int = 0) -> VarRef:
        """Create a variable reference; ``order`` counts the primes."""
        return VarRef(name, order)

    @staticmethod
    def binary_op(op: str, left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp(op, left, right)

    @staticmethod
    def add(left: Expr, right: Expr) -> BinaryOp:
        """left + right"""
        return BinaryOp("+", left, right)

    @staticmethod
    def sub(left: Expr, right: Expr) -> BinaryOp:
        """left - right"""
        return BinaryOp("-", left, right)

    @staticmethod
    def mul(left: Expr, right: Expr) -> BinaryOp:
        """left * right"""
        return BinaryOp("*", left, right)

    @staticmethod
    def div(left: Expr, right: Expr) -> BinaryOp:
        """left / right"""
        return BinaryOp("/", left, right)

    @staticmethod
    def pow(left: Expr, right: Expr) -> BinaryOp:
        """left ** right"""
        return BinaryOp("**", left, right)

    @staticmethod
    def neg(operand: Expr) -> UnaryOp:
        """-operand"""
        return UnaryOp("-", operand)

    @staticmethod
    def not_(operand: Expr) -> UnaryOp:
        """not operand"""
        return UnaryOp("not", operand)

    @staticmethod
    def and_(left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp("and", left, right)

    @staticmethod
    def or_(left: Expr, right: Expr) -> BinaryOp:
        return BinaryOp("or", left, right)

    @staticmethod
    def compare(op: str, left: Expr, right: Expr) -> BinaryOp:
        """Comparison such as ``compare(">=", V_m, V_th)``."""
        if op not in COMPARISON_OPS:
            raise ValueError(f"Not a comparison operator: '{op}'")
        return BinaryOp(op, left, right)

    @staticmethod
    def call(func: str, *args: Expr) -> FunctionCall:
        """Create a function call."""
        return FunctionCall(func, args)

    @staticmethod
    def if_expr(condition: Expr, true_expr: Expr, false_expr: Expr) -> IfExpr:
        return IfExpr(condition, true_expr, false_expr)

    @staticmethod
    def exp(x: Expr) -> FunctionCall:
        """exp(x)"""
        return FunctionCall("exp", (x,))

    @staticmethod
    def convolve(shape: str, buffer: str) -> FunctionCall:
        """convolve(shape, buffer)"""
        return FunctionCall("convolve", (VarRef(shape), VarRef(buffer)))


# Make ExprBuilder available on Expr: Expr.var("V_m") instead of ExprBuilder.var("V_m")
for name in dir(ExprBuilder):
    if not name.startswith("_"):
        setattr(Expr, name, getattr(ExprBuilder, name))
