"""
Bottom-up type inference over expressions.

:class:`TypeInferrer` runs in one of two modes:

- strict (:func:`infer_type`): the first failure is raised as a
  :class:`~nmlc.errors.SemanticError`;
- annotating (:func:`annotate_types`): every expression node gets its type
  stored in ``Expr.type``. A failure becomes ``ErrorType(error)`` at the failing
  node and a silent ``ErrorType()`` at its ancestors, so every defect is
  reported exactly once.

Names that do not resolve are typed as a silent ``ErrorType()`` when
annotating; the defined-before-use check reports them.
"""

from __future__ import annotations

from fractions import Fraction

from beartype.typing import Optional

from nmlc.errors import (
    FunctionDoesNotExist,
    IllegalExpression,
    IncompatibleUnits,
    NonBooleanCondition,
    SemanticError,
    TypeCheckError,
    UndefinedSymbol,
    UnitParseError,
    UnknownUnit,
)
from nmlc.ir.expr import (
    ARITHMETIC_OPS,
    COMPARISON_OPS,
    BinaryOp,
    Expr,
    FunctionCall,
    IfExpr,
    Literal,
    UnaryOp,
    VarRef,
)
from nmlc.ir.model import Neuron
from nmlc.ir.visitor import iter_expressions, top_level_expressions
from nmlc.symtab.symbols import FunctionSymbol, TypeNameSymbol, VariableSymbol
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.types import (
    BOOLEAN,
    INTEGER,
    REAL,
    STRING,
    ErrorType,
    TypeSymbol,
    UnitType,
    VectorType,
    compatible,
    dimension_of,
    element_type,
    is_assignable,
    is_boolean,
    is_error,
    is_numeric,
    unit_of,
    unit_type,
)
from nmlc.units import parse_unit


def literal_exponent(expr: Expr) -> Optional[Fraction]:
    """Value of a (possibly negated) numeric literal, or None."""
    sign = 1
    while isinstance(expr, UnaryOp) and expr.op in ("-", "+"):
        if expr.op == "-":
            sign = -sign
        expr = expr.operand
    if isinstance(expr, Literal) and expr.unit is None:
        value = expr.value
        if isinstance(value, bool) or isinstance(value, str):
            return None
        return sign * Fraction(value).limit_denominator(1000)
    return None


class TypeInferrer:
    """Infers expression types against a symbol table."""

    def __init__(self, table: SymbolTable, strict: bool = True, annotate: bool = False):
        self.table = table
        self.registry = table.registry
        self.strict = strict
        self.annotate = annotate
        self.errors: list[SemanticError] = []
        self._dispatch = {
            Literal: self._literal,
            VarRef: self._var_ref,
            BinaryOp: self._binary_op,
            UnaryOp: self._unary_op,
            FunctionCall: self._call,
            IfExpr: self._if_expr,
        }

    def infer(self, expr: Expr, scope_id: Optional[int] = None) -> TypeSymbol:
        """Type of ``expr`` seen from ``scope_id`` (defaults to the node's own scope)."""
        scope = expr.scope_id if expr.scope_id is not None else scope_id
        handler = self._dispatch.get(type(expr))
        if handler is None:
            result = self._fail(IllegalExpression(f"Unsupported expression {expr!r}", expr.pos))
        else:
            result = handler(expr, scope)
        if self.annotate:
            expr.type = result
        return result

    def _fail(self, error: SemanticError) -> TypeSymbol:
        if self.strict:
            raise error
        self.errors.append(error)
        return ErrorType(error)

    # ------------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------------

    def _literal(self, expr: Literal, scope: Optional[int]) -> TypeSymbol:
        if isinstance(expr.value, bool):
            return BOOLEAN
        if isinstance(expr.value, str):
            return STRING
        if expr.unit:
            try:
                return unit_type(parse_unit(expr.unit))
            except UnitParseError:
                return self._fail(UnknownUnit(expr.unit, expr.pos))
        return INTEGER if isinstance(expr.value, int) else REAL

    def _var_ref(self, expr: VarRef, scope: Optional[int]) -> TypeSymbol:
        sym = self.table.lookup(expr.name, scope)
        index_type: Optional[TypeSymbol] = None
        if expr.index is not None:
            index_type = self.infer(expr.index, scope)
        if sym is None:
            if self.strict:
                raise UndefinedSymbol(expr.name, expr.pos)
            return ErrorType()
        if isinstance(sym, FunctionSymbol):
            return self._fail(
                IllegalExpression(f"Function '{expr.name}' used as a variable.", expr.pos)
            )
        if isinstance(sym, TypeNameSymbol):
            return self._fail(
                IllegalExpression(f"Type '{expr.name}' used as a variable.", expr.pos)
            )
        assert isinstance(sym, VariableSymbol)
        t = sym.type
        if index_type is not None:
            if is_error(index_type):
                return ErrorType()
            if not isinstance(t, VectorType):
                return self._fail(
                    IllegalExpression(f"Variable '{expr.name}' is not a vector.", expr.pos)
                )
            if element_type(index_type) != INTEGER:
                return self._fail(
                    IllegalExpression(
                        f"Vector index of '{expr.name}' must be an integer, not {index_type}.",
                        expr.pos,
                    )
                )
            t = t.element
        if expr.order > 0:
            try:
                t = self.registry.derivative_type(element_type(t), expr.order)
            except TypeCheckError as err:
                return self._fail(err.at(expr.pos))
        return t

    # ------------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------------

    def _binary_op(self, expr: BinaryOp, scope: Optional[int]) -> TypeSymbol:
        left = self.infer(expr.left, scope)
        right = self.infer(expr.right, scope)
        if expr.op in ("and", "or"):
            for operand in (left, right):
                if not is_boolean(operand):
                    return self._fail(NonBooleanCondition(str(operand), expr.pos))
            return ErrorType() if is_error(left) or is_error(right) else BOOLEAN
        if is_error(left) or is_error(right):
            return ErrorType()
        left, right = element_type(left), element_type(right)
        if expr.op in COMPARISON_OPS:
            return self._comparison(expr, left, right)
        assert expr.op in ARITHMETIC_OPS
        if not is_numeric(left) or not is_numeric(right):
            return self._fail(
                IllegalExpression(
                    f"Operator '{expr.op}' cannot be applied to {left} and {right}.", expr.pos
                )
            )
        both_integer = left == INTEGER and right == INTEGER
        if expr.op in ("+", "-"):
            if not compatible(left, right):
                verb = "add" if expr.op == "+" else "subtract"
                return self._fail(
                    IncompatibleUnits(f"Cannot {verb} {right} and {left}.", expr.pos)
                )
            if both_integer:
                return INTEGER
            return left if isinstance(left, UnitType) else REAL
        if expr.op == "%":
            if not both_integer:
                return self._fail(
                    IllegalExpression(
                        f"Modulo requires integer operands, got {left} and {right}.", expr.pos
                    )
                )
            return INTEGER
        if expr.op == "**":
            return self._power(expr, left, right)
        if both_integer:
            return INTEGER
        if expr.op == "*":
            return unit_type(unit_of(left) * unit_of(right))
        return unit_type(unit_of(left) / unit_of(right))

    def _comparison(self, expr: BinaryOp, left: TypeSymbol, right: TypeSymbol) -> TypeSymbol:
        if is_numeric(left) and is_numeric(right):
            if not compatible(left, right):
                return self._fail(
                    IncompatibleUnits(f"Cannot compare {left} with {right}.", expr.pos)
                )
            return BOOLEAN
        if left == right and expr.op in ("==", "!="):
            return BOOLEAN
        return self._fail(
            IllegalExpression(f"Operator '{expr.op}' cannot compare {left} with {right}.", expr.pos)
        )

    def _power(self, expr: BinaryOp, base: TypeSymbol, exponent: TypeSymbol) -> TypeSymbol:
        exp_dim = dimension_of(exponent)
        if exp_dim is None or not exp_dim.is_dimensionless:
            return self._fail(
                IncompatibleUnits(f"Exponent must be dimensionless, got {exponent}.", expr.pos)
            )
        if dimension_of(base).is_dimensionless:
            if base == INTEGER and exponent == INTEGER:
                return INTEGER
            return REAL
        value = literal_exponent(expr.right)
        if value is None:
            return self._fail(
                IllegalExpression(
                    f"The exponent of a value of type {base} must be a numeric literal.",
                    expr.pos,
                )
            )
        return unit_type(unit_of(base) ** value)

    def _unary_op(self, expr: UnaryOp, scope: Optional[int]) -> TypeSymbol:
        operand = self.infer(expr.operand, scope)
        if expr.op == "not":
            if not is_boolean(operand):
                return self._fail(NonBooleanCondition(str(operand), expr.pos))
            return ErrorType() if is_error(operand) else BOOLEAN
        if is_error(operand):
            return ErrorType()
        if not is_numeric(operand):
            return self._fail(
                IllegalExpression(f"Unary '{expr.op}' cannot be applied to {operand}.", expr.pos)
            )
        return element_type(operand)

    def _if_expr(self, expr: IfExpr, scope: Optional[int]) -> TypeSymbol:
        cond = self.infer(expr.condition, scope)
        a = self.infer(expr.true_expr, scope)
        b = self.infer(expr.false_expr, scope)
        if not is_boolean(cond):
            return self._fail(NonBooleanCondition(str(cond), expr.condition.pos))
        if is_error(cond) or is_error(a) or is_error(b):
            return ErrorType()
        if not compatible(a, b):
            return self._fail(
                IncompatibleUnits(f"Ternary branches have types {a} and {b}.", expr.pos)
            )
        if element_type(a) == INTEGER and element_type(b) == REAL:
            return REAL
        return a

    # ------------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------------

    def _call(self, expr: FunctionCall, scope: Optional[int]) -> TypeSymbol:
        args = tuple(self.infer(a, scope) for a in expr.args)
        signature = ", ".join(str(a) for a in args)
        sym = self.table.lookup(expr.func, scope)
        if not isinstance(sym, FunctionSymbol):
            return self._fail(FunctionDoesNotExist(expr.func, signature, expr.pos))
        if any(is_error(a) for a in args):
            return ErrorType()
        if sym.type_rule is not None:
            try:
                result = sym.type_rule(args)
            except TypeCheckError as err:
                return self._fail(err.at(expr.pos))
            if result is None:
                return self._fail(FunctionDoesNotExist(expr.func, signature, expr.pos))
            return result
        if len(args) != len(sym.param_types) or not all(
            is_assignable(p, a) for p, a in zip(sym.param_types, args)
        ):
            return self._fail(FunctionDoesNotExist(expr.func, signature, expr.pos))
        return sym.return_type


def infer_type(expr: Expr, scope_id: Optional[int], table: SymbolTable) -> TypeSymbol:
    """
    Infer the type of ``expr`` without annotating it.

    Raises:
        TypeCheckError: ``IncompatibleUnits``, ``NonBooleanCondition``,
            ``FunctionDoesNotExist`` or ``IllegalExpression`` on the first failure
        UndefinedSymbol: if a name does not resolve
    """
    return TypeInferrer(table, strict=True).infer(expr, scope_id)


def annotate_types(neuron: Neuron, table: SymbolTable) -> list[SemanticError]:
    """
    Annotate every expression of ``neuron`` with its type.

    Returns the errors recorded at the failing nodes, in the order they were found.
    """
    inferrer = TypeInferrer(table, strict=False, annotate=True)
    for expr in top_level_expressions(neuron):
        inferrer.infer(expr, table.neuron_scope_id)
    return inferrer.errors


def type_of(expr: Expr, table: SymbolTable) -> TypeSymbol:
    """Annotated type of ``expr``, inferred on the fly if the node is not annotated yet."""
    if expr.type is not None:
        return expr.type
    return TypeInferrer(table, strict=False).infer(expr, table.neuron_scope_id)


def type_errors(neuron: Neuron, table: SymbolTable) -> list[SemanticError]:
    """Errors recorded at failing expression nodes, in traversal order."""
    errors = []
    inferrer: Optional[TypeInferrer] = None
    for expr in top_level_expressions(neuron):
        if expr.type is None:
            inferrer = inferrer or TypeInferrer(table, strict=False)
            inferrer.errors.clear()
            inferrer.infer(expr, table.neuron_scope_id)
            errors.extend(inferrer.errors)
            continue
        for node in iter_expressions(expr):
            if isinstance(node.type, ErrorType) and node.type.error is not None:
                errors.append(node.type.error)
    return errors
