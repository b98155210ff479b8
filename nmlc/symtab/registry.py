"""
Global registry of predefined variables, builtin functions and type names.

The registry is built once per process and is read-only afterwards; every
symbol table links it in as its root scope. Parallel compilations share it
through :func:`default_registry`.
"""

from __future__ import annotations

import logging
import threading
from fractions import Fraction

from beartype.typing import Iterator, Optional

from nmlc.errors import IllegalExpression, RegistryError, UnitParseError
from nmlc.ir.statement import DataType
from nmlc.kinds import BlockKind
from nmlc.symtab.symbols import FunctionSymbol, TypeNameSymbol, TypeRule, VariableSymbol
from nmlc.typecheck.types import (
    INTEGER,
    PRIMITIVES,
    REAL,
    STRING,
    VOID,
    BufferType,
    ErrorType,
    TypeSymbol,
    UnitType,
    VectorType,
    compatible,
    element_type,
    is_numeric,
    unit_of,
    unit_type,
)
from nmlc.units import BASE_UNITS, Unit, lookup_unit, parse_unit

logger = logging.getLogger("nmlc")

GLOBAL_SCOPE_ID = 0


# ----------------------------------------------------------------------------
# Polymorphic builtin rules
# ----------------------------------------------------------------------------


def _same_type_rule(arity: int) -> TypeRule:
    """All arguments share one dimension; the result has the first argument's type."""

    def rule(args: tuple[TypeSymbol, ...]) -> Optional[TypeSymbol]:
        if len(args) != arity or not all(is_numeric(a) for a in args):
            return None
        if not all(compatible(args[0], a) for a in args[1:]):
            return None
        if all(element_type(a) == INTEGER for a in args):
            return INTEGER
        return element_type(args[0])

    return rule


def _sqrt_rule(args: tuple[TypeSymbol, ...]) -> Optional[TypeSymbol]:
    if len(args) != 1 or not is_numeric(args[0]):
        return None
    return unit_type(unit_of(args[0]) ** Fraction(1, 2))


def _print_rule(args: tuple[TypeSymbol, ...]) -> Optional[TypeSymbol]:
    return VOID if len(args) <= 1 else None


def _convolve_rule(args: tuple[TypeSymbol, ...]) -> Optional[TypeSymbol]:
    if len(args) != 2:
        return None
    shape, buffer = args
    while isinstance(buffer, VectorType):
        buffer = buffer.element
    if not isinstance(buffer, BufferType):
        raise IllegalExpression(
            f"Second argument of a convolution must be an input buffer, got {buffer}."
        )
    if isinstance(shape, (BufferType, VectorType)) or not is_numeric(shape):
        raise IllegalExpression(f"First argument of a convolution must be a shape, got {shape}.")
    return unit_type(unit_of(buffer.element) * unit_of(shape))


class TypeRegistry:
    """
    Predefined variables, builtin functions and type names.

    Use :func:`default_registry` for the shared process-wide instance. A
    registry is sealed at the end of construction; registering afterwards
    raises :class:`RegistryError`.
    """

    def __init__(self, time_unit: str = "ms"):
        self._sealed = False
        self._variables: dict[str, VariableSymbol] = {}
        self._functions: dict[str, FunctionSymbol] = {}
        self._types: dict[str, TypeNameSymbol] = {}
        self.time_unit: Unit = parse_unit(time_unit)
        self._register_defaults()
        self._sealed = True

    # ------------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------------

    def _check_open(self, name: str) -> None:
        if self._sealed:
            raise RegistryError(f"Registry is read-only, cannot register '{name}'")
        if name in self._variables or name in self._functions or name in self._types:
            raise RegistryError(f"'{name}' is already registered")

    def register_variable(self, name: str, type: TypeSymbol) -> VariableSymbol:
        self._check_open(name)
        sym = VariableSymbol(name, type, BlockKind.PREDEFINED, scope_id=GLOBAL_SCOPE_ID)
        self._variables[name] = sym
        return sym

    def register_function(
        self,
        name: str,
        param_types: tuple[TypeSymbol, ...] = (),
        return_type: TypeSymbol = VOID,
        type_rule: Optional[TypeRule] = None,
    ) -> FunctionSymbol:
        self._check_open(name)
        sym = FunctionSymbol(
            name,
            param_types,
            return_type,
            type_rule=type_rule,
            builtin=True,
            scope_id=GLOBAL_SCOPE_ID,
        )
        self._functions[name] = sym
        return sym

    def register_type(self, name: str, type: TypeSymbol) -> TypeNameSymbol:
        self._check_open(name)
        sym = TypeNameSymbol(name, type, scope_id=GLOBAL_SCOPE_ID)
        self._types[name] = sym
        return sym

    def _register_defaults(self) -> None:
        time = UnitType(self.time_unit)

        for name, primitive in PRIMITIVES.items():
            self.register_type(name, primitive)

        self.register_variable("t", time)
        self.register_variable("e", REAL)
        self.register_variable("inf", REAL)

        for name in ("exp", "ln", "log10", "expm1", "sin", "cos", "tan", "sinh", "cosh", "tanh"):
            self.register_function(name, (REAL,), REAL)
        self.register_function("pow", (REAL, REAL), REAL)
        self.register_function("erf", (REAL,), REAL)
        self.register_function("erfc", (REAL,), REAL)
        self.register_function("sqrt", type_rule=_sqrt_rule)
        self.register_function("abs", type_rule=_same_type_rule(1))
        self.register_function("max", type_rule=_same_type_rule(2))
        self.register_function("min", type_rule=_same_type_rule(2))
        self.register_function("clip", type_rule=_same_type_rule(3))
        self.register_function("random_normal", type_rule=_same_type_rule(2))
        self.register_function("random_uniform", type_rule=_same_type_rule(2))
        self.register_function("random_int", (INTEGER, INTEGER), INTEGER)

        self.register_function("resolution", (), time)
        self.register_function("steps", (time,), INTEGER)
        self.register_function("emit_spike", (), VOID)
        self.register_function("integrate_odes", (), VOID)
        self.register_function("print", type_rule=_print_rule)
        self.register_function("println", type_rule=_print_rule)
        self.register_function("info", (STRING,), VOID)

        for name in ("convolve", "cond_sum", "curr_sum"):
            self.register_function(name, type_rule=_convolve_rule)

        logger.debug(
            "type registry: %d predefined variables, %d builtin functions, %d type names",
            len(self._variables),
            len(self._functions),
            len(self._types),
        )

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def variable(self, name: str) -> Optional[VariableSymbol]:
        return self._variables.get(name)

    def function(self, name: str) -> Optional[FunctionSymbol]:
        return self._functions.get(name)

    def symbols(self) -> Iterator[VariableSymbol | FunctionSymbol | TypeNameSymbol]:
        """All global symbols: variables, then functions, then primitive type names."""
        yield from self._variables.values()
        yield from self._functions.values()
        yield from self._types.values()

    def resolve_datatype(self, datatype: DataType) -> TypeSymbol:
        """
        Type denoted by a declared data type.

        Raises:
            UnitParseError: if the name is neither a primitive type nor a unit
        """
        primitive = self._types.get(datatype.name)
        if primitive is not None:
            return primitive.type
        return unit_type(parse_unit(datatype.name))

    def is_type_name(self, name: str) -> bool:
        """
        True if a variable called ``name`` would shadow a type name.

        Single-letter base units (``m``, ``V``, ``g``...) are excluded since
        they are common variable names in neuron models.
        """
        if name in self._types:
            return True
        if len(name) == 1 and name in BASE_UNITS:
            return False
        try:
            lookup_unit(name)
        except UnitParseError:
            return False
        return True

    def derivative_type(self, t: TypeSymbol, order: int) -> TypeSymbol:
        """Type of the ``order``-th time derivative of a value of type ``t``."""
        if isinstance(t, ErrorType) or order == 0:
            return t
        unit = unit_of(t)
        if unit is None:
            raise IllegalExpression(f"Cannot differentiate a value of type {t}.")
        return unit_type(unit / self.time_unit**order)


_default: Optional[TypeRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> TypeRegistry:
    """The shared process-wide registry, built on first use."""
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = TypeRegistry()
    return _default

