"""
Type symbols.

Every expression of a model is annotated with one of:

- :class:`PrimitiveType` (``boolean``, ``integer``, ``real``, ``string``, ``void``)
- :class:`UnitType`, a physical unit (dimension plus scale)
- :class:`VectorType`, a vector of another type with a size parameter
- :class:`BufferType`, the element type of a spike or current input buffer
- :class:`ErrorType`, the sentinel produced by a failed inference

``ErrorType`` is compatible with every other type so that one defect does not
cascade into a chain of follow-up diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction

from beartype.typing import Optional

from nmlc.errors import SemanticError
from nmlc.kinds import EventKind
from nmlc.units import DIMENSIONLESS, Dimension, Unit

__all__ = [
    "TypeSymbol",
    "PrimitiveType",
    "UnitType",
    "VectorType",
    "BufferType",
    "ErrorType",
    "BOOLEAN",
    "INTEGER",
    "REAL",
    "STRING",
    "VOID",
    "PRIMITIVES",
    "unit_type",
    "element_type",
    "is_numeric",
    "is_boolean",
    "is_error",
    "dimension_of",
    "scale_of",
    "unit_of",
    "compatible",
    "is_assignable",
]


@dataclass(frozen=True)
class TypeSymbol:
    """Base class of all types."""

    pass


@dataclass(frozen=True)
class PrimitiveType(TypeSymbol):
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class UnitType(TypeSymbol):
    unit: Unit

    @property
    def dimension(self) -> Dimension:
        return self.unit.dimension

    @property
    def scale(self) -> Fraction:
        return self.unit.scale

    def __str__(self):
        return str(self.unit)


@dataclass(frozen=True)
class VectorType(TypeSymbol):
    """Vector of ``element`` whose length is given by the parameter ``size``."""

    element: TypeSymbol
    size: str

    def __str__(self):
        return f"{self.element}[{self.size}]"


@dataclass(frozen=True)
class BufferType(TypeSymbol):
    """Input buffer of ``event`` kind carrying values of ``element`` type."""

    element: TypeSymbol
    event: EventKind

    def __str__(self):
        return f"{self.event.value} buffer<{self.element}>"


@dataclass(frozen=True)
class ErrorType(TypeSymbol):
    """
    Result of a failed inference.

    Only the node where inference failed carries the ``error``; its ancestors
    receive a silent ``ErrorType()``.
    """

    error: Optional[SemanticError] = field(default=None, compare=False)

    def __str__(self):
        return "<error>"


BOOLEAN = PrimitiveType("boolean")
INTEGER = PrimitiveType("integer")
REAL = PrimitiveType("real")
STRING = PrimitiveType("string")
VOID = PrimitiveType("void")

PRIMITIVES: dict[str, PrimitiveType] = {
    t.name: t for t in (BOOLEAN, INTEGER, REAL, STRING, VOID)
}


def unit_type(unit: Unit) -> TypeSymbol:
    """Type of a value in ``unit``; plain numbers collapse to ``real``."""
    if unit.is_dimensionless and unit.scale == 1:
        return REAL
    return UnitType(unit)


def element_type(t: TypeSymbol) -> TypeSymbol:
    """Strip vector and buffer wrappers."""
    while isinstance(t, (VectorType, BufferType)):
        t = t.element
    return t


def is_error(t: TypeSymbol) -> bool:
    return isinstance(t, ErrorType)


def is_numeric(t: TypeSymbol) -> bool:
    t = element_type(t)
    return t in (INTEGER, REAL) or isinstance(t, (UnitType, ErrorType))


def is_boolean(t: TypeSymbol) -> bool:
    t = element_type(t)
    return t == BOOLEAN or isinstance(t, ErrorType)


def dimension_of(t: TypeSymbol) -> Optional[Dimension]:
    """Dimension of a numeric type, ``None`` for non-numeric ones."""
    t = element_type(t)
    if t in (INTEGER, REAL):
        return Dimension()
    if isinstance(t, UnitType):
        return t.dimension
    return None


def scale_of(t: TypeSymbol) -> Fraction:
    t = element_type(t)
    if isinstance(t, UnitType):
        return t.scale
    return Fraction(1)


def unit_of(t: TypeSymbol) -> Optional[Unit]:
    """Unit of a numeric type; plain numbers are dimensionless."""
    t = element_type(t)
    if isinstance(t, UnitType):
        return t.unit
    if t in (INTEGER, REAL):
        return DIMENSIONLESS
    return None


def compatible(a: TypeSymbol, b: TypeSymbol) -> bool:
    """
    True if values of ``a`` and ``b`` may be combined by ``+``, ``-`` or a comparison.

    Numeric types are compatible iff their dimensions are equal; scales may
    differ. Non-numeric types must be equal.
    """
    a, b = element_type(a), element_type(b)
    if is_error(a) or is_error(b):
        return True
    da, db = dimension_of(a), dimension_of(b)
    if da is not None and db is not None:
        return da == db
    return a == b


def is_assignable(target: TypeSymbol, value: TypeSymbol) -> bool:
    """
    True if a value of type ``value`` may be stored in a variable of type ``target``.

    Allowed are equal dimensions (scale conversion is implicit) and widening a
    dimensionless ``integer`` to ``real``. A ``real`` never narrows to
    ``integer`` and no implicit cast crosses dimensions.
    """
    target, value = element_type(target), element_type(value)
    if is_error(target) or is_error(value):
        return True
    if target == value:
        return True
    if target == INTEGER:
        return False
    dt, dv = dimension_of(target), dimension_of(value)
    if dt is None or dv is None:
        return False
    return dt == dv
