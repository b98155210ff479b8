"""
Type system: type symbols, compatibility rules and expression type inference.
"""

from nmlc.typecheck.types import (
    TypeSymbol,
    PrimitiveType,
    UnitType,
    VectorType,
    BufferType,
    ErrorType,
    BOOLEAN,
    INTEGER,
    REAL,
    STRING,
    VOID,
    unit_type,
    element_type,
    is_numeric,
    is_boolean,
    is_error,
    dimension_of,
    compatible,
    is_assignable,
)

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
    "unit_type",
    "element_type",
    "is_numeric",
    "is_boolean",
    "is_error",
    "dimension_of",
    "compatible",
    "is_assignable",
]
