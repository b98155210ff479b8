"""
Symbols stored in the scopes of a symbol table.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Callable, Optional

from nmlc.ir.expr import Expr
from nmlc.ir.node import Node
from nmlc.ir.statement import Block
from nmlc.kinds import BlockKind, EventKind
from nmlc.typecheck.types import (
    BOOLEAN,
    INTEGER,
    BufferType,
    TypeSymbol,
    VectorType,
    element_type,
    is_numeric,
)

# Polymorphic builtin rule: maps argument types to the result type, or None
# when no overload matches. May raise a TypeCheckError for malformed calls.
TypeRule = Callable[[tuple[TypeSymbol, ...]], Optional[TypeSymbol]]


@dataclass(eq=False)
class Symbol:
    """Base class for all symbols."""

    name: str
    scope_id: Optional[int] = field(default=None, kw_only=True)
    node: Optional[Node] = field(default=None, kw_only=True, repr=False)


@dataclass(eq=False)
class VariableSymbol(Symbol):
    """
    A variable: state, parameter, internal, equation alias, shape, input
    buffer, local or predefined.

    ``order`` is the textual position of the declaring statement; variables of
    the equations block have an empty order and are visible everywhere.
    """

    type: TypeSymbol
    block: BlockKind
    is_alias: bool = False
    initializer: Optional[Expr] = None
    invariant: Optional[Expr] = None
    size_param: Optional[str] = None
    order: tuple[int, ...] = ()
    is_shape: bool = False

    @property
    def is_vector(self) -> bool:
        return isinstance(self.type, VectorType)

    @property
    def is_state(self) -> bool:
        return self.block == BlockKind.STATE

    @property
    def is_buffer(self) -> bool:
        return isinstance(element_type_of_buffer(self.type), BufferType)

    @property
    def event(self) -> Optional[EventKind]:
        t = element_type_of_buffer(self.type)
        return t.event if isinstance(t, BufferType) else None

    @property
    def is_continuous(self) -> bool:
        """True for real or unit typed variables (not integer, boolean or string)."""
        t = element_type(self.type)
        return is_numeric(t) and t != INTEGER and t != BOOLEAN


def element_type_of_buffer(t: TypeSymbol) -> TypeSymbol:
    """Strip a vector wrapper, leaving a buffer type intact."""
    while isinstance(t, VectorType):
        t = t.element
    return t


@dataclass(eq=False)
class FunctionSymbol(Symbol):
    """A builtin or user defined function."""

    param_types: tuple[TypeSymbol, ...]
    return_type: TypeSymbol
    body: Optional[Block] = None
    type_rule: Optional[TypeRule] = field(default=None, repr=False)
    builtin: bool = False

    @property
    def signature(self) -> str:
        if self.type_rule is not None:
            return f"{self.name}(...)"
        params = ", ".join(str(t) for t in self.param_types)
        return f"{self.name}({params}) -> {self.return_type}"


@dataclass(eq=False)
class TypeNameSymbol(Symbol):
    """A type name: primitive (``real``) or unit (``mV``)."""

    type: TypeSymbol
