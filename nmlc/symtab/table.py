"""
Scope-arena symbol table.

Scopes are stored in a flat list and addressed by integer ids. Each scope
knows its parent id; resolution walks from a scope towards the root (the
global registry scope, id 0). AST nodes store the id of their enclosing scope.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Iterator, Optional

from nmlc.diagnostics import NO_POSITION, Diagnostic, SourcePosition
from nmlc.errors import DuplicateSymbol, UndefinedSymbol
from nmlc.ir.model import Neuron
from nmlc.ir.statement import Declaration
from nmlc.kinds import BlockKind, ScopeKind
from nmlc.symtab.registry import GLOBAL_SCOPE_ID, TypeRegistry
from nmlc.symtab.symbols import FunctionSymbol, Symbol, VariableSymbol


@dataclass(eq=False)
class Scope:
    """One node of the scope tree."""

    id: int
    kind: ScopeKind
    parent: Optional[int] = None
    name: str = ""
    symbols: dict[str, Symbol] = field(default_factory=dict)

    def __str__(self):
        return f"{self.kind.name.lower()} scope {self.id} '{self.name}'"


class SymbolTable:
    """
    Symbols of one neuron.

    Built by :func:`nmlc.symtab.build_symbol_table`; read-only afterwards,
    except for :meth:`add_declaration`.
    """

    def __init__(self, neuron: Neuron, registry: TypeRegistry):
        self.neuron = neuron
        self.registry = registry
        self.scopes: list[Scope] = []
        self.duplicates: list[DuplicateSymbol] = []
        self.diagnostics: list[Diagnostic] = []
        self.neuron_scope_id: int = -1

        root = self.new_scope(ScopeKind.GLOBAL, None, "global")
        assert root.id == GLOBAL_SCOPE_ID
        for sym in registry.symbols():
            root.symbols[sym.name] = sym

    # ------------------------------------------------------------------------
    # Scope arena
    # ------------------------------------------------------------------------

    def new_scope(self, kind: ScopeKind, parent: Optional[int], name: str = "") -> Scope:
        scope = Scope(len(self.scopes), kind, parent, name)
        self.scopes.append(scope)
        return scope

    def scope(self, scope_id: int) -> Scope:
        return self.scopes[scope_id]

    def ancestors(self, scope_id: int) -> Iterator[Scope]:
        """``scope_id`` and its enclosing scopes, innermost first."""
        current: Optional[int] = scope_id
        while current is not None:
            scope = self.scopes[current]
            yield scope
            current = scope.parent

    def is_within(self, scope_id: int, outer_id: int) -> bool:
        return any(s.id == outer_id for s in self.ancestors(scope_id))

    # ------------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------------

    def declare(
        self,
        scope_id: int,
        symbol: Symbol,
        block: str = "",
        position: SourcePosition = NO_POSITION,
    ) -> bool:
        """
        Insert ``symbol`` into a scope.

        Returns False and records a :class:`DuplicateSymbol` if the name is
        already taken in that scope (variables and functions share one
        namespace).
        """
        scope = self.scopes[scope_id]
        if symbol.name in scope.symbols:
            self.duplicates.append(
                DuplicateSymbol(symbol.name, block or scope.name, position)
            )
            return False
        if symbol.scope_id is None:
            symbol.scope_id = scope_id
        scope.symbols[symbol.name] = symbol
        return True

    # ------------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------------

    def lookup(self, name: str, scope_id: Optional[int] = None) -> Optional[Symbol]:
        """Innermost symbol called ``name`` visible from ``scope_id``, or None."""
        start = self.neuron_scope_id if scope_id is None else scope_id
        for scope in self.ancestors(start):
            sym = scope.symbols.get(name)
            if sym is not None:
                return sym
        return None

    def lookup_local(self, name: str, scope_id: int) -> Optional[Symbol]:
        return self.scopes[scope_id].symbols.get(name)

    def resolve(
        self,
        name: str,
        scope_id: Optional[int] = None,
        position: SourcePosition = NO_POSITION,
    ) -> Symbol:
        """
        Like :meth:`lookup` but raises.

        Raises:
            UndefinedSymbol: if no visible scope declares ``name``
        """
        sym = self.lookup(name, scope_id)
        if sym is None:
            raise UndefinedSymbol(name, position)
        return sym

    def variable(self, name: str, scope_id: Optional[int] = None) -> Optional[VariableSymbol]:
        sym = self.lookup(name, scope_id)
        return sym if isinstance(sym, VariableSymbol) else None

    def function(self, name: str, scope_id: Optional[int] = None) -> Optional[FunctionSymbol]:
        sym = self.lookup(name, scope_id)
        return sym if isinstance(sym, FunctionSymbol) else None

    # ------------------------------------------------------------------------
    # Neuron-level queries
    # ------------------------------------------------------------------------

    def variables(self, kind: Optional[BlockKind] = None) -> list[VariableSymbol]:
        """Variables declared at neuron level, optionally filtered by block."""
        if self.neuron_scope_id < 0:
            return []
        return [
            s
            for s in self.scopes[self.neuron_scope_id].symbols.values()
            if isinstance(s, VariableSymbol) and (kind is None or s.block == kind)
        ]

    @property
    def states(self) -> list[VariableSymbol]:
        return self.variables(BlockKind.STATE)

    @property
    def parameters(self) -> list[VariableSymbol]:
        return self.variables(BlockKind.PARAMETER)

    @property
    def internals(self) -> list[VariableSymbol]:
        return self.variables(BlockKind.INTERNAL)

    @property
    def shapes(self) -> list[VariableSymbol]:
        return [s for s in self.variables() if s.is_shape]

    @property
    def buffers(self) -> list[VariableSymbol]:
        return self.variables(BlockKind.INPUT_BUFFER)

    @property
    def functions(self) -> list[FunctionSymbol]:
        if self.neuron_scope_id < 0:
            return []
        return [
            s
            for s in self.scopes[self.neuron_scope_id].symbols.values()
            if isinstance(s, FunctionSymbol)
        ]

    # ------------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------------

    def add_declaration(self, kind: BlockKind, declaration: Declaration) -> list[VariableSymbol]:
        """
        Append a helper ``declaration`` to the state or internals block of the
        neuron and resolve that block again.

        Only the affected block is re-resolved; the rest of the table is left
        untouched. Returns the symbols created for the declaration.
        """
        from nmlc.symtab.builder import SymbolTableBuilder

        block = self.neuron.add_to_block(kind, declaration)
        return SymbolTableBuilder(self).refresh_block(block, declaration)

    def __str__(self):
        lines = []
        for scope in self.scopes:
            parent = "-" if scope.parent is None else scope.parent
            lines.append(f"{scope} (parent {parent}): {', '.join(scope.symbols)}")
        return "\n".join(lines)
