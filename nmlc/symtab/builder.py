"""
Symbol table construction.

The builder walks each block of a neuron once. It creates the scope tree,
declares one symbol per declared name, stamps statements with their textual
order and binds every AST node to its enclosing scope.

Scope layout::

    0  global      registry symbols (t, e, exp, convolve, ...)
    1  neuron      state, parameters, internals, equations, input buffers, functions
    *  function    parameters and body of one user function
    *  block       update body and every nested if/for/while body
"""

from __future__ import annotations

import logging

from beartype.typing import Optional

from nmlc.errors import UnitParseError, UnknownUnit
from nmlc.ir.equation import EquationsBlock, OdeAlias, Shape
from nmlc.ir.expr import Expr
from nmlc.ir.model import (
    FunctionDecl,
    InputBlock,
    Neuron,
    OutputBlock,
    UpdateBlock,
    VariableBlock,
)
from nmlc.ir.node import Node
from nmlc.ir.statement import (
    Block,
    DataType,
    Declaration,
    ForStatement,
    IfStatement,
    Statement,
    WhileStatement,
)
from nmlc.ir.visitor import children
from nmlc.kinds import BlockKind, EventKind, ScopeKind
from nmlc.symtab.registry import GLOBAL_SCOPE_ID, TypeRegistry, default_registry
from nmlc.symtab.symbols import FunctionSymbol, VariableSymbol
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.types import (
    REAL,
    VOID,
    BufferType,
    ErrorType,
    TypeSymbol,
    VectorType,
)

logger = logging.getLogger("nmlc")

BLOCK_LABELS = {
    BlockKind.STATE: "state",
    BlockKind.PARAMETER: "parameters",
    BlockKind.INTERNAL: "internals",
}

DEFAULT_CURRENT_UNIT = "pA"


class SymbolTableBuilder:
    """Populates a :class:`SymbolTable` from its neuron."""

    def __init__(self, table: SymbolTable, strict: bool = False):
        self.table = table
        self.registry: TypeRegistry = table.registry
        self.strict = strict

    @property
    def neuron_scope(self) -> int:
        return self.table.neuron_scope_id

    # ------------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------------

    def build(self) -> SymbolTable:
        neuron = self.table.neuron
        scope = self.table.new_scope(ScopeKind.NEURON, GLOBAL_SCOPE_ID, neuron.name)
        self.table.neuron_scope_id = scope.id
        neuron.bind_scope(scope.id)

        # functions are callable from anywhere in the neuron
        for element in neuron.body:
            if isinstance(element, FunctionDecl):
                self._declare_function(element)

        for index, element in enumerate(neuron.body):
            if isinstance(element, VariableBlock):
                self._variable_block(index, element)
            elif isinstance(element, InputBlock):
                self._input_block(index, element)
            elif isinstance(element, OutputBlock):
                element.bind_scope(scope.id)
            elif isinstance(element, UpdateBlock):
                element.bind_scope(scope.id)
                self._block(element.body, scope.id, (index,), "update")
            elif isinstance(element, FunctionDecl):
                self._function_body(index, element)

        # equations last: shapes may already be declared as state variables
        for element in neuron.body:
            if isinstance(element, EquationsBlock):
                self._equations_block(element)

        logger.debug(
            "symbol table for '%s': %d scopes, %d duplicate(s)",
            neuron.name,
            len(self.table.scopes),
            len(self.table.duplicates),
        )
        return self.table

    def refresh_block(self, block: VariableBlock, declaration: Declaration) -> list[VariableSymbol]:
        """Re-resolve ``block`` after ``declaration`` was appended to it."""
        index = self.table.neuron.body.index(block)
        block.bind_scope(self.neuron_scope)
        position = block.declarations.index(declaration)
        return self._declaration(
            declaration,
            self.neuron_scope,
            (index, position),
            block.kind,
            BLOCK_LABELS[block.kind],
        )

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _resolve_type(self, datatype: DataType, node: Node) -> TypeSymbol:
        try:
            return self.registry.resolve_datatype(datatype)
        except UnitParseError:
            self.table.diagnostics.append(UnknownUnit(datatype.name, node.pos).to_diagnostic())
            return ErrorType()

    def _declare(self, scope_id: int, symbol, label: str, node: Node) -> bool:
        ok = self.table.declare(scope_id, symbol, label, node.pos)
        if not ok and self.strict:
            raise self.table.duplicates[-1]
        return ok

    def _bind_tree(self, node: Node, scope_id: int) -> None:
        """Bind ``node`` and its descendants, stopping at nested blocks."""
        stack = [node]
        while stack:
            current = stack.pop()
            current.bind_scope(scope_id)
            stack.extend(c for c in children(current) if not isinstance(c, Block))

    # ------------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------------

    def _declaration(
        self,
        decl: Declaration,
        scope_id: int,
        order: tuple[int, ...],
        kind: BlockKind,
        label: str,
    ) -> list[VariableSymbol]:
        decl.order = order
        self._bind_tree(decl, scope_id)
        base = self._resolve_type(decl.datatype, decl)
        t = VectorType(base, decl.size_param) if decl.size_param else base
        created = []
        for name in decl.names:
            sym = VariableSymbol(
                name,
                t,
                kind,
                is_alias=decl.is_alias,
                initializer=decl.expr,
                invariant=decl.invariant,
                size_param=decl.size_param,
                order=order,
                node=decl,
            )
            if self._declare(scope_id, sym, label, decl):
                created.append(sym)
        return created

    def _variable_block(self, index: int, block: VariableBlock) -> None:
        block.bind_scope(self.neuron_scope)
        label = BLOCK_LABELS[block.kind]
        for j, decl in enumerate(block.declarations):
            self._declaration(decl, self.neuron_scope, (index, j), block.kind, label)

    def _input_block(self, index: int, block: InputBlock) -> None:
        block.bind_scope(self.neuron_scope)
        for j, line in enumerate(block.lines):
            line.bind_scope(self.neuron_scope)
            if line.datatype is not None:
                element = self._resolve_type(line.datatype, line)
            elif line.kind == EventKind.CURRENT:
                element = self.registry.resolve_datatype(DataType(DEFAULT_CURRENT_UNIT))
            else:
                element = REAL
            t: TypeSymbol = BufferType(element, line.kind)
            if line.size_param:
                t = VectorType(t, line.size_param)
            sym = VariableSymbol(
                line.name,
                t,
                BlockKind.INPUT_BUFFER,
                size_param=line.size_param,
                order=(index, j),
                node=line,
            )
            self._declare(self.neuron_scope, sym, "input", line)

    def _declare_function(self, func: FunctionDecl) -> None:
        params = tuple(self._resolve_type(p.datatype, p) for p in func.parameters)
        ret = VOID if func.return_type is None else self._resolve_type(func.return_type, func)
        sym = FunctionSymbol(func.name, params, ret, body=func.body, node=func)
        self._declare(self.neuron_scope, sym, "functions", func)

    def _function_body(self, index: int, func: FunctionDecl) -> None:
        func.bind_scope(self.neuron_scope)
        scope = self.table.new_scope(ScopeKind.FUNCTION, self.neuron_scope, func.name)
        label = f"function {func.name}"
        for p in func.parameters:
            p.bind_scope(scope.id)
            sym = VariableSymbol(
                p.name,
                self._resolve_type(p.datatype, p),
                BlockKind.LOCAL,
                order=(index, -1),
                node=p,
            )
            self._declare(scope.id, sym, label, p)
        func.body.bind_scope(scope.id)
        self._statements(func.body.statements, scope.id, (index,), label)

    def _block(self, block: Block, parent: int, prefix: tuple[int, ...], label: str) -> None:
        scope = self.table.new_scope(ScopeKind.BLOCK, parent, label)
        block.bind_scope(scope.id)
        self._statements(block.statements, scope.id, prefix, label)

    def _statements(
        self,
        statements: list[Statement],
        scope_id: int,
        prefix: tuple[int, ...],
        label: str,
    ) -> None:
        for k, stmt in enumerate(statements):
            order = prefix + (k,)
            stmt.order = order
            stmt.bind_scope(scope_id)
            if isinstance(stmt, Declaration):
                self._declaration(stmt, scope_id, order, BlockKind.LOCAL, label)
            elif isinstance(stmt, IfStatement):
                for b, (cond, body) in enumerate(stmt.branches):
                    self._bind_tree(cond, scope_id)
                    self._block(body, scope_id, order + (b,), label)
                if stmt.else_block is not None:
                    self._block(stmt.else_block, scope_id, order + (len(stmt.branches),), label)
            elif isinstance(stmt, ForStatement):
                for expr in (stmt.iterator, stmt.start, stmt.stop):
                    self._bind_tree(expr, scope_id)
                self._block(stmt.body, scope_id, order + (0,), label)
            elif isinstance(stmt, WhileStatement):
                self._bind_tree(stmt.condition, scope_id)
                self._block(stmt.body, scope_id, order + (0,), label)
            else:
                self._bind_tree(stmt, scope_id)

    def _equations_block(self, block: EquationsBlock) -> None:
        self._bind_tree(block, self.neuron_scope)
        for element in block.elements:
            if isinstance(element, OdeAlias):
                sym = VariableSymbol(
                    element.name,
                    self._resolve_type(element.datatype, element),
                    BlockKind.EQUATION,
                    is_alias=True,
                    initializer=element.expr,
                    node=element,
                )
                self._declare(self.neuron_scope, sym, "equations", element)
            elif isinstance(element, Shape):
                self._shape(element)

    def _shape(self, shape: Shape) -> None:
        existing = self.table.lookup_local(shape.name, self.neuron_scope)
        if isinstance(existing, VariableSymbol):
            if existing.is_state:
                existing.is_shape = True
                return
            if existing.is_shape and not shape.is_function_of_time:
                return
        t = REAL if shape.datatype is None else self._resolve_type(shape.datatype, shape)
        initializer: Optional[Expr] = shape.rhs if shape.is_function_of_time else None
        sym = VariableSymbol(
            shape.name,
            t,
            BlockKind.SHAPE,
            initializer=initializer,
            is_shape=True,
            node=shape,
        )
        self._declare(self.neuron_scope, sym, "equations", shape)


def build_symbol_table(
    neuron: Neuron,
    registry: Optional[TypeRegistry] = None,
    strict: bool = False,
) -> SymbolTable:
    """
    Build the symbol table of ``neuron``.

    Duplicate declarations are recorded in ``table.duplicates``; with
    ``strict=True`` the first one is raised as
    :class:`~nmlc.errors.DuplicateSymbol` instead.
    """
    table = SymbolTable(neuron, registry or default_registry())
    return SymbolTableBuilder(table, strict).build()
