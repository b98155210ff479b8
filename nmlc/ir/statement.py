"""
Statement representation in the IR.

Statements appear in the variable blocks (declarations), the update block and
function bodies. Unlike the equations block they execute sequentially, so a
name must be declared before it is used. The symbol table builder stamps every
statement with ``order``, a tuple that sorts in textual order across nested
blocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Optional, Union

from nmlc.ir.expr import Expr, FunctionCall, VarRef
from nmlc.ir.node import Node

ASSIGNMENT_OPS = ("=", "+=", "-=", "*=", "/=")


@dataclass(frozen=True)
class DataType:
    """Declared data type, a primitive name or a unit expression: ``real``, ``mV``, ``nS/ms``."""

    name: str

    def __str__(self):
        return self.name


@dataclass(eq=False)
class Statement(Node):
    """Base class for all statements."""

    order: tuple[int, ...] = field(default=(), kw_only=True, repr=False)


@dataclass(eq=False)
class Declaration(Statement):
    """
    Variable declaration.

    Examples:
        V_m mV = E_L                    -> Declaration(("V_m",), DataType("mV"), VarRef("E_L"))
        tau ms = 10 ms [[tau > 0 ms]]   -> Declaration(..., invariant=BinaryOp(">", ...))
        g_ex[n_receptors] nS = 0 nS     -> Declaration(..., size_param="n_receptors")
        function I pA = g * V           -> Declaration(..., is_alias=True)
    """

    names: tuple[str, ...]
    datatype: DataType
    expr: Optional[Expr] = None
    invariant: Optional[Expr] = None
    size_param: Optional[str] = None
    is_alias: bool = False

    def __post_init__(self):
        if not self.names:
            raise ValueError("Declaration needs at least one name")

    def __str__(self):
        prefix = "function " if self.is_alias else ""
        size = f"[{self.size_param}]" if self.size_param else ""
        init = f" = {self.expr}" if self.expr is not None else ""
        inv = f" [[{self.invariant}]]" if self.invariant is not None else ""
        return f"{prefix}{', '.join(self.names)}{size} {self.datatype}{init}{inv}"


@dataclass(eq=False)
class Assignment(Statement):
    """Assignment statement: target = expr (or a compound ``+=``, ``-=``, ...)."""

    target: VarRef
    expr: Expr
    op: str = "="

    def __post_init__(self):
        if self.op not in ASSIGNMENT_OPS:
            raise ValueError(f"Unknown assignment operator '{self.op}'")

    def __str__(self):
        return f"{self.target} {self.op} {self.expr}"


@dataclass(eq=False)
class Block(Node):
    """Ordered sequence of statements with its own nested scope."""

    statements: list[Statement] = field(default_factory=list)

    def __str__(self):
        return "\n".join(str(s) for s in self.statements)


@dataclass(eq=False)
class IfStatement(Statement):
    """
    Conditional statement: if cond: ... elif cond: ... else: ... end

    ``branches`` holds the (condition, block) pairs of the ``if`` and every ``elif``.
    """

    branches: list[tuple[Expr, Block]]
    else_block: Optional[Block] = None

    def __str__(self):
        result = []
        for i, (cond, block) in enumerate(self.branches):
            result.append(f"{'if' if i == 0 else 'elif'} {cond}:")
            result.extend(f"  {s}" for s in block.statements)
        if self.else_block is not None:
            result.append("else:")
            result.extend(f"  {s}" for s in self.else_block.statements)
        result.append("end")
        return "\n".join(result)


@dataclass(eq=False)
class ForStatement(Statement):
    """
    For loop over a numeric range: for i in start ... stop step s: ... end

    The iterator must be a previously declared numeric variable.
    """

    iterator: VarRef
    start: Expr
    stop: Expr
    body: Block
    step: Union[int, float] = 1

    def __str__(self):
        lines = [f"for {self.iterator} in {self.start} ... {self.stop} step {self.step}:"]
        lines.extend(f"  {s}" for s in self.body.statements)
        lines.append("end")
        return "\n".join(lines)


@dataclass(eq=False)
class WhileStatement(Statement):
    """While loop: while condition: ... end"""

    condition: Expr
    body: Block

    def __str__(self):
        lines = [f"while {self.condition}:"]
        lines.extend(f"  {s}" for s in self.body.statements)
        lines.append("end")
        return "\n".join(lines)


@dataclass(eq=False)
class ReturnStatement(Statement):
    """Return from a function, with an optional value."""

    expr: Optional[Expr] = None

    def __str__(self):
        return f"return {self.expr}" if self.expr is not None else "return"


@dataclass(eq=False)
class CallStatement(Statement):
    """Function call used as a statement, e.g. ``emit_spike()``."""

    call: FunctionCall

    def __str__(self):
        return str(self.call)
