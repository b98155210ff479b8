"""
Model representation in the IR.

A :class:`Neuron` is an ordered list of body elements (variable blocks, the
equations block, input/output/update blocks and functions) kept in textual
order. Accessors return the individual blocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Optional, Union

from nmlc.ir.equation import EquationsBlock
from nmlc.ir.expr import Expr
from nmlc.ir.node import Node
from nmlc.ir.statement import Block, DataType, Declaration
from nmlc.kinds import BlockKind, EventKind

VARIABLE_BLOCK_KINDS = (BlockKind.STATE, BlockKind.PARAMETER, BlockKind.INTERNAL)


@dataclass(eq=False)
class VariableBlock(Node):
    """State, parameters or internals block."""

    kind: BlockKind
    declarations: list[Declaration] = field(default_factory=list)

    def __post_init__(self):
        if self.kind not in VARIABLE_BLOCK_KINDS:
            raise ValueError(f"{self.kind} is not a variable block kind")

    @property
    def names(self) -> list[str]:
        return [n for d in self.declarations for n in d.names]


@dataclass(eq=False)
class InputLine(Node):
    """
    One input buffer declaration.

    Examples:
        spikes_ex nS <- excitatory spike   -> InputLine("spikes_ex", EventKind.SPIKE, DataType("nS"), ("excitatory",))
        I_stim pA <- current               -> InputLine("I_stim", EventKind.CURRENT, DataType("pA"))
    """

    name: str
    kind: EventKind
    datatype: Optional[DataType] = None
    qualifiers: tuple[str, ...] = ()
    size_param: Optional[str] = None

    def __str__(self):
        quals = " ".join(self.qualifiers)
        dt = f" {self.datatype}" if self.datatype else ""
        return f"{self.name}{dt} <- {quals + ' ' if quals else ''}{self.kind.value}"


@dataclass(eq=False)
class InputBlock(Node):
    lines: list[InputLine] = field(default_factory=list)


@dataclass(eq=False)
class OutputBlock(Node):
    kind: EventKind = EventKind.SPIKE


@dataclass(eq=False)
class UpdateBlock(Node):
    body: Block = field(default_factory=Block)


@dataclass(eq=False)
class Parameter(Node):
    """Formal parameter of a user function."""

    name: str
    datatype: DataType


@dataclass(eq=False)
class FunctionDecl(Node):
    """
    User function::

        function V_inf(V mV) real:
            return 1 / (1 + exp(-V / 10 mV))
        end
    """

    name: str
    parameters: list[Parameter] = field(default_factory=list)
    return_type: Optional[DataType] = None
    body: Block = field(default_factory=Block)

    @property
    def signature(self) -> str:
        params = ", ".join(str(p.datatype) for p in self.parameters)
        ret = f" {self.return_type}" if self.return_type else ""
        return f"({params}){ret}"


BodyElement = Union[VariableBlock, EquationsBlock, InputBlock, OutputBlock, UpdateBlock, FunctionDecl]


@dataclass(eq=False)
class Neuron(Node):
    """A named model: the unit of compilation."""

    name: str
    body: list[BodyElement] = field(default_factory=list)

    def _first(self, cls: type, kind: Optional[BlockKind] = None):
        for element in self.body:
            if isinstance(element, cls) and (kind is None or element.kind == kind):
                return element
        return None

    @property
    def state_block(self) -> Optional[VariableBlock]:
        return self._first(VariableBlock, BlockKind.STATE)

    @property
    def parameter_block(self) -> Optional[VariableBlock]:
        return self._first(VariableBlock, BlockKind.PARAMETER)

    @property
    def internal_block(self) -> Optional[VariableBlock]:
        return self._first(VariableBlock, BlockKind.INTERNAL)

    @property
    def equations_block(self) -> Optional[EquationsBlock]:
        return self._first(EquationsBlock)

    @property
    def input_block(self) -> Optional[InputBlock]:
        return self._first(InputBlock)

    @property
    def output_block(self) -> Optional[OutputBlock]:
        return self._first(OutputBlock)

    @property
    def update_block(self) -> Optional[UpdateBlock]:
        return self._first(UpdateBlock)

    @property
    def functions(self) -> list[FunctionDecl]:
        return [e for e in self.body if isinstance(e, FunctionDecl)]

    def variable_block(self, kind: BlockKind) -> Optional[VariableBlock]:
        return self._first(VariableBlock, kind)

    def parameter_invariants(self) -> list[Expr]:
        """Invariants attached to parameter declarations, in declaration order."""
        block = self.parameter_block
        if block is None:
            return []
        return [d.invariant for d in block.declarations if d.invariant is not None]

    def add_to_block(self, kind: BlockKind, declaration: Declaration) -> VariableBlock:
        """
        Append ``declaration`` to the state or internals block, creating the
        block if the model has none. Returns the block.
        """
        if kind not in (BlockKind.STATE, BlockKind.INTERNAL):
            raise ValueError(f"Declarations can only be added to state or internals, not {kind}")
        block = self.variable_block(kind)
        if block is None:
            block = VariableBlock(kind)
            self.body.append(block)
        block.declarations.append(declaration)
        return block

    def add_to_state_block(self, declaration: Declaration) -> VariableBlock:
        return self.add_to_block(BlockKind.STATE, declaration)

    def add_to_internal_block(self, declaration: Declaration) -> VariableBlock:
        return self.add_to_block(BlockKind.INTERNAL, declaration)

    def __str__(self):
        return f"neuron {self.name}"


@dataclass
class CompilationUnit:
    """Several neurons compiled together."""

    neurons: list[Neuron] = field(default_factory=list)
    source: str = ""

    def get(self, name: str) -> Optional[Neuron]:
        for n in self.neurons:
            if n.name == name:
                return n
        return None
