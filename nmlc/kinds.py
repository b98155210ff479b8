"""
Kinds shared by the IR, the type system and the symbol table.
"""

from enum import Enum, auto


class BlockKind(Enum):
    """Block that owns a variable symbol."""

    STATE = auto()  # state block
    PARAMETER = auto()  # parameters block
    INTERNAL = auto()  # internals block
    EQUATION = auto()  # order-0 definitions in the equations block
    SHAPE = auto()  # shape kernels declared in the equations block
    INPUT_BUFFER = auto()  # spike / current input buffers
    LOCAL = auto()  # function parameters and block-local declarations
    PREDEFINED = auto()  # registry variables such as t


class EventKind(Enum):
    """Event type carried by an input buffer or emitted by a neuron."""

    SPIKE = "spike"
    CURRENT = "current"


class ScopeKind(Enum):
    """Kind of a node in the scope tree."""

    GLOBAL = auto()
    NEURON = auto()
    FUNCTION = auto()
    BLOCK = auto()
