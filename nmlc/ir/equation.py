"""
Equation representation in the IR.

The equations block is a simultaneous system: its elements may reference each
other regardless of textual order.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Optional, Union

from nmlc.ir.expr import Expr, VarRef
from nmlc.ir.node import Node
from nmlc.ir.statement import DataType


@dataclass(eq=False)
class OdeEquation(Node):
    """
    Differential equation for a state variable.

    Examples:
        V_m' = -V_m / tau               -> OdeEquation(VarRef("V_m", 1), ...)
        g'' = -g' / tau                 -> OdeEquation(VarRef("g", 2), ...)

    ``subsystem_id`` is set by the classifier.
    """

    lhs: VarRef
    rhs: Expr
    subsystem_id: Optional[int] = field(default=None, kw_only=True)

    @property
    def name(self) -> str:
        return self.lhs.name

    @property
    def derivative_order(self) -> int:
        return self.lhs.order

    def __str__(self):
        return f"{self.lhs} = {self.rhs}"


@dataclass(eq=False)
class OdeAlias(Node):
    """
    Order-0 equation that names an expression: ``function I_syn pA = g * (V_m - E)``.

    Aliases are substituted into every equation that uses them.
    """

    name: str
    datatype: DataType
    expr: Expr
    subsystem_id: Optional[int] = field(default=None, kw_only=True)

    @property
    def derivative_order(self) -> int:
        return 0

    def __str__(self):
        return f"function {self.name} {self.datatype} = {self.expr}"


@dataclass(eq=False)
class Shape(Node):
    """
    Impulse-response kernel convolved with an input buffer.

    Either a function of ``t`` (``lhs.order == 0``)::

        shape g_in = (e / tau) * t * exp(-t / tau)

    or an ODE in the shape variable with optional initial values for
    ``g, g', ...`` (defaults: all zero except the highest one, which is 1)::

        shape g_in'' = -2 / tau * g_in' - 1 / tau**2 * g_in
    """

    lhs: VarRef
    rhs: Expr
    datatype: Optional[DataType] = None
    initial_values: tuple[Expr, ...] = ()
    subsystem_id: Optional[int] = field(default=None, kw_only=True)

    @property
    def name(self) -> str:
        return self.lhs.name

    @property
    def derivative_order(self) -> int:
        return self.lhs.order

    @property
    def is_function_of_time(self) -> bool:
        return self.lhs.order == 0

    def __str__(self):
        return f"shape {self.lhs} = {self.rhs}"


EquationElement = Union[OdeEquation, OdeAlias, Shape]


@dataclass(eq=False)
class EquationsBlock(Node):
    """The equations block of a neuron."""

    elements: list[EquationElement] = field(default_factory=list)

    @property
    def odes(self) -> list[OdeEquation]:
        return [e for e in self.elements if isinstance(e, OdeEquation)]

    @property
    def aliases(self) -> list[OdeAlias]:
        return [e for e in self.elements if isinstance(e, OdeAlias)]

    @property
    def shapes(self) -> list[Shape]:
        return [e for e in self.elements if isinstance(e, Shape)]

    def __str__(self):
        return "\n".join(str(e) for e in self.elements)
