"""
Normalization of the equations block into a first-order ODE system.

- ``x'' = f`` introduces the shadow state ``x__d`` with ``x__d' = f`` and
  ``x' = x__d``, unless an explicit equation ``x' = g`` is present; then
  ``x' = g``, where ``x'`` in ``g`` refers to the shadow.
- Aliases are inlined into the right-hand sides.
- Shapes given as functions of ``t`` become linear ODEs (see
  :mod:`nmlc.odes.shapes`); kernels without one are kept as functions of time
  and reported with a ``ShapeNotLinear`` warning.
- Each ``convolve(g, spikes)`` gets its own copy of the states of ``g``,
  named ``g__X__spikes``, ``g__X__spikes__d``, ... A spike in ``spikes`` adds
  the kernel's initial values to the copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import sympy as sp

from beartype.typing import Optional

from nmlc.backends.sympy import (
    SympyConverter,
    convolution_name,
    derivative_name,
    step_symbol,
    symbol,
    time_symbol,
)
from nmlc.config import SolverConfig
from nmlc.diagnostics import NO_POSITION, Diagnostic, DiagnosticCode, Severity, SourcePosition
from nmlc.errors import IllegalExpression, IncompatibleBufferType, MissingEquation
from nmlc.ir.equation import OdeEquation, Shape
from nmlc.ir.expr import Expr
from nmlc.ir.model import Neuron
from nmlc.ir.node import Node
from nmlc.ir.visitor import iter_expressions
from nmlc.kinds import EventKind
from nmlc.odes.plan import SpikeUpdate
from nmlc.odes.shapes import shape_to_ode
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.inference import annotate_types
from nmlc.typecheck.types import TypeSymbol, element_type, is_error, unit_of

logger = logging.getLogger("nmlc")

ZERO = sp.Integer(0)


@dataclass
class StateEquation:
    """
    One first-order equation ``name' = rhs``.

    ``variable`` is the model variable the state belongs to and ``order`` the
    derivative of that variable it stands for: ``g__d`` is ``g`` with order 1.
    ``source`` is the equation or shape defining ``rhs``; it is ``None`` for
    the identities ``x' = x__d``.
    """

    name: str
    variable: str
    order: int
    rhs: sp.Basic
    source: Optional[Node] = None
    initial_value: sp.Basic = ZERO
    aliases: frozenset[str] = frozenset()

    @property
    def symbol(self) -> sp.Symbol:
        return symbol(self.name)


@dataclass
class Kernel:
    """A shape as a linear ODE in the states ``name, name__d, ...``."""

    name: str
    order: int
    rhs: sp.Basic
    initial_values: tuple[sp.Basic, ...]
    node: Node

    def state_names(self, base: Optional[str] = None) -> list[str]:
        return [derivative_name(base or self.name, k) for k in range(self.order)]


@dataclass
class FirstOrderSystem:
    """The normalized equations of a neuron."""

    states: dict[str, StateEquation] = field(default_factory=dict)
    time: sp.Symbol = field(default_factory=time_symbol)
    step: sp.Symbol = field(default_factory=step_symbol)
    kernels: dict[str, Kernel] = field(default_factory=dict)
    spike_updates: list[SpikeUpdate] = field(default_factory=list)
    direct_kernels: dict[str, sp.Basic] = field(default_factory=dict)
    direct_convolutions: set[str] = field(default_factory=set)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return list(self.states)

    def symbols(self) -> dict[str, sp.Symbol]:
        return {name: eq.symbol for name, eq in self.states.items()}

    def rhs(self, name: str) -> sp.Basic:
        return self.states[name].rhs

    def add(self, eq: StateEquation) -> None:
        if eq.name in self.states:
            raise ValueError(f"State '{eq.name}' already has an equation")
        self.states[eq.name] = eq

    def __len__(self) -> int:
        return len(self.states)

    def __str__(self) -> str:
        return "\n".join(f"{name}' = {eq.rhs}" for name, eq in self.states.items())


class Normalizer:
    """Builds the :class:`FirstOrderSystem` of one neuron."""

    def __init__(self, neuron: Neuron, table: SymbolTable, config: Optional[SolverConfig] = None):
        self.neuron = neuron
        self.table = table
        self.config = config or SolverConfig()
        self.system = FirstOrderSystem(step=step_symbol(self.config.step_symbol))
        self.converter = SympyConverter(table, self._convolution, self.system.step)
        self._convolutions: dict[tuple[str, str], SourcePosition] = {}
        self._position = NO_POSITION

    def run(self) -> FirstOrderSystem:
        block = self.neuron.equations_block
        if block is not None:
            odes = self._group_odes(block.odes)
            for shape in block.shapes:
                if shape.name not in odes and shape.name not in self.system.kernels:
                    self._kernel(shape)
            for name, by_order in odes.items():
                self._ode(name, by_order)
            for (shape, buffer) in list(self._convolutions):
                self._convolved_copy(shape, buffer)
            self._referenced_kernels()
            self._resolve_derivatives()
        self._missing_equations()
        logger.debug(
            "normalized '%s' to %d first-order equation(s)", self.neuron.name, len(self.system)
        )
        return self.system

    # ------------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------------

    def _convert(
        self, expr: Expr, target: Optional[TypeSymbol] = None
    ) -> tuple[sp.Basic, frozenset[str]]:
        self.converter.inlined = set()
        self._position = expr.pos
        value = self.converter.convert(expr, target)
        return value, frozenset(self.converter.inlined)

    def _derivative_type(self, name: str, order: int) -> Optional[TypeSymbol]:
        """Type of the ``order``-th derivative of variable ``name``, if it has a unit."""
        sym = self.table.variable(name)
        if sym is None or is_error(sym.type) or unit_of(sym.type) is None:
            return None
        return self.table.registry.derivative_type(element_type(sym.type), order)

    def _convolution(self, func: str, shape: str, buffer: str) -> sp.Basic:
        name = convolution_name(shape, buffer)
        if (shape, buffer) in self._convolutions:
            return symbol(name)
        buf = self.table.variable(buffer)
        if buf is not None and buf.event == EventKind.CURRENT:
            self._convolutions[(shape, buffer)] = self._position
            self.system.diagnostics.append(
                IncompatibleBufferType(
                    shape, buffer, EventKind.CURRENT.value, self._position
                ).to_diagnostic()
            )
            return symbol(name)
        self._convolutions[(shape, buffer)] = self._position
        if shape in self.system.direct_kernels:
            self.system.direct_convolutions.add(name)
        return symbol(name)

    def _initial_value(self, name: str) -> sp.Basic:
        sym = self.table.variable(name)
        if sym is None or sym.initializer is None or not sym.is_state:
            return ZERO
        value, _ = self._convert(sym.initializer, sym.type)
        return value

    # ------------------------------------------------------------------------
    # Shapes
    # ------------------------------------------------------------------------

    def _kernel(self, shape: Shape) -> None:
        if shape.is_function_of_time:
            f, _ = self._convert(shape.rhs)
            ode = shape_to_ode(f, self.system.time, self.config.max_shape_order)
            if ode is None:
                self.system.direct_kernels[shape.name] = f
                self.system.diagnostics.append(
                    Diagnostic(
                        DiagnosticCode.SHAPE_NOT_LINEAR,
                        f"Shape '{shape.name}' does not satisfy a linear ODE of order up to "
                        f"{self.config.max_shape_order}; it is kept as a function of time.",
                        shape.pos,
                        Severity.WARNING,
                    )
                )
                return
            states = [symbol(derivative_name(shape.name, k)) for k in range(ode.order)]
            kernel = Kernel(shape.name, ode.order, ode.rhs(states), ode.initial_values, shape)
        else:
            order = shape.derivative_order
            rhs, _ = self._convert(shape.rhs, self._derivative_type(shape.name, order))
            kernel = Kernel(shape.name, order, rhs, self._shape_initial_values(shape), shape)
        self.system.kernels[shape.name] = kernel

    def _shape_initial_values(self, shape: Shape) -> tuple[sp.Basic, ...]:
        order = shape.derivative_order
        if not shape.initial_values:
            return tuple(ZERO for _ in range(order - 1)) + (sp.Integer(1),)
        if len(shape.initial_values) != order:
            self.system.diagnostics.append(
                IllegalExpression(
                    f"Shape '{shape.name}' of order {order} needs {order} initial values, "
                    f"got {len(shape.initial_values)}.",
                    shape.pos,
                ).to_diagnostic()
            )
        values = [self._convert(v)[0] for v in shape.initial_values[:order]]
        values += [ZERO] * (order - len(values))
        return tuple(values)

    def _convolved_copy(self, shape: str, buffer: str) -> None:
        kernel = self.system.kernels.get(shape)
        buf = self.table.variable(buffer)
        if kernel is None or (buf is not None and buf.event == EventKind.CURRENT):
            return
        base = convolution_name(shape, buffer)
        names = kernel.state_names(base)
        rename = {symbol(a): symbol(b) for a, b in zip(kernel.state_names(), names)}
        for k, name in enumerate(names):
            if k + 1 < kernel.order:
                rhs = symbol(names[k + 1])
            else:
                rhs = kernel.rhs.xreplace(rename)
            source = kernel.node if k + 1 == kernel.order else None
            self.system.add(StateEquation(name, base, k, rhs, source))
            increment = kernel.initial_values[k]
            if increment != 0:
                self.system.spike_updates.append(SpikeUpdate(buffer, name, increment))

    def _referenced_kernels(self) -> None:
        """Add the states of kernels used directly, not through a convolution."""
        added = True
        while added:
            added = False
            used = {s.name for eq in self.system.states.values() for s in eq.rhs.free_symbols}
            for kernel in self.system.kernels.values():
                names = kernel.state_names()
                if names[0] in self.system.states:
                    continue
                sym = self.table.variable(kernel.name)
                declared = sym is not None and sym.is_state
                if not declared and not used.intersection(names):
                    continue
                for k, name in enumerate(names):
                    rhs = symbol(names[k + 1]) if k + 1 < kernel.order else kernel.rhs
                    value = self._initial_value(name) if declared else kernel.initial_values[k]
                    source = kernel.node if k + 1 == kernel.order else None
                    self.system.add(StateEquation(name, kernel.name, k, rhs, source, value))
                added = True

    # ------------------------------------------------------------------------
    # Differential equations
    # ------------------------------------------------------------------------

    @staticmethod
    def _group_odes(odes: list[OdeEquation]) -> dict[str, dict[int, OdeEquation]]:
        grouped: dict[str, dict[int, OdeEquation]] = {}
        for eq in odes:
            grouped.setdefault(eq.name, {}).setdefault(eq.derivative_order, eq)
        return grouped

    def _ode(self, name: str, by_order: dict[int, OdeEquation]) -> None:
        order = max(by_order)
        if order < 1:
            return
        names = [derivative_name(name, k) for k in range(order)]
        for k, state in enumerate(names):
            eq = by_order.get(k + 1)
            if eq is not None:
                rhs, aliases = self._convert(eq.rhs, self._derivative_type(name, k + 1))
            else:
                rhs, aliases = symbol(names[k + 1]), frozenset()
            value = self._initial_value(state)
            self.system.add(StateEquation(state, name, k, rhs, eq, value, aliases))

    def _resolve_derivatives(self) -> None:
        """Replace ``x__d`` by the right-hand side of ``x`` where ``x__d`` is no state."""
        subs = {}
        for eq in self.system.states.values():
            shadow = derivative_name(eq.name)
            if shadow not in self.system.states:
                subs[symbol(shadow)] = eq.rhs
        if not subs:
            return
        for eq in self.system.states.values():
            if eq.rhs.free_symbols & set(subs):
                eq.rhs = eq.rhs.xreplace(subs)

    def _missing_equations(self) -> None:
        for sym in self.table.states:
            if sym.is_alias or not sym.is_continuous or is_error(sym.type):
                continue
            if sym.name in self.system.states or sym.name in self.system.direct_kernels:
                continue
            pos = sym.node.pos if sym.node is not None else NO_POSITION
            self.system.diagnostics.append(MissingEquation(sym.name, pos).to_diagnostic())


def first_order_system(
    neuron: Neuron, table: SymbolTable, config: Optional[SolverConfig] = None
) -> FirstOrderSystem:
    """
    Normalize the equations block of ``neuron`` into a first-order system.

    Expressions are typed first if they are not annotated yet; unit scales
    are taken from the annotations.
    """
    block = neuron.equations_block
    if block is not None and any(e.type is None for e in iter_expressions(block)):
        annotate_types(neuron, table)
    return Normalizer(neuron, table, config).run()


__all__ = [
    "StateEquation",
    "Kernel",
    "FirstOrderSystem",
    "Normalizer",
    "first_order_system",
]
