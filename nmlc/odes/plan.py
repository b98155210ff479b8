"""
Solver plan produced by the equation classifier.

The plan lists the independent sub-systems of a neuron's first-order ODE
system. Each carries one directive: :class:`ExactIntegration` with the
symbolic propagator for linear time-invariant sub-systems, or
:class:`NumericalIntegration` with the right-hand sides for the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import sympy as sp

from beartype.typing import Optional, Union

from nmlc.diagnostics import Diagnostic
from nmlc.odes.propagator import PropagatorCoefficients


class IntegrationKind(Enum):
    EXACT = "exact-integration"
    NUMERICAL = "numerical-integration"


@dataclass(frozen=True)
class SpikeUpdate:
    """On a spike in ``buffer``: ``state += increment * buffer``."""

    buffer: str
    state: str
    increment: sp.Basic


@dataclass
class ExactIntegration:
    """
    Closed-form update of a linear time-invariant sub-system::

        x[n+1] = P x[n] + q
    """

    states: tuple[str, ...]
    propagator: PropagatorCoefficients

    @property
    def kind(self) -> IntegrationKind:
        return IntegrationKind.EXACT

    def update_expressions(self) -> dict[str, sp.Basic]:
        """Right-hand side of the one-step update of every state."""
        x = sp.Matrix(self.propagator.states)
        new = self.propagator.propagator * x + self.propagator.update
        return {name: new[i] for i, name in enumerate(self.states)}


@dataclass
class NumericalIntegration:
    """Right-hand sides to be integrated with an adaptive-step method."""

    states: tuple[str, ...]
    rhs: dict[str, sp.Basic]
    method: str = "rkf45"
    abs_tol: Union[int, float] = 1e-3
    rel_tol: Union[int, float] = 0.0

    @property
    def kind(self) -> IntegrationKind:
        return IntegrationKind.NUMERICAL


Directive = Union[ExactIntegration, NumericalIntegration]


@dataclass
class SubSystem:
    """A connected component of the dependency graph of the first-order system."""

    id: int
    states: tuple[str, ...]
    directive: Directive

    @property
    def kind(self) -> IntegrationKind:
        return self.directive.kind

    @property
    def is_exact(self) -> bool:
        return self.kind == IntegrationKind.EXACT

    def __len__(self) -> int:
        return len(self.states)


@dataclass
class SolverPlan:
    """
    Result of equation classification.

    Attributes:
        subsystems: independent sub-systems in state order
        initial_values: initial value of every state
        spike_updates: increments applied when a spike arrives in a buffer
        direct_kernels: shapes without a linear ODE, kept as functions of ``t``
        diagnostics: problems found while normalizing the equations
    """

    subsystems: list[SubSystem] = field(default_factory=list)
    initial_values: dict[str, sp.Basic] = field(default_factory=dict)
    spike_updates: list[SpikeUpdate] = field(default_factory=list)
    direct_kernels: dict[str, sp.Basic] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def states(self) -> list[str]:
        return [s for sub in self.subsystems for s in sub.states]

    @property
    def exact(self) -> list[SubSystem]:
        return [s for s in self.subsystems if s.kind == IntegrationKind.EXACT]

    @property
    def numerical(self) -> list[SubSystem]:
        return [s for s in self.subsystems if s.kind == IntegrationKind.NUMERICAL]

    def subsystem_of(self, state: str) -> Optional[SubSystem]:
        for sub in self.subsystems:
            if state in sub.states:
                return sub
        return None

    def updates_for(self, buffer: str) -> list[SpikeUpdate]:
        return [u for u in self.spike_updates if u.buffer == buffer]

    def __str__(self) -> str:
        lines = []
        for sub in self.subsystems:
            lines.append(f"[{sub.id}] {sub.kind.value}: {', '.join(sub.states)}")
        return "\n".join(lines)
