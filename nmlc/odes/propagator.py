"""
Symbolic propagators of linear time-invariant systems.

For a system ``x' = A x + b`` with constant ``A`` and ``b`` the state after one
step of size ``h`` is::

    x(t + h) = P x(t) + q,    P = exp(A h)

where ``q = A^-1 (P - I) b`` if ``A`` is invertible, and otherwise the last
column of ``exp([[A, b], [0, 0]] h)``. All entries stay symbolic in the model
parameters and ``h``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import sympy as sp

from beartype.typing import Mapping, Sequence, Union

logger = logging.getLogger("nmlc")


@dataclass(frozen=True)
class LinearSystem:
    """``x' = A x + b`` over the symbols ``states``."""

    states: tuple[sp.Symbol, ...]
    matrix: sp.MatrixBase
    inhomogeneous: sp.MatrixBase
    step: sp.Symbol

    def __post_init__(self):
        n = len(self.states)
        if self.matrix.shape != (n, n):
            raise ValueError(f"System matrix must be {n}x{n}, got {self.matrix.shape}")
        if self.inhomogeneous.shape != (n, 1):
            raise ValueError(f"Inhomogeneous part must be {n}x1, got {self.inhomogeneous.shape}")

    @property
    def is_homogeneous(self) -> bool:
        return all(entry == 0 for entry in self.inhomogeneous)

    def __len__(self) -> int:
        return len(self.states)


@dataclass(frozen=True)
class PropagatorCoefficients:
    """One-step update ``x[n+1] = propagator * x[n] + update``."""

    states: tuple[sp.Symbol, ...]
    propagator: sp.MatrixBase
    update: sp.MatrixBase
    step: sp.Symbol

    def entry(self, row: int, col: int) -> sp.Basic:
        return self.propagator[row, col]

    def evaluate(self, values: Mapping[str, Union[int, float]]) -> tuple[np.ndarray, np.ndarray]:
        """
        Numeric ``(P, q)`` for given parameter values and step size.

        Args:
            values: value of every free symbol by name, including the step symbol

        Raises:
            ValueError: if a symbol of the propagator has no value
        """
        subs = {}
        for m in (self.propagator, self.update):
            for s in m.free_symbols:
                if s.name not in values:
                    raise ValueError(f"No value for '{s.name}'")
                subs[s] = values[s.name]
        P = np.array(self.propagator.subs(subs).evalf()).astype(float)
        q = np.array(self.update.subs(subs).evalf()).astype(float).flatten()
        return P, q


def linear_system(
    states: Sequence[sp.Symbol],
    rhs: Sequence[sp.Basic],
    step: sp.Symbol,
) -> LinearSystem:
    """
    Split affine right-hand sides into ``A`` and ``b``.

    Raises:
        ValueError: if a right-hand side is not affine in ``states``
    """
    states = tuple(states)
    f = sp.Matrix(list(rhs))
    A = f.jacobian(list(states))
    for entry in A:
        if entry.free_symbols & set(states):
            raise ValueError(f"Right-hand side is not linear in the states: {entry}")
    b = f.subs({s: 0 for s in states})
    return LinearSystem(states, sp.ImmutableMatrix(A), sp.ImmutableMatrix(b), step)


def _simplify(m: sp.MatrixBase) -> sp.MatrixBase:
    return m.applyfunc(sp.simplify)


def derive_propagator(system: LinearSystem, simplify: bool = True) -> PropagatorCoefficients:
    """
    Closed-form propagator of a linear time-invariant system.

    Args:
        system: the linear system
        simplify: simplify every entry of the result

    Returns:
        PropagatorCoefficients with ``P = exp(A h)`` and the update vector ``q``
    """
    n = len(system)
    A, b, h = sp.Matrix(system.matrix), sp.Matrix(system.inhomogeneous), system.step
    logger.debug("deriving %dx%d propagator", n, n)

    P = (A * h).exp()
    if simplify:
        P = _simplify(P)

    if system.is_homogeneous:
        q = sp.zeros(n, 1)
    elif sp.simplify(A.det()) != 0:
        q = A.inv() * (P - sp.eye(n)) * b
    else:
        augmented = A.row_join(b).col_join(sp.zeros(1, n + 1))
        q = (augmented * h).exp()[:n, n]
    if simplify:
        q = _simplify(q)

    return PropagatorCoefficients(
        system.states, sp.ImmutableMatrix(P), sp.ImmutableMatrix(q), h
    )
