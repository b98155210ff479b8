"""
Conversion of shapes given as functions of time into linear ODEs.

A kernel ``f(t)`` satisfies a linear homogeneous ODE of order ``n`` with
constant coefficients if::

    f^(n)(t) = c_0 f(t) + c_1 f'(t) + ... + c_{n-1} f^(n-1)(t)

The coefficients are found by sampling the derivatives at ``n`` points and
solving the resulting linear system; the candidate is accepted only if the
identity then holds symbolically for all ``t``. Orders are tried from 1 up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import sympy as sp

from beartype.typing import Optional, Sequence

logger = logging.getLogger("nmlc")


@dataclass(frozen=True)
class ShapeOde:
    """``f^(n) = sum(c_k f^(k))`` with initial values ``f(0), ..., f^(n-1)(0)``."""

    coefficients: tuple[sp.Basic, ...]
    initial_values: tuple[sp.Basic, ...]

    @property
    def order(self) -> int:
        return len(self.coefficients)

    def rhs(self, states: Sequence[sp.Symbol]) -> sp.Basic:
        """Highest derivative expressed in ``states = (f, f', ..., f^(n-1))``."""
        if len(states) != self.order:
            raise ValueError(f"Expected {self.order} states, got {len(states)}")
        return sp.Add(*(c * s for c, s in zip(self.coefficients, states)))


def _solve_order(derivatives: list[sp.Basic], t: sp.Symbol, n: int) -> Optional[tuple[sp.Basic, ...]]:
    points = [sp.Integer(i + 1) for i in range(n)]
    X = sp.Matrix(n, n, lambda i, k: derivatives[k].subs(t, points[i]))
    Y = sp.Matrix(n, 1, lambda i, _: derivatives[n].subs(t, points[i]))
    if sp.simplify(X.det()) == 0:
        return None
    c = X.LUsolve(Y).applyfunc(sp.simplify)
    if any(t in entry.free_symbols for entry in c):
        return None
    residual = derivatives[n] - sum(c[k] * derivatives[k] for k in range(n))
    if sp.simplify(residual) != 0:
        return None
    return tuple(c)


def shape_to_ode(expr: sp.Basic, t: sp.Symbol, max_order: int = 10) -> Optional[ShapeOde]:
    """
    Linear ODE of minimal order satisfied by the kernel ``expr(t)``.

    Returns ``None`` if there is none up to ``max_order`` or if the kernel or
    one of its derivatives is not finite at ``t = 0``.
    """
    derivatives = [expr]
    for n in range(1, max_order + 1):
        derivatives.append(sp.diff(derivatives[-1], t))
        coefficients = _solve_order(derivatives, t, n)
        if coefficients is None:
            continue
        initial = tuple(sp.simplify(d.subs(t, 0)) for d in derivatives[:n])
        if any(v.has(sp.zoo, sp.oo, -sp.oo, sp.nan) for v in initial):
            return None
        logger.debug("kernel %s satisfies a linear ODE of order %d", expr, n)
        return ShapeOde(coefficients, initial)
    return None
