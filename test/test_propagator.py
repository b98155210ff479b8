"""
Tests for symbolic propagators, checked against a numerical matrix exponential.
"""

import numpy as np
import pytest
import scipy.linalg
import sympy as sp

from nmlc.backends.sympy import step_symbol, symbol
from nmlc.odes import LinearSystem, derive_propagator, linear_system

h = step_symbol()


def exact_step(system, values, x0):
    """One step of x' = A x + b from the augmented matrix exponential."""
    subs = {s: values[s.name] for s in system.matrix.free_symbols | system.inhomogeneous.free_symbols}
    A = np.array(system.matrix.subs(subs)).astype(float)
    b = np.array(system.inhomogeneous.subs(subs)).astype(float).flatten()
    n = len(x0)
    augmented = np.zeros((n + 1, n + 1))
    augmented[:n, :n] = A
    augmented[:n, n] = b
    E = scipy.linalg.expm(augmented * values["__h"])
    return E[:n, :n] @ x0 + E[:n, n]


class TestLinearSystem:
    def test_split(self):
        V, tau, E_L = symbol("V"), symbol("tau"), symbol("E_L")
        system = linear_system([V], [-(V - E_L) / tau], h)
        assert system.matrix[0, 0] == -1 / tau
        assert sp.simplify(system.inhomogeneous[0] - E_L / tau) == 0
        assert not system.is_homogeneous
        assert len(system) == 1

    def test_not_linear(self):
        V = symbol("V")
        with pytest.raises(ValueError):
            linear_system([V], [-V**2], h)

    def test_shape_mismatch(self):
        x = symbol("x")
        with pytest.raises(ValueError):
            LinearSystem((x,), sp.ImmutableMatrix([[1, 0]]), sp.ImmutableMatrix([0]), h)


class TestPropagator:
    """P = exp(A h) and q agree with scipy's matrix exponential."""

    def test_alpha_kernel(self):
        g, dg, tau = symbol("g"), symbol("g__d"), symbol("tau")
        system = linear_system([g, dg], [dg, -g / tau**2 - 2 * dg / tau], h)
        P, q = derive_propagator(system).evaluate({"tau": 2.0, "__h": 0.1})
        A = np.array(system.matrix.subs(tau, 2.0)).astype(float)
        np.testing.assert_allclose(P, scipy.linalg.expm(A * 0.1), rtol=1e-10)
        np.testing.assert_array_equal(q, np.zeros(2))

    def test_membrane_with_input(self):
        V, g, tau_m, tau_s, C, E_L = (symbol(n) for n in ("V", "g", "tau_m", "tau_s", "C", "E_L"))
        system = linear_system([V, g], [-(V - E_L) / tau_m + g / C, -g / tau_s], h)
        values = {"tau_m": 10.0, "tau_s": 2.0, "C": 250.0, "E_L": -70.0, "__h": 0.1}
        P, q = derive_propagator(system).evaluate(values)
        x0 = np.array([-65.0, 30.0])
        np.testing.assert_allclose(P @ x0 + q, exact_step(system, values, x0), rtol=1e-10)

    def test_singular_matrix(self):
        """x' = c has no invertible A; the update is c h."""
        x, c = symbol("x"), symbol("c")
        prop = derive_propagator(linear_system([x], [c], h))
        assert prop.entry(0, 0) == 1
        assert sp.simplify(prop.update[0] - c * h) == 0

    def test_coupled_singular(self):
        x, y, tau = symbol("x"), symbol("y"), symbol("tau")
        system = linear_system([x, y], [y, -y / tau + 1], h)
        values = {"tau": 5.0, "__h": 0.5}
        P, q = derive_propagator(system).evaluate(values)
        x0 = np.array([1.0, -2.0])
        np.testing.assert_allclose(P @ x0 + q, exact_step(system, values, x0), rtol=1e-10)

    def test_without_simplification(self):
        V, tau = symbol("V"), symbol("tau")
        prop = derive_propagator(linear_system([V], [-V / tau], h), simplify=False)
        assert sp.simplify(prop.entry(0, 0) - sp.exp(-h / tau)) == 0
        assert prop.step == h
        assert prop.states == (V,)

    def test_missing_value(self):
        V, tau = symbol("V"), symbol("tau")
        prop = derive_propagator(linear_system([V], [-V / tau], h))
        with pytest.raises(ValueError):
            prop.evaluate({"tau": 1.0})
