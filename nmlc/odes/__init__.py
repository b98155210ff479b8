"""
Equation normalizer and classifier.

The equations block is normalized into a first-order system, split into
independent sub-systems and each sub-system is assigned exact integration
(symbolic propagator) or numerical integration.
"""

from nmlc.odes.propagator import (
    LinearSystem,
    PropagatorCoefficients,
    derive_propagator,
    linear_system,
)
from nmlc.odes.plan import (
    IntegrationKind,
    SpikeUpdate,
    ExactIntegration,
    NumericalIntegration,
    SubSystem,
    SolverPlan,
)
from nmlc.odes.shapes import ShapeOde, shape_to_ode
from nmlc.odes.normalize import FirstOrderSystem, StateEquation, first_order_system
from nmlc.odes.classify import (
    classify_equations,
    classify_system,
    connected_components,
    dependency_graph,
    is_lti,
)

__all__ = [
    "LinearSystem",
    "PropagatorCoefficients",
    "derive_propagator",
    "linear_system",
    "IntegrationKind",
    "SpikeUpdate",
    "ExactIntegration",
    "NumericalIntegration",
    "SubSystem",
    "SolverPlan",
    "ShapeOde",
    "shape_to_ode",
    "FirstOrderSystem",
    "StateEquation",
    "first_order_system",
    "classify_equations",
    "classify_system",
    "connected_components",
    "dependency_graph",
    "is_lti",
]
