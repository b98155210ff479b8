"""
Classification of the first-order ODE system into independent sub-systems.

1. Build the dependency graph: an edge ``a -> b`` when the right-hand side of
   ``b`` references ``a``.
2. Split the graph into the connected components of its undirected closure.
3. A component is linear time-invariant (LTI) when the Jacobian of its
   right-hand sides with respect to the states contains no state and the
   right-hand sides do not depend on ``t``.
4. LTI components get an exact-integration directive with a symbolic
   propagator; all others get a numerical-integration directive.

Example:
    plan = classify_equations(neuron, table)
    for sub in plan.subsystems:
        print(sub.id, sub.kind.value, sub.states)
"""

from __future__ import annotations

import logging

import sympy as sp

from beartype.typing import Optional

from nmlc.config import SolverConfig
from nmlc.ir.equation import OdeAlias
from nmlc.ir.model import Neuron
from nmlc.odes.normalize import FirstOrderSystem, first_order_system
from nmlc.odes.plan import (
    ExactIntegration,
    NumericalIntegration,
    SolverPlan,
    SubSystem,
)
from nmlc.odes.propagator import derive_propagator, linear_system
from nmlc.symtab.table import SymbolTable

logger = logging.getLogger("nmlc")


def dependency_graph(system: FirstOrderSystem) -> dict[str, list[str]]:
    """adj[a] = states whose right-hand side references ``a``, in state order."""
    adj: dict[str, list[str]] = {name: [] for name in system.states}
    for b, eq in system.states.items():
        used = {s.name for s in eq.rhs.free_symbols}
        for a in system.states:
            if a in used:
                adj[a].append(b)
    return adj


def connected_components(adj: dict[str, list[str]]) -> list[list[str]]:
    """
    Connected components of the undirected closure of ``adj``.

    Components are ordered by their first node and list their nodes in the
    order of ``adj``, so the result is deterministic.
    """
    undirected: dict[str, set[str]] = {node: set() for node in adj}
    for a, targets in adj.items():
        for b in targets:
            undirected[a].add(b)
            undirected[b].add(a)

    position = {node: i for i, node in enumerate(adj)}
    seen: set[str] = set()
    components: list[list[str]] = []
    for node in adj:
        if node in seen:
            continue
        component = []
        stack = [node]
        seen.add(node)
        while stack:
            current = stack.pop()
            component.append(current)
            for neighbour in undirected[current]:
                if neighbour not in seen:
                    seen.add(neighbour)
                    stack.append(neighbour)
        components.append(sorted(component, key=position.__getitem__))
    return components


def is_lti(system: FirstOrderSystem, states: list[str]) -> bool:
    """True if the component ``states`` is linear time-invariant."""
    all_states = set(system.symbols().values())
    rhs = [system.rhs(name) for name in states]
    for f in rhs:
        names = {s.name for s in f.free_symbols}
        if system.time in f.free_symbols or names & system.direct_convolutions:
            return False
    jacobian = sp.Matrix(rhs).jacobian([system.states[name].symbol for name in states])
    return not any(entry.free_symbols & all_states for entry in jacobian)


def classify_system(
    system: FirstOrderSystem, config: Optional[SolverConfig] = None
) -> SolverPlan:
    """Split ``system`` into sub-systems and pick an integration directive for each."""
    config = config or SolverConfig()
    plan = SolverPlan(
        initial_values={name: eq.initial_value for name, eq in system.states.items()},
        spike_updates=list(system.spike_updates),
        direct_kernels=dict(system.direct_kernels),
        diagnostics=list(system.diagnostics),
    )

    for sub_id, states in enumerate(connected_components(dependency_graph(system))):
        names = tuple(states)
        if is_lti(system, states):
            linear = linear_system(
                [system.states[n].symbol for n in names],
                [system.rhs(n) for n in names],
                system.step,
            )
            directive = ExactIntegration(names, derive_propagator(linear, config.simplify))
        else:
            directive = NumericalIntegration(
                names,
                {n: system.rhs(n) for n in names},
                method=config.method,
                abs_tol=config.abs_tol,
                rel_tol=config.rel_tol,
            )
        plan.subsystems.append(SubSystem(sub_id, names, directive))
        logger.debug("sub-system %d (%s): %s", sub_id, directive.kind.value, ", ".join(names))
    return plan


def annotate_subsystems(neuron: Neuron, system: FirstOrderSystem, plan: SolverPlan) -> None:
    """
    Store the sub-system id on every equation, shape and alias node.

    A shape convolved with several buffers, or an alias used by several
    sub-systems, keeps the id of the first one.
    """
    alias_ids: dict[str, set[int]] = {}
    for sub in plan.subsystems:
        for name in sub.states:
            eq = system.states[name]
            if eq.source is not None and eq.source.subsystem_id is None:
                eq.source.subsystem_id = sub.id
            for alias in eq.aliases:
                alias_ids.setdefault(alias, set()).add(sub.id)

    block = neuron.equations_block
    if block is None:
        return
    for element in block.elements:
        if isinstance(element, OdeAlias) and element.name in alias_ids:
            element.subsystem_id = min(alias_ids[element.name])


def classify_equations(
    neuron: Neuron,
    table: SymbolTable,
    config: Optional[SolverConfig] = None,
    system: Optional[FirstOrderSystem] = None,
) -> SolverPlan:
    """
    Normalize, classify and annotate the equations of ``neuron``.

    Problems (``MissingEquation``, ``IncompatibleBufferType``,
    ``ShapeNotLinear``) are returned in ``plan.diagnostics``. A ``system``
    already normalized with the same table and config is reused.
    """
    if system is None:
        system = first_order_system(neuron, table, config)
    plan = classify_system(system, config)
    annotate_subsystems(neuron, system, plan)
    logger.debug(
        "classified '%s': %d exact, %d numerical sub-system(s)",
        neuron.name,
        len(plan.exact),
        len(plan.numerical),
    )
    return plan
