"""
Registry of context conditions.

A context condition is a plain function ``check(neuron, table) -> list[Diagnostic]``
registered with the :func:`context_condition` decorator. Checks never mutate
the AST and never depend on each other, so they can run in any order or
concurrently; results are merged in registration order.

Example::

    @context_condition("no_empty_update")
    def check_update_not_empty(neuron, table):
        block = neuron.update_block
        if block is not None and not block.body.statements:
            return [Diagnostic(DiagnosticCode.ILLEGAL_EXPRESSION, "Empty update block", block.pos)]
        return []
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from beartype.typing import Callable, Optional, Sequence

from nmlc.diagnostics import Diagnostic
from nmlc.ir.model import Neuron
from nmlc.symtab.table import SymbolTable

logger = logging.getLogger("nmlc")

ContextCondition = Callable[[Neuron, SymbolTable], list[Diagnostic]]

_CHECKS: dict[str, ContextCondition] = {}


def context_condition(name: str) -> Callable[[ContextCondition], ContextCondition]:
    """Decorator registering a context condition under ``name``."""

    def register(check: ContextCondition) -> ContextCondition:
        if name in _CHECKS and _CHECKS[name] is not check:
            raise ValueError(f"Context condition '{name}' is already registered")
        _CHECKS[name] = check
        return check

    return register


def registered_checks() -> dict[str, ContextCondition]:
    """Registered checks by name, in registration order."""
    return dict(_CHECKS)


def run_context_conditions(
    neuron: Neuron,
    table: SymbolTable,
    checks: Optional[Sequence[str]] = None,
    max_workers: Optional[int] = None,
) -> list[Diagnostic]:
    """
    Run context conditions over ``neuron`` and concatenate their diagnostics.

    Args:
        neuron: the annotated model
        table: its symbol table
        checks: names of the checks to run (default: all registered checks)
        max_workers: run the checks on a thread pool of this size; ``None``
            runs them sequentially in the calling thread

    Every selected check runs regardless of what earlier checks reported.
    """
    if checks is None:
        selected = list(_CHECKS.values())
    else:
        unknown = [c for c in checks if c not in _CHECKS]
        if unknown:
            raise ValueError(f"Unknown context condition(s): {', '.join(unknown)}")
        selected = [check for name, check in _CHECKS.items() if name in checks]

    if max_workers is None:
        results = [check(neuron, table) for check in selected]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(lambda check: check(neuron, table), selected))

    diagnostics = [d for result in results for d in result]
    logger.debug(
        "context conditions for '%s': %d check(s), %d diagnostic(s)",
        neuron.name,
        len(selected),
        len(diagnostics),
    )
    return diagnostics
