"""
Compilation pipeline.

Phases run sequentially per model:

1. symbol table
2. type annotation of every expression
3. context conditions
4. equation normalization and classification

Independent models can be compiled in parallel; they share only the
read-only type registry.

Example:
    result = compile_model(neuron)
    if result.succeeded:
        for sub in result.plan.subsystems:
            ...
    else:
        print(result.report.summary())
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from beartype.typing import Optional, Sequence

from nmlc.cocos import run_context_conditions
from nmlc.config import DEFAULT_CONFIG, CompilerConfig
from nmlc.diagnostics import Diagnostic, DiagnosticReport
from nmlc.errors import CompilationFailed
from nmlc.ir.model import CompilationUnit, Neuron
from nmlc.odes.classify import classify_equations
from nmlc.odes.normalize import first_order_system
from nmlc.odes.plan import SolverPlan
from nmlc.symtab.builder import build_symbol_table
from nmlc.symtab.registry import TypeRegistry, default_registry
from nmlc.symtab.table import SymbolTable
from nmlc.typecheck.inference import annotate_types

logger = logging.getLogger("nmlc")


@dataclass
class CompilationResult:
    """
    Outcome of compiling one neuron.

    ``plan`` is ``None`` when the equations were not classified because the
    context conditions reported errors. The diagnostics of equation
    normalization (``MissingEquation``, ``IncompatibleBufferType``) are
    reported either way. A result with any error-severity
    diagnostic must not be handed to a code generator.
    """

    neuron: Neuron
    table: SymbolTable
    report: DiagnosticReport = field(default_factory=DiagnosticReport)
    plan: Optional[SolverPlan] = None

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return self.report.diagnostics

    @property
    def succeeded(self) -> bool:
        return self.report.is_valid

    def raise_for_errors(self) -> None:
        """
        Raises:
            CompilationFailed: if any error-severity diagnostic was reported
        """
        if not self.succeeded:
            raise CompilationFailed(self.neuron.name, self.report.errors)

    def summary(self) -> str:
        lines = [f"Neuron '{self.neuron.name}'", self.report.summary()]
        if self.plan is not None and self.plan.subsystems:
            lines.append("\nSub-systems:")
            lines.append(str(self.plan))
        return "\n".join(lines)


def compile_model(
    neuron: Neuron,
    config: Optional[CompilerConfig] = None,
    registry: Optional[TypeRegistry] = None,
) -> CompilationResult:
    """
    Run all analysis phases on ``neuron``.

    Every phase records its problems as diagnostics and the pipeline goes on,
    so one call reports as many independent defects as possible.
    """
    config = config or DEFAULT_CONFIG
    registry = registry or default_registry()

    table = build_symbol_table(neuron, registry)
    annotate_types(neuron, table)
    result = CompilationResult(neuron, table)
    result.report.extend(
        run_context_conditions(neuron, table, config.checks, config.check_workers)
    )

    checks_failed = not result.succeeded
    try:
        system = first_order_system(neuron, table, config.solver)
    except ValueError as err:
        if not checks_failed:
            raise
        # a consequence of the defects reported above
        logger.info("cannot normalize the equations of '%s': %s", neuron.name, err)
        system = None
    if system is not None:
        result.report.extend(system.diagnostics)
        if not checks_failed or config.classify_on_errors:
            result.plan = classify_equations(neuron, table, config.solver, system)
        else:
            logger.info("skipping equation classification of '%s'", neuron.name)

    if result.succeeded:
        logger.info("compiled '%s'", neuron.name)
    else:
        logger.info("'%s' has %d error(s)", neuron.name, len(result.report.errors))
    return result


def compile_models(
    neurons: Sequence[Neuron],
    config: Optional[CompilerConfig] = None,
    registry: Optional[TypeRegistry] = None,
    max_workers: Optional[int] = None,
) -> list[CompilationResult]:
    """
    Compile independent neurons, in parallel when ``max_workers`` is given.

    The registry is built before any worker starts; results keep the order
    of ``neurons``.
    """
    registry = registry or default_registry()
    if max_workers is None:
        return [compile_model(n, config, registry) for n in neurons]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda n: compile_model(n, config, registry), neurons))


def compile_unit(
    unit: CompilationUnit,
    config: Optional[CompilerConfig] = None,
    max_workers: Optional[int] = None,
) -> dict[str, CompilationResult]:
    """Compile every neuron of ``unit``, keyed by neuron name."""
    results = compile_models(unit.neurons, config, max_workers=max_workers)
    return {r.neuron.name: r for r in results}
