"""
Compiler configuration.

Settings are frozen dataclasses passed explicitly to the pipeline::

    config = CompilerConfig(solver=SolverConfig(abs_tol=1e-6), check_workers=4)
    result = compile_model(neuron, config=config)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from beartype.typing import Optional, Sequence, Union


@dataclass(frozen=True)
class SolverConfig:
    """
    Settings of the equation classifier.

    Attributes:
        step_symbol: name of the symbol standing for the simulation step size
            in propagator expressions
        method: adaptive-step method recommended for non-linear sub-systems
        abs_tol: default absolute error tolerance of that method
        rel_tol: default relative error tolerance of that method
        max_shape_order: highest order tried when converting a shape given as
            a function of time into a linear ODE
        simplify: simplify propagator entries (slower, more compact output)
    """

    step_symbol: str = "__h"
    method: str = "rkf45"
    abs_tol: Union[int, float] = 1e-3
    rel_tol: Union[int, float] = 0.0
    max_shape_order: int = 10
    simplify: bool = True

    def __post_init__(self):
        if self.abs_tol < 0 or self.rel_tol < 0:
            raise ValueError("Tolerances must be non-negative")
        if self.max_shape_order < 1:
            raise ValueError("max_shape_order must be at least 1")


@dataclass(frozen=True)
class CompilerConfig:
    """
    Settings of the compilation pipeline.

    Attributes:
        solver: equation classifier settings
        checks: names of the context conditions to run (default: all)
        check_workers: run context conditions on a thread pool of this size;
            ``None`` runs them sequentially
        classify_on_errors: still classify the equations of a model whose
            context conditions reported errors
    """

    solver: SolverConfig = field(default_factory=SolverConfig)
    checks: Optional[Sequence[str]] = None
    check_workers: Optional[int] = None
    classify_on_errors: bool = False


DEFAULT_CONFIG = CompilerConfig()
