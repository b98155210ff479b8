"""
nmlc - semantic analysis and solver planning for neuron models

Builds unit-aware symbol tables, infers physical units of expressions, checks
context conditions and classifies the equations of a neuron into sub-systems
solved by exact (propagator) or numerical integration.
"""

from beartype.claw import beartype_package

beartype_package(__name__)

__version__ = "0.1.0"

from . import ir
from . import units
from .config import CompilerConfig, SolverConfig
from .diagnostics import Diagnostic, DiagnosticCode, DiagnosticReport, Severity, SourcePosition
from .errors import CompilationFailed, NmlcError, SemanticError
from .pipeline import CompilationResult, compile_model, compile_models, compile_unit

__all__ = [
    "ir",
    "units",
    "CompilerConfig",
    "SolverConfig",
    "Diagnostic",
    "DiagnosticCode",
    "DiagnosticReport",
    "Severity",
    "SourcePosition",
    "CompilationFailed",
    "NmlcError",
    "SemanticError",
    "CompilationResult",
    "compile_model",
    "compile_models",
    "compile_unit",
    "__version__",
]
