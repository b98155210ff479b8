"""
Diagnostics produced by the semantic analysis.

Every analysis phase reports problems as :class:`Diagnostic` records instead of
stopping at the first one, so a single pass over a model surfaces all of its
independent defects. :class:`DiagnosticReport` collects them and answers the
questions the pipeline needs (is the model valid, which codes were reported).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from beartype.typing import Iterable, Iterator, Optional


class Severity(Enum):
    """Severity level of a diagnostic."""

    ERROR = "error"  # model must not reach the code generator
    WARNING = "warning"  # suspicious but compilable
    INFO = "info"  # informational note


class DiagnosticCode(str, Enum):
    """Stable diagnostic codes, one per failure kind."""

    DUPLICATE_SYMBOL = "DuplicateSymbol"
    UNDEFINED_SYMBOL = "UndefinedSymbol"
    INCOMPATIBLE_UNITS = "IncompatibleUnits"
    NON_BOOLEAN_CONDITION = "NonBooleanCondition"
    FUNCTION_DOES_NOT_EXIST = "FunctionDoesNotExist"
    VECTOR_VARIABLE_IN_NON_VECTOR_DECLARATION = "VectorVariableInNonVectorDeclaration"
    MISSING_EQUATION = "MissingEquation"
    INCOMPATIBLE_BUFFER_TYPE = "IncompatibleBufferType"
    SELF_REFERENTIAL_INITIALIZER = "SelfReferentialInitializer"
    ILLEGAL_EXPRESSION = "IllegalExpression"
    CODE_AFTER_RETURN = "CodeAfterReturn"
    VARIABLE_HAS_TYPE_NAME = "VariableHasTypeName"
    ILLEGAL_ODE_LHS = "IllegalOdeLhs"
    UNKNOWN_UNIT = "UnknownUnit"
    SHAPE_NOT_LINEAR = "ShapeNotLinear"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SourcePosition:
    """Position of a node in the model source; only used for messages."""

    line: int = 0
    column: int = 0
    file: str = ""

    @property
    def is_known(self) -> bool:
        return self.line > 0

    def __str__(self) -> str:
        if not self.is_known:
            return "<unknown>"
        prefix = f"{self.file}:" if self.file else ""
        return f"{prefix}{self.line}:{self.column}"


NO_POSITION = SourcePosition()


@dataclass(frozen=True)
class Diagnostic:
    """A single diagnostic: code, message and source position."""

    code: DiagnosticCode
    message: str
    position: SourcePosition = NO_POSITION
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        loc = f" at {self.position}" if self.position.is_known else ""
        return f"[{self.severity.value.upper()}] {self.code.value}: {self.message}{loc}"


@dataclass
class DiagnosticReport:
    """Ordered collection of diagnostics for one model."""

    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """True if there are any errors."""
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def has_warnings(self) -> bool:
        """True if there are any warnings."""
        return any(d.severity == Severity.WARNING for d in self.diagnostics)

    @property
    def is_valid(self) -> bool:
        """True if there are no errors (warnings are OK)."""
        return not self.has_errors

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    def add(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        self.diagnostics.extend(diagnostics)

    def by_code(self, code: DiagnosticCode) -> list[Diagnostic]:
        """All diagnostics reported with ``code``."""
        return [d for d in self.diagnostics if d.code == code]

    def codes(self) -> list[DiagnosticCode]:
        return [d.code for d in self.diagnostics]

    def first(self, code: Optional[DiagnosticCode] = None) -> Optional[Diagnostic]:
        for d in self.diagnostics:
            if code is None or d.code == code:
                return d
        return None

    def summary(self) -> str:
        """Human readable summary of the report."""
        n_info = len([d for d in self.diagnostics if d.severity == Severity.INFO])
        status = "VALID" if self.is_valid else "INVALID"
        lines = [
            f"Diagnostics: {status}",
            f"  Errors: {len(self.errors)}",
            f"  Warnings: {len(self.warnings)}",
            f"  Info: {n_info}",
        ]
        if self.diagnostics:
            lines.append("\nIssues:")
            for d in self.diagnostics:
                lines.append(f"  - {d}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.diagnostics)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.diagnostics)

    def __str__(self) -> str:
        return self.summary()
