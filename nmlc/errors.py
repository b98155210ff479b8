"""
Exception taxonomy.

Analysis phases never abort on a model error: they record a
:class:`~nmlc.diagnostics.Diagnostic` and continue. The exceptions below are
raised by the strict entry points (``infer_type``, ``SymbolTable.resolve``,
``build_symbol_table(strict=True)``, ``CompilationResult.raise_for_errors``)
and are the single source of the diagnostic messages.
"""

from __future__ import annotations

import copy

from beartype.typing import Optional, Sequence

from nmlc.diagnostics import (
    NO_POSITION,
    Diagnostic,
    DiagnosticCode,
    Severity,
    SourcePosition,
)

__all__ = [
    "NmlcError",
    "RegistryError",
    "UnitParseError",
    "CompilationFailed",
    "SemanticError",
    "DuplicateSymbol",
    "UndefinedSymbol",
    "SelfReferentialInitializer",
    "TypeCheckError",
    "IncompatibleUnits",
    "NonBooleanCondition",
    "FunctionDoesNotExist",
    "IllegalExpression",
    "UnknownUnit",
    "VectorVariableInNonVectorDeclaration",
    "VariableHasTypeName",
    "CodeAfterReturn",
    "IllegalOdeLhs",
    "MissingEquation",
    "IncompatibleBufferType",
]


class NmlcError(Exception):
    """Base error for the nmlc package."""


class RegistryError(NmlcError):
    """Raised when the global type registry is missing or inconsistent."""


class UnitParseError(NmlcError):
    """Raised when a unit expression cannot be parsed."""

    def __init__(self, text: str, reason: str):
        self.text = text
        self.reason = reason
        super().__init__(f"Cannot parse unit '{text}': {reason}")


class CompilationFailed(NmlcError):
    """Raised by ``CompilationResult.raise_for_errors`` for an invalid model."""

    def __init__(self, neuron: str, diagnostics: Sequence[Diagnostic]):
        self.neuron = neuron
        self.diagnostics = list(diagnostics)
        msg = f"Model '{neuron}' has {len(self.diagnostics)} error(s):\n"
        for d in self.diagnostics:
            msg += f"  - {d}\n"
        super().__init__(msg.rstrip())


class SemanticError(NmlcError):
    """A model defect; convertible into a diagnostic."""

    code: DiagnosticCode = DiagnosticCode.ILLEGAL_EXPRESSION

    def __init__(self, message: str, position: SourcePosition = NO_POSITION):
        self.message = message
        self.position = position
        super().__init__(message)

    def to_diagnostic(self, severity: Severity = Severity.ERROR) -> Diagnostic:
        return Diagnostic(self.code, self.message, self.position, severity)

    def at(self, position: SourcePosition) -> SemanticError:
        """Copy of this error reported at ``position``."""
        err = copy.copy(self)
        err.position = position
        return err


class DuplicateSymbol(SemanticError):
    code = DiagnosticCode.DUPLICATE_SYMBOL

    def __init__(self, name: str, block: str, position: SourcePosition = NO_POSITION):
        self.name = name
        self.block = block
        super().__init__(f"The variable '{name}' is defined multiple times in {block}.", position)


class UndefinedSymbol(SemanticError):
    code = DiagnosticCode.UNDEFINED_SYMBOL

    def __init__(
        self,
        name: str,
        position: SourcePosition = NO_POSITION,
        message: Optional[str] = None,
    ):
        self.name = name
        super().__init__(message or f"Variable '{name}' is not defined.", position)


class SelfReferentialInitializer(SemanticError):
    code = DiagnosticCode.SELF_REFERENTIAL_INITIALIZER

    def __init__(self, name: str, position: SourcePosition = NO_POSITION):
        self.name = name
        super().__init__(
            f"Cannot use variable '{name}' in the assignment of its own declaration.", position
        )


class TypeCheckError(SemanticError):
    """Base class of failures found while inferring expression types."""


class IncompatibleUnits(TypeCheckError):
    code = DiagnosticCode.INCOMPATIBLE_UNITS


class NonBooleanCondition(TypeCheckError):
    code = DiagnosticCode.NON_BOOLEAN_CONDITION

    def __init__(self, type_name: str, position: SourcePosition = NO_POSITION):
        self.type_name = type_name
        super().__init__(f"Cannot use non boolean expression of type {type_name}.", position)


class FunctionDoesNotExist(TypeCheckError):
    code = DiagnosticCode.FUNCTION_DOES_NOT_EXIST

    def __init__(self, name: str, signature: str, position: SourcePosition = NO_POSITION):
        self.name = name
        self.signature = signature
        super().__init__(
            f"The function '{name}' with the signature '{signature or '()'}' is not defined.",
            position,
        )


class IllegalExpression(TypeCheckError):
    code = DiagnosticCode.ILLEGAL_EXPRESSION


class UnknownUnit(TypeCheckError):
    code = DiagnosticCode.UNKNOWN_UNIT

    def __init__(self, text: str, position: SourcePosition = NO_POSITION):
        self.text = text
        super().__init__(f"Unknown unit or type '{text}'.", position)


class VectorVariableInNonVectorDeclaration(SemanticError):
    code = DiagnosticCode.VECTOR_VARIABLE_IN_NON_VECTOR_DECLARATION

    def __init__(
        self,
        variable: str,
        position: SourcePosition = NO_POSITION,
        message: Optional[str] = None,
    ):
        self.variable = variable
        super().__init__(
            message
            or f"Vector variable '{variable}' is used in the declaration of a non-vector variable.",
            position,
        )


class VariableHasTypeName(SemanticError):
    code = DiagnosticCode.VARIABLE_HAS_TYPE_NAME

    def __init__(self, name: str, position: SourcePosition = NO_POSITION):
        self.name = name
        super().__init__(f"Variable '{name}' has the name of an existing type.", position)


class CodeAfterReturn(SemanticError):
    code = DiagnosticCode.CODE_AFTER_RETURN


class IllegalOdeLhs(SemanticError):
    code = DiagnosticCode.ILLEGAL_ODE_LHS


class MissingEquation(SemanticError):
    code = DiagnosticCode.MISSING_EQUATION

    def __init__(self, name: str, position: SourcePosition = NO_POSITION):
        self.name = name
        super().__init__(
            f"State variable '{name}' has no equation describing its dynamics.", position
        )


class IncompatibleBufferType(SemanticError):
    code = DiagnosticCode.INCOMPATIBLE_BUFFER_TYPE

    def __init__(
        self,
        shape: str,
        buffer: str,
        buffer_kind: str,
        position: SourcePosition = NO_POSITION,
    ):
        self.shape = shape
        self.buffer = buffer
        self.buffer_kind = buffer_kind
        super().__init__(
            f"Shape '{shape}' is convolved with the {buffer_kind} buffer '{buffer}'; "
            "shapes can only be convolved with spike buffers.",
            position,
        )
