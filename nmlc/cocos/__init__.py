"""
Context conditions: semantic well-formedness rules checked after the symbol
table has been built and the expressions have been typed.

Importing this package registers the builtin checks.
"""

from nmlc.cocos.registry import (
    ContextCondition,
    context_condition,
    registered_checks,
    run_context_conditions,
)
from nmlc.cocos import names, expressions, structure  # noqa: F401  (registration)

__all__ = [
    "ContextCondition",
    "context_condition",
    "registered_checks",
    "run_context_conditions",
]
