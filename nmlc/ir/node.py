"""
Common base of all AST nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from beartype.typing import Optional

from nmlc.diagnostics import NO_POSITION, SourcePosition


@dataclass(eq=False)
class Node:
    """
    Base class for AST nodes.

    Nodes compare by identity so they can key dictionaries during analysis.
    ``scope_id`` is the index of the enclosing scope in the symbol table's
    scope arena; it is set once by the symbol table builder.
    """

    pos: SourcePosition = field(default=NO_POSITION, kw_only=True, repr=False)
    scope_id: Optional[int] = field(default=None, kw_only=True, repr=False)

    def bind_scope(self, scope_id: int) -> None:
        """Attach the node to a scope; re-binding to a different scope is an error."""
        if self.scope_id is not None and self.scope_id != scope_id:
            raise ValueError(
                f"{type(self).__name__} is already bound to scope {self.scope_id}, "
                f"cannot re-bind to scope {scope_id}"
            )
        self.scope_id = scope_id
