"""
Intermediate representation (AST) of neuron models.

The external parser produces these nodes; the analysis passes annotate them in
place (expression types, scope ids, statement order, equation sub-system ids).
"""

from nmlc.ir.node import Node
from nmlc.ir.expr import (
    Expr,
    ExprBuilder,
    Literal,
    VarRef,
    BinaryOp,
    UnaryOp,
    FunctionCall,
    IfExpr,
)
from nmlc.ir.statement import (
    DataType,
    Statement,
    Declaration,
    Assignment,
    Block,
    IfStatement,
    ForStatement,
    WhileStatement,
    ReturnStatement,
    CallStatement,
)
from nmlc.ir.equation import OdeEquation, OdeAlias, Shape, EquationsBlock
from nmlc.ir.model import (
    VariableBlock,
    InputLine,
    InputBlock,
    OutputBlock,
    UpdateBlock,
    Parameter,
    FunctionDecl,
    Neuron,
    CompilationUnit,
)
from nmlc.ir.visitor import walk, children, iter_expressions, var_refs

__all__ = [
    "Node",
    # Expressions
    "Expr",
    "ExprBuilder",
    "Literal",
    "VarRef",
    "BinaryOp",
    "UnaryOp",
    "FunctionCall",
    "IfExpr",
    # Statements
    "DataType",
    "Statement",
    "Declaration",
    "Assignment",
    "Block",
    "IfStatement",
    "ForStatement",
    "WhileStatement",
    "ReturnStatement",
    "CallStatement",
    # Equations
    "OdeEquation",
    "OdeAlias",
    "Shape",
    "EquationsBlock",
    # Model
    "VariableBlock",
    "InputLine",
    "InputBlock",
    "OutputBlock",
    "UpdateBlock",
    "Parameter",
    "FunctionDecl",
    "Neuron",
    "CompilationUnit",
    # Traversal
    "walk",
    "children",
    "iter_expressions",
    "var_refs",
]
