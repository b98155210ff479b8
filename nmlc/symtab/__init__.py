"""
Symbol table: scope tree, symbols and the global type registry.
"""

from nmlc.symtab.symbols import Symbol, VariableSymbol, FunctionSymbol, TypeNameSymbol
from nmlc.symtab.registry import TypeRegistry, default_registry, GLOBAL_SCOPE_ID
from nmlc.symtab.table import Scope, SymbolTable
from nmlc.symtab.builder import SymbolTableBuilder, build_symbol_table

__all__ = [
    "Symbol",
    "VariableSymbol",
    "FunctionSymbol",
    "TypeNameSymbol",
    "TypeRegistry",
    "default_registry",
    "GLOBAL_SCOPE_ID",
    "Scope",
    "SymbolTable",
    "SymbolTableBuilder",
    "build_symbol_table",
]
