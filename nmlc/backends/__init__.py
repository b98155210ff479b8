"""
Symbolic backends for the analysed model.
"""

from nmlc.backends.sympy import SympyConverter, to_sympy

__all__ = ["SympyConverter", "to_sympy"]
