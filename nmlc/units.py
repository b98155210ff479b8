"""
Physical units.

A unit is a :class:`Dimension` (rational exponents over the seven SI base
dimensions) together with a rational scale relative to the coherent SI unit of
that dimension. ``mV`` and ``V`` share a dimension and differ only in scale, so
they are compatible; ``mV`` and ``ms`` are not.

Unit expressions such as ``nS*mV/ms**2`` or ``1/ms`` are parsed by
:func:`parse_unit`.

Examples::

    >>> parse_unit("mV").scale
    Fraction(1, 1000)
    >>> parse_unit("nS") * parse_unit("mV") == parse_unit("pA")
    True
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from fractions import Fraction

from beartype.typing import Union

from nmlc.errors import UnitParseError

__all__ = [
    "BASE_DIMENSIONS",
    "Dimension",
    "Unit",
    "DIMENSIONLESS",
    "PREFIXES",
    "BASE_UNITS",
    "lookup_unit",
    "parse_unit",
    "is_unit_name",
]

BASE_DIMENSIONS = ("length", "mass", "time", "current", "temperature", "amount", "luminosity")
_SYMBOLS = ("m", "kg", "s", "A", "K", "mol", "cd")

Exponent = Union[int, Fraction]


@dataclass(frozen=True)
class Dimension:
    """
    Exponent vector over the SI base dimensions.

    The vector is ordered as :data:`BASE_DIMENSIONS`. Use :meth:`of` to build
    one by name::

        Dimension.of(length=2, mass=1, time=-3, current=-1)  # volt
    """

    exponents: tuple[Fraction, ...] = (Fraction(0),) * 7

    def __post_init__(self):
        if len(self.exponents) != len(BASE_DIMENSIONS):
            raise ValueError(
                f"Dimension needs {len(BASE_DIMENSIONS)} exponents, got {len(self.exponents)}"
            )

    @classmethod
    def of(cls, **powers: Exponent) -> Dimension:
        unknown = set(powers) - set(BASE_DIMENSIONS)
        if unknown:
            raise ValueError(f"Unknown base dimension(s): {sorted(unknown)}")
        return cls(tuple(Fraction(powers.get(name, 0)) for name in BASE_DIMENSIONS))

    def __mul__(self, other: Dimension) -> Dimension:
        return Dimension(tuple(a + b for a, b in zip(self.exponents, other.exponents)))

    def __truediv__(self, other: Dimension) -> Dimension:
        return Dimension(tuple(a - b for a, b in zip(self.exponents, other.exponents)))

    def __pow__(self, power: Exponent) -> Dimension:
        p = Fraction(power)
        return Dimension(tuple(a * p for a in self.exponents))

    @property
    def is_dimensionless(self) -> bool:
        return all(e == 0 for e in self.exponents)

    def __str__(self) -> str:
        if self.is_dimensionless:
            return "1"
        parts = []
        for sym, e in zip(_SYMBOLS, self.exponents):
            if e == 0:
                continue
            parts.append(sym if e == 1 else f"{sym}^{e}")
        return "*".join(parts)


@dataclass(frozen=True)
class Unit:
    """A dimension with a rational scale; the name is for display only."""

    dimension: Dimension
    scale: Fraction = Fraction(1)
    name: str = field(default="", compare=False)

    def __post_init__(self):
        if self.scale <= 0:
            raise ValueError(f"Unit scale must be positive, got {self.scale}")

    @property
    def is_dimensionless(self) -> bool:
        return self.dimension.is_dimensionless

    def is_compatible(self, other: Unit) -> bool:
        """True if both units measure the same dimension."""
        return self.dimension == other.dimension

    def conversion_factor(self, other: Unit) -> Fraction:
        """Factor that converts a magnitude in ``self`` into ``other``."""
        if not self.is_compatible(other):
            raise ValueError(f"Cannot convert {self} into {other}")
        return self.scale / other.scale

    def __mul__(self, other: Unit) -> Unit:
        return Unit(
            self.dimension * other.dimension,
            self.scale * other.scale,
            _join(self.name, "*", other.name),
        )

    def __truediv__(self, other: Unit) -> Unit:
        return Unit(
            self.dimension / other.dimension,
            self.scale / other.scale,
            _join(self.name or "1", "/", other.name),
        )

    def __pow__(self, power: Exponent) -> Unit:
        p = Fraction(power)
        if p.denominator == 1:
            scale = self.scale ** p.numerator
        else:
            scale = _rational_root(self.scale, p)
        return Unit(self.dimension**p, scale, f"{_paren(self.name)}**{p}" if self.name else "")

    def __str__(self) -> str:
        if self.name:
            return self.name
        if self.scale == 1:
            return str(self.dimension)
        return f"{self.scale}*{self.dimension}"


def _paren(name: str) -> str:
    return f"({name})" if any(c in name for c in "*/") else name


def _join(left: str, op: str, right: str) -> str:
    if not left or not right:
        return ""
    return f"{left}{op}{_paren(right)}"


def _rational_root(scale: Fraction, power: Fraction) -> Fraction:
    # Fractional powers of non-unit scales (sqrt(ms)) are approximated.
    return Fraction(float(scale) ** float(power)).limit_denominator(10**12)


DIMENSIONLESS = Unit(Dimension(), Fraction(1), "1")

PREFIXES: dict[str, Fraction] = {
    "Y": Fraction(10) ** 24,
    "Z": Fraction(10) ** 21,
    "E": Fraction(10) ** 18,
    "P": Fraction(10) ** 15,
    "T": Fraction(10) ** 12,
    "G": Fraction(10) ** 9,
    "M": Fraction(10) ** 6,
    "k": Fraction(10) ** 3,
    "h": Fraction(10) ** 2,
    "da": Fraction(10),
    "d": Fraction(1, 10),
    "c": Fraction(1, 100),
    "m": Fraction(1, 10**3),
    "u": Fraction(1, 10**6),
    "mu": Fraction(1, 10**6),
    "µ": Fraction(1, 10**6),
    "n": Fraction(1, 10**9),
    "p": Fraction(1, 10**12),
    "f": Fraction(1, 10**15),
    "a": Fraction(1, 10**18),
}


def _base(name: str, scale: Union[int, Fraction] = 1, **powers: Exponent) -> Unit:
    return Unit(Dimension.of(**powers), Fraction(scale), name)


_VOLT = Dimension.of(length=2, mass=1, time=-3, current=-1)

BASE_UNITS: dict[str, Unit] = {
    "m": _base("m", length=1),
    "g": _base("g", Fraction(1, 1000), mass=1),
    "s": _base("s", time=1),
    "A": _base("A", current=1),
    "K": _base("K", temperature=1),
    "mol": _base("mol", amount=1),
    "cd": _base("cd", luminosity=1),
    "V": Unit(_VOLT, Fraction(1), "V"),
    "S": _base("S", length=-2, mass=-1, time=3, current=2),
    "F": _base("F", length=-2, mass=-1, time=4, current=2),
    "Ohm": _base("Ohm", length=2, mass=1, time=-3, current=-2),
    "Hz": _base("Hz", time=-1),
    "N": _base("N", length=1, mass=1, time=-2),
    "J": _base("J", length=2, mass=1, time=-2),
    "W": _base("W", length=2, mass=1, time=-3),
    "C": _base("C", time=1, current=1),
    "H": _base("H", length=2, mass=1, time=-2, current=-2),
    "Wb": _base("Wb", length=2, mass=1, time=-2, current=-1),
    "T": _base("T", mass=1, time=-2, current=-1),
    "Pa": _base("Pa", length=-1, mass=1, time=-2),
    "M": _base("M", 1000, length=-3, amount=1),  # molar, mol/l
    "l": _base("l", Fraction(1, 1000), length=3),
}

_PREFIXES_BY_LENGTH = sorted(PREFIXES, key=len, reverse=True)


def lookup_unit(name: str) -> Unit:
    """
    Look up a single (optionally prefixed) unit symbol such as ``mV`` or ``MOhm``.

    Exact base-unit names win over prefix splits, so ``mol`` is the mole and
    ``m`` the metre.
    """
    if name in BASE_UNITS:
        return BASE_UNITS[name]
    for prefix in _PREFIXES_BY_LENGTH:
        if name.startswith(prefix):
            base = BASE_UNITS.get(name[len(prefix) :])
            if base is not None:
                return Unit(base.dimension, base.scale * PREFIXES[prefix], name)
    raise UnitParseError(name, "unknown unit")


def is_unit_name(name: str) -> bool:
    """True if ``name`` is a single known unit symbol."""
    try:
        lookup_unit(name)
    except UnitParseError:
        return False
    return True


_TOKEN = re.compile(r"\s*(?:(\*\*|\^|[*/()])|(\d+)|([A-Za-zµ_][A-Za-z0-9µ_]*)|(-))")


def _tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    text = text.strip()
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None or match.end() == pos:
            raise UnitParseError(text, f"unexpected character at position {pos}")
        tokens.append(next(g for g in match.groups() if g is not None))
        pos = match.end()
    return tokens


class _UnitParser:
    """
    Recursive descent parser for unit expressions.

    Grammar::

        expr     := term (('*' | '/') term)*
        term     := atom (('**' | '^') exponent)?
        atom     := NAME | '1' | '(' expr ')'
        exponent := '-'? INT | '(' '-'? INT ('/' INT)? ')'
    """

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self) -> str:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else ""

    def take(self, expected: str = "") -> str:
        tok = self.peek()
        if not tok or (expected and tok != expected):
            raise UnitParseError(self.text, f"expected '{expected or 'token'}', got '{tok}'")
        self.pos += 1
        return tok

    def parse(self) -> Unit:
        if not self.tokens:
            raise UnitParseError(self.text, "empty unit")
        unit = self.expr()
        if self.pos != len(self.tokens):
            raise UnitParseError(self.text, f"trailing input '{self.peek()}'")
        return unit

    def expr(self) -> Unit:
        unit = self.term()
        while self.peek() in ("*", "/"):
            op = self.take()
            rhs = self.term()
            unit = unit * rhs if op == "*" else unit / rhs
        return unit

    def term(self) -> Unit:
        unit = self.atom()
        if self.peek() in ("**", "^"):
            self.take()
            unit = unit ** self.exponent()
        return unit

    def atom(self) -> Unit:
        tok = self.take()
        if tok == "(":
            unit = self.expr()
            self.take(")")
            return unit
        if tok.isdigit():
            if tok != "1":
                raise UnitParseError(self.text, f"numeric factor '{tok}' is not a unit")
            return DIMENSIONLESS
        if tok in ("*", "/", "**", "^", ")", "-"):
            raise UnitParseError(self.text, f"unexpected '{tok}'")
        return lookup_unit(tok)

    def exponent(self) -> Fraction:
        if self.peek() == "(":
            self.take()
            value = self.signed_int()
            if self.peek() == "/":
                self.take()
                value = value / Fraction(int(self.take()))
            self.take(")")
            return value
        return self.signed_int()

    def signed_int(self) -> Fraction:
        sign = 1
        if self.peek() == "-":
            self.take()
            sign = -1
        tok = self.take()
        if not tok.isdigit():
            raise UnitParseError(self.text, f"expected integer exponent, got '{tok}'")
        return Fraction(sign * int(tok))


_parse_cache: dict[str, Unit] = {}
_parse_lock = threading.Lock()


def parse_unit(text: str) -> Unit:
    """
    Parse a unit expression, e.g. ``"mV"``, ``"nS*mV"``, ``"1/ms"``, ``"mV/ms**2"``.

    Results are cached; parsing the same text twice returns the same unit.
    """
    cached = _parse_cache.get(text)
    if cached is not None:
        return cached
    parsed = _UnitParser(text).parse()
    unit = Unit(parsed.dimension, parsed.scale, text.strip())
    with _parse_lock:
        return _parse_cache.setdefault(text, unit)
