"""
Tests for expression type inference.
"""

import pytest

from common import iaf_psc_alpha, iaf_psc_delta, lit, var
from nmlc.errors import (
    FunctionDoesNotExist,
    IllegalExpression,
    IncompatibleUnits,
    NonBooleanCondition,
    UndefinedSymbol,
)
from nmlc.ir import Expr, FunctionCall, IfExpr, iter_expressions
from nmlc.symtab import build_symbol_table
from nmlc.typecheck import (
    BOOLEAN,
    INTEGER,
    REAL,
    ErrorType,
    UnitType,
    compatible,
    dimension_of,
    is_assignable,
    unit_type,
)
from nmlc.typecheck.inference import annotate_types, infer_type, type_errors
from nmlc.units import Dimension, parse_unit


def unit(text):
    return unit_type(parse_unit(text))


@pytest.fixture
def table():
    return build_symbol_table(iaf_psc_delta())


def infer(expr, table):
    return infer_type(expr, table.neuron_scope_id, table)


class TestLiterals:
    def test_plain_numbers(self, table):
        assert infer(lit(3), table) == INTEGER
        assert infer(lit(3.5), table) == REAL
        assert infer(Expr.literal(True), table) == BOOLEAN

    def test_unit_literal(self, table):
        assert infer(lit(5, "mV"), table) == unit("mV")

    def test_variables(self, table):
        assert infer(var("V_m"), table) == unit("mV")
        assert infer(var("t"), table) == unit("ms")

    def test_type_name_is_not_a_variable(self, table):
        with pytest.raises(IllegalExpression, match="Type 'real'"):
            infer(var("real"), table)

    def test_derivative(self, table):
        t = infer(var("V_m", 1), table)
        assert dimension_of(t) == dimension_of(unit("mV/ms"))
        assert infer(var("V_m", 2), table) == unit("mV/ms**2")

    def test_undefined_raises(self, table):
        with pytest.raises(UndefinedSymbol):
            infer(var("nope"), table)


class TestAddition:
    """a + b is defined iff a and b have the same dimension."""

    def test_incompatible_dimensions(self, table):
        with pytest.raises(IncompatibleUnits):
            infer(Expr.add(lit(5, "mV"), lit(3, "ms")), table)

    def test_different_scales(self, table):
        t = infer(Expr.add(lit(5, "mV"), lit(3, "V")), table)
        assert t == unit("mV")  # left scale is kept

    def test_dimension_law(self, table):
        for a, b in [("mV", "V"), ("ms", "s"), ("pA", "nS*mV"), ("mV", "ms"), ("nS", "pA")]:
            expr = Expr.add(lit(1, a), lit(1, b))
            same = parse_unit(a).dimension == parse_unit(b).dimension
            if same:
                infer(expr, table)
            else:
                with pytest.raises(IncompatibleUnits):
                    infer(expr, table)

    def test_integers(self, table):
        assert infer(Expr.add(lit(1), lit(2)), table) == INTEGER
        assert infer(Expr.add(lit(1), lit(2.0)), table) == REAL

    def test_idempotent(self, table):
        expr = Expr.sub(var("V_m"), Expr.mul(var("I_e"), Expr.div(var("tau_m"), var("C_m"))))
        first, second = infer(expr, table), infer(expr, table)
        assert first == second
        assert dimension_of(first) == dimension_of(second)


class TestMultiplication:
    def test_units_combine(self, table):
        assert infer(Expr.mul(lit(1, "nS"), lit(1, "mV")), table) == unit("pA")
        assert infer(Expr.div(var("I_e"), var("C_m")), table) == unit("pA/pF")

    def test_cancelling_units(self, table):
        assert infer(Expr.div(var("tau_m"), lit(1, "ms")), table) == REAL

    def test_integer_division_stays_integer(self, table):
        assert infer(Expr.div(lit(7), lit(2)), table) == INTEGER


class TestPower:
    def test_literal_exponent(self, table):
        assert infer(Expr.pow(var("tau_m"), lit(2)), table) == unit("ms**2")

    def test_negative_literal_exponent(self, table):
        assert infer(Expr.pow(var("tau_m"), Expr.neg(lit(1))), table) == unit("1/ms")

    def test_non_literal_exponent_of_unit(self, table):
        with pytest.raises(IllegalExpression):
            infer(Expr.pow(var("tau_m"), Expr.div(var("tau_m"), var("tau_m"))), table)

    def test_exponent_with_unit(self, table):
        with pytest.raises(IncompatibleUnits):
            infer(Expr.pow(lit(2), lit(1, "mV")), table)

    def test_plain_power(self, table):
        assert infer(Expr.pow(lit(2), lit(3)), table) == INTEGER
        assert infer(Expr.pow(lit(2.0), lit(0.5)), table) == REAL


class TestLogic:
    def test_comparison(self, table):
        assert infer(Expr.compare(">=", var("V_m"), var("V_th")), table) == BOOLEAN
        assert infer(Expr.compare("<", var("V_m"), lit(1, "V")), table) == BOOLEAN

    def test_incompatible_comparison(self, table):
        with pytest.raises(IncompatibleUnits):
            infer(Expr.compare(">", var("V_m"), var("tau_m")), table)

    def test_non_boolean_operand(self, table):
        with pytest.raises(NonBooleanCondition):
            infer(Expr.and_(lit(5, "mV"), Expr.literal(True)), table)
        with pytest.raises(NonBooleanCondition):
            infer(Expr.not_(lit(1)), table)

    def test_ternary(self, table):
        cond = Expr.compare(">", var("V_m"), var("V_th"))
        assert infer(IfExpr(cond, var("E_L"), lit(1, "V")), table) == unit("mV")
        with pytest.raises(NonBooleanCondition):
            infer(IfExpr(lit(1, "mV"), var("E_L"), var("E_L")), table)
        with pytest.raises(IncompatibleUnits):
            infer(IfExpr(cond, var("E_L"), var("tau_m")), table)


class TestCalls:
    def test_exp_of_dimensionless(self, table):
        arg = Expr.div(Expr.neg(var("t")), var("tau_m"))
        assert infer(Expr.exp(arg), table) == REAL

    def test_exp_of_voltage(self, table):
        with pytest.raises(FunctionDoesNotExist):
            infer(Expr.exp(var("V_m")), table)

    def test_integer_argument_widens(self, table):
        assert infer(Expr.exp(lit(1)), table) == REAL

    def test_polymorphic_builtins(self, table):
        assert infer(Expr.call("max", lit(1, "mV"), lit(2, "V")), table) == unit("mV")
        assert infer(Expr.call("abs", lit(-3)), table) == INTEGER
        with pytest.raises(FunctionDoesNotExist):
            infer(Expr.call("max", lit(1, "mV"), lit(2, "ms")), table)

    def test_sqrt(self, table):
        t = infer(Expr.call("sqrt", Expr.pow(var("V_m"), lit(2))), table)
        assert dimension_of(t) == dimension_of(unit("mV"))

    def test_resolution(self, table):
        assert infer(FunctionCall("resolution"), table) == unit("ms")

    def test_unknown_function(self, table):
        with pytest.raises(FunctionDoesNotExist):
            infer(Expr.call("sigmoid", var("V_m")), table)

    def test_wrong_arity(self, table):
        with pytest.raises(FunctionDoesNotExist):
            infer(Expr.call("exp", lit(1), lit(2)), table)


class TestConvolution:
    def test_result_unit(self):
        table = build_symbol_table(iaf_psc_alpha())
        assert infer(Expr.convolve("I_syn", "spikes"), table) == unit("pA")

    def test_second_argument_must_be_a_buffer(self):
        table = build_symbol_table(iaf_psc_alpha())
        with pytest.raises(IllegalExpression):
            infer(Expr.convolve("I_syn", "tau_syn"), table)


class TestAnnotation:
    """annotate_types types every node and records failures where they happen."""

    def test_every_expression_annotated(self):
        model = iaf_psc_alpha()
        table = build_symbol_table(model)
        errors = annotate_types(model, table)
        assert errors == []
        assert all(e.type is not None for e in iter_expressions(model))
        assert model.equations_block.odes[0].rhs.type is not None

    def test_error_at_failing_node_only(self):
        model = iaf_psc_delta()
        table = build_symbol_table(model)
        bad = Expr.add(lit(5, "mV"), lit(3, "ms"))
        outer = Expr.mul(bad, lit(2))
        model.parameter_block.declarations[0].invariant = outer
        outer.bind_scope(table.neuron_scope_id)
        errors = annotate_types(model, table)
        assert len(errors) == 1
        assert isinstance(errors[0], IncompatibleUnits)
        assert isinstance(bad.type, ErrorType) and bad.type.error is errors[0]
        assert isinstance(outer.type, ErrorType) and outer.type.error is None
        assert len(type_errors(model, table)) == 1


class TestCompatibility:
    def test_error_type_is_compatible_with_everything(self):
        assert compatible(ErrorType(), unit("mV"))
        assert is_assignable(unit("mV"), ErrorType())

    def test_assignability(self):
        assert is_assignable(unit("mV"), unit("V"))
        assert is_assignable(REAL, INTEGER)
        assert not is_assignable(INTEGER, REAL)
        assert not is_assignable(unit("mV"), unit("ms"))
        assert not is_assignable(unit("mV"), REAL)

    def test_unit_type_collapses_plain_numbers(self):
        assert unit_type(parse_unit("ms/s")) != REAL
        assert unit_type(parse_unit("mV/mV")) == REAL
        assert isinstance(unit("mV"), UnitType)
        assert unit("mV").dimension == Dimension.of(length=2, mass=1, time=-3, current=-1)
