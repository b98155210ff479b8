"""
Tests for the context conditions.
"""

import pytest

from common import (
    aeif_like,
    alias,
    assign,
    current_input,
    decl,
    equations,
    iaf_psc_alpha,
    iaf_psc_delta,
    for_,
    if_,
    inputs,
    internals,
    lif_parameters,
    lit,
    neuron,
    ode,
    parameters,
    shape,
    spike_input,
    state,
    update,
    var,
    while_,
)
from nmlc.cocos import context_condition, registered_checks, run_context_conditions
from nmlc.diagnostics import DiagnosticCode, DiagnosticReport
from nmlc.ir import Block, DataType, Expr, FunctionDecl, ReturnStatement
from nmlc.symtab import build_symbol_table
from nmlc.typecheck.inference import annotate_types


def diagnose(model, *checks, max_workers=None):
    table = build_symbol_table(model)
    annotate_types(model, table)
    diagnostics = run_context_conditions(model, table, list(checks) or None, max_workers)
    return DiagnosticReport(diagnostics)


def membrane(*body):
    """A single-state neuron with the usual parameters plus ``body``."""
    return neuron(
        "membrane",
        state(decl("V_m", "mV", var("E_L"))),
        equations(ode("V_m", 1, Expr.div(Expr.neg(Expr.sub(var("V_m"), var("E_L"))), var("tau_m")))),
        lif_parameters(),
        *body,
    )


class TestValidModels:
    """Well-formed models report nothing."""

    @pytest.mark.parametrize("build", [iaf_psc_delta, iaf_psc_alpha, aeif_like])
    def test_no_diagnostics(self, build):
        report = diagnose(build())
        assert report.is_valid, report.summary()
        assert len(report) == 0

    def test_boolean_threshold_condition(self):
        report = diagnose(iaf_psc_delta(), "boolean_conditions")
        assert report.codes() == []


class TestConditions:
    def test_non_boolean_if(self):
        """if 5 mV: ... is reported exactly once."""
        model = membrane(update(if_(lit(5, "mV"), assign("V_m", var("E_L")))))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.NON_BOOLEAN_CONDITION]

    def test_non_boolean_operand_reported_once(self):
        cond = Expr.and_(lit(5, "mV"), Expr.literal(True))
        report = diagnose(membrane(update(if_(cond, assign("V_m", var("E_L"))))))
        assert report.codes() == [DiagnosticCode.NON_BOOLEAN_CONDITION]

    def test_non_boolean_invariant(self):
        model = neuron("n", parameters(decl("tau", "ms", lit(1, "ms"), invariant=lit(0, "ms"))))
        report = diagnose(model, "boolean_invariants")
        assert report.codes() == [DiagnosticCode.NON_BOOLEAN_CONDITION]


def counters():
    return internals(decl("i", "integer", lit(0)), decl("flag", "boolean", Expr.literal(True)))


class TestLoops:
    def test_numeric_loop(self):
        loop = for_("i", lit(0), lit(10), assign("V_m", var("E_L")))
        report = diagnose(membrane(counters(), update(loop)))
        assert report.codes() == []

    def test_boolean_iterator(self):
        loop = for_("flag", lit(0), lit(10), assign("V_m", var("E_L")))
        report = diagnose(membrane(counters(), update(loop)), "for_loops")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]

    def test_boolean_bounds(self):
        loop = for_("i", Expr.literal(True), Expr.literal(False))
        report = diagnose(membrane(counters(), update(loop)), "for_loops")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION] * 2

    def test_while_condition(self):
        cond = Expr.compare(">", var("V_m"), var("V_th"))
        report = diagnose(membrane(update(while_(cond, assign("V_m", var("E_L"))))))
        assert report.codes() == []

    def test_non_boolean_while(self):
        report = diagnose(membrane(update(while_(lit(5, "mV"), assign("V_m", var("E_L"))))))
        assert report.codes() == [DiagnosticCode.NON_BOOLEAN_CONDITION]


class TestNames:
    def test_one_duplicate(self):
        model = neuron(
            "dup",
            state(decl("a", "mV", lit(0, "mV")), decl("a", "mV", lit(1, "mV"))),
            equations(ode("a", 1, Expr.div(Expr.neg(var("a")), lit(10, "ms")))),
        )
        report = diagnose(model)
        assert len(report.by_code(DiagnosticCode.DUPLICATE_SYMBOL)) == 1

    def test_undefined(self):
        report = diagnose(membrane(update(assign("V_m", var("nope")))))
        assert report.codes() == [DiagnosticCode.UNDEFINED_SYMBOL]

    def test_use_before_definition_in_one_block(self):
        model = neuron("n", parameters(decl("a", "mV", var("b")), decl("b", "mV", lit(1, "mV"))))
        report = diagnose(model, "defined_before_use")
        assert report.codes() == [DiagnosticCode.UNDEFINED_SYMBOL]
        assert "before its definition" in report.diagnostics[0].message

    def test_forward_reference_across_blocks(self):
        """State initializers may refer to parameters declared further down."""
        report = diagnose(iaf_psc_delta(), "defined_before_use")
        assert report.codes() == []

    def test_local_use_before_definition(self):
        model = neuron("n", update(decl("y", "real", var("z")), decl("z", "real", lit(1.0))))
        report = diagnose(model, "defined_before_use")
        assert report.codes() == [DiagnosticCode.UNDEFINED_SYMBOL]

    def test_variable_with_type_name(self):
        model = neuron("n", parameters(decl("ms", "real", lit(1.0))))
        report = diagnose(model, "variable_has_type_name")
        assert report.codes() == [DiagnosticCode.VARIABLE_HAS_TYPE_NAME]

    def test_unknown_declared_type(self):
        model = neuron("n", parameters(decl("x", "furlong", lit(1.0))))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.UNKNOWN_UNIT]


class TestSelfReference:
    def test_initializer(self):
        model = neuron("n", parameters(decl("a", "mV", Expr.add(var("a"), lit(1, "mV")))))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.SELF_REFERENTIAL_INITIALIZER]

    def test_alias(self):
        model = membrane(equations(alias("I", "pA", Expr.add(var("I"), lit(1, "pA")))))
        report = diagnose(model, "self_reference")
        assert report.codes() == [DiagnosticCode.SELF_REFERENTIAL_INITIALIZER]

    def test_local_declaration_sees_itself(self):
        model = neuron(
            "n",
            parameters(decl("a", "real", lit(1.0))),
            update(if_(Expr.literal(True), decl("a", "real", Expr.add(var("a"), lit(1.0))))),
        )
        report = diagnose(model, "self_reference")
        assert len(report) == 1

    def test_derivative_is_allowed(self):
        model = membrane(equations(alias("I", "pA", Expr.mul(var("C_m"), var("V_m", 1)))))
        report = diagnose(model, "self_reference")
        assert report.codes() == []


class TestStructure:
    def test_code_after_return(self):
        body = Block([ReturnStatement(lit(1.0)), ReturnStatement(lit(2.0))])
        model = neuron("n", FunctionDecl("f", [], DataType("real"), body))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.CODE_AFTER_RETURN]

    def test_vector_in_scalar_declaration(self):
        model = neuron(
            "n",
            parameters(
                decl("n", "integer", lit(3)),
                decl("three", "integer", lit(3), size="n"),
                decl("seven", "integer", Expr.add(var("three"), lit(4))),
            ),
        )
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.VECTOR_VARIABLE_IN_NON_VECTOR_DECLARATION]

    def test_vector_size_must_be_integer(self):
        model = neuron(
            "n",
            parameters(decl("m", "real", lit(1.0)), decl("v", "real", lit(0.0), size="m")),
        )
        report = diagnose(model, "vector_declarations")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]

    def test_vector_of_other_size(self):
        model = neuron(
            "n",
            parameters(
                decl("n", "integer", lit(3)),
                decl("k", "integer", lit(2)),
                decl("a", "real", lit(0.0), size="n"),
                decl("b", "real", var("a"), size="k"),
            ),
        )
        report = diagnose(model, "vector_declarations")
        assert report.codes() == [DiagnosticCode.VECTOR_VARIABLE_IN_NON_VECTOR_DECLARATION]


class TestEquations:
    def test_lhs_must_be_state(self):
        model = membrane(equations(ode("tau_m", 1, lit(0.0))))
        report = diagnose(model, "ode_lhs")
        assert report.codes() == [DiagnosticCode.ILLEGAL_ODE_LHS]

    def test_order_limit(self):
        model = neuron("n", state(decl("x", "real", lit(0.0))), equations(ode("x", 3, var("x"))))
        report = diagnose(model, "ode_lhs")
        assert report.codes() == [DiagnosticCode.ILLEGAL_ODE_LHS]

    def test_integer_state(self):
        model = neuron("n", state(decl("k", "integer", lit(0))), equations(ode("k", 1, lit(0))))
        report = diagnose(model, "ode_lhs")
        assert report.codes() == [DiagnosticCode.ILLEGAL_ODE_LHS]

    def test_equation_defined_twice(self):
        model = membrane(equations(ode("V_m", 1, Expr.div(var("E_L"), var("tau_m")))))
        report = diagnose(model, "ode_lhs")
        assert report.codes() == [DiagnosticCode.ILLEGAL_ODE_LHS]

    def test_unit_mismatch(self):
        model = neuron(
            "n",
            state(decl("V_m", "mV", lit(0, "mV"))),
            equations(ode("V_m", 1, Expr.neg(var("V_m")))),
        )
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.INCOMPATIBLE_UNITS]

    def test_alias_type(self):
        model = membrane(equations(alias("I", "pA", var("E_L"))))
        report = diagnose(model, "initializer_types")
        assert report.codes() == [DiagnosticCode.INCOMPATIBLE_UNITS]


class TestConvolutions:
    def test_only_in_equations(self):
        model = membrane(
            inputs(spike_input("spikes", "pA")),
            equations(shape("g", Expr.exp(Expr.div(Expr.neg(var("t")), var("tau_m"))))),
            update(decl("x", "pA", Expr.convolve("g", "spikes"))),
        )
        report = diagnose(model, "convolutions")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]

    def test_first_argument_must_be_shape(self):
        model = membrane(
            inputs(spike_input("spikes", "pA")),
            equations(alias("I", "pA", Expr.convolve("tau_m", "spikes"))),
        )
        report = diagnose(model, "convolutions")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]

    def test_second_argument_must_be_buffer(self):
        model = iaf_psc_alpha()
        model.equations_block.elements.append(alias("I_bad", "pA", Expr.convolve("I_syn", "I_e")))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]


class TestStatements:
    def test_assignment_unit_mismatch(self):
        report = diagnose(membrane(update(assign("V_m", lit(1, "ms")))))
        assert report.codes() == [DiagnosticCode.INCOMPATIBLE_UNITS]

    def test_compound_assignment_needs_dimensionless_factor(self):
        report = diagnose(membrane(update(assign("V_m", lit(2, "mV"), "*="))))
        assert report.codes() == [DiagnosticCode.INCOMPATIBLE_UNITS]
        report = diagnose(membrane(update(assign("V_m", lit(2), "*="))))
        assert report.codes() == []

    def test_assign_to_alias(self):
        model = membrane(
            equations(alias("I", "pA", Expr.mul(var("C_m"), var("V_m", 1)))),
            update(assign("I", lit(1, "pA"))),
        )
        report = diagnose(model, "assignment_types")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]

    def test_narrowing_is_rejected(self):
        model = neuron("n", state(decl("k", "integer", lit(0))), update(assign("k", lit(1.5))))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.INCOMPATIBLE_UNITS]

    def test_return_type(self):
        body = Block([ReturnStatement(lit(1, "ms"))])
        model = neuron("n", FunctionDecl("f", [], DataType("real"), body))
        report = diagnose(model)
        assert report.codes() == [DiagnosticCode.INCOMPATIBLE_UNITS]

    def test_missing_return_value(self):
        body = Block([ReturnStatement()])
        model = neuron("n", FunctionDecl("f", [], DataType("mV"), body))
        report = diagnose(model, "return_types")
        assert report.codes() == [DiagnosticCode.ILLEGAL_EXPRESSION]


class TestRunner:
    """Running the registered checks."""

    def _defective(self):
        return membrane(
            inputs(current_input("I_stim")),
            parameters(
                decl("x", "mV", Expr.add(lit(5, "mV"), lit(3, "ms"))),
                decl("ms", "real", lit(1.0)),
            ),
            update(
                if_(lit(5, "mV"), assign("V_m", var("E_L"))),
                assign("V_m", var("nope")),
            ),
        )

    def test_independent_defects_reported_separately(self):
        report = diagnose(self._defective())
        assert sorted(report.codes()) == sorted(
            [
                DiagnosticCode.INCOMPATIBLE_UNITS,
                DiagnosticCode.VARIABLE_HAS_TYPE_NAME,
                DiagnosticCode.NON_BOOLEAN_CONDITION,
                DiagnosticCode.UNDEFINED_SYMBOL,
            ]
        )

    def test_thread_pool_gives_same_result(self):
        sequential = diagnose(self._defective())
        parallel = diagnose(self._defective(), max_workers=4)
        assert [(d.code, d.message) for d in parallel] == [
            (d.code, d.message) for d in sequential
        ]

    def test_selection(self):
        report = diagnose(self._defective(), "unique_names", "variable_has_type_name")
        assert report.codes() == [DiagnosticCode.VARIABLE_HAS_TYPE_NAME]

    def test_unknown_check(self):
        model = iaf_psc_delta()
        table = build_symbol_table(model)
        with pytest.raises(ValueError):
            run_context_conditions(model, table, ["no_such_check"])

    def test_registered_in_order(self):
        names = list(registered_checks())
        assert names[0] == "unique_names"
        assert "ode_types" in names and "convolutions" in names

    def test_name_taken(self):
        with pytest.raises(ValueError):

            @context_condition("unique_names")
            def other(neuron, table):
                return []
