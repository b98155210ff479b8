"""
Tests for the compilation pipeline.
"""

import logging

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
    if_,
    inputs,
    leaky_rhs,
    lif_parameters,
    lit,
    neuron,
    ode,
    shape,
    state,
    update,
    var,
    while_,
)
from nmlc import CompilationFailed, CompilerConfig, SolverConfig, compile_model, compile_models, compile_unit
from nmlc.diagnostics import DiagnosticCode
from nmlc.ir import CompilationUnit, Expr
from nmlc.odes import IntegrationKind


def broken():
    """A membrane equation with a non-boolean condition and a missing equation."""
    return neuron(
        "broken",
        state(decl("V_m", "mV", var("E_L")), decl("w", "mV", lit(0, "mV"))),
        equations(ode("V_m", 1, Expr.div(Expr.neg(Expr.sub(var("V_m"), var("E_L"))), var("tau_m")))),
        lif_parameters(),
        update(if_(lit(5, "mV"), assign("V_m", var("E_L")))),
    )


class TestCompileModel:
    def test_valid(self):
        result = compile_model(iaf_psc_alpha())
        assert result.succeeded
        assert result.plan is not None
        assert [s.kind for s in result.plan.subsystems] == [IntegrationKind.EXACT]
        result.raise_for_errors()
        assert "exact-integration" in result.summary()

    def test_non_linear(self):
        result = compile_model(aeif_like())
        assert result.succeeded
        assert result.plan.subsystems[0].kind == IntegrationKind.NUMERICAL

    def test_errors_skip_classification(self):
        result = compile_model(broken())
        assert not result.succeeded
        assert result.plan is None
        assert [d.code for d in result.diagnostics] == [
            DiagnosticCode.NON_BOOLEAN_CONDITION,
            DiagnosticCode.MISSING_EQUATION,
        ]

    def test_buffer_type_reported_alongside_check_errors(self):
        model = neuron(
            "bad_buffer",
            state(decl("V_m", "mV", var("E_L"))),
            equations(
                shape("g", Expr.exp(Expr.div(Expr.neg(var("t")), var("tau_m")))),
                alias("I", "pA", Expr.convolve("g", "currents")),
                ode("V_m", 1, Expr.add(leaky_rhs(), Expr.div(var("I"), var("C_m")))),
            ),
            lif_parameters(),
            inputs(current_input("currents")),
            update(while_(lit(5, "mV"))),
        )
        result = compile_model(model)
        assert result.plan is None
        assert result.report.codes() == [
            DiagnosticCode.NON_BOOLEAN_CONDITION,
            DiagnosticCode.INCOMPATIBLE_BUFFER_TYPE,
        ]

    def test_classify_on_errors(self):
        config = CompilerConfig(classify_on_errors=True)
        result = compile_model(broken(), config)
        assert result.plan is not None
        assert result.report.codes() == [
            DiagnosticCode.NON_BOOLEAN_CONDITION,
            DiagnosticCode.MISSING_EQUATION,
        ]

    def test_raise_for_errors(self):
        result = compile_model(broken())
        with pytest.raises(CompilationFailed) as info:
            result.raise_for_errors()
        assert info.value.neuron == "broken"
        assert len(info.value.diagnostics) == 2

    def test_selected_checks(self):
        config = CompilerConfig(checks=["unique_names"])
        result = compile_model(broken(), config)
        assert result.report.codes() == [DiagnosticCode.MISSING_EQUATION]

    def test_threaded_checks(self):
        config = CompilerConfig(check_workers=4)
        result = compile_model(broken(), config)
        assert result.report.codes() == [
            DiagnosticCode.NON_BOOLEAN_CONDITION,
            DiagnosticCode.MISSING_EQUATION,
        ]

    def test_solver_config(self):
        config = CompilerConfig(solver=SolverConfig(step_symbol="dt", simplify=False))
        result = compile_model(iaf_psc_delta(), config)
        prop = result.plan.subsystems[0].directive.propagator
        assert prop.step.name == "dt"

    def test_logging(self, caplog):
        with caplog.at_level(logging.INFO, logger="nmlc"):
            compile_model(broken())
        assert "skipping equation classification of 'broken'" in caplog.text


class TestCompileMany:
    def _models(self):
        return [iaf_psc_delta(), broken(), iaf_psc_alpha(), aeif_like()]

    def test_order_is_kept(self):
        results = compile_models(self._models(), max_workers=4)
        assert [r.neuron.name for r in results] == ["iaf_psc_delta", "broken", "iaf_psc_alpha", "aeif_like"]
        assert [r.succeeded for r in results] == [True, False, True, True]

    def test_parallel_matches_sequential(self):
        sequential = compile_models(self._models())
        parallel = compile_models(self._models(), max_workers=4)
        for a, b in zip(sequential, parallel):
            assert a.report.codes() == b.report.codes()
            assert str(a.plan) == str(b.plan)

    def test_compile_unit(self):
        unit = CompilationUnit([iaf_psc_delta(), broken()])
        results = compile_unit(unit, max_workers=2)
        assert set(results) == {"iaf_psc_delta", "broken"}
        assert results["iaf_psc_delta"].succeeded
        assert not results["broken"].succeeded
