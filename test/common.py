"""
Model builders shared by the tests.

The parser is not part of nmlc, so tests assemble neurons directly from IR
nodes. Every helper creates fresh nodes; AST nodes must not be shared between
neurons.
"""

from typing import Optional, Union

from nmlc.ir import (
    Assignment,
    Block,
    CallStatement,
    DataType,
    Declaration,
    EquationsBlock,
    Expr,
    ForStatement,
    FunctionCall,
    IfStatement,
    InputBlock,
    InputLine,
    Literal,
    Neuron,
    OdeAlias,
    OdeEquation,
    OutputBlock,
    Shape,
    UpdateBlock,
    VariableBlock,
    VarRef,
    WhileStatement,
)
from nmlc.kinds import BlockKind, EventKind

Number = Union[int, float]


def lit(value: Number, unit: Optional[str] = None) -> Literal:
    return Literal(value, unit)


def var(name: str, order: int = 0) -> VarRef:
    return VarRef(name, order)


def decl(
    name: str,
    datatype: str,
    expr: Optional[Expr] = None,
    invariant: Optional[Expr] = None,
    size: Optional[str] = None,
    alias: bool = False,
) -> Declaration:
    return Declaration((name,), DataType(datatype), expr, invariant, size, alias)


def state(*declarations: Declaration) -> VariableBlock:
    return VariableBlock(BlockKind.STATE, list(declarations))


def parameters(*declarations: Declaration) -> VariableBlock:
    return VariableBlock(BlockKind.PARAMETER, list(declarations))


def internals(*declarations: Declaration) -> VariableBlock:
    return VariableBlock(BlockKind.INTERNAL, list(declarations))


def ode(name: str, order: int, rhs: Expr) -> OdeEquation:
    return OdeEquation(VarRef(name, order), rhs)


def alias(name: str, datatype: str, expr: Expr) -> OdeAlias:
    return OdeAlias(name, DataType(datatype), expr)


def shape(name: str, rhs: Expr, order: int = 0, *initial_values: Expr) -> Shape:
    return Shape(VarRef(name, order), rhs, initial_values=tuple(initial_values))


def equations(*elements) -> EquationsBlock:
    return EquationsBlock(list(elements))


def spike_input(name: str, datatype: Optional[str] = None) -> InputLine:
    return InputLine(name, EventKind.SPIKE, DataType(datatype) if datatype else None)


def current_input(name: str, datatype: str = "pA") -> InputLine:
    return InputLine(name, EventKind.CURRENT, DataType(datatype))


def inputs(*lines: InputLine) -> InputBlock:
    return InputBlock(list(lines))


def update(*statements) -> UpdateBlock:
    return UpdateBlock(Block(list(statements)))


def if_(condition: Expr, *statements) -> IfStatement:
    return IfStatement([(condition, Block(list(statements)))])


def while_(condition: Expr, *statements) -> WhileStatement:
    return WhileStatement(condition, Block(list(statements)))


def for_(iterator: str, start: Expr, stop: Expr, *statements, step: Number = 1) -> ForStatement:
    return ForStatement(VarRef(iterator), start, stop, Block(list(statements)), step)


def assign(name: str, expr: Expr, op: str = "=") -> Assignment:
    return Assignment(VarRef(name), expr, op)


def call(func: str, *args: Expr) -> CallStatement:
    return CallStatement(FunctionCall(func, tuple(args)))


def neuron(name: str, *body) -> Neuron:
    return Neuron(name, list(body))


# ----------------------------------------------------------------------------
# Models
# ----------------------------------------------------------------------------


def leaky_rhs() -> Expr:
    """-(V_m - E_L) / tau_m + I_e / C_m"""
    leak = Expr.div(Expr.neg(Expr.sub(var("V_m"), var("E_L"))), var("tau_m"))
    return Expr.add(leak, Expr.div(var("I_e"), var("C_m")))


def lif_parameters(*extra: Declaration) -> VariableBlock:
    return parameters(
        decl("tau_m", "ms", lit(10, "ms")),
        decl("C_m", "pF", lit(250, "pF")),
        decl("E_L", "mV", lit(-70, "mV")),
        decl("V_th", "mV", lit(-55, "mV")),
        decl("I_e", "pA", lit(0, "pA")),
        *extra,
    )


def spike_update() -> UpdateBlock:
    return update(
        call("integrate_odes"),
        if_(
            Expr.compare(">=", var("V_m"), var("V_th")),
            assign("V_m", var("E_L")),
            call("emit_spike"),
        ),
    )


def iaf_psc_delta() -> Neuron:
    """Leaky integrate-and-fire neuron with a single linear membrane equation."""
    return neuron(
        "iaf_psc_delta",
        state(decl("V_m", "mV", var("E_L"))),
        equations(ode("V_m", 1, leaky_rhs())),
        lif_parameters(),
        inputs(spike_input("spikes", "mV"), current_input("currents")),
        OutputBlock(EventKind.SPIKE),
        spike_update(),
    )


def alpha_kernel(name: str = "I_syn", tau: str = "tau_syn") -> Expr:
    """(e / tau) * t * exp(-t / tau)"""
    scale = Expr.div(var("e"), var(tau))
    decay = Expr.exp(Expr.div(Expr.neg(var("t")), var(tau)))
    return Expr.mul(Expr.mul(scale, var("t")), decay)


def iaf_psc_alpha() -> Neuron:
    """Integrate-and-fire neuron with alpha shaped post-synaptic currents."""
    current = Expr.add(Expr.convolve("I_syn", "spikes"), Expr.add(var("I_e"), var("currents")))
    rhs = Expr.add(
        Expr.div(Expr.neg(Expr.sub(var("V_m"), var("E_L"))), var("tau_m")),
        Expr.div(var("I_total"), var("C_m")),
    )
    return neuron(
        "iaf_psc_alpha",
        state(decl("V_m", "mV", var("E_L"))),
        equations(
            shape("I_syn", alpha_kernel()),
            alias("I_total", "pA", current),
            ode("V_m", 1, rhs),
        ),
        lif_parameters(decl("tau_syn", "ms", lit(2, "ms"))),
        inputs(spike_input("spikes", "pA"), current_input("currents")),
        OutputBlock(EventKind.SPIKE),
        spike_update(),
    )


def aeif_like() -> Neuron:
    """Adaptive exponential neuron: the exponential term makes V_m non-linear."""
    exp_term = Expr.mul(
        var("Delta_T"),
        Expr.exp(Expr.div(Expr.sub(var("V_m"), var("V_th")), var("Delta_T"))),
    )
    v_rhs = Expr.div(
        Expr.sub(Expr.add(Expr.neg(Expr.sub(var("V_m"), var("E_L"))), exp_term), Expr.mul(var("w"), var("R"))),
        var("tau_m"),
    )
    w_rhs = Expr.div(Expr.sub(Expr.div(Expr.sub(var("V_m"), var("E_L")), var("R")), var("w")), var("tau_w"))
    return neuron(
        "aeif_like",
        state(decl("V_m", "mV", var("E_L")), decl("w", "pA", lit(0, "pA"))),
        equations(ode("V_m", 1, v_rhs), ode("w", 1, w_rhs)),
        lif_parameters(
            decl("Delta_T", "mV", lit(2, "mV")),
            decl("R", "GOhm", lit(0.04, "GOhm")),
            decl("tau_w", "ms", lit(144, "ms")),
        ),
        OutputBlock(EventKind.SPIKE),
        spike_update(),
    )
