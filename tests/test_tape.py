import pytest

from calculator_state import StepKind
from errors import InvalidExpression
from keypad import Operator
from tape import (
    apply_operator, compound_step, evaluate_steps, format_tape, number_step,
    operand_step, percent_step,
)


def test_number_step():
    step = number_step(10.0, 1)
    assert step.display_value == "10"
    assert step.kind is StepKind.NUMBER_ENTRY
    assert step.operator is None


def test_operand_step():
    step = operand_step(Operator.SUBTRACT, 2.5, 2)
    assert step.expression == "-2.5"
    assert step.operator is Operator.SUBTRACT
    assert step.result == 2.5


def test_compound_step_with_context():
    step = compound_step(Operator.ADD, "5×3", 15.0, 2)
    assert step.expression == "+(5×3)"
    assert step.display_value == "+(5×3)=15"
    assert step.kind is StepKind.COMPOUND_OPERATION


def test_compound_step_opening_tape():
    step = compound_step(None, "2×3", 6.0, 1)
    assert step.display_value == "(2×3)=6"
    assert step.operator is None


def test_percent_step_shows_new_total():
    step = percent_step(Operator.ADD, 10.0, 20.0, 220.0, 2)
    assert step.display_value == "+10%=220"
    assert step.result == 20.0


def test_evaluate_empty_tape():
    assert evaluate_steps([]) == 0


def test_evaluate_mixed_tape():
    steps = [
        number_step(10.0, 1),
        compound_step(Operator.ADD, "5×3", 15.0, 2),
        operand_step(Operator.SUBTRACT, 5.0, 3),
    ]
    assert evaluate_steps(steps) == 20


def test_evaluate_rejects_step_without_operator():
    steps = [number_step(10.0, 1), number_step(5.0, 2)]
    with pytest.raises(InvalidExpression):
        evaluate_steps(steps)


def test_apply_operator():
    assert apply_operator(Operator.DIVIDE, 9, 3) == 3
    assert apply_operator(Operator.DIVIDE, 9, 0) == 0


def test_apply_unknown_operator():
    with pytest.raises(InvalidExpression):
        apply_operator("^", 2, 3)


def test_format_tape():
    steps = [number_step(10.0, 1), compound_step(Operator.ADD, "5×3", 15.0, 2)]
    assert format_tape(steps) == "10 +(5×3)=15 =25"
