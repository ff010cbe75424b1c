"""
Tape (step list) helpers for ShopCalc
Builds tape steps and folds a recorded tape into a single result
"""
import math_operations
from calculator_state import Step, StepKind
from errors import InvalidExpression
from keypad import Operator

fmt = math_operations.format_number

_OPERATIONS = {
    Operator.ADD: math_operations.add,
    Operator.SUBTRACT: math_operations.subtract,
    Operator.MULTIPLY: math_operations.multiply,
    Operator.DIVIDE: math_operations.divide,
}


def apply_operator(operator, left, right):
    """Apply a binary operator through the validated primitives"""
    try:
        operation = _OPERATIONS[operator]
    except KeyError:
        raise InvalidExpression(f"Unknown operator: {operator!r}")
    return operation(left, right)


def evaluate_steps(steps):
    """Fold an ordered tape into its running total.

    The first step seeds the accumulator; each later step is folded in with
    its own operator. A lone compound step such as "(2×3)=6" therefore
    evaluates to its own result.
    """
    if not steps:
        return 0.0

    result = steps[0].result
    for step in steps[1:]:
        if step.operator is None:
            raise InvalidExpression(f"Step {step.step_index} has no operator: {step.display_value}")
        result = apply_operator(step.operator, result, step.result)
    return result


# ── Step builders ──────────────────────────────────────────────────────────────

def number_step(value, index):
    text = fmt(value)
    return Step(
        expression=text,
        result=value,
        step_index=index,
        kind=StepKind.NUMBER_ENTRY,
        display_value=text,
    )


def operand_step(operator, value, index):
    """An entry folded into the total with operator, e.g. "+5" """
    text = f"{operator.symbol}{fmt(value)}"
    return Step(
        expression=text,
        result=value,
        step_index=index,
        kind=StepKind.NUMBER_ENTRY,
        display_value=text,
        operator=operator,
    )


def compound_step(context, inner, result, index):
    """A parenthesised sub-result, e.g. "+(5×3)=15".

    context is the additive sign used to fold the result into the tape, or
    None when the compound opens the tape.
    """
    sign = context.symbol if context else ""
    expression = f"{sign}({inner})"
    return Step(
        expression=expression,
        result=result,
        step_index=index,
        kind=StepKind.COMPOUND_OPERATION,
        display_value=f"{expression}={fmt(result)}",
        operator=context,
    )


def percent_step(operator, percent, amount, total, index):
    """An add-on or discount percentage, e.g. "+10%=220" """
    expression = f"{operator.symbol}{fmt(percent)}%"
    return Step(
        expression=expression,
        result=amount,
        step_index=index,
        kind=StepKind.COMPOUND_OPERATION,
        display_value=f"{expression}={fmt(total)}",
        operator=operator,
    )


def format_tape(steps, total=None):
    """Render the tape as one line, e.g. "10 +(5×3)=15 =25" """
    if total is None:
        total = evaluate_steps(steps)
    parts = [step.display_value for step in steps]
    parts.append(f"={fmt(total)}")
    return " ".join(parts)
