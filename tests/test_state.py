import json
import math

import pytest

from calculator import Calculator
from calculator_state import (
    CalculatorState, Pending, PendingPercent, export_state, import_state,
)
from errors import StateImportError
from keypad import Operator


def test_export_contains_state_and_timestamp(calc, press):
    press(calc, "10 + 5 × 3 =")
    payload = json.loads(calc.export_state())
    assert set(payload) == {'state', 'timestamp'}
    assert payload['state']['display'] == "25"
    assert payload['state']['steps'][1]['display_value'] == "+(5×3)=15"


def test_round_trip_mid_calculation(calc, press):
    press(calc, "10 + 5 × 3 = 7 M+ 4 + 2 ×")
    restored = import_state(export_state(calc.state))
    assert restored == calc.state


def test_round_trip_with_staged_percent(calc, press):
    press(calc, "200 × 10 %")
    restored = import_state(export_state(calc.state))
    assert restored.pending == PendingPercent(Operator.MULTIPLY, 200.0, 10.0, 20.0)
    assert restored == calc.state


def test_round_trip_with_repeat(calc, press):
    press(calc, "2 + 3 =")
    restored = import_state(export_state(calc.state))
    assert restored.repeat == calc.state.repeat


def test_imported_state_continues(calc, press):
    press(calc, "10 + 5 ×")
    exported = calc.export_state()
    calc.process_input("AC")

    calc.import_state(exported)
    assert press(calc, "3 =")['display'] == "25"


def test_import_during_replay_leaves_replay_stopped(press):
    source = Calculator(replay_delay=30)
    press(source, "2 + 3 =")
    source.process_input("AUTO")
    exported = source.export_state()
    source.process_input("C")
    source.replay.join(2)

    target = Calculator(replay_delay=0)
    target.import_state(exported)
    assert target.state.is_replaying is False
    assert target.state.tape_view is None
    assert press(target, "+ 1 =")['display'] == "6"


def test_import_rejects_invalid_json():
    with pytest.raises(StateImportError):
        import_state("not json")


def test_import_rejects_missing_state():
    with pytest.raises(StateImportError):
        import_state('{"timestamp": 1}')


def test_import_rejects_malformed_step():
    with pytest.raises(StateImportError):
        import_state('{"state": {"steps": [{"expression": "x"}]}}')


def test_import_fills_missing_fields_with_defaults():
    state = import_state('{"state": {"display": "42"}}')
    assert state.display == "42"
    assert state.pending == CalculatorState().pending
    assert state.steps == []


def test_failed_import_leaves_calculator_untouched(calc, press):
    press(calc, "12")
    with pytest.raises(StateImportError):
        calc.import_state("{}")
    assert calc.state.display == "12"
    assert calc.state.is_error is False


def test_pending_properties():
    state = CalculatorState(pending=Pending(Operator.DIVIDE, 8.0))
    assert state.pending_operator == "÷"
    assert state.pending_operand == 8.0


def test_validate_fresh_state(calc):
    assert calc.validate_state() == (True, [])


def test_validate_detects_problems(calc, press):
    press(calc, "10 + 5 =")
    calc.state.steps[1].operator = None
    calc.state.memory = math.nan

    is_valid, errors = calc.validate_state()
    assert is_valid is False
    assert 'Invalid memory value' in errors
    assert 'Every later step must carry an operator' in errors


def test_get_state_is_a_copy(calc, press):
    press(calc, "5")
    copy = calc.get_state()
    copy.display = "9"
    assert calc.state.display == "5"


def test_reset(calc, press):
    press(calc, "5 M+ 1 + 1 =")
    calc.reset()
    assert calc.state == CalculatorState()
