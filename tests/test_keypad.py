import pytest

from keypad import InputKind, Operator, classify, is_clear_key


@pytest.mark.parametrize("token", ["0", "7", "00", "000"])
def test_digits(token):
    assert classify(token).kind is InputKind.DIGIT


@pytest.mark.parametrize("token,operator", [
    ("+", Operator.ADD),
    ("-", Operator.SUBTRACT),
    ("×", Operator.MULTIPLY),
    ("*", Operator.MULTIPLY),
    ("÷", Operator.DIVIDE),
    ("/", Operator.DIVIDE),
])
def test_operators(token, operator):
    classified = classify(token)
    assert classified.kind is InputKind.OPERATOR
    assert classified.operator is operator


def test_decimal_and_equals():
    assert classify(".").kind is InputKind.DECIMAL
    assert classify("=").kind is InputKind.EQUALS
    assert classify("ENTER").kind is InputKind.EQUALS


@pytest.mark.parametrize("token", ["AC", "ON/C", "MU", "MRC", "GT", "AUTO", "CHECK→", "LINK", "√", "%"])
def test_special_keys(token):
    assert classify(token).kind is InputKind.SPECIAL


@pytest.mark.parametrize("token", ["X", "12", "", None, 5])
def test_rejected(token):
    assert classify(token).kind is InputKind.REJECTED


def test_clear_keys():
    assert is_clear_key("CE")
    assert is_clear_key("ON/C")
    assert not is_clear_key("MRC")


def test_operator_classes():
    assert Operator.ADD.same_class(Operator.SUBTRACT)
    assert not Operator.MULTIPLY.same_class(Operator.ADD)
    assert Operator.DIVIDE.is_multiplicative
    assert Operator.SUBTRACT.symbol == "-"
