"""
Keypad input classification for ShopCalc
Maps raw button tokens to input categories
"""
from collections import namedtuple
from enum import Enum


class Operator(Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "×"
    DIVIDE = "÷"

    @property
    def symbol(self):
        return self.value

    @property
    def is_additive(self):
        return self in (Operator.ADD, Operator.SUBTRACT)

    @property
    def is_multiplicative(self):
        return self in (Operator.MULTIPLY, Operator.DIVIDE)

    def same_class(self, other):
        return self.is_additive == other.is_additive


class InputKind(Enum):
    DIGIT = "digit"
    DECIMAL = "decimal"
    OPERATOR = "operator"
    EQUALS = "equals"
    SPECIAL = "special"
    REJECTED = "rejected"


Classified = namedtuple("Classified", ["kind", "token", "operator"])

DIGITS = ("0", "1", "2", "3", "4", "5", "6", "7", "8", "9", "00", "000")
DECIMAL = "."
EQUALS = ("=", "ENTER")

OPERATORS = {
    "+": Operator.ADD,
    "-": Operator.SUBTRACT,
    "×": Operator.MULTIPLY,
    "*": Operator.MULTIPLY,
    "÷": Operator.DIVIDE,
    "/": Operator.DIVIDE,
}

# Special function keys
ALL_CLEAR = "AC"
ON_CLEAR = "ON/C"
CLEAR = "C"
CLEAR_ENTRY = "CE"
BACKSPACE = "←"
SIGN = "+/-"
MARKUP = "MU"
MEMORY_PLUS = "M+"
MEMORY_MINUS = "M-"
MEMORY_RECALL = "MRC"
GRAND_TOTAL = "GT"
PERCENT = "%"
SQUARE_ROOT = "√"
AUTO = "AUTO"
CHECK_FORWARD = "CHECK→"
CHECK_BACKWARD = "CHECK←"
LINK = "LINK"

SPECIAL_FUNCTIONS = (
    ON_CLEAR, ALL_CLEAR, CLEAR, CLEAR_ENTRY, BACKSPACE, MARKUP, MEMORY_RECALL,
    MEMORY_MINUS, MEMORY_PLUS, GRAND_TOTAL, AUTO, CHECK_FORWARD,
    CHECK_BACKWARD, PERCENT, SQUARE_ROOT, LINK, SIGN,
)

CLEAR_FAMILY = (ON_CLEAR, ALL_CLEAR, CLEAR, CLEAR_ENTRY)
NAVIGATION = (CHECK_FORWARD, CHECK_BACKWARD)


def classify(token):
    """Classify a raw token.

    Returns a Classified tuple; unknown or non-string tokens come back with
    kind REJECTED rather than raising.
    """
    if not isinstance(token, str) or not token:
        return Classified(InputKind.REJECTED, token, None)

    if token in DIGITS:
        return Classified(InputKind.DIGIT, token, None)

    if token in OPERATORS:
        return Classified(InputKind.OPERATOR, token, OPERATORS[token])

    if token == DECIMAL:
        return Classified(InputKind.DECIMAL, token, None)

    if token in EQUALS:
        return Classified(InputKind.EQUALS, token, None)

    if token in SPECIAL_FUNCTIONS:
        return Classified(InputKind.SPECIAL, token, None)

    return Classified(InputKind.REJECTED, token, None)


def is_clear_key(token):
    return token in CLEAR_FAMILY
