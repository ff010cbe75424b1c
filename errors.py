"""
Calculator error kinds.

Arithmetic primitives and the step evaluator raise these; the engine catches
them at the token boundary and switches the calculator into its error state.
"""


class CalculatorError(Exception):
    """Base class for every error the calculator core can raise."""

    kind = "CalculatorError"

    def __init__(self, message=None):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class InvalidToken(CalculatorError):
    kind = "InvalidToken"


class NegativeSquareRoot(CalculatorError):
    kind = "NegativeSquareRoot"


class MarkupMarginOverflow(CalculatorError):
    kind = "MarkupMarginOverflow"


class NumericOverflow(CalculatorError):
    kind = "NumericOverflow"


class InvalidExpression(CalculatorError):
    kind = "InvalidExpression"


class StateImportError(CalculatorError):
    """Raised when an exported state cannot be imported.

    Not an input error: it never puts the calculator into the error state.
    """

    kind = "StateImportError"
