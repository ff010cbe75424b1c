"""
Math Operations for ShopCalc
Pure arithmetic primitives with range and NaN/Infinity validation
"""
import math

import config
from errors import NegativeSquareRoot, NumericOverflow


def validate_result(value):
    """Return value as a float, or raise NumericOverflow if it is unusable"""
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise NumericOverflow(f"Invalid number: {value}")
    if value > config.MAX_SAFE_VALUE or value < config.MIN_SAFE_VALUE:
        raise NumericOverflow(f"Number too large: {value}")
    return value


def add(a, b):
    return validate_result(a + b)


def subtract(a, b):
    return validate_result(a - b)


def multiply(a, b):
    return validate_result(a * b)


def divide(a, b):
    """Divide a by b.

    Division by zero returns 0 instead of failing; the register tape has
    always treated an empty divisor this way.
    """
    if b == 0:
        return 0.0
    return validate_result(a / b)


def power(base, exponent):
    try:
        result = math.pow(base, exponent)
    except (OverflowError, ValueError) as e:
        raise NumericOverflow(f"Power calculation failed: {e}")
    return validate_result(result)


def square_root(value):
    if value < 0:
        raise NegativeSquareRoot(f"Cannot calculate square root of {value}")
    return validate_result(math.sqrt(value))


def percentage(value, base=None):
    """value% of base, or value/100 when no base is given"""
    if base is None:
        return validate_result(value / 100)
    return validate_result(base * value / 100)


def round_to_precision(value, decimals=2):
    return round(value, decimals)


def format_number(value, precision=None):
    """Format a computed value for the display.

    Whole numbers lose their fractional part, other values are rounded to
    DISPLAY_PRECISION decimals with trailing zeros stripped.
    """
    if precision is None:
        precision = config.DISPLAY_PRECISION
    value = round(float(value), precision)
    if value == 0:
        return "0"
    if value.is_integer():
        return str(int(value))
    return f"{value:.{precision}f}".rstrip("0").rstrip(".")


def format_for_display(value, decimals=2, use_thousands_separator=False, currency=None):
    """Format a value for listings (history, receipts)"""
    if use_thousands_separator:
        formatted = f"{value:,.{decimals}f}"
    else:
        formatted = f"{value:.{decimals}f}"

    if currency:
        formatted = f"{currency} {formatted}"

    return formatted


def calculate_statistics(values):
    """Summary statistics for a list of completed results"""
    if not values:
        return {'sum': 0, 'average': 0, 'min': 0, 'max': 0, 'count': 0}

    decimals = config.STATISTICS_DECIMALS
    total = sum(values)
    return {
        'sum': round_to_precision(total, decimals),
        'average': round_to_precision(total / len(values), decimals),
        'min': round_to_precision(min(values), decimals),
        'max': round_to_precision(max(values), decimals),
        'count': len(values)
    }
