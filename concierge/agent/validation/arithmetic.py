"""
Local arithmetic fallback for single-operator expressions.
"""

import operator
import re
from typing import Optional

_NUMBER = r"(-?\d+(?:\.\d+)?)"

BINARY_EXPRESSION = re.compile(
    _NUMBER + r"\s*([+\-*/×÷]|\bx\b)\s*" + _NUMBER, re.IGNORECASE
)
PERCENT_OF = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:%|percent)\s+of\s+\$?(\d+(?:\.\d+)?)", re.IGNORECASE
)

OPERATORS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}
ALIASES = {"×": "*", "x": "*", "X": "*", "÷": "/"}


def format_number(value: float) -> str:
    """12.0 -> "12", 0.1 + 0.2 -> "0.3"."""
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def attempt_math_fallback(text: str) -> Optional[str]:
    """
    Evaluate the first "N% of M" or "number operator number" in `text`.

    Returns:
        "a op b = result", an "undefined" message for division by zero,
        or None when nothing can be extracted.
    """
    percent = PERCENT_OF.search(text)
    if percent:
        rate, base = float(percent.group(1)), float(percent.group(2))
        result = rate / 100 * base
        return (
            f"{format_number(rate)}% of {format_number(base)} = {format_number(result)}"
        )

    match = BINARY_EXPRESSION.search(text)
    if not match:
        return None

    left, symbol, right = match.group(1), match.group(2), match.group(3)
    symbol = ALIASES.get(symbol, symbol)
    a, b = float(left), float(right)

    if symbol == "/" and b == 0:
        return f"{format_number(a)} / 0 is undefined (division by zero)."

    result = OPERATORS[symbol](a, b)
    return f"{format_number(a)} {symbol} {format_number(b)} = {format_number(result)}"
