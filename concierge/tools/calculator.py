import ast
import math
import operator
import re
from typing import Any, Dict

from concierge.agent.validation.arithmetic import format_number
from concierge.exceptions import ToolExecutionError, ToolInputValidationError
from concierge.tools.base import BaseTool

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_FUNCTIONS = {
    "sqrt": math.sqrt,
    "abs": abs,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
    "log": math.log10,
    "ln": math.log,
}
_CONSTANTS = {"pi": math.pi, "e": math.e}

MAX_EXPONENT = 100
MAX_EXPRESSION_LENGTH = 200

_PERCENT_OF = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*of\s*", re.IGNORECASE)
_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_TIMES_X = re.compile(r"(?<=\d)\s*[xX]\s*(?=\d)")


def normalize_expression(expression: str) -> str:
    """Rewrite everyday notation ("20% of 85", "3 × 4", "2^8") into Python syntax."""
    expr = expression.strip().replace("×", "*").replace("÷", "/").replace("^", "**")
    expr = expr.replace(",", "")
    expr = _TIMES_X.sub("*", expr)
    expr = _PERCENT_OF.sub(r"(\1/100)*", expr)
    expr = _PERCENT.sub(r"(\1/100)", expr)
    return expr


def evaluate(expression: str) -> float:
    """
    Safely evaluate an arithmetic expression.

    Raises:
        ToolInputValidationError: Unsupported syntax.
        ToolExecutionError: Math errors such as division by zero.
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ToolInputValidationError(
            "Invalid expression: too long", tool_name="calculator", invalid_input=expression
        )
    try:
        tree = ast.parse(normalize_expression(expression), mode="eval")
    except SyntaxError as e:
        raise ToolInputValidationError(
            f"Invalid expression: {expression}",
            tool_name="calculator",
            invalid_input=expression,
        ) from e

    try:
        return _eval_node(tree.body)
    except ZeroDivisionError as e:
        raise ToolExecutionError(
            "Invalid expression: division by zero is undefined",
            tool_name="calculator",
            original_error=e,
        ) from e
    except (OverflowError, ValueError) as e:
        raise ToolExecutionError(
            f"Invalid expression: {e}", tool_name="calculator", original_error=e
        ) from e


def _eval_node(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left, right = _eval_node(node.left), _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("exponent too large")
        return _BIN_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return _FUNCTIONS[node.func.id](*(_eval_node(a) for a in node.args))
    raise ToolInputValidationError(
        f"Invalid expression: unsupported element '{type(node).__name__}'",
        tool_name="calculator",
    )


class CalculatorTool(BaseTool):
    priority = 10
    capability = "Calculations and percentages"

    @property
    def name(self) -> str:
        return "calculator"

    @property
    def description(self) -> str:
        return (
            "Evaluate a math expression. Supports + - * / ** and parentheses, "
            "percentages like '20% of 85', sqrt, round, abs and pi."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "The expression, e.g. '100 * 0.15' or '20% of 85'",
                }
            },
            "required": ["expression"],
        }

    async def execute(self, expression: str = "", **kwargs) -> str:
        result = evaluate(str(expression))
        self.logger.debug("%s = %s", expression, result)
        return f"{expression} = {format_number(float(result))}"
