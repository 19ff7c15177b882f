"""Arithmetic evaluation without ``eval``."""

from __future__ import annotations

import ast
import math
import operator
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from agentchat.tools.base import ToolContext, tool

_BINARY: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "sqrt": math.sqrt,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "abs": abs,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
}
_CONSTANTS = {"pi": math.pi, "e": math.e}
_MAX_EXPONENT = 10_000


def evaluate(expression: str) -> float | int:
    """Evaluate an arithmetic expression.

    Supports ``+ - * / // % ^ **``, parentheses, the functions in
    ``_FUNCTIONS`` and the constants ``pi`` and ``e``.  ``^`` is treated as
    exponentiation.

    Raises:
        ValueError: the expression uses anything else or cannot be computed.
    """
    try:
        tree = ast.parse(expression.replace("^", "**"), mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"invalid syntax: {exc.msg}") from exc
    value = _eval(tree.body)
    if isinstance(value, complex):
        raise ValueError("result is not a real number")
    return value


def _eval(node: ast.AST) -> Any:
    match node:
        case ast.Constant(value=value) if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        case ast.Name(id=name) if name in _CONSTANTS:
            return _CONSTANTS[name]
        case ast.BinOp(left=left, op=op, right=right) if type(op) in _BINARY:
            lhs, rhs = _eval(left), _eval(right)
            if isinstance(op, ast.Pow) and abs(rhs) > _MAX_EXPONENT:
                raise ValueError("exponent too large")
            try:
                return _BINARY[type(op)](lhs, rhs)
            except (ZeroDivisionError, OverflowError) as exc:
                raise ValueError(str(exc)) from exc
        case ast.UnaryOp(op=op, operand=operand) if type(op) in _UNARY:
            return _UNARY[type(op)](_eval(operand))
        case ast.Call(func=ast.Name(id=name), args=args, keywords=[]) if name in _FUNCTIONS:
            try:
                return _FUNCTIONS[name](*(_eval(a) for a in args))
            except (TypeError, ValueError, OverflowError) as exc:
                raise ValueError(f"{name}: {exc}") from exc
    raise ValueError(f"unsupported expression element: {ast.dump(node)[:60]}")


def _format(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return str(value)


class CalculatorArgs(BaseModel):
    expression: str = Field(description="Mathematical expression to evaluate, e.g. 'sqrt(16) + 2^3'")


@tool("calculator", CalculatorArgs)
def calculator(args: CalculatorArgs, ctx: ToolContext) -> dict:
    """Evaluate mathematical expressions.

    Use this for any arithmetic instead of computing in your head.
    Supports + - * / ^ %, parentheses, sqrt, sin, cos, tan, log, exp, abs,
    round, floor, ceil and the constants pi and e.
    """
    try:
        return {"result": _format(evaluate(args.expression))}
    except ValueError as exc:
        return {"error": f"Evaluation error: {exc} for expression: {args.expression}"}
