"""
Condition Expressions - Safe evaluation of boolean/comparison expressions

Expressions are parsed with ``ast`` and walked node by node; only literals,
names from the scope, member access, comparisons, boolean and arithmetic
operators and a small set of builtin functions are allowed. Nothing is passed
to ``eval``.

JavaScript-style spellings used by exported workflows (``&&``, ``||``, ``!``,
``===``, ``!==``, ``true``, ``false``, ``null``) are accepted.
"""

import ast
import operator
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict

from .resolver import get_member


class ExpressionError(ValueError):
    """Raised when an expression cannot be parsed or evaluated"""


SAFE_FUNCTIONS: Dict[str, Callable] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "any": any,
    "all": all,
    "round": round,
}

LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "True": True,
    "False": False,
    "None": None,
}

# String methods callable from expressions, with their JavaScript aliases
STRING_METHODS = {
    "lower": str.lower,
    "upper": str.upper,
    "strip": str.strip,
    "startswith": str.startswith,
    "endswith": str.endswith,
    "toLowerCase": str.lower,
    "toUpperCase": str.upper,
    "trim": str.strip,
    "startsWith": str.startswith,
    "endsWith": str.endswith,
}

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_STRING_LITERAL = re.compile(r"(\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*')")


def translate(expression: str) -> str:
    """Rewrite JavaScript operators to Python outside of string literals"""
    parts = _STRING_LITERAL.split(expression)
    for i in range(0, len(parts), 2):
        code = parts[i]
        code = code.replace("===", "==").replace("!==", "!=")
        code = code.replace("&&", " and ").replace("||", " or ")
        code = re.sub(r"!(?!=)", " not ", code)
        parts[i] = code
    return "".join(parts).strip()


class ExpressionEvaluator:
    """Evaluates an expression against a mapping of names"""

    def __init__(self, scope: Mapping):
        self.scope = scope

    def evaluate(self, expression: str) -> Any:
        source = translate(expression)
        if not source:
            raise ExpressionError("Empty expression")
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression '{expression}': {e.msg}") from e
        return self._eval(tree.body)

    def evaluate_bool(self, expression: str) -> bool:
        return bool(self.evaluate(expression))

    def _eval(self, node: ast.AST) -> Any:
        method = getattr(self, f"_eval_{type(node).__name__}", None)
        if method is None:
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        return method(node)

    def _eval_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name) -> Any:
        name = node.id
        if name in self.scope:
            return self.scope[name]
        if name in LITERALS:
            return LITERALS[name]
        if name in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[name]
        raise ExpressionError(f"Unknown name '{name}'")

    def _eval_Attribute(self, node: ast.Attribute) -> Any:
        value = self._eval(node.value)
        found, member = get_member(value, node.attr)
        return member if found else None

    def _eval_Subscript(self, node: ast.Subscript) -> Any:
        value = self._eval(node.value)
        key = self._eval(node.slice)
        found, member = get_member(value, str(key))
        return member if found else None

    def _eval_BoolOp(self, node: ast.BoolOp) -> Any:
        result = None
        if isinstance(node.op, ast.And):
            for value in node.values:
                result = self._eval(value)
                if not result:
                    return result
            return result
        for value in node.values:
            result = self._eval(value)
            if result:
                return result
        return result

    def _eval_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self._eval(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        try:
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return +operand
        except TypeError as e:
            raise ExpressionError(str(e)) from e
        raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")

    def _eval_BinOp(self, node: ast.BinOp) -> Any:
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        left, right = self._eval(node.left), self._eval(node.right)
        try:
            return op(left, right)
        except (TypeError, ZeroDivisionError) as e:
            raise ExpressionError(str(e)) from e

    def _eval_Compare(self, node: ast.Compare) -> bool:
        left = self._eval(node.left)
        for op_node, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator)
            op = _COMPARE_OPS[type(op_node)]
            try:
                ok = op(left, right)
            except TypeError:
                # mismatched types (e.g. None > 5) compare false
                ok = False
            if not ok:
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp) -> Any:
        return self._eval(node.body) if self._eval(node.test) else self._eval(node.orelse)

    def _eval_List(self, node: ast.List) -> list:
        return [self._eval(e) for e in node.elts]

    def _eval_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self._eval(e) for e in node.elts)

    def _eval_Dict(self, node: ast.Dict) -> dict:
        return {self._eval(k): self._eval(v) for k, v in zip(node.keys, node.values)}

    def _eval_Call(self, node: ast.Call) -> Any:
        if node.keywords:
            raise ExpressionError("Keyword arguments are not supported")
        args = [self._eval(a) for a in node.args]

        if isinstance(node.func, ast.Name) and node.func.id in SAFE_FUNCTIONS:
            func = SAFE_FUNCTIONS[node.func.id]
        elif isinstance(node.func, ast.Attribute):
            target = self._eval(node.func.value)
            name = node.func.attr
            if name == "includes":
                return args[0] in target if target is not None else False
            if isinstance(target, str) and name in STRING_METHODS:
                return STRING_METHODS[name](target, *args)
            raise ExpressionError(f"Method '{name}' is not allowed")
        else:
            raise ExpressionError("Only builtin functions may be called")

        try:
            return func(*args)
        except (TypeError, ValueError) as e:
            raise ExpressionError(str(e)) from e


def evaluate_condition(expression: str, scope: Mapping) -> bool:
    """Evaluate expression against scope and coerce the result to bool"""
    return ExpressionEvaluator(scope).evaluate_bool(expression)
