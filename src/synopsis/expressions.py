# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Restricted expression language for rule conditions and consequents.

Source strings use a small Python-flavoured syntax::

    SLD == 'youtube.com' and pathname.startswith('/channel/')
    SLD.split('.')[0] in ['google', 'bing']
    'youtube.com/channel/' + node.get('content')

``compile_expression`` parses the source with :mod:`ast` and rebuilds it as a
tree of the node classes below.  Anything outside the whitelist is rejected at
compile time, so evaluation never executes host-language code.

Supported:
- literals (str, int, float, True/False/None, plus true/false/null names)
- context names, list/tuple literals, integer indexing and slicing
- ``== != < <= > >= in not in`` (chained), ``and or not``, unary ``-``
- ``+ - * / %``
- string methods: startswith endswith split lower upper strip lstrip rstrip find replace
- DOM node methods: get text
- builtin ``len``
"""

from __future__ import annotations

import ast
import functools
import operator
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from .dom import DomNode
from .errors import ExpressionError

STRING_METHODS = frozenset(
    {"startswith", "endswith", "split", "lower", "upper", "strip", "lstrip", "rstrip", "find", "replace"}
)
NODE_METHODS = frozenset({"get", "text"})
BUILTINS: dict[str, Callable[..., Any]] = {"len": len}

_NAMED_CONSTANTS = {"true": True, "false": False, "null": None}

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_CMP_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}


class Expression(Protocol):
    def evaluate(self, context: Mapping[str, Any]) -> Any: ...


# ---------------------------------------------------------------------------
# AST nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True, slots=True)
class Name:
    id: str

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        try:
            return context[self.id]
        except KeyError:
            raise ExpressionError(f"unknown name {self.id!r}") from None


@dataclass(frozen=True, slots=True)
class ListExpr:
    items: tuple[Expression, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return [item.evaluate(context) for item in self.items]


@dataclass(frozen=True, slots=True)
class Slice:
    lower: Expression | None
    upper: Expression | None

    def evaluate(self, context: Mapping[str, Any]) -> slice:
        return slice(
            self.lower.evaluate(context) if self.lower is not None else None,
            self.upper.evaluate(context) if self.upper is not None else None,
        )


@dataclass(frozen=True, slots=True)
class Subscript:
    value: Expression
    index: Expression

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        target = self.value.evaluate(context)
        key = self.index.evaluate(context)
        if not isinstance(target, (str, list, tuple)):
            raise ExpressionError(f"cannot index {type(target).__name__}")
        if not isinstance(key, (int, slice)) or isinstance(key, bool):
            raise ExpressionError("index must be an integer or slice")
        try:
            return target[key]
        except IndexError:
            raise ExpressionError(f"index {key} out of range") from None


@dataclass(frozen=True, slots=True)
class MethodCall:
    target: Expression
    method: str
    args: tuple[Expression, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        obj = self.target.evaluate(context)
        if isinstance(obj, str):
            allowed = STRING_METHODS
        elif isinstance(obj, DomNode):
            allowed = NODE_METHODS
        else:
            raise ExpressionError(f"cannot call {self.method!r} on {type(obj).__name__}")
        if self.method not in allowed:
            raise ExpressionError(f"{type(obj).__name__} has no method {self.method!r}")
        args = [arg.evaluate(context) for arg in self.args]
        try:
            return getattr(obj, self.method)(*args)
        except (TypeError, ValueError) as e:
            raise ExpressionError(f"{self.method}() failed: {e}") from e


@dataclass(frozen=True, slots=True)
class Call:
    func: str
    args: tuple[Expression, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        args = [arg.evaluate(context) for arg in self.args]
        try:
            return BUILTINS[self.func](*args)
        except TypeError as e:
            raise ExpressionError(f"{self.func}() failed: {e}") from e


@dataclass(frozen=True, slots=True)
class UnaryOp:
    op: str  # "not" | "-"
    operand: Expression

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(context)
        if self.op == "not":
            return not value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ExpressionError(f"bad operand for unary -: {type(value).__name__}")
        return -value


@dataclass(frozen=True, slots=True)
class BinOp:
    op: Callable[[Any, Any], Any]
    left: Expression
    right: Expression

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        left = self.left.evaluate(context)
        right = self.right.evaluate(context)
        try:
            return self.op(left, right)
        except (TypeError, ZeroDivisionError, OverflowError) as e:
            raise ExpressionError(str(e)) from e


@dataclass(frozen=True, slots=True)
class BoolOp:
    op: str  # "and" | "or"
    values: tuple[Expression, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        result: Any = None
        for expr in self.values:
            result = expr.evaluate(context)
            if self.op == "and" and not result:
                return result
            if self.op == "or" and result:
                return result
        return result


@dataclass(frozen=True, slots=True)
class Compare:
    left: Expression
    ops: tuple[Callable[[Any, Any], bool], ...]
    comparators: tuple[Expression, ...]

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        left = self.left.evaluate(context)
        for op, expr in zip(self.ops, self.comparators, strict=True):
            right = expr.evaluate(context)
            try:
                if not op(left, right):
                    return False
            except TypeError as e:
                raise ExpressionError(str(e)) from e
            left = right
        return True


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CompiledExpression:
    """A parsed expression plus its source, for error messages."""

    source: str
    root: Expression

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        try:
            return self.root.evaluate(context)
        except ExpressionError as e:
            raise ExpressionError(f"{e} in {self.source!r}", source=self.source) from e


def _reject(node: ast.AST, source: str) -> ExpressionError:
    return ExpressionError(f"unsupported syntax {type(node).__name__} in {source!r}", source=source)


def _build(node: ast.AST, source: str) -> Expression:
    if isinstance(node, ast.Constant):
        if not isinstance(node.value, (str, int, float, bool, type(None))):
            raise _reject(node, source)
        return Literal(node.value)

    if isinstance(node, ast.Name):
        if node.id in _NAMED_CONSTANTS:
            return Literal(_NAMED_CONSTANTS[node.id])
        if node.id.startswith("_"):
            raise _reject(node, source)
        return Name(node.id)

    if isinstance(node, (ast.List, ast.Tuple)):
        return ListExpr(tuple(_build(elt, source) for elt in node.elts))

    if isinstance(node, ast.Subscript):
        index = node.slice
        if isinstance(index, ast.Slice):
            if index.step is not None:
                raise _reject(index, source)
            built: Expression = Slice(
                _build(index.lower, source) if index.lower is not None else None,
                _build(index.upper, source) if index.upper is not None else None,
            )
        else:
            built = _build(index, source)
        return Subscript(_build(node.value, source), built)

    if isinstance(node, ast.Call):
        if node.keywords:
            raise _reject(node, source)
        args = tuple(_build(arg, source) for arg in node.args)
        func = node.func
        if isinstance(func, ast.Attribute):
            if func.attr not in STRING_METHODS | NODE_METHODS:
                raise ExpressionError(f"method {func.attr!r} is not allowed in {source!r}", source=source)
            return MethodCall(_build(func.value, source), func.attr, args)
        if isinstance(func, ast.Name) and func.id in BUILTINS:
            return Call(func.id, args)
        raise _reject(node, source)

    if isinstance(node, ast.UnaryOp):
        if isinstance(node.op, ast.Not):
            return UnaryOp("not", _build(node.operand, source))
        if isinstance(node.op, ast.USub):
            return UnaryOp("-", _build(node.operand, source))
        raise _reject(node.op, source)

    if isinstance(node, ast.BinOp):
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise _reject(node.op, source)
        return BinOp(op, _build(node.left, source), _build(node.right, source))

    if isinstance(node, ast.BoolOp):
        name = "and" if isinstance(node.op, ast.And) else "or"
        return BoolOp(name, tuple(_build(value, source) for value in node.values))

    if isinstance(node, ast.Compare):
        ops = []
        for op_node in node.ops:
            op = _CMP_OPS.get(type(op_node))
            if op is None:
                raise _reject(op_node, source)
            ops.append(op)
        return Compare(
            _build(node.left, source),
            tuple(ops),
            tuple(_build(c, source) for c in node.comparators),
        )

    raise _reject(node, source)


@functools.lru_cache(maxsize=512)
def compile_expression(source: str) -> CompiledExpression:
    """Compile *source* into an evaluable expression tree.

    Raises:
        ExpressionError: on syntax errors or non-whitelisted constructs.
    """
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("expression source must be a non-empty string", source=str(source))
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"syntax error in {source!r}: {e.msg}", source=source) from e
    except (ValueError, RecursionError) as e:
        # null bytes, nesting beyond the parser's limits
        raise ExpressionError(f"cannot parse {source!r}: {e}", source=source) from e
    return CompiledExpression(source, _build(tree.body, source))


def evaluate(source: str, context: Mapping[str, Any]) -> Any:
    """Compile (cached) and evaluate *source* against *context*."""
    return compile_expression(source).evaluate(context)
