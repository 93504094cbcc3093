from __future__ import annotations

import ast
import operator
from typing import Any, Callable, Dict, Mapping

# Operators a condition may use; anything else in the tree is refused.
_OPS: Dict[type, Callable[..., Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

# JSON spellings used in script records
_WORDS = {"true": True, "false": False, "null": None, "none": None}

_QUOTES = str.maketrans({"“": '"', "”": '"', "「": '"', "」": '"'})


def _op(node: ast.AST) -> Callable[..., Any]:
    fn = _OPS.get(type(node))
    if fn is None:
        raise ValueError(f"Operator not allowed in conditions: {type(node).__name__}")
    return fn


class ConditionEvaluator:
    """Evaluates a condition string against Storage.

    Bare names read top-level Storage keys (missing ones are None) and
    attribute access walks nested mappings, so ``player.affection >= 3`` reads
    ``storage["player"]["affection"]``. Only literals, names, attribute and
    subscript access, arithmetic, ``and``/``or``/``not`` and (chained)
    comparisons are accepted; calls, lambdas and comprehensions are not.
    """

    def __init__(self, storage: Mapping[str, Any]):
        self.storage = storage

    def __call__(self, source: str) -> Any:
        tree = ast.parse(source.translate(_QUOTES).strip(), mode="eval")
        return self.eval(tree.body)

    def eval(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in _WORDS:
                return _WORDS[node.id]
            return self.storage.get(node.id)
        if isinstance(node, ast.Attribute):
            base = self.eval(node.value)
            return base.get(node.attr) if isinstance(base, Mapping) else None
        if isinstance(node, ast.Subscript):
            base, key = self.eval(node.value), self.eval(node.slice)
            try:
                return base[key]
            except (KeyError, IndexError, TypeError):
                return None
        if isinstance(node, (ast.List, ast.Tuple)):
            items = [self.eval(e) for e in node.elts]
            return items if isinstance(node, ast.List) else tuple(items)
        if isinstance(node, ast.UnaryOp):
            return _op(node.op)(self.eval(node.operand))
        if isinstance(node, ast.BinOp):
            return _op(node.op)(self.eval(node.left), self.eval(node.right))
        if isinstance(node, ast.BoolOp):
            # short-circuits like Python, but always yields a bool
            if isinstance(node.op, ast.And):
                return all(self.eval(v) for v in node.values)
            return any(self.eval(v) for v in node.values)
        if isinstance(node, ast.Compare):
            left = self.eval(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.eval(comparator)
                if not _op(op)(left, right):
                    return False
                left = right
            return True
        raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def safe_eval(expr: str, vars: Mapping[str, Any]) -> Any:
    return ConditionEvaluator(vars)(expr)
