"""Formula language: tokenizer, AST, parser and evaluator."""

from .evaluator import (
    SUPPORTED_FUNCTIONS,
    FormulaEvaluator,
    coerce_field_value,
    is_blank,
    resolve_path,
    truthy,
)
from .nodes import BinaryOp, FieldRef, FunctionCall, Literal, Node, UnaryOp, depth, walk
from .parser import FormulaParser, parse_formula

__all__ = [
    "SUPPORTED_FUNCTIONS",
    "BinaryOp",
    "FieldRef",
    "FormulaEvaluator",
    "FormulaParser",
    "FunctionCall",
    "Literal",
    "Node",
    "UnaryOp",
    "coerce_field_value",
    "depth",
    "is_blank",
    "parse_formula",
    "resolve_path",
    "truthy",
    "walk",
]
