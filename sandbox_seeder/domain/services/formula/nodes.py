"""Abstract syntax tree for parsed formulas."""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


class Node:
    """Base class for formula AST nodes."""

    def children(self) -> tuple["Node", ...]:
        return ()

    def to_formula(self) -> str:
        return render(self)

    def _render(self, parts: list[str]) -> str:
        """Text for this node given the already rendered children."""
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def _render(self, parts: list[str]) -> str:
        if self.value is None:
            return "NULL"
        if isinstance(self.value, bool):
            return "TRUE" if self.value else "FALSE"
        if isinstance(self.value, str):
            escaped = self.value.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        if isinstance(self.value, float) and self.value.is_integer():
            return str(int(self.value))
        return str(self.value)


@dataclass(frozen=True)
class FieldRef(Node):
    path: str

    @property
    def is_cross_object(self) -> bool:
        return "." in self.path and not self.is_global

    @property
    def is_global(self) -> bool:
        return self.path.startswith("$")

    def _render(self, parts: list[str]) -> str:
        return self.path


@dataclass(frozen=True)
class FunctionCall(Node):
    name: str
    args: tuple[Node, ...] = ()

    def children(self) -> tuple[Node, ...]:
        return self.args

    def _render(self, parts: list[str]) -> str:
        return f"{self.name}({', '.join(parts)})"


@dataclass(frozen=True)
class BinaryOp(Node):
    op: str
    left: Node
    right: Node

    def children(self) -> tuple[Node, ...]:
        return (self.left, self.right)

    def _render(self, parts: list[str]) -> str:
        left, right = parts
        return f"{_wrap(self.left, left)} {self.op} {_wrap(self.right, right)}"


@dataclass(frozen=True)
class UnaryOp(Node):
    op: str
    operand: Node

    def children(self) -> tuple[Node, ...]:
        return (self.operand,)

    def _render(self, parts: list[str]) -> str:
        return f"{self.op}{_wrap(self.operand, parts[0])}"


def _wrap(node: Node, text: str) -> str:
    return f"({text})" if isinstance(node, BinaryOp) else text


def render(root: Node) -> str:
    """Formula text for a tree, built bottom-up without recursion."""
    stack: list[tuple[Node, bool]] = [(root, False)]
    rendered: list[str] = []
    while stack:
        node, expanded = stack.pop()
        children = node.children()
        if not expanded:
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(children))
            continue
        split = len(rendered) - len(children)
        parts = rendered[split:]
        del rendered[split:]
        rendered.append(node._render(parts))
    return rendered[0]


def walk(root: Node) -> Iterator[Node]:
    """Yield every node in pre-order, left to right, without recursion."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


def depth(root: Node) -> int:
    """Maximum nesting depth of the tree (a single leaf has depth 1)."""
    deepest = 0
    stack = [(root, 1)]
    while stack:
        node, level = stack.pop()
        deepest = max(deepest, level)
        stack.extend((child, level + 1) for child in node.children())
    return deepest
