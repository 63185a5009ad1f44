"""Operator-precedence parser producing a formula AST."""

from dataclasses import dataclass, field
from functools import lru_cache

from sandbox_seeder.domain.exceptions import ParseError
from .lexer import Token, TokenType, tokenize
from .nodes import BinaryOp, FieldRef, FunctionCall, Literal, Node, UnaryOp

# Binary operator precedence, lowest first
BINARY_PRECEDENCE = {
    "||": 1,
    "&&": 2,
    "=": 3,
    "==": 3,
    "!=": 3,
    "<>": 3,
    "<": 3,
    "<=": 3,
    ">": 3,
    ">=": 3,
    "+": 4,
    "-": 4,
    "&": 4,
    "*": 5,
    "/": 5,
}

PREFIX_OPERATORS = frozenset({"-", "+", "!"})

# Open parentheses, calls and prefix operators allowed at once
MAX_NESTING_DEPTH = 1000

_CANONICAL_OPERATORS = {"==": "=", "<>": "!="}

KEYWORD_LITERALS = {"TRUE": True, "FALSE": False, "NULL": None}


@dataclass
class _Group:
    """One open bracket level: the root expression, a parenthesis or a call's argument list."""

    opener: Token | None = None
    call_name: str | None = None
    operands: list[Node] = field(default_factory=list)
    operators: list[str] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)
    args: list[Node] = field(default_factory=list)

    def push_operand(self, node: Node) -> None:
        while self.prefixes:
            node = UnaryOp(self.prefixes.pop(), node)
        self.operands.append(node)

    def push_operator(self, op: str) -> None:
        # equal precedence reduces first, so binary operators associate to the left
        while self.operators and BINARY_PRECEDENCE[self.operators[-1]] >= BINARY_PRECEDENCE[op]:
            self._reduce()
        self.operators.append(op)

    def finish(self) -> Node:
        while self.operators:
            self._reduce()
        (node,) = self.operands
        self.operands = []
        return node

    def _reduce(self) -> None:
        op = self.operators.pop()
        right = self.operands.pop()
        left = self.operands.pop()
        self.operands.append(BinaryOp(_CANONICAL_OPERATORS.get(op, op), left, right))


class FormulaParser:
    """
    Parses formula text with an explicit stack of open groups.

    Nesting costs heap, not interpreter frames, so deeply nested rules parse as
    long as they stay within ``MAX_NESTING_DEPTH``. Function names are normalised
    to upper case and ``==``/``<>`` to ``=``/``!=`` so that later passes only see
    one spelling of each construct.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self._tokens = tokenize(text)
        self._position = 0

    def parse(self) -> Node:
        if self._peek().type is TokenType.EOF:
            raise ParseError("Empty formula", self.text, 0)

        groups = [_Group()]
        expect_operand = True
        while True:
            group = groups[-1]
            if expect_operand:
                expect_operand = self._operand(groups)
                continue

            token = self._advance()
            precedence = BINARY_PRECEDENCE.get(token.value) if token.type is TokenType.OPERATOR else None
            if precedence is not None:
                group.push_operator(token.value)
                expect_operand = True
            elif token.type is TokenType.COMMA and group.call_name is not None:
                group.args.append(group.finish())
                expect_operand = True
            elif token.type is TokenType.RPAREN and group.opener is not None:
                groups.pop()
                groups[-1].push_operand(self._close(group))
            elif token.type is TokenType.EOF and group.opener is None:
                return group.finish()
            elif group.opener is not None:
                found = "end of formula" if token.type is TokenType.EOF else repr(token.value)
                raise ParseError(f"Expected ')' but found {found}", self.text, token.position)
            else:
                raise ParseError(f"Unexpected token {token.value!r}", self.text, token.position)

    def _operand(self, groups: list[_Group]) -> bool:
        """Consume one operand token; False once a complete operand was pushed."""
        group = groups[-1]
        token = self._advance()

        if token.type is TokenType.OPERATOR and token.value in PREFIX_OPERATORS:
            self._check_depth(groups, token)
            group.prefixes.append(token.value)
            return True

        if token.type is TokenType.LPAREN:
            self._check_depth(groups, token)
            groups.append(_Group(opener=token))
            return True

        if token.type is TokenType.IDENTIFIER and self._peek().type is TokenType.LPAREN:
            opener = self._advance()
            self._check_depth(groups, opener)
            if self._peek().type is TokenType.RPAREN:
                self._advance()
                group.push_operand(FunctionCall(token.value.upper(), ()))
                return False
            groups.append(_Group(opener=opener, call_name=token.value.upper()))
            return True

        group.push_operand(self._leaf(token))
        return False

    def _leaf(self, token: Token) -> Node:
        if token.type is TokenType.NUMBER:
            return Literal(float(token.value) if "." in token.value else int(token.value))
        if token.type is TokenType.STRING:
            return Literal(token.value)
        if token.type is TokenType.IDENTIFIER:
            keyword = token.value.upper()
            if keyword in KEYWORD_LITERALS:
                return Literal(KEYWORD_LITERALS[keyword])
            return FieldRef(token.value)
        if token.type is TokenType.EOF:
            raise ParseError("Unexpected end of formula", self.text, token.position)
        raise ParseError(f"Unexpected token {token.value!r}", self.text, token.position)

    @staticmethod
    def _close(group: _Group) -> Node:
        node = group.finish()
        if group.call_name is None:
            return node
        return FunctionCall(group.call_name, (*group.args, node))

    def _check_depth(self, groups: list[_Group], token: Token) -> None:
        nesting = len(groups) + len(groups[-1].prefixes)
        if nesting > MAX_NESTING_DEPTH:
            raise ParseError(
                f"Formula nested deeper than {MAX_NESTING_DEPTH} levels", self.text, token.position
            )

    def _peek(self) -> Token:
        return self._tokens[self._position]

    def _advance(self) -> Token:
        token = self._tokens[self._position]
        if token.type is not TokenType.EOF:
            self._position += 1
        return token


@lru_cache(maxsize=1024)
def parse_formula(text: str) -> Node:
    """Parse formula text into an AST, memoised by text."""
    return FormulaParser(text).parse()
