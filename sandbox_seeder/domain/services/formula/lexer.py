"""Tokenizer for the validation-rule formula language."""

from dataclasses import dataclass
from enum import Enum

from sandbox_seeder.domain.exceptions import ParseError


class TokenType(Enum):
    NUMBER = "number"
    STRING = "string"
    IDENTIFIER = "identifier"
    OPERATOR = "operator"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int


TWO_CHAR_OPERATORS = frozenset({"==", "!=", "<>", "<=", ">=", "&&", "||"})
ONE_CHAR_OPERATORS = frozenset({"=", "<", ">", "+", "-", "*", "/", "&", "!"})

DIGITS = "0123456789"

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "'": "'", "\\": "\\"}


def _is_identifier_start(char: str) -> bool:
    return char.isalpha() or char in "_$"


def _is_identifier_part(char: str) -> bool:
    return char.isalnum() or char in "_$"


def tokenize(text: str) -> list[Token]:
    """
    Split formula text into tokens.

    Identifiers may be dotted (``Account.Owner.Name``) and may start with ``$``
    for global references (``$User.Id``). Block comments are skipped.

    Raises:
        ParseError: On unterminated strings or comments and unknown characters
    """
    tokens: list[Token] = []
    position = 0
    length = len(text)

    while position < length:
        char = text[position]

        if char.isspace():
            position += 1
            continue

        if text.startswith("/*", position):
            end = text.find("*/", position + 2)
            if end == -1:
                raise ParseError("Unterminated comment", text, position)
            position = end + 2
            continue

        if char in DIGITS or (char == "." and position + 1 < length and text[position + 1] in DIGITS):
            start = position
            seen_dot = False
            while position < length and (text[position] in DIGITS or (text[position] == "." and not seen_dot)):
                if text[position] == ".":
                    seen_dot = True
                position += 1
            tokens.append(Token(TokenType.NUMBER, text[start:position], start))
            continue

        if char in "\"'":
            start = position
            quote = char
            position += 1
            chars: list[str] = []
            while True:
                if position >= length:
                    raise ParseError("Unterminated string literal", text, start)
                current = text[position]
                if current == "\\" and position + 1 < length:
                    chars.append(_ESCAPES.get(text[position + 1], text[position + 1]))
                    position += 2
                    continue
                if current == quote:
                    position += 1
                    break
                chars.append(current)
                position += 1
            tokens.append(Token(TokenType.STRING, "".join(chars), start))
            continue

        if _is_identifier_start(char):
            start = position
            position += 1
            while position < length:
                current = text[position]
                if _is_identifier_part(current):
                    position += 1
                elif current == "." and position + 1 < length and _is_identifier_start(text[position + 1]):
                    position += 1
                else:
                    break
            tokens.append(Token(TokenType.IDENTIFIER, text[start:position], start))
            continue

        pair = text[position : position + 2]
        if pair in TWO_CHAR_OPERATORS:
            tokens.append(Token(TokenType.OPERATOR, pair, position))
            position += 2
            continue

        if char in ONE_CHAR_OPERATORS:
            tokens.append(Token(TokenType.OPERATOR, char, position))
            position += 1
            continue

        if char == "(":
            tokens.append(Token(TokenType.LPAREN, char, position))
        elif char == ")":
            tokens.append(Token(TokenType.RPAREN, char, position))
        elif char == ",":
            tokens.append(Token(TokenType.COMMA, char, position))
        else:
            raise ParseError(f"Unexpected character {char!r}", text, position)
        position += 1

    tokens.append(Token(TokenType.EOF, "", length))
    return tokens
