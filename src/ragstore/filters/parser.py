"""
Filter expression parser.

Turns SQL-where-clause-like text into a FilterExpression tree:

    country == 'BG'
    genre == 'drama' && year >= 2020
    genre in ['comedy', 'documentary', 'drama']
    NOT (isbn IS NULL) OR price < 9.99

Precedence, tightest first: NOT, comparison, AND, OR. Parentheses
override. Keywords are case-insensitive; ``&&``, ``||`` and ``!`` are
accepted for AND, OR and NOT.

Errors raise ParseError with the character offset of the problem.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import NoReturn

from ragstore.core.errors import ParseError
from ragstore.filters.expressions import (
    Comparison,
    ComparisonOperator,
    FilterExpression,
    In,
    IsNull,
    Logical,
    LogicalOperator,
    Not,
    Scalar,
)

_KEYWORDS = {
    "and": "AND",
    "or": "OR",
    "not": "NOT",
    "in": "IN",
    "nin": "NIN",
    "is": "IS",
    "null": "NULL",
    "true": "BOOL",
    "false": "BOOL",
}

_SYMBOLS = [
    ("&&", "AND"),
    ("||", "OR"),
    ("==", "OP"),
    ("!=", "OP"),
    (">=", "OP"),
    ("<=", "OP"),
    (">", "OP"),
    ("<", "OP"),
    ("!", "NOT"),
    ("(", "LPAREN"),
    (")", "RPAREN"),
    ("[", "LBRACKET"),
    ("]", "RBRACKET"),
    (",", "COMMA"),
]

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*")
_NUMBER = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


@dataclass(frozen=True)
class Token:
    kind: str
    value: object
    position: int


# ---------------------------------------------------------------------------
# TOKENIZER
# ---------------------------------------------------------------------------


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    length = len(text)

    while pos < length:
        char = text[pos]
        if char.isspace():
            pos += 1
            continue

        if char in ("'", '"'):
            value, end = _read_string(text, pos)
            tokens.append(Token("STRING", value, pos))
            pos = end
            continue

        number = _NUMBER.match(text, pos)
        if number and (char.isdigit() or char == "." or _sign_starts_number(tokens, char)):
            raw = number.group()
            is_float = any(c in raw for c in ".eE")
            tokens.append(Token("NUMBER", float(raw) if is_float else int(raw), pos))
            pos = number.end()
            continue

        ident = _IDENT.match(text, pos)
        if ident:
            word = ident.group()
            kind = _KEYWORDS.get(word.lower(), "IDENT")
            value: object = word
            if kind == "BOOL":
                value = word.lower() == "true"
            tokens.append(Token(kind, value, pos))
            pos = ident.end()
            continue

        for symbol, kind in _SYMBOLS:
            if text.startswith(symbol, pos):
                tokens.append(Token(kind, symbol, pos))
                pos += len(symbol)
                break
        else:
            raise ParseError(f"Unexpected character {char!r}", text, pos)

    tokens.append(Token("EOF", None, length))
    return tokens


def _sign_starts_number(tokens: list[Token], char: str) -> bool:
    # A sign is only part of a literal when a value is expected next.
    return char in "+-" and bool(tokens) and tokens[-1].kind in ("OP", "LBRACKET", "COMMA")


def _read_string(text: str, start: int) -> tuple[str, int]:
    quote = text[start]
    chars: list[str] = []
    pos = start + 1
    while pos < len(text):
        char = text[pos]
        if char == "\\" and pos + 1 < len(text):
            nxt = text[pos + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            pos += 2
            continue
        if char == quote:
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise ParseError("Unterminated string literal", text, start)


# ---------------------------------------------------------------------------
# PARSER
# ---------------------------------------------------------------------------


class _Parser:
    """Recursive descent over the token list."""

    def __init__(self, text: str):
        self._text = text
        self._tokens = tokenize(text)
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "EOF":
            self._index += 1
        return token

    def _expect(self, kind: str, description: str) -> Token:
        if self._current.kind != kind:
            self._fail(f"Expected {description}")
        return self._advance()

    def _fail(self, message: str) -> NoReturn:
        token = self._current
        found = "end of input" if token.kind == "EOF" else repr(self._text_of(token))
        raise ParseError(f"{message}, found {found}", self._text, token.position)

    def _text_of(self, token: Token) -> str:
        end = self._tokens[self._index + 1].position if token.kind != "EOF" else len(self._text)
        return self._text[token.position:end].strip()

    def parse(self) -> FilterExpression:
        if self._current.kind == "EOF":
            raise ParseError("Empty filter expression", self._text, 0)
        expr = self._or_expr()
        if self._current.kind != "EOF":
            self._fail("Unexpected token")
        return expr

    def _or_expr(self) -> FilterExpression:
        expr = self._and_expr()
        while self._current.kind == "OR":
            self._advance()
            expr = Logical(LogicalOperator.OR, expr, self._and_expr())
        return expr

    def _and_expr(self) -> FilterExpression:
        expr = self._unary()
        while self._current.kind == "AND":
            self._advance()
            expr = Logical(LogicalOperator.AND, expr, self._unary())
        return expr

    def _unary(self) -> FilterExpression:
        if self._current.kind == "NOT":
            self._advance()
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> FilterExpression:
        if self._current.kind == "LPAREN":
            self._advance()
            expr = self._or_expr()
            self._expect("RPAREN", "')'")
            return expr
        return self._predicate()

    def _predicate(self) -> FilterExpression:
        if self._current.kind not in ("IDENT", "STRING"):
            self._fail("Expected metadata key")
        key = str(self._advance().value)

        token = self._current
        if token.kind == "OP":
            self._advance()
            return Comparison(key, ComparisonOperator(token.value), self._literal())
        if token.kind == "IN":
            self._advance()
            return In(key, self._list())
        if token.kind == "NIN":
            self._advance()
            return In(key, self._list(), negated=True)
        if token.kind == "NOT":
            self._advance()
            self._expect("IN", "IN after NOT")
            return In(key, self._list(), negated=True)
        if token.kind == "IS":
            self._advance()
            negated = self._current.kind == "NOT"
            if negated:
                self._advance()
            self._expect("NULL", "NULL")
            return IsNull(key, negated=negated)
        self._fail("Expected comparison operator")

    def _literal(self) -> Scalar:
        if self._current.kind not in ("STRING", "NUMBER", "BOOL"):
            self._fail("Expected string, number or boolean literal")
        return self._advance().value  # type: ignore[return-value]

    def _list(self) -> tuple[Scalar, ...]:
        self._expect("LBRACKET", "'['")
        values: list[Scalar] = []
        if self._current.kind != "RBRACKET":
            values.append(self._literal())
            while self._current.kind == "COMMA":
                self._advance()
                values.append(self._literal())
        self._expect("RBRACKET", "']'")
        return tuple(values)


def parse(text: str) -> FilterExpression:
    """Parse filter text into a FilterExpression tree.

    Raises:
        ParseError: text is malformed; ``position`` points at the problem.
    """
    return _Parser(text).parse()
