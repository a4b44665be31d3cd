"""Tokenizer for the expression grammar."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from logic_engine.errors import ExpressionSyntaxError


class TokenKind(str, Enum):
    NUMBER = "number"
    STRING = "string"
    IDENT = "ident"
    OP = "op"
    EOF = "eof"


# Longest operators first so that "===" wins over "==" and "=".
OPERATORS: tuple[str, ...] = (
    "===",
    "!==",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "<",
    ">",
    "+",
    "-",
    "*",
    "/",
    "%",
    "!",
    "?",
    ":",
    ".",
    ",",
    "(",
    ")",
    "[",
    "]",
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "0": "\0"}


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    value: object
    position: int


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens, ending with an EOF token."""

    tokens: list[Token] = []
    idx = 0
    length = len(source)

    while idx < length:
        ch = source[idx]

        if ch.isspace():
            idx += 1
            continue

        if ch.isdigit() or (ch == "." and idx + 1 < length and source[idx + 1].isdigit()):
            start = idx
            is_float = False
            while idx < length and source[idx].isdigit():
                idx += 1
            if idx < length and source[idx] == ".":
                is_float = True
                idx += 1
                while idx < length and source[idx].isdigit():
                    idx += 1
            if idx < length and source[idx] in "eE":
                lookahead = idx + 1
                if lookahead < length and source[lookahead] in "+-":
                    lookahead += 1
                if lookahead < length and source[lookahead].isdigit():
                    is_float = True
                    idx = lookahead
                    while idx < length and source[idx].isdigit():
                        idx += 1
            text = source[start:idx]
            value: object = float(text) if is_float else int(text)
            tokens.append(Token(TokenKind.NUMBER, value, start))
            continue

        if ch in "'\"":
            start = idx
            quote = ch
            idx += 1
            chars: list[str] = []
            while True:
                if idx >= length:
                    raise ExpressionSyntaxError(
                        "Unterminated string literal", expression=source, position=start
                    )
                current = source[idx]
                if current == quote:
                    idx += 1
                    break
                if current == "\\" and idx + 1 < length:
                    escaped = source[idx + 1]
                    chars.append(_ESCAPES.get(escaped, escaped))
                    idx += 2
                    continue
                chars.append(current)
                idx += 1
            tokens.append(Token(TokenKind.STRING, "".join(chars), start))
            continue

        if _is_ident_start(ch):
            start = idx
            while idx < length and _is_ident_part(source[idx]):
                idx += 1
            tokens.append(Token(TokenKind.IDENT, source[start:idx], start))
            continue

        for op in OPERATORS:
            if source.startswith(op, idx):
                tokens.append(Token(TokenKind.OP, op, idx))
                idx += len(op)
                break
        else:
            raise ExpressionSyntaxError(
                f"Unexpected character {ch!r}", expression=source, position=idx
            )

    tokens.append(Token(TokenKind.EOF, None, length))
    return tokens
