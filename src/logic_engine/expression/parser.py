"""Recursive-descent parser producing an AST over a closed grammar.

Precedence, lowest first::

    conditional   a ? b : c
    logical or    ||
    logical and   &&
    equality      == != === !==
    relational    < <= > >=
    additive      + -
    multiplicative * / %
    unary         ! - +
    postfix       member access, calls
"""

from __future__ import annotations

from logic_engine.errors import ExpressionSyntaxError

from .lexer import Token, TokenKind, tokenize
from .nodes import (
    ArrayLiteral,
    Binary,
    Call,
    Conditional,
    Identifier,
    Literal,
    Logical,
    Member,
    Node,
    Unary,
    depth,
)

_KEYWORD_LITERALS: dict[str, object] = {"true": True, "false": False, "null": None}

_EQUALITY = ("==", "!=", "===", "!==")
_RELATIONAL = ("<", "<=", ">", ">=")
_ADDITIVE = ("+", "-")
_MULTIPLICATIVE = ("*", "/", "%")
_UNARY = ("!", "-", "+")

# Bracket, argument and ternary nesting, and the height of the finished tree.
MAX_NESTING = 50
MAX_DEPTH = 200


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = tokenize(source)
        self._pos = 0
        self._depth = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.EOF:
            self._pos += 1
        return token

    def _at_op(self, *ops: str) -> bool:
        token = self._current
        return token.kind is TokenKind.OP and token.value in ops

    def _expect_op(self, op: str) -> Token:
        if not self._at_op(op):
            self._fail(f"Expected {op!r}")
        return self._advance()

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING:
            self._fail(f"Expression nested deeper than {MAX_NESTING} levels")

    def _fail(self, message: str) -> None:
        token = self._current
        found = "end of expression" if token.kind is TokenKind.EOF else repr(token.value)
        raise ExpressionSyntaxError(
            f"{message}, found {found}", expression=self._source, position=token.position
        )

    def parse(self) -> Node:
        if self._current.kind is TokenKind.EOF:
            self._fail("Empty expression")
        node = self._conditional()
        if self._current.kind is not TokenKind.EOF:
            self._fail("Unexpected token")
        if depth(node) > MAX_DEPTH:
            raise ExpressionSyntaxError(
                f"Expression deeper than {MAX_DEPTH} levels", expression=self._source, position=0
            )
        return node

    def _conditional(self) -> Node:
        self._enter()
        node = self._ternary()
        self._depth -= 1
        return node

    def _ternary(self) -> Node:
        test = self._logical_or()
        if not self._at_op("?"):
            return test
        self._advance()
        consequent = self._conditional()
        self._expect_op(":")
        alternate = self._conditional()
        return Conditional(test, consequent, alternate)

    def _logical_or(self) -> Node:
        node = self._logical_and()
        while self._at_op("||"):
            self._advance()
            node = Logical("||", node, self._logical_and())
        return node

    def _logical_and(self) -> Node:
        node = self._binary_level(0)
        while self._at_op("&&"):
            self._advance()
            node = Logical("&&", node, self._binary_level(0))
        return node

    _LEVELS = (_EQUALITY, _RELATIONAL, _ADDITIVE, _MULTIPLICATIVE)

    def _binary_level(self, level: int) -> Node:
        if level == len(self._LEVELS):
            return self._unary()
        ops = self._LEVELS[level]
        node = self._binary_level(level + 1)
        while self._at_op(*ops):
            operator = str(self._advance().value)
            node = Binary(operator, node, self._binary_level(level + 1))
        return node

    def _unary(self) -> Node:
        if self._at_op(*_UNARY):
            operator = str(self._advance().value)
            self._enter()
            operand = self._unary()
            self._depth -= 1
            return Unary(operator, operand)
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._at_op("."):
                self._advance()
                token = self._current
                if token.kind is not TokenKind.IDENT:
                    self._fail("Expected property name after '.'")
                self._advance()
                node = Member(node, Literal(token.value), computed=False)
            elif self._at_op("["):
                self._advance()
                prop = self._conditional()
                self._expect_op("]")
                node = Member(node, prop, computed=True)
            elif self._at_op("("):
                self._advance()
                node = Call(node, self._arguments(")"))
            else:
                return node

    def _arguments(self, closing: str) -> tuple[Node, ...]:
        args: list[Node] = []
        if self._at_op(closing):
            self._advance()
            return ()
        while True:
            args.append(self._conditional())
            if self._at_op(","):
                self._advance()
                continue
            self._expect_op(closing)
            return tuple(args)

    def _primary(self) -> Node:
        token = self._current
        if token.kind in (TokenKind.NUMBER, TokenKind.STRING):
            self._advance()
            return Literal(token.value)
        if token.kind is TokenKind.IDENT:
            self._advance()
            name = str(token.value)
            if name in _KEYWORD_LITERALS:
                return Literal(_KEYWORD_LITERALS[name])
            return Identifier(name)
        if self._at_op("("):
            self._advance()
            node = self._conditional()
            self._expect_op(")")
            return node
        if self._at_op("["):
            self._advance()
            return ArrayLiteral(self._arguments("]"))
        self._fail("Unexpected token")
        raise AssertionError("unreachable")


def parse(source: str) -> Node:
    """Parse an expression string into an AST.

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression.
    """

    return _Parser(source).parse()
