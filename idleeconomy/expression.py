"""Arithmetic expressions authored in catalog data.

Expressions are tokenized, parsed into an immutable syntax tree and
interpreted against a fixed whitelist of functions and constants. Nothing
in here ever hands catalog text to ``eval``.

Grammar::

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('+' | '-') unary | power
    power   := primary ('^' unary)?
    primary := NUMBER | NAME | NAME '(' [expr (',' expr)*] ')' | '(' expr ')'

``^`` (or ``**``) is right-associative and binds tighter than unary minus,
so ``-2^2`` is ``-4``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Union

from idleeconomy._types import CurveContext, is_finite

logger = logging.getLogger(__name__)


class ExpressionError(ValueError):
    """Raised for malformed expressions or disallowed names."""


FUNCTIONS: dict[str, tuple[Callable[..., float], int | None]] = {
    # name: (implementation, arity) -- arity None means one or more args
    "min": (min, None),
    "max": (max, None),
    "floor": (math.floor, 1),
    "ceil": (math.ceil, 1),
    "log": (math.log, 1),
    "log10": (math.log10, 1),
    "sqrt": (math.sqrt, 1),
    "abs": (abs, 1),
    "sin": (math.sin, 1),
    "cos": (math.cos, 1),
    "tan": (math.tan, 1),
    "exp": (math.exp, 1),
    "pow": (math.pow, 2),
}

CONSTANTS: dict[str, float] = {
    "e": math.e,
    "pi": math.pi,
}


# ── Syntax tree ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Node


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Call:
    func: str
    args: tuple[Node, ...]


Node = Union[Number, Name, UnaryOp, BinaryOp, Call]


# ── Tokenizer ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Token:
    kind: str  # "num", "name", "op", "end"
    text: str
    pos: int


_SINGLE_OPS = "+-*/^(),"


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            start = i
            while i < n and (text[i].isdigit() or text[i] == "."):
                i += 1
            # Exponent part: 1e5, 2.5E-3
            if i < n and text[i] in "eE":
                j = i + 1
                if j < n and text[j] in "+-":
                    j += 1
                if j < n and text[j].isdigit():
                    i = j
                    while i < n and text[i].isdigit():
                        i += 1
            literal = text[start:i]
            if literal.count(".") > 1:
                raise ExpressionError(f"Malformed number {literal!r} at {start}")
            tokens.append(Token("num", literal, start))
            continue
        if ch.isalpha() or ch == "_":
            start = i
            while i < n and (text[i].isalnum() or text[i] == "_"):
                i += 1
            tokens.append(Token("name", text[start:i], start))
            continue
        if ch == "*" and i + 1 < n and text[i + 1] == "*":
            tokens.append(Token("op", "^", i))
            i += 2
            continue
        if ch in _SINGLE_OPS:
            tokens.append(Token("op", ch, i))
            i += 1
            continue
        raise ExpressionError(f"Unexpected character {ch!r} at {i}")
    tokens.append(Token("end", "", n))
    return tokens


# ── Parser ───────────────────────────────────────────────────────────


MAX_NESTING = 100


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _accept(self, op: str) -> bool:
        tok = self.current
        if tok.kind == "op" and tok.text == op:
            self.pos += 1
            return True
        return False

    def _expect(self, op: str) -> None:
        if not self._accept(op):
            tok = self.current
            found = tok.text or "end of input"
            raise ExpressionError(f"Expected {op!r} at {tok.pos}, found {found!r}")

    def parse(self) -> Node:
        node = self._expr()
        if self.current.kind != "end":
            tok = self.current
            raise ExpressionError(f"Unexpected {tok.text!r} at {tok.pos}")
        return node

    def _expr(self) -> Node:
        node = self._term()
        while self.current.kind == "op" and self.current.text in "+-":
            op = self._advance().text
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self.current.kind == "op" and self.current.text in "*/":
            op = self._advance().text
            node = BinaryOp(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        # Every nested construct (parentheses, calls, signs, powers) passes here
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise ExpressionError(f"Expression nested deeper than {MAX_NESTING} levels")
        try:
            if self.current.kind == "op" and self.current.text in "+-":
                op = self._advance().text
                return UnaryOp(op, self._unary())
            return self._power()
        finally:
            self.depth -= 1

    def _power(self) -> Node:
        base = self._primary()
        if self._accept("^"):
            return BinaryOp("^", base, self._unary())
        return base

    def _primary(self) -> Node:
        tok = self.current
        if tok.kind == "num":
            self._advance()
            try:
                return Number(float(tok.text))
            except ValueError as exc:
                raise ExpressionError(f"Malformed number {tok.text!r}") from exc
        if tok.kind == "name":
            self._advance()
            if self._accept("("):
                return self._call(tok)
            return Name(tok.text)
        if self._accept("("):
            node = self._expr()
            self._expect(")")
            return node
        found = tok.text or "end of input"
        raise ExpressionError(f"Unexpected {found!r} at {tok.pos}")

    def _call(self, name_tok: Token) -> Node:
        if name_tok.text not in FUNCTIONS:
            raise ExpressionError(f"Function {name_tok.text!r} is not allowed")
        args: list[Node] = []
        if not self._accept(")"):
            args.append(self._expr())
            while self._accept(","):
                args.append(self._expr())
            self._expect(")")
        _, arity = FUNCTIONS[name_tok.text]
        if arity is None and not args:
            raise ExpressionError(f"{name_tok.text}() needs at least one argument")
        if arity is not None and len(args) != arity:
            raise ExpressionError(
                f"{name_tok.text}() takes {arity} argument(s), got {len(args)}"
            )
        return Call(name_tok.text, tuple(args))


@lru_cache(maxsize=256)
def parse(text: str) -> Node:
    """Parse expression text into a syntax tree. Raises ExpressionError."""
    return _Parser(text).parse()


# ── Interpreter ──────────────────────────────────────────────────────


def interpret(node: Node, context: CurveContext) -> float:
    """Evaluate a syntax tree. May raise ExpressionError or arithmetic errors."""
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Name):
        if node.id in context:
            return float(context[node.id])
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        logger.warning("Variable %r not found in context, using 0", node.id)
        return 0.0
    if isinstance(node, UnaryOp):
        value = interpret(node.operand, context)
        return -value if node.op == "-" else value
    if isinstance(node, BinaryOp):
        left = interpret(node.left, context)
        right = interpret(node.right, context)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if node.op == "/":
            return left / right
        if node.op == "^":
            return math.pow(left, right)
        raise ExpressionError(f"Unknown operator {node.op!r}")
    if isinstance(node, Call):
        fn, _ = FUNCTIONS[node.func]
        args = [interpret(arg, context) for arg in node.args]
        return float(fn(*args))
    raise ExpressionError(f"Unknown node {node!r}")


def evaluate_expression(text: str, context: CurveContext) -> float:
    """Evaluate expression text; any failure or non-finite result gives 0."""
    try:
        result = interpret(parse(text), context)
    except (ExpressionError, ArithmeticError, ValueError, RecursionError) as exc:
        logger.warning("Formula %r failed to evaluate: %s", text, exc)
        return 0.0
    if not is_finite(result):
        logger.warning("Formula %r returned non-finite result %r", text, result)
        return 0.0
    return result
