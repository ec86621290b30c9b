from __future__ import annotations

"""
Tolerant numeric input handling shared by recalculation, cell edits and paste.

`parse_numeric_input` accepts a small arithmetic language (optional leading
`=`, digits, `+ - * / ( ) . , %`) and normalizes thousands separators and
decimal commas before evaluating. It returns `None` when the text is not a
usable number; callers keep the previous value in that case.
`sanitize_number` is the lenient variant used during recalculation: anything
unusable becomes 0.
"""

import math
import re
from typing import Any

__all__ = ["parse_numeric_input", "sanitize_number", "normalize_number_token"]

_ALLOWED_CHARS = re.compile(r"^[0-9+\-*/().,%\s]*$")
_NUMBER_TOKEN = re.compile(r"[0-9.,]+")
_OPERATORS = frozenset("+-*/()%")


class _ExpressionError(ValueError):
    """Internal signal for a malformed expression."""


def parse_numeric_input(text: Any) -> float | None:
    """
    Evaluate a user-typed numeric expression.

    Args:
        text: Raw cell text such as "1.234,56", "10%", "=2+3*4". Numbers pass
            through unchanged when finite.
    Returns:
        The evaluated float, or None for empty, malformed, division-by-zero or
        non-finite input.
    """
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        value = float(text)
        return value if math.isfinite(value) else None
    if not isinstance(text, str):
        return None

    candidate = text.strip()
    if candidate.startswith("="):
        candidate = candidate[1:].strip()
    if not candidate or not _ALLOWED_CHARS.match(candidate):
        return None

    try:
        tokens = _tokenize(candidate)
        value = _Parser(tokens).parse()
    except (_ExpressionError, ZeroDivisionError, OverflowError):
        return None

    if not math.isfinite(value):
        return None
    return value


def sanitize_number(value: Any) -> float:
    """Coerce any stored value into a finite, non-negative float (0 when unusable)."""
    parsed = parse_numeric_input(value)
    if parsed is None or parsed < 0:
        return 0.0
    # Normalizes -0.0 so repeated recalculation output stays identical.
    return parsed + 0.0


def normalize_number_token(token: str) -> str:
    """
    Rewrite a digit/separator run into canonical dot-decimal form.

    "1,234.56" -> "1234.56", "1.234,56" -> "1234.56", "1,5" -> "1.5",
    "1.234.567" -> "1234567", "1,234" -> "1234".
    """
    has_comma = "," in token
    has_dot = "." in token

    if has_comma and has_dot:
        decimal_mark = "," if token.rfind(",") > token.rfind(".") else "."
        thousands_mark = "." if decimal_mark == "," else ","
        integer_part, _, fraction = token.rpartition(decimal_mark)
        integer_part = integer_part.replace(thousands_mark, "")
        if decimal_mark in integer_part:
            raise _ExpressionError(f"Ambiguous number '{token}'")
        return f"{integer_part}.{fraction}"

    if has_comma:
        return _normalize_single_separator(token, ",")
    if has_dot:
        return _normalize_single_separator(token, ".")
    return token


def _normalize_single_separator(token: str, mark: str) -> str:
    parts = token.split(mark)
    if len(parts) > 2:
        # Repeated separator can only be grouping: 1.234.567 or 1,234,567.
        if not all(len(part) == 3 for part in parts[1:]):
            raise _ExpressionError(f"Malformed grouping in '{token}'")
        return "".join(parts)

    integer_part, fraction = parts
    if mark == "," and len(fraction) == 3 and integer_part:
        return integer_part + fraction
    return f"{integer_part}.{fraction}"


def _tokenize(text: str) -> list[object]:
    tokens: list[object] = []
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char.isspace():
            index += 1
            continue
        if char in _OPERATORS:
            tokens.append(char)
            index += 1
            continue
        match = _NUMBER_TOKEN.match(text, index)
        if match is None:
            raise _ExpressionError(f"Unexpected character '{char}'")
        raw = match.group(0)
        normalized = normalize_number_token(raw)
        if normalized in {"", "."} or not any(ch.isdigit() for ch in normalized):
            raise _ExpressionError(f"Invalid number '{raw}'")
        try:
            tokens.append(float(normalized))
        except ValueError as exc:
            raise _ExpressionError(f"Invalid number '{raw}'") from exc
        index = match.end()
    return tokens


class _Parser:
    """
    Recursive-descent evaluator.

        expression := term (("+" | "-") term)*
        term       := unary (("*" | "/") unary)*
        unary      := ("+" | "-") unary | postfix
        postfix    := primary "%"*
        primary    := NUMBER | "(" expression ")"
    """

    def __init__(self, tokens: list[object]) -> None:
        self._tokens = tokens
        self._position = 0

    def parse(self) -> float:
        if not self._tokens:
            raise _ExpressionError("Empty expression")
        value = self._expression()
        if self._position != len(self._tokens):
            raise _ExpressionError("Trailing tokens")
        return value

    def _peek(self) -> object | None:
        if self._position < len(self._tokens):
            return self._tokens[self._position]
        return None

    def _advance(self) -> object:
        token = self._peek()
        if token is None:
            raise _ExpressionError("Unexpected end of expression")
        self._position += 1
        return token

    def _expression(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            operator = self._advance()
            right = self._term()
            value = value + right if operator == "+" else value - right
        return value

    def _term(self) -> float:
        value = self._unary()
        while self._peek() in ("*", "/"):
            operator = self._advance()
            right = self._unary()
            value = value * right if operator == "*" else value / right
        return value

    def _unary(self) -> float:
        token = self._peek()
        if token == "+":
            self._advance()
            return self._unary()
        if token == "-":
            self._advance()
            return -self._unary()
        return self._postfix()

    def _postfix(self) -> float:
        value = self._primary()
        while self._peek() == "%":
            self._advance()
            value = value / 100.0
        return value

    def _primary(self) -> float:
        token = self._advance()
        if isinstance(token, float):
            return token
        if token == "(":
            value = self._expression()
            if self._advance() != ")":
                raise _ExpressionError("Unbalanced parentheses")
            return value
        raise _ExpressionError(f"Unexpected token '{token}'")
