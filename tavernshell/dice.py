"""Dice notation parser and roll evaluator.

Notation: ``[count]d<sides>`` followed by any number of clauses:
``!`` (advantage), ``kh``/``kl``/``dh``/``dl`` + number (keep/drop),
``+N`` / ``-N`` (modifier). Whitespace is ignored, case does not matter.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable

from .errors import DiceRollError, DiceSyntaxError

logger = logging.getLogger(__name__)

MAX_DICE = 1000
MIN_SIDES = 2
MAX_DIGITS = 18

DROPPED_MARKS = ("‹", "›")

_OPERATIONS = {
    "kh": "kept highest",
    "kl": "kept lowest",
    "dh": "dropped highest",
    "dl": "dropped lowest",
}

Draw = Callable[[int], int]


@dataclass(frozen=True)
class Operation:
    kind: str
    count: int

    def describe(self) -> str:
        return f"{_OPERATIONS[self.kind]} {self.count}"


@dataclass(frozen=True)
class Expression:
    count: int
    sides: int
    modifier: int = 0
    operation: Operation | None = None
    advantage: bool = False

    def notation(self) -> str:
        text = f"{self.count}d{self.sides}"
        if self.advantage:
            text += "!"
        if self.operation is not None:
            text += f"{self.operation.kind}{self.operation.count}"
        if self.modifier:
            text += f"{self.modifier:+d}"
        return text


@dataclass(frozen=True)
class Die:
    value: int
    sides: int
    kept: bool = True


@dataclass(frozen=True)
class RollResult:
    expression: Expression
    dice: tuple[Die, ...]
    kept_total: int
    total: int

    @property
    def kept(self) -> list[Die]:
        return [d for d in self.dice if d.kept]

    @property
    def dropped(self) -> list[Die]:
        return [d for d in self.dice if not d.kept]

    def to_dict(self) -> dict[str, Any]:
        expr = self.expression
        return {
            "expr": expr.notation(),
            "count": expr.count,
            "sides": expr.sides,
            "modifier": expr.modifier,
            "advantage": expr.advantage,
            "operation": (
                None if expr.operation is None else [expr.operation.kind, expr.operation.count]
            ),
            "rolls": [d.value for d in self.dice],
            "kept": [d.kept for d in self.dice],
            "kept_total": self.kept_total,
            "total": self.total,
            "text": format_result(self),
        }


def _parse_digits(s: str, i: int) -> tuple[int | None, int]:
    j = i
    while j < len(s) and "0" <= s[j] <= "9":
        j += 1
    if j == i:
        return None, i
    if j - i > MAX_DIGITS:
        raise DiceSyntaxError(f"number too long at position {i}", i)
    return int(s[i:j]), j


def _found(s: str, i: int) -> str:
    return f"'{s[i]}'" if i < len(s) else "end of input"


def parse(text: str) -> Expression:
    s = "".join(ch for ch in text if not ch.isspace()).lower()
    if not s:
        raise DiceSyntaxError("empty dice notation")

    count, i = _parse_digits(s, 0)
    if count is None:
        count = 1
    elif count < 1:
        raise DiceSyntaxError("die count must be at least 1", 0)
    elif count > MAX_DICE:
        raise DiceSyntaxError(f"die count too large: {count} (max {MAX_DICE})", 0)

    if i >= len(s) or s[i] != "d":
        raise DiceSyntaxError(f"expected 'd' at position {i}, found {_found(s, i)}", i)
    i += 1

    sides, j = _parse_digits(s, i)
    if sides is None:
        raise DiceSyntaxError(
            f"expected number of sides after 'd' at position {i}, found {_found(s, i)}", i
        )
    if sides < MIN_SIDES:
        raise DiceSyntaxError(f"die must have at least {MIN_SIDES} sides, got {sides}", i)
    i = j

    modifier = 0
    operation: Operation | None = None
    advantage = False

    # Later modifier / operation clauses replace earlier ones.
    while i < len(s):
        ch = s[i]

        if ch == "!":
            advantage = True
            i += 1
            continue

        if ch in {"k", "d"}:
            op = s[i : i + 2]
            if len(op) < 2:
                raise DiceSyntaxError(f"incomplete operation '{op}' at position {i}", i)
            if op not in _OPERATIONS:
                raise DiceSyntaxError(
                    f"unknown operation '{op}' at position {i} (expected kh, kl, dh or dl)", i
                )
            n, j = _parse_digits(s, i + 2)
            if n is None:
                raise DiceSyntaxError(
                    f"expected number after '{op}' at position {i + 2}, found {_found(s, i + 2)}",
                    i + 2,
                )
            if n < 1:
                raise DiceSyntaxError(f"{op} count must be at least 1", i + 2)
            operation = Operation(kind=op, count=n)
            i = j
            continue

        if ch in {"+", "-"}:
            n, j = _parse_digits(s, i + 1)
            if n is None:
                raise DiceSyntaxError(
                    f"expected number after '{ch}' at position {i + 1}, found {_found(s, i + 1)}",
                    i + 1,
                )
            modifier = -n if ch == "-" else n
            i = j
            continue

        raise DiceSyntaxError(f"unexpected character '{ch}' at position {i}", i)

    expr = Expression(
        count=count,
        sides=sides,
        modifier=modifier,
        operation=operation,
        advantage=advantage,
    )
    logger.debug("parsed %r as %s", text, expr)
    return expr


def secure_draw(sides: int) -> int:
    # 64 bits dwarf any die size here, so the modulo bias for
    # non-power-of-two sides is negligible.
    return secrets.randbits(64) % sides + 1


def _apply_advantage(values: list[int], kept: list[bool]) -> None:
    for i in range(0, len(values) - 1, 2):
        if values[i + 1] > values[i]:
            kept[i] = False
        else:
            kept[i + 1] = False


def _apply_operation(op: Operation, values: list[int], kept: list[bool]) -> None:
    order = sorted((i for i in range(len(values)) if kept[i]), key=lambda i: (values[i], i))
    m = len(order)
    n = op.count

    if op.kind == "kh":
        drop = order[: m - n] if m > n else []
    elif op.kind == "kl":
        drop = order[n:] if m > n else []
    elif op.kind == "dh":
        drop = order[m - n :] if n <= m else []
    else:
        drop = order[:n] if n <= m else []

    for i in drop:
        kept[i] = False


def evaluate(expr: Expression, draw: Draw | None = None) -> RollResult:
    draw = draw or secure_draw
    physical = expr.count * 2 if expr.advantage else expr.count

    values: list[int] = []
    try:
        for _ in range(physical):
            values.append(int(draw(expr.sides)))
    except Exception as e:
        logger.error("random source failed while rolling %s: %s", expr.notation(), e)
        raise DiceRollError(f"random source failed: {e}") from e

    for v in values:
        if not 1 <= v <= expr.sides:
            raise DiceRollError(f"random source returned {v}, outside 1..{expr.sides}")

    kept = [True] * physical
    if expr.advantage:
        _apply_advantage(values, kept)
    if expr.operation is not None:
        _apply_operation(expr.operation, values, kept)

    dice = tuple(Die(value=v, sides=expr.sides, kept=k) for v, k in zip(values, kept))
    kept_total = sum(d.value for d in dice if d.kept)
    result = RollResult(
        expression=expr,
        dice=dice,
        kept_total=kept_total,
        total=kept_total + expr.modifier,
    )
    logger.debug("rolled %s -> %s = %d", expr.notation(), values, result.total)
    return result


def roll(text: str, draw: Draw | None = None) -> RollResult:
    return evaluate(parse(text), draw=draw)


def format_result(result: RollResult, marks: tuple[str, str] = DROPPED_MARKS) -> str:
    """One-line summary: ``4d6kh3: [5, 2, 6, ‹1›] = 13 (kept highest 3)``."""
    expr = result.expression
    left, right = marks

    shown = []
    for d in result.dice:
        shown.append(str(d.value) if d.kept else f"{left}{d.value}{right}")

    text = f"{expr.notation()}: [{', '.join(shown)}]"
    if expr.modifier:
        text += f" {expr.modifier:+d}"
    text += f" = {result.total}"

    if result.dropped:
        reasons = []
        if expr.advantage:
            reasons.append("advantage")
        if expr.operation is not None:
            reasons.append(expr.operation.describe())
        text += f" ({', '.join(reasons)})"

    return text
