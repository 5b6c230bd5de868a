# src/templator_flow/core/engine/conditions.py
"""
Condições de nó.

Gramática restrita (v1):

    condition := path op literal
    path      := identificador(.identificador)*
    op        := == | >= | <= | > | <
    literal   := true | false | número | "texto" | 'texto' | palavra

O caminho é resolvido no RunContext (`extract.metrics.confidence` ou
`metrics.extract.confidence`, que aponta para o mesmo valor).
Caminhos ausentes resolvem para `None`: `==` é falso e operadores de
ordem também.

Expressões que não seguem a gramática dependem da política:
    - fail_open   (default) → o nó executa
    - fail_closed           → o nó é pulado

Não há avaliação de expressões gerais; qualquer coisa além de uma
comparação simples é tratada como não parseável.
"""

from __future__ import annotations

import operator
import re
from typing import Any, Callable, Dict, Optional, Tuple

from ..pipeline.context import RunContext

FAIL_OPEN = "fail_open"
FAIL_CLOSED = "fail_closed"

_CONDITION_RE = re.compile(
    r"""^\s*
    (?P<path>[A-Za-z_][\w-]*(?:\.[\w-]+)*)
    \s*(?P<op>==|>=|<=|>|<)\s*
    (?P<literal>"[^"]*"|'[^']*'|[^\s"'=<>]+)
    \s*$""",
    re.VERBOSE,
)

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}


class ConditionSyntaxError(ValueError):
    """Expressão fora da gramática de condições."""


def parse_literal(raw: str) -> Any:
    if raw == "true":
        return True
    if raw == "false":
        return False
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
        return raw[1:-1]
    if _NUMBER_RE.match(raw):
        return float(raw) if any(c in raw for c in ".eE") else int(raw)
    return raw


def parse_condition(expr: str) -> Tuple[str, str, Any]:
    match = _CONDITION_RE.match(expr or "")
    if not match:
        raise ConditionSyntaxError(f"Condição inválida: {expr!r}")
    return match.group("path"), match.group("op"), parse_literal(match.group("literal"))


def _compare(left: Any, op: str, right: Any) -> bool:
    if left is None:
        return False
    if op == "==":
        if isinstance(left, bool) or isinstance(right, bool):
            return left is right
        return left == right
    # bool também é int; ordens entre bool e número não fazem sentido aqui
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    try:
        return _OPS[op](left, right)
    except TypeError:
        return False


def evaluate_condition(
    expr: Optional[str],
    context: Any,
    *,
    policy: str = FAIL_OPEN,
) -> bool:
    """
    Avalia `expr` contra `context` (RunContext ou dict aninhado).

    Returns:
        bool: `True` quando o nó deve executar.
    """
    if expr is None or not str(expr).strip():
        return True

    try:
        path, op, literal = parse_condition(str(expr))
    except ConditionSyntaxError:
        return policy != FAIL_CLOSED

    return _compare(_resolve(context, path), op, literal)


def _resolve(context: Any, path: str) -> Any:
    if isinstance(context, RunContext):
        return context.resolve(path)
    current = context
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current
