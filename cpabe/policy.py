# -*- coding: utf-8 -*-
"""
policy.py  (access structure + policy compiler)
-----------------------------------------------
A policy tree is a sum type:

  Leaf(attr)            k = 1, no children; after encryption also carries
                        c  = g^{q(0)}        (G1)
                        cp = H(attr)^{q(0)}  (G2)
  Gate(k, children)     k-of-n threshold, n >= 2, 1 <= k <= n

Compilation pipeline:

  "A and (B or C)"
     -> tokens      ["A", "and", "(", "B", "or", "C", ")"]
     -> postfix     ["A", "B", "C", "1of2", "2of2"]
     -> tree        Gate(2, (Leaf A, Gate(1, (Leaf B, Leaf C))))

  and -> 2of2, or -> 1of2, "k of (X, Y, Z)" -> X Y Z kof3.
  Comparisons are folded into single attribute tokens before tokenizing:
  "dept = IT" -> dept_IT, "age >= 18" -> age_ge_18 (also _gt_, _le_, _lt_).

Trees are immutable; encryption builds a new tree with the leaf fields set.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, List, Sequence, Tuple, Union

from cpabe.errors import PolicyCompileError

logger = logging.getLogger(__name__)


# ============================================================
# Tree types
# ============================================================

@dataclass(frozen=True)
class Leaf:
    attr: str
    c: Any = field(default=None, repr=False)    # G1, ciphertext only
    cp: Any = field(default=None, repr=False)   # G2, ciphertext only

    k: ClassVar[int] = 1

    @property
    def children(self) -> Tuple["PolicyNode", ...]:
        return ()

    def shape(self) -> "Leaf":
        """Same leaf without ciphertext fields."""
        return Leaf(self.attr)


@dataclass(frozen=True)
class Gate:
    k: int
    children: Tuple["PolicyNode", ...]

    def shape(self) -> "Gate":
        return Gate(self.k, tuple(c.shape() for c in self.children))


PolicyNode = Union[Leaf, Gate]


def leaves(node: PolicyNode) -> List[Leaf]:
    """Leaves in left-to-right (pre-order) order."""
    if isinstance(node, Leaf):
        return [node]
    out: List[Leaf] = []
    for child in node.children:
        out.extend(leaves(child))
    return out


def attributes(node: PolicyNode) -> List[str]:
    return [leaf.attr for leaf in leaves(node)]


def depth(node: PolicyNode) -> int:
    if isinstance(node, Leaf):
        return 1
    return 1 + max(depth(c) for c in node.children)


def to_infix(node: PolicyNode) -> str:
    """Render a tree back to policy syntax; compile_policy(to_infix(t)) has t's shape."""
    if isinstance(node, Leaf):
        return node.attr
    parts = [to_infix(c) for c in node.children]
    n = len(parts)
    if n == 2 and node.k == 2:
        return f"({parts[0]} and {parts[1]})"
    if n == 2 and node.k == 1:
        return f"({parts[0]} or {parts[1]})"
    return f"{node.k} of ({', '.join(parts)})"


def check_tree(node: PolicyNode) -> None:
    """Apply the compiler's rules to a hand-built tree. Raises PolicyCompileError."""
    if isinstance(node, Leaf):
        if (not isinstance(node.attr, str) or not _ATTRIBUTE.match(node.attr)
                or node.attr.lower() in _KEYWORDS):
            raise PolicyCompileError(f"Invalid attribute {node.attr!r}")
        return
    if not isinstance(node, Gate):
        raise PolicyCompileError(f"Not a policy node: {node!r}")
    n = len(node.children)
    if n < 2:
        raise PolicyCompileError(f"Gate must have at least 2 children, got {n}")
    if not 1 <= node.k <= n:
        raise PolicyCompileError(f"Threshold {node.k} outside 1..{n}")
    for child in node.children:
        check_tree(child)


# ============================================================
# Tokenizer
# ============================================================

_KEYWORDS = {"and", "or", "not", "of"}

_ATTRIBUTE = re.compile(r"^[A-Za-z0-9_@]+$")
_KOFN = re.compile(r"^(\d+)of(\d+)$", re.IGNORECASE)
_COMPARISON = re.compile(r"([A-Za-z0-9_@]+)\s*(>=|<=|>|<|=)\s*([A-Za-z0-9_@]+)")
_COMPARISON_TAG = {"=": "_", ">=": "_ge_", ">": "_gt_", "<=": "_le_", "<": "_lt_"}
_TOKEN = re.compile(r"\s*(?:([(),])|([A-Za-z0-9_@]+)|(\S))")


def rewrite_comparisons(policy_str: str) -> str:
    """Fold 'attr OP value' into one attribute token."""
    return _COMPARISON.sub(
        lambda m: m.group(1) + _COMPARISON_TAG[m.group(2)] + m.group(3), policy_str
    )


def tokenize(policy_str: str) -> List[str]:
    text = rewrite_comparisons(policy_str)
    toks: List[str] = []
    for m in _TOKEN.finditer(text):
        punct, word, other = m.groups()
        if other is not None:
            raise PolicyCompileError(f"Unexpected character {other!r} at offset {m.start(3)}")
        if punct is not None:
            toks.append(punct)
        elif word.lower() in _KEYWORDS:
            toks.append(word.lower())
        else:
            toks.append(word)
    if not toks:
        raise PolicyCompileError("Empty policy")
    return toks


# ============================================================
# Infix -> postfix (shunting-yard)
# ============================================================

_PRECEDENCE = {"not": 3, "and": 2, "or": 1}
_OPERATOR_TOKEN = {"and": "2of2", "or": "1of2", "not": "0of1"}


class _ThresholdFrame:
    """Open 'k of (' list on the operator stack."""

    def __init__(self, k: int):
        self.k = k
        self.argc = 1


def _is_operator(entry: Any) -> bool:
    return isinstance(entry, str) and entry in _PRECEDENCE


def _drain_operators(ops: List[Any], out: List[str]) -> None:
    while ops and _is_operator(ops[-1]):
        out.append(_OPERATOR_TOKEN[ops.pop()])


def to_postfix(tokens: Sequence[str]) -> List[str]:
    out: List[str] = []
    ops: List[Any] = []
    # True where an operand (attribute, '(', 'not', 'k of (') must come next
    want_operand = True
    i = 0
    while i < len(tokens):
        tok = tokens[i]

        if tok.isdigit() and i + 1 < len(tokens) and tokens[i + 1] == "of":
            if not want_operand:
                raise PolicyCompileError(f"Missing operator before '{tok} of'")
            if i + 2 >= len(tokens) or tokens[i + 2] != "(":
                raise PolicyCompileError(f"Expected '(' after '{tok} of'")
            ops.append(_ThresholdFrame(int(tok)))
            i += 3
            continue

        if tok in ("(", "not"):
            if not want_operand:
                raise PolicyCompileError(f"Missing operator before '{tok}'")
        elif tok in (",", ")", "and", "or"):
            if want_operand:
                raise PolicyCompileError(f"Missing operand before '{tok}'")
            want_operand = tok != ")"
        elif tok != "of":
            if not want_operand:
                raise PolicyCompileError(f"Missing operator before {tok!r}")
            want_operand = False

        if tok == "(":
            ops.append(tok)
        elif tok == ",":
            _drain_operators(ops, out)
            if not ops or not isinstance(ops[-1], _ThresholdFrame):
                raise PolicyCompileError("',' is only allowed inside 'k of (...)'")
            ops[-1].argc += 1
        elif tok == ")":
            _drain_operators(ops, out)
            if not ops:
                raise PolicyCompileError("Unbalanced parentheses: unexpected ')'")
            top = ops.pop()
            if isinstance(top, _ThresholdFrame):
                out.append(f"{top.k}of{top.argc}")
        elif tok in _PRECEDENCE:
            # 'not' is a prefix operator: it never pops what came before it
            if tok != "not":
                while (ops and _is_operator(ops[-1])
                       and _PRECEDENCE[ops[-1]] >= _PRECEDENCE[tok]):
                    out.append(_OPERATOR_TOKEN[ops.pop()])
            ops.append(tok)
        elif tok == "of":
            raise PolicyCompileError("'of' must follow a threshold count, e.g. '2 of (A, B, C)'")
        else:
            m = _KOFN.match(tok)
            out.append(f"{int(m.group(1))}of{int(m.group(2))}" if m else tok)
        i += 1

    if want_operand:
        raise PolicyCompileError("Policy ends where an operand is expected")
    while ops:
        top = ops.pop()
        if not _is_operator(top):
            raise PolicyCompileError("Unbalanced parentheses: missing ')'")
        out.append(_OPERATOR_TOKEN[top])
    return out


# ============================================================
# Postfix -> tree (stack machine)
# ============================================================

def parse_postfix(tokens: Sequence[str]) -> PolicyNode:
    stack: List[PolicyNode] = []
    for tok in tokens:
        m = _KOFN.match(tok)
        if m is None:
            if not _ATTRIBUTE.match(tok) or tok.lower() in _KEYWORDS:
                raise PolicyCompileError(f"Invalid attribute token {tok!r}")
            stack.append(Leaf(tok))
            continue

        k, n = int(m.group(1)), int(m.group(2))
        if k == 0 and n == 1:
            raise PolicyCompileError("Negation ('not') is not supported in threshold policies")
        if k < 1:
            raise PolicyCompileError(f"Threshold must be at least 1 in '{tok}'")
        if k > n:
            raise PolicyCompileError(f"Threshold exceeds child count in '{tok}'")
        if n == 1:
            raise PolicyCompileError(f"Single-child operator '{tok}' is not allowed")
        if n > len(stack):
            raise PolicyCompileError(
                f"Operator '{tok}' needs {n} operands but only {len(stack)} are available"
            )
        children = tuple(stack[-n:])
        del stack[-n:]
        stack.append(Gate(k, children))

    if len(stack) != 1:
        raise PolicyCompileError(
            f"Policy must reduce to exactly one tree, got {len(stack)} (missing operator?)"
            if stack else "Policy is empty"
        )
    return stack[0]


def compile_policy(policy_str: str) -> PolicyNode:
    """Compile an infix policy string into a Policy Tree. Raises PolicyCompileError."""
    postfix = to_postfix(tokenize(policy_str))
    logger.debug("policy %r -> postfix %s", policy_str, " ".join(postfix))
    return parse_postfix(postfix)
