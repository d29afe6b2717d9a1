"""
GAL Notation Expander
Collects notation declarations and rewrites matching infix uses into their expansions
"""

from typing import Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass
import re

from syntax import (
    Expr, Variable, FunctionDef, FunctionCall, Return, Assignment, InfixOp,
    NotationDecl, NotationPattern, RESERVED_WORDS, is_identifier, is_operator_symbol, render
)
from error_handling import ExpansionError


SLOT_PATTERN = re.compile(r'\$([A-Za-z_][A-Za-z0-9_]*)')


# ============================================================================
# PATTERN TEXT
# ============================================================================

def pattern_slots(text: str) -> Tuple[str, ...]:
    """Ordered, de-duplicated names of the $slots in a pattern string"""
    names = []
    for name in SLOT_PATTERN.findall(text):
        if name not in names:
            names.append(name)
    return tuple(names)


def split_template(text: str) -> Optional[Tuple[str, str, str]]:
    """Split '<slot> <operator> <slot>' into its three tokens"""
    parts = text.split()
    if len(parts) != 3:
        return None
    return parts[0], parts[1], parts[2]


# ============================================================================
# COMPILED NOTATIONS
# ============================================================================

@dataclass(frozen=True)
class Notation:
    """A declaration compiled to its operator token and slot names"""
    pattern: NotationPattern
    left: str
    operator: str
    right: str
    expansion: Expr
    index: int

    @property
    def text(self) -> str:
        return self.pattern.pattern


def _slot_name(token: str, pattern: NotationPattern) -> str:
    if token.startswith('$'):
        name = token[1:]
        if not is_identifier(name):
            raise ExpansionError(f"invalid slot '{token}' in notation pattern '{pattern.pattern}'", pattern.pattern)
        if pattern.variables and name not in pattern.variables:
            raise ExpansionError(
                f"slot '{name}' in notation pattern '{pattern.pattern}' is not declared with 'with'",
                pattern.pattern
            )
        return name

    if is_identifier(token) and token in pattern.variables:
        return token

    raise ExpansionError(
        f"'{token}' in notation pattern '{pattern.pattern}' is neither a $slot nor a declared variable",
        pattern.pattern
    )


def compile_notation(decl: NotationDecl, index: int = 0) -> Notation:
    """Validate a notation declaration and compile it for matching"""
    pattern = decl.pattern
    parts = split_template(pattern.pattern)
    if parts is None:
        raise ExpansionError(
            f"notation pattern '{pattern.pattern}' must have the form '<slot> <operator> <slot>'",
            pattern.pattern
        )

    left_token, operator, right_token = parts
    if not (is_operator_symbol(operator) or is_identifier(operator)) or operator in RESERVED_WORDS:
        raise ExpansionError(f"'{operator}' cannot be used as an operator", pattern.pattern)
    if operator in pattern.variables:
        raise ExpansionError(
            f"operator '{operator}' of notation pattern '{pattern.pattern}' is also declared as a variable",
            pattern.pattern
        )

    left = _slot_name(left_token, pattern)
    right = _slot_name(right_token, pattern)
    if left == right:
        raise ExpansionError(f"slot '{left}' appears twice in notation pattern '{pattern.pattern}'", pattern.pattern)

    for name in pattern.variables:
        if name not in (left, right):
            raise ExpansionError(
                f"variable '{name}' does not appear in notation pattern '{pattern.pattern}'",
                pattern.pattern
            )

    return Notation(pattern, left, operator, right, decl.expansion, index)


# ============================================================================
# SUBSTITUTION
# ============================================================================

def substitute_expr(expr: Expr, bindings: Dict[str, Expr]) -> Expr:
    """Replace bound variables, descending only into calls and infix operations"""
    if isinstance(expr, Variable):
        return bindings.get(expr.name, expr)

    if isinstance(expr, FunctionCall):
        return FunctionCall(
            substitute_expr(expr.callee, bindings),
            tuple(substitute_expr(arg, bindings) for arg in expr.args)
        )

    if isinstance(expr, InfixOp):
        return InfixOp(
            substitute_expr(expr.left, bindings),
            expr.operator,
            substitute_expr(expr.right, bindings)
        )

    return expr


def extract_notations(exprs: List[Expr]) -> Tuple[List[NotationDecl], List[Expr]]:
    """Partition top-level expressions into notation declarations and the rest"""
    declarations = [e for e in exprs if isinstance(e, NotationDecl)]
    rest = [e for e in exprs if not isinstance(e, NotationDecl)]
    return declarations, rest


# ============================================================================
# NOTATION TABLE
# ============================================================================

class NotationTable:
    """Declared notations in declaration order.

    A table outlives a single expansion so that notations declared on one
    REPL line remain available on the next.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._notations: List[Notation] = []
        self._by_pattern: Dict[str, Notation] = {}
        # expansion templates with their own notations already applied
        self._resolved: Dict[int, Expr] = {}

    def __len__(self) -> int:
        return len(self._notations)

    def __iter__(self) -> Iterator[Notation]:
        return iter(self._notations)

    def __contains__(self, pattern_text: str) -> bool:
        return pattern_text in self._by_pattern

    def operators(self) -> List[str]:
        seen = []
        for notation in self._notations:
            if notation.operator not in seen:
                seen.append(notation.operator)
        return seen

    def declare(self, decl: NotationDecl) -> Notation:
        """Compile and add a declaration"""
        text = decl.pattern.pattern
        if text in self._by_pattern:
            raise ExpansionError(f"notation '{text}' is declared more than once", text)

        notation = compile_notation(decl, len(self._notations))
        earlier = self.lookup(notation.operator)
        if earlier is not None and self.debug:
            print(f"[notation] '{text}' overlaps '{earlier.text}' on operator "
                  f"'{notation.operator}'; '{earlier.text}' is applied")

        self._notations.append(notation)
        self._by_pattern[text] = notation
        self._resolved.clear()
        return notation

    def declare_all(self, decls: List[NotationDecl]) -> List[Notation]:
        """Declare a batch of notations, all or none.

        Each new template is also resolved, so a notation that rewrites into
        itself is rejected here rather than at its first use.
        """
        staged = NotationTable(self.debug)
        staged._notations = list(self._notations)
        staged._by_pattern = dict(self._by_pattern)
        added = [staged.declare(decl) for decl in decls]
        for notation in added:
            staged._resolve(notation, ())

        self._notations = staged._notations
        self._by_pattern = staged._by_pattern
        self._resolved = staged._resolved
        return added

    def lookup(self, operator: str) -> Optional[Notation]:
        """First notation, in declaration order, for an operator token"""
        for notation in self._notations:
            if notation.operator == operator:
                return notation
        return None

    def _resolve(self, notation: Notation, stack: Tuple[Notation, ...]) -> Expr:
        if notation in stack:
            chain = " -> ".join(n.operator for n in stack + (notation,))
            raise ExpansionError(f"notation '{notation.text}' rewrites into itself ({chain})", notation.text)
        if notation.index not in self._resolved:
            self._resolved[notation.index] = self._rewrite(notation.expansion, stack + (notation,))
        return self._resolved[notation.index]

    def _rewrite(self, expr: Expr, stack: Tuple[Notation, ...]) -> Expr:
        """Bottom-up rewrite; unchanged sub-trees are returned as-is"""
        if isinstance(expr, InfixOp):
            left = self._rewrite(expr.left, stack)
            right = self._rewrite(expr.right, stack)
            notation = self.lookup(expr.operator)
            if notation is None:
                if left is expr.left and right is expr.right:
                    return expr
                return InfixOp(left, expr.operator, right)

            template = self._resolve(notation, stack)
            expanded = substitute_expr(template, {notation.left: left, notation.right: right})
            if self.debug:
                print(f"[notation] {render(expr)}  =>  {render(expanded)}")
            return expanded

        if isinstance(expr, FunctionCall):
            callee = self._rewrite(expr.callee, stack)
            args = tuple(self._rewrite(arg, stack) for arg in expr.args)
            if callee is expr.callee and all(a is b for a, b in zip(args, expr.args)):
                return expr
            return FunctionCall(callee, args)

        if isinstance(expr, FunctionDef):
            body = tuple(self._rewrite(e, stack) for e in expr.body)
            if all(a is b for a, b in zip(body, expr.body)):
                return expr
            return FunctionDef(expr.name, expr.params, body)

        if isinstance(expr, Return):
            value = self._rewrite(expr.value, stack)
            return expr if value is expr.value else Return(value)

        if isinstance(expr, Assignment):
            value = self._rewrite(expr.value, stack)
            return expr if value is expr.value else Assignment(expr.name, value)

        if isinstance(expr, NotationDecl):
            raise ExpansionError(
                f"notation '{expr.pattern.pattern}' must be declared at top level",
                expr.pattern.pattern
            )

        # Primitive, Variable, ExternDecl
        return expr

    def expand_expr(self, expr: Expr) -> Expr:
        """Expand a single non-declaration expression"""
        return self._rewrite(expr, ())


def match_notation(expr: Expr, table: NotationTable) -> Optional[Notation]:
    """The notation that applies to an expression node, if any"""
    if isinstance(expr, InfixOp):
        return table.lookup(expr.operator)
    return None


def expand_with(exprs: List[Expr], table: NotationTable) -> List[Expr]:
    """Declare every top-level notation into table, then expand the rest"""
    declarations, rest = extract_notations(exprs)
    table.declare_all(declarations)
    return [table.expand_expr(e) for e in rest]


def expand(exprs: List[Expr], debug: bool = False) -> List[Expr]:
    """Expand a parsed program with the notations it declares"""
    return expand_with(exprs, NotationTable(debug))
