"""
GAL syntax tree and runtime values
Immutable AST nodes, runtime values and canonical source rendering
"""

from typing import Any, Dict, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import re


# ============================================================================
# PRIMITIVES
# ============================================================================

INT = "int"
FLOAT = "float"
STRING = "string"
BOOL = "bool"

RESERVED_WORDS = (
    "def", "return", "notation", "with", "precedence", "associativity",
    "from", "use", "as", "true", "false",
)

OPERATOR_CHARS = "!@#$%^&*-+=|<>?/:~"


class Expr:
    """Marker base for AST nodes"""
    __slots__ = ()


@dataclass(frozen=True)
class Primitive(Expr):
    """Literal value. The kind is kept so that true and 1 never compare equal"""
    kind: str
    value: Any

    @classmethod
    def of(cls, value: Any) -> "Primitive":
        # bool is checked first: it is a subclass of int
        if isinstance(value, bool):
            return cls(BOOL, value)
        if isinstance(value, int):
            return cls(INT, value)
        if isinstance(value, float):
            return cls(FLOAT, value)
        if isinstance(value, str):
            return cls(STRING, value)
        raise TypeError(f"{type(value).__name__} is not a primitive type")

    def __str__(self) -> str:
        return render_primitive(self)


TRUE = Primitive(BOOL, True)
FALSE = Primitive(BOOL, False)


# ============================================================================
# EXPRESSIONS
# ============================================================================

class Associativity(Enum):
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


@dataclass(frozen=True)
class NotationPattern:
    pattern: str
    variables: Tuple[str, ...] = ()
    precedence: Optional[int] = None
    associativity: Associativity = Associativity.NONE


@dataclass(frozen=True)
class Variable(Expr):
    name: str


@dataclass(frozen=True)
class FunctionDef(Expr):
    name: str
    params: Tuple[str, ...]
    body: Tuple[Expr, ...]


@dataclass(frozen=True)
class FunctionCall(Expr):
    callee: Expr
    args: Tuple[Expr, ...]


@dataclass(frozen=True)
class Return(Expr):
    value: Expr


@dataclass(frozen=True)
class Assignment(Expr):
    name: str
    value: Expr


@dataclass(frozen=True)
class InfixOp(Expr):
    left: Expr
    operator: str
    right: Expr


@dataclass(frozen=True)
class NotationDecl(Expr):
    pattern: NotationPattern
    expansion: Expr


@dataclass(frozen=True)
class ExternDecl(Expr):
    module: str
    name: str
    alias: Optional[str] = None

    @property
    def local_name(self) -> str:
        return self.alias or self.name

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.name}"


# ============================================================================
# RUNTIME VALUES
# ============================================================================

@dataclass(frozen=True, eq=False)
class Function:
    """Closure value. Compared by identity: the closure scope refers back to it"""
    name: str
    params: Tuple[str, ...]
    body: Tuple[Expr, ...]
    closure_env: Dict = field(repr=False)

    @property
    def arity(self) -> int:
        return len(self.params)


@dataclass(frozen=True)
class PartialApplication:
    function: Function
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class External:
    qualified_name: str


Value = Union[Primitive, Function, PartialApplication, External]


# ============================================================================
# CANONICAL RENDERING
# ============================================================================

_STRING_ESCAPES = {
    '\\': '\\\\',
    '"': '\\"',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
    '\f': '\\f',
}

_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*\Z')
_OPERATOR = re.compile(r'(?:(?!//|/\*)[!@#$%^&*\-+=|<>?/:~])+\Z')


def _render_float(value: float) -> str:
    text = repr(value)
    if 'e' in text:
        mantissa, exponent = text.split('e')
        if '.' not in mantissa:
            mantissa += '.0'
        return f"{mantissa}e{exponent}"
    if '.' not in text:
        # inf and nan have no literal form
        raise ValueError(f"float {text} has no source representation")
    return text


def render_primitive(p: Primitive) -> str:
    if p.kind == BOOL:
        return "true" if p.value else "false"
    if p.kind == INT:
        return str(p.value)
    if p.kind == FLOAT:
        return _render_float(p.value)
    escaped = ''.join(_STRING_ESCAPES.get(ch, ch) for ch in p.value)
    return f'"{escaped}"'


def _is_term(expr: Any) -> bool:
    return isinstance(expr, (Primitive, Variable, FunctionCall))


def _render_operand(expr: Any) -> str:
    text = render(expr)
    return text if _is_term(expr) else f"({text})"


def _render_callee(expr: Any) -> str:
    # calls only parse with an identifier (or another call) in callee position
    if isinstance(expr, (Variable, FunctionCall)):
        return render(expr)
    raise ValueError(f"callee {expr!r} has no source representation")


def _render_block(body: Tuple[Any, ...]) -> str:
    if not body:
        return "{ }"
    return "{ " + "; ".join(render(e) for e in body) + " }"


def render(expr: Any) -> str:
    """Render an expression as source text that parses back to the same tree"""
    if isinstance(expr, Primitive):
        return render_primitive(expr)

    if isinstance(expr, Variable):
        return expr.name

    if isinstance(expr, FunctionCall):
        args = ", ".join(render(a) for a in expr.args)
        return f"{_render_callee(expr.callee)}({args})"

    if isinstance(expr, InfixOp):
        left = render(expr.left) if isinstance(expr.left, InfixOp) else _render_operand(expr.left)
        return f"{left} {expr.operator} {_render_operand(expr.right)}"

    if isinstance(expr, Assignment):
        return f"{expr.name} = {render(expr.value)}"

    if isinstance(expr, Return):
        return f"return {render(expr.value)}"

    if isinstance(expr, FunctionDef):
        params = ", ".join(expr.params)
        return f"{expr.name}({params}) {_render_block(expr.body)}"

    if isinstance(expr, NotationDecl):
        p = expr.pattern
        parts = [f'notation "{p.pattern}"']
        if p.variables:
            parts.append("with " + ", ".join(p.variables))
        if p.precedence is not None:
            parts.append(f"precedence {p.precedence}")
        if p.associativity is not Associativity.NONE:
            parts.append(f"associativity {p.associativity.value}")
        parts.append(f":= {render(expr.expansion)}")
        return " ".join(parts)

    if isinstance(expr, ExternDecl):
        text = f"from {expr.module} use {expr.name}"
        if expr.alias:
            text += f" as {expr.alias}"
        return text

    raise TypeError(f"cannot render {expr!r}")


def render_program(exprs) -> str:
    return "\n".join(render(e) for e in exprs)


def render_value(value: Any) -> str:
    """Display form of a runtime value"""
    if isinstance(value, Primitive):
        return render_primitive(value)
    if isinstance(value, Function):
        return f"<function {value.name}({', '.join(value.params)})>"
    if isinstance(value, PartialApplication):
        return f"<partial {value.function.name} {len(value.args)}/{value.function.arity}>"
    if isinstance(value, External):
        return f"<external {value.qualified_name}>"
    return repr(value)


def is_identifier(text: str) -> bool:
    return bool(_IDENTIFIER.match(text))


def is_operator_symbol(text: str) -> bool:
    return bool(_OPERATOR.match(text))
