"""
GAL Programming Language Parser
Recursive-descent combinator grammar producing the GAL abstract syntax tree
"""

from typing import Iterable, List, Set, Tuple
from contextlib import contextmanager
from pathlib import Path
import sys

# Import pyparsing with error handling
try:
    from pyparsing import (
        Keyword, Regex, QuotedString, Suppress, Forward, Group, Opt,
        ZeroOrMore, OneOrMore, DelimitedList, StringEnd,
        ParserElement, ParseBaseException, cpp_style_comment
    )
    # Enable packrat parsing for performance
    ParserElement.enable_packrat()
except ImportError:
    raise ImportError("pyparsing library not found. Install with: pip install pyparsing")

from syntax import (
    Expr, Primitive, Variable, FunctionDef, FunctionCall, Return, Assignment,
    InfixOp, NotationDecl, NotationPattern, ExternDecl, Associativity,
    INT, FLOAT, STRING, BOOL, RESERVED_WORDS, OPERATOR_CHARS, is_identifier
)
from notation import pattern_slots, split_template
from error_handling import GalErrorHandler, GalParseError, ParseActionError


IDENTIFIER_PATTERN = r'(?!(?:%s)\b)[A-Za-z_][A-Za-z0-9_]*' % "|".join(RESERVED_WORDS)
_OPERATOR_CHAR = r'(?!//|/\*)[%s]' % "".join("\\" + ch for ch in OPERATOR_CHARS)
# operator runs stop where a comment starts
OPERATOR_PATTERN = r'(?:%s)+' % _OPERATOR_CHAR
# a lone "=" is assignment; "==" and friends stay infix operators
ASSIGN_PATTERN = r'=(?!%s)' % _OPERATOR_CHAR

# pyparsing spends about 25 host frames per nested call, so the default
# limit of 1000 would stop at around 40 levels
PARSE_RECURSION_LIMIT = 20000


@contextmanager
def recursion_headroom(limit: int):
    """Raise the host recursion limit to at least limit for the duration"""
    previous = sys.getrecursionlimit()
    if limit > previous:
        sys.setrecursionlimit(limit)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


class GalGrammar:
    """GAL grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        # word operators declared by notations seen so far in the current parse
        self.operator_words: Set[str] = set()
        # (start, location, label, exception) of every labeled production that failed
        self.failures: List[Tuple[int, int, str, BaseException]] = []
        self._setup_grammar()

    def _label(self, name: str, element: ParserElement) -> ParserElement:
        """Name a production and record where it fails"""
        def record_failure(s, loc, expr, err):
            self.failures.append((loc, getattr(err, 'loc', loc), name, err))

        return element.set_name(name).set_fail_action(record_failure)

    def _setup_grammar(self):
        """Setup the GAL grammar"""

        expression = Forward()

        # Literals
        float_literal = Regex(r'-?\d+\.\d+(?:[eE][+-]?\d+)?(?![A-Za-z0-9_])').set_name("float").set_parse_action(
            lambda t: Primitive(FLOAT, float(t[0]))
        )
        int_literal = Regex(r'-?\d+(?![A-Za-z0-9_.])').set_name("integer").set_parse_action(
            lambda t: Primitive(INT, int(t[0]))
        )
        string_literal = QuotedString('"', esc_char='\\').set_name("string").set_parse_action(
            lambda t: Primitive(STRING, t[0])
        )
        bool_literal = (Keyword("true") | Keyword("false")).set_parse_action(
            lambda t: Primitive(BOOL, t[0] == "true")
        )
        primitive = self._label("primitive", float_literal | int_literal | string_literal | bool_literal)

        # Identifiers (reserved words excluded)
        identifier = Regex(IDENTIFIER_PATTERN).set_name("identifier")
        variable = self._label("variable", identifier.copy().set_parse_action(lambda t: Variable(t[0])))

        # Function calls: f(a, b), chained as f(a)(b)
        arguments = Group(Suppress("(") + Opt(DelimitedList(expression)) + Suppress(")"))
        function_call = self._label(
            "function call", identifier + OneOrMore(arguments)
        ).set_parse_action(self._make_call)

        parenthesized = Suppress("(") + expression + Suppress(")")

        term = self._label("term", primitive | parenthesized | function_call | variable)

        # Infix expressions, folded left to right
        symbol_operator = Regex(OPERATOR_PATTERN).set_name("operator")
        word_operator = Regex(IDENTIFIER_PATTERN).set_name("word operator").add_condition(
            lambda t: t[0] in self.operator_words, message="not a declared operator"
        )
        operator = self._label("operator", symbol_operator | word_operator)
        infix = self._label("infix expression", term + ZeroOrMore(operator + term)).set_parse_action(
            self._fold_infix
        )

        assignment = self._label(
            "assignment", identifier + Suppress(Regex(ASSIGN_PATTERN).set_name("'='")) + expression
        ).set_parse_action(lambda t: Assignment(t[0], t[1]))

        return_expr = self._label(
            "return", Suppress(Keyword("return")) - expression
        ).set_parse_action(lambda t: Return(t[0]))

        # Extern declarations: from python.math use sqrt as root
        module_path = Regex(r'[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*').set_name("module path")
        extern_decl = self._label(
            "extern declaration",
            Suppress(Keyword("from")) - module_path + Suppress(Keyword("use")) + identifier
            + Opt(Suppress(Keyword("as")) + identifier)
        ).set_parse_action(lambda t: ExternDecl(t[0], t[1], t[2] if len(t) > 2 else None))

        # Function definitions: [def] name(a, b) { body }
        block_statement = extern_decl | expression
        block = self._label("block", Group(ZeroOrMore(block_statement + Opt(Suppress(";")))))
        parameters = Group(Suppress("(") + Opt(DelimitedList(expression)) + Suppress(")"))
        function_def = self._label(
            "function definition",
            Suppress(Opt(Keyword("def"))) + identifier + parameters + Suppress("{") - block + Suppress("}")
        ).set_parse_action(self._make_function_def)

        # Notation declarations
        associativity = (Keyword("left") | Keyword("right") | Keyword("none")).set_parse_action(
            lambda t: Associativity(t[0])
        )
        notation_pattern = self._label(
            "notation pattern",
            QuotedString('"')("pattern")
            + Opt(Suppress(Keyword("with")) + Group(DelimitedList(identifier))("variables"))
            + Opt(Suppress(Keyword("precedence")) + Regex(r'-?\d+').set_name("integer")("precedence"))
            + Opt(Suppress(Keyword("associativity")) + associativity("associativity"))
        ).set_parse_action(self._make_notation_pattern)
        notation_decl = self._label(
            "notation declaration",
            Suppress(Keyword("notation")) - notation_pattern + Suppress(":=") + expression
        ).set_parse_action(self._make_notation_decl)

        expression <<= self._label("expression", function_def | return_expr | assignment | infix)

        # Notation patterns anywhere in the text, skipping comments and string literals,
        # so that word operators may be used before their declaration
        notation_head = Suppress(Keyword("notation")) + QuotedString('"')
        self.notation_scanner = (
            notation_head
            | Suppress(cpp_style_comment)
            | Suppress(QuotedString('"', esc_char='\\'))
        )

        statement = self._label("top level expression", notation_decl | extern_decl | expression)
        program = ZeroOrMore(statement + Opt(Suppress(";"))) + StringEnd().set_name("end of input")

        # Comments are insignificant between any two syntactic units
        program.ignore(cpp_style_comment)

        if self.debug:
            for element in (statement, function_def, notation_decl, extern_decl):
                element.set_debug()

        # Store the main parsers
        self.program = program
        self.statement = statement
        self.expression = expression
        self.term = term
        self.primitive = primitive
        self.function_def = function_def
        self.function_call = function_call
        self.notation_decl = notation_decl
        self.notation_pattern = notation_pattern
        self.extern_decl = extern_decl

    # ------------------------------------------------------------------
    # Parse actions
    # ------------------------------------------------------------------

    @staticmethod
    def _make_call(tokens) -> Expr:
        callee = Variable(tokens[0])
        for args in tokens[1:]:
            callee = FunctionCall(callee, tuple(args))
        return callee

    @staticmethod
    def _fold_infix(tokens) -> Expr:
        result = tokens[0]
        for i in range(1, len(tokens), 2):
            result = InfixOp(result, tokens[i], tokens[i + 1])
        return result

    def _make_function_def(self, s, loc, tokens) -> Expr:
        name, params, body = tokens[0], tokens[1], tokens[2]
        names = []
        for param in params:
            if not isinstance(param, Variable):
                error = ParseActionError(
                    s, loc, f"parameters of function definition '{name}' must be bare names"
                )
                # raised from a parse action, so no fail action sees it
                self.failures.append((loc, loc, "function definition", error))
                raise error
            names.append(param.name)
        return FunctionDef(name, tuple(names), tuple(body))

    @staticmethod
    def _make_notation_pattern(tokens) -> NotationPattern:
        pattern = tokens["pattern"]
        variables = tokens.get("variables")
        precedence = tokens.get("precedence")
        return NotationPattern(
            pattern=pattern,
            variables=tuple(variables) if variables is not None else pattern_slots(pattern),
            precedence=int(precedence) if precedence is not None else None,
            associativity=tokens.get("associativity", Associativity.NONE),
        )

    @staticmethod
    def _make_notation_decl(tokens) -> Expr:
        return NotationDecl(tokens[0], tokens[1])

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def _reset(self, text: str, operators: Iterable[str] = ()):
        self.operator_words.clear()
        self.operator_words.update(operators)
        self.operator_words.update(self.declared_operator_words(text))
        self.failures = []

    def declared_operator_words(self, text: str) -> Set[str]:
        """Word operators of every notation declared in text"""
        words = set()
        for tokens, _, _ in self.notation_scanner.scan_string(text):
            for pattern in tokens:
                parts = split_template(pattern)
                if parts is not None and is_identifier(parts[1]):
                    words.add(parts[1])
        return words

    def _parse(self, element: ParserElement, text: str, filename: str):
        try:
            with recursion_headroom(PARSE_RECURSION_LIMIT):
                return element.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise GalErrorHandler(text, filename).enhance_parse_exception(e, self.failures) from e
        except RecursionError as e:
            # the deepest production that was entered before the host gave up
            location = max((start for start, _, _, _ in self.failures), default=0)
            raise GalErrorHandler(text, filename).nesting_error(location) from e

    def parse_program(self, text: str, filename: str = "<input>",
                      operators: Iterable[str] = ()) -> List[Expr]:
        """Parse a complete GAL program.

        operators are word operators declared before this text (e.g. on an
        earlier REPL line). Word operators declared anywhere in the text
        itself are known from the start.
        """
        self._reset(text, operators)
        return list(self._parse(self.program, text, filename))

    def parse_expression(self, text: str, filename: str = "<input>") -> Expr:
        """Parse a single GAL expression"""
        self._reset(text)
        return self._parse(self.expression, text, filename)[0]


class GalParser:
    """Main GAL parser"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = GalGrammar(debug)

    def parse_file(self, filepath: str) -> List[Expr]:
        """Parse a GAL source file"""
        try:
            content = Path(filepath).read_text(encoding='utf-8')
        except FileNotFoundError:
            raise GalParseError(f"File not found: {filepath}")
        except UnicodeDecodeError as e:
            raise GalParseError(f"Cannot decode file {filepath}: {e}")
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>",
                     operators: Iterable[str] = ()) -> List[Expr]:
        """Parse GAL source code from string"""
        return self.grammar.parse_program(text, filename, operators)

    def parse_expression(self, text: str, filename: str = "<input>") -> Expr:
        """Parse a single GAL expression"""
        return self.grammar.parse_expression(text, filename)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> GalParser:
    """Create a GAL parser"""
    return GalParser(debug=debug)


def create_debug_parser() -> GalParser:
    """Create a GAL parser with debug enabled"""
    return GalParser(debug=True)


_default_parser = None


def parse(text: str) -> List[Expr]:
    """Parse program text into a list of top-level expressions"""
    global _default_parser
    if _default_parser is None:
        _default_parser = create_parser()
    return _default_parser.parse_string(text)
