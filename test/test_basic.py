"""
Basic parsing tests for GAL language
Tests fundamental parsing capabilities
"""

import pytest
from parsing import GalGrammar, create_parser, parse
from error_handling import GalParseError
from syntax import (
    Primitive, Variable, FunctionDef, FunctionCall, Return, Assignment, InfixOp,
    NotationDecl, NotationPattern, ExternDecl, Associativity, INT, FLOAT, STRING, BOOL,
    render, render_program
)


class TestBasicParsing:
  """Test basic parsing functionality"""

  @pytest.fixture
  def grammar(self):
    """Provide a fresh grammar instance for each test"""
    return GalGrammar()

  def test_empty_program(self, grammar):
    assert grammar.parse_program("") == []
    assert grammar.parse_program("  // nothing here\n/* or here */ ") == []

  def test_literals(self, grammar):
    result = grammar.parse_program('42; -7; 3.25 "hi" true false')
    assert result == [
        Primitive(INT, 42),
        Primitive(INT, -7),
        Primitive(FLOAT, 3.25),
        Primitive(STRING, "hi"),
        Primitive(BOOL, True),
        Primitive(BOOL, False),
    ]

  def test_true_and_one_differ(self):
    assert Primitive.of(True) != Primitive.of(1)

  def test_string_escapes(self, grammar):
    result = grammar.parse_expression(r'"say \"hi\""')
    assert result == Primitive(STRING, 'say "hi"')

  def test_variable(self, grammar):
    assert grammar.parse_expression("myVar") == Variable("myVar")

  def test_reserved_word_prefix_is_identifier(self, grammar):
    assert grammar.parse_expression("from_here") == Variable("from_here")
    assert grammar.parse_expression("user") == Variable("user")

  def test_function_call(self, grammar):
    result = grammar.parse_expression("f(1, x)")
    assert result == FunctionCall(Variable("f"), (Primitive(INT, 1), Variable("x")))

  def test_empty_argument_list(self, grammar):
    assert grammar.parse_expression("f()") == FunctionCall(Variable("f"), ())

  def test_chained_calls(self, grammar):
    result = grammar.parse_expression("f(1)(2)")
    inner = FunctionCall(Variable("f"), (Primitive(INT, 1),))
    assert result == FunctionCall(inner, (Primitive(INT, 2),))

  def test_call_with_space_before_parenthesis(self, grammar):
    assert grammar.parse_expression("f (1)") == FunctionCall(Variable("f"), (Primitive(INT, 1),))


class TestInfixExpressions:
  """Infix operators fold left to right"""

  @pytest.fixture
  def grammar(self):
    return GalGrammar()

  def test_left_fold(self, grammar):
    result = grammar.parse_expression("1 + 2 * 3")
    one, two, three = Primitive(INT, 1), Primitive(INT, 2), Primitive(INT, 3)
    assert result == InfixOp(InfixOp(one, "+", two), "*", three)

  def test_parentheses_group(self, grammar):
    result = grammar.parse_expression("1 + (2 * 3)")
    one, two, three = Primitive(INT, 1), Primitive(INT, 2), Primitive(INT, 3)
    assert result == InfixOp(one, "+", InfixOp(two, "*", three))

  def test_multi_character_operators(self, grammar):
    result = grammar.parse_expression("a <=> b")
    assert result == InfixOp(Variable("a"), "<=>", Variable("b"))

  def test_double_equals_is_not_assignment(self, grammar):
    result = grammar.parse_expression("x == y")
    assert result == InfixOp(Variable("x"), "==", Variable("y"))

  def test_undeclared_word_is_not_an_operator(self, grammar):
    # two separate statements, not an infix use of "plus"
    result = grammar.parse_program("1 plus")
    assert result == [Primitive(INT, 1), Variable("plus")]

  def test_word_operator_after_notation(self, grammar):
    result = grammar.parse_program('notation "$x plus $y" := add(x, y)\n1 plus 2')
    assert result[1] == InfixOp(Primitive(INT, 1), "plus", Primitive(INT, 2))

  def test_word_operators_from_earlier_input(self, grammar):
    result = grammar.parse_program("1 plus 2", operators=["plus"])
    assert result == [InfixOp(Primitive(INT, 1), "plus", Primitive(INT, 2))]

  def test_word_operator_before_its_notation(self, grammar):
    code = 'x = 1 plus 2\nnotation "$x plus $y" with x, y := add(x, y)'
    result = grammar.parse_program(code)
    assert result[0] == Assignment("x", InfixOp(Primitive(INT, 1), "plus", Primitive(INT, 2)))
    assert isinstance(result[1], NotationDecl)

  def test_notation_in_comment_declares_nothing(self, grammar):
    code = '// notation "$x plus $y" := add(x, y)\n/* notation "$a minus $b" := sub(a, b) */\n1 plus'
    assert grammar.parse_program(code) == [Primitive(INT, 1), Variable("plus")]

  def test_notation_in_string_declares_nothing(self, grammar):
    code = 's = "notation \\"$x plus $y\\" := add(x, y)"\n1 plus'
    result = grammar.parse_program(code)
    assert result[1:] == [Primitive(INT, 1), Variable("plus")]

  def test_block_comment_after_operator(self, grammar):
    result = grammar.parse_expression("a +/* c */ b")
    assert result == InfixOp(Variable("a"), "+", Variable("b"))

  def test_line_comment_after_operator(self, grammar):
    result = grammar.parse_program("a +// c\n b")
    assert result == [InfixOp(Variable("a"), "+", Variable("b"))]

  def test_comment_after_assignment(self, grammar):
    assert grammar.parse_expression("x =/* c */ 1") == Assignment("x", Primitive(INT, 1))
    assert grammar.parse_program("x =// c\n1") == [Assignment("x", Primitive(INT, 1))]


class TestStatements:
  """Assignments, returns, definitions and separators"""

  @pytest.fixture
  def grammar(self):
    return GalGrammar()

  def test_assignment(self, grammar):
    result = grammar.parse_expression("x = f(1)")
    assert result == Assignment("x", FunctionCall(Variable("f"), (Primitive(INT, 1),)))

  def test_return(self, grammar):
    assert grammar.parse_expression("return x") == Return(Variable("x"))

  def test_function_definition(self, grammar):
    result = grammar.parse_expression("f(a, b) { a }")
    assert result == FunctionDef("f", ("a", "b"), (Variable("a"),))

  def test_def_keyword(self, grammar):
    result = grammar.parse_expression("def id(x) { x }")
    assert result == FunctionDef("id", ("x",), (Variable("x"),))

  def test_multi_expression_body(self, grammar):
    result = grammar.parse_expression("f(a) { b = a; return b }")
    assert result.body == (Assignment("b", Variable("a")), Return(Variable("b")))

  def test_nested_definition_and_extern_in_body(self, grammar):
    result = grammar.parse_expression("outer(a) {\n  from python use abs\n  inner(b) { a }\n  inner\n}")
    assert isinstance(result.body[0], ExternDecl)
    assert isinstance(result.body[1], FunctionDef)
    assert result.body[2] == Variable("inner")

  def test_empty_body(self, grammar):
    assert grammar.parse_expression("nothing() { }") == FunctionDef("nothing", (), ())

  def test_semicolons_and_newlines_separate(self, grammar):
    result = grammar.parse_program("x = 1; y = 2\nz = 3;")
    assert [r.name for r in result] == ["x", "y", "z"]

  def test_comments_between_units(self, grammar):
    code = "// leading\nf(/* a */ 1, // b\n 2) /* c */ + /* d */ 3 // trailing"
    result = grammar.parse_program(code)
    call = FunctionCall(Variable("f"), (Primitive(INT, 1), Primitive(INT, 2)))
    assert result == [InfixOp(call, "+", Primitive(INT, 3))]


class TestDeclarations:
  """Notation and extern declarations"""

  @pytest.fixture
  def grammar(self):
    return GalGrammar()

  def test_notation_with_variables(self, grammar):
    result = grammar.parse_program('notation "$x plus $y" with x, y := add(x, y)')
    decl = result[0]
    assert isinstance(decl, NotationDecl)
    assert decl.pattern == NotationPattern("$x plus $y", ("x", "y"), None, Associativity.NONE)
    assert decl.expansion == FunctionCall(Variable("add"), (Variable("x"), Variable("y")))

  def test_notation_infers_variables(self, grammar):
    decl = grammar.parse_program('notation "$a ++ $b" := add(a, b)')[0]
    assert decl.pattern.variables == ("a", "b")

  def test_notation_precedence_and_associativity(self, grammar):
    code = 'notation "$a ** $b" precedence 8 associativity right := pow(a, b)'
    decl = grammar.parse_program(code)[0]
    assert decl.pattern.precedence == 8
    assert decl.pattern.associativity is Associativity.RIGHT

  def test_extern(self, grammar):
    result = grammar.parse_program("from python.math use sqrt")
    assert result == [ExternDecl("python.math", "sqrt", None)]

  def test_extern_alias(self, grammar):
    decl = grammar.parse_program("from python.math use sqrt as root")[0]
    assert decl.alias == "root"
    assert decl.local_name == "root"
    assert decl.qualified_name == "python.math.sqrt"


class TestParseErrors:
  """Parse failures are typed and located"""

  @pytest.fixture
  def grammar(self):
    return GalGrammar()

  def test_trailing_garbage(self, grammar):
    with pytest.raises(GalParseError) as exc_info:
      grammar.parse_program("1 )")
    error = exc_info.value
    assert error.line == 1
    assert error.column == 3
    assert "end of input" in error.message

  def test_missing_closing_brace(self, grammar):
    with pytest.raises(GalParseError) as exc_info:
      grammar.parse_program("f(x) {\n  x\n")
    assert "function definition" in exc_info.value.contexts

  def test_parameters_must_be_bare_names(self, grammar):
    with pytest.raises(GalParseError) as exc_info:
      grammar.parse_program("f(1) { 1 }")
    error = exc_info.value
    assert "bare names" in error.message
    assert "function definition" in error.contexts

  def test_incomplete_extern(self, grammar):
    with pytest.raises(GalParseError) as exc_info:
      grammar.parse_program("from python.math")
    assert "extern declaration" in exc_info.value.contexts

  def test_incomplete_notation(self, grammar):
    with pytest.raises(GalParseError):
      grammar.parse_program('notation "$x plus $y" add(x, y)')

  def test_unterminated_string(self, grammar):
    with pytest.raises(GalParseError):
      grammar.parse_program('x = "open')

  def test_error_message_names_the_file(self):
    parser = create_parser()
    with pytest.raises(GalParseError) as exc_info:
      parser.parse_string("f(1", "broken.gal")
    assert "broken.gal" in str(exc_info.value)
    assert exc_info.value.filename == "broken.gal"

  def test_missing_file(self, tmp_path):
    parser = create_parser()
    with pytest.raises(GalParseError):
      parser.parse_file(str(tmp_path / "missing.gal"))


def nested_calls(depth):
  return "f(" * depth + "1" + ")" * depth


class TestNesting:
  """Deep nesting parses or fails with a parse error, never a host crash"""

  @pytest.fixture
  def grammar(self):
    return GalGrammar()

  def test_two_hundred_nested_calls(self, grammar):
    result = grammar.parse_expression(nested_calls(200))
    depth = 0
    while isinstance(result, FunctionCall):
      result = result.args[0]
      depth += 1
    assert depth == 200
    assert result == Primitive(INT, 1)

  def test_deeply_nested_render_reparses(self, grammar):
    tree = grammar.parse_program(nested_calls(200))
    assert grammar.parse_program(render_program(tree)) == tree

  @pytest.mark.parametrize("code", [
      nested_calls(5000),
      "(" * 5000 + "1" + ")" * 5000,
  ])
  def test_too_deep_is_a_parse_error(self, grammar, code):
    with pytest.raises(GalParseError) as exc_info:
      grammar.parse_program(code, "deep.gal")
    error = exc_info.value
    assert "nested too deeply" in error.message
    assert error.filename == "deep.gal"
    assert error.line == 1


class TestRoundTrip:
  """Rendering a parsed program and parsing it again gives the same tree"""

  PROGRAMS = [
      "1 + 2 * 3",
      "1 + (2 + 3)",
      "f(a)(b, 2.5)",
      'greeting = concat("a \\"quoted\\" \\\\ word", name)',
      "compose(f, g) { h(x) { f(g(x)) }; return h }",
      "nothing() { }",
      'notation "$x plus $y" with x, y precedence 3 associativity left := add(x, y)',
      "from python.math use sqrt as root",
      "-4 - 1.0e-05",
      "(f(1) <> true) | false",
  ]

  @pytest.mark.parametrize("code", PROGRAMS)
  def test_render_reparses(self, code):
    first = parse(code)
    second = parse(render_program(first))
    assert first == second

  def test_render_parenthesizes_right_operand(self):
    expr = InfixOp(Variable("a"), "-", InfixOp(Variable("b"), "-", Variable("c")))
    assert render(expr) == "a - (b - c)"
