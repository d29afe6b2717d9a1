"""
Command line driver tests for GAL
"""

import pytest
from pathlib import Path

import main as driver
from interpreter import create_interpreter


EXAMPLES_DIR = Path(__file__).parent.parent / "examples"


@pytest.fixture
def script(tmp_path):
  """Write program text to a script file and return its path"""
  def write(text, name="script.gal"):
    path = tmp_path / name
    path.write_text(text)
    return str(path)
  return write


class TestScripts:
  """Running, parsing and expanding script files"""

  def test_run_prints_result(self, capsys):
    driver.main([str(EXAMPLES_DIR / "arithmetic.gal")])
    assert capsys.readouterr().out.strip() == "12"

  def test_parse_prints_raw_tree(self, capsys):
    driver.main(["--parse", str(EXAMPLES_DIR / "arithmetic.gal")])
    out = capsys.readouterr().out
    assert 'notation "$x plus $y" with x, y := add(x, y)' in out
    assert "square(3) plus 1 ++ 2 minus 0" in out

  def test_expand_prints_rewritten_tree(self, capsys):
    driver.main(["--expand", str(EXAMPLES_DIR / "arithmetic.gal")])
    out = capsys.readouterr().out
    assert "notation" not in out
    assert "square(n) { mul(n, n) }" in out
    assert "sub(add(add(square(3), 1), 2), 0)" in out

  def test_runtime_error_exits_with_status_one(self, script, capsys):
    with pytest.raises(SystemExit) as exc_info:
      driver.main([script("x = 1\ny")])
    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "UndefinedVariable" in out
    assert "Undefined variable: y" in out

  def test_parse_error_exits_with_status_one(self, script, capsys):
    with pytest.raises(SystemExit) as exc_info:
      driver.main([script("f(1")])
    assert exc_info.value.code == 1
    assert "ParseError" in capsys.readouterr().out

  def test_deep_nesting_is_a_parse_error(self, script, capsys):
    with pytest.raises(SystemExit) as exc_info:
      driver.main([script("f(" * 5000 + "1" + ")" * 5000)])
    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "ParseError" in out
    assert "nested too deeply" in out

  def test_nested_calls_run(self, script, capsys):
    driver.main([script("id(a) { a }\n" + "id(" * 200 + "7" + ")" * 200)])
    assert capsys.readouterr().out.strip() == "7"

  def test_debug_traces_calls(self, script, capsys):
    driver.main(["--debug", script("f(a) { a }\nf(2)")])
    out = capsys.readouterr().out
    assert "Entering: f(2)" in out
    assert out.strip().endswith("2")

  def test_no_partial_result_on_failure(self, script, capsys):
    with pytest.raises(SystemExit):
      driver.main([script("1 + 2")])
    out = capsys.readouterr().out
    assert "UnhandledOperator" in out
    assert "=>" not in out

  def test_missing_script(self, tmp_path, capsys):
    with pytest.raises(SystemExit) as exc_info:
      driver.main([str(tmp_path / "missing.gal")])
    assert exc_info.value.code == 1
    assert "does not exist" in capsys.readouterr().out

  def test_max_depth(self, capsys):
    with pytest.raises(SystemExit):
      driver.main(["--max-depth", "5", str(EXAMPLES_DIR / "overflow.gal")])
    out = capsys.readouterr().out
    assert "StackOverflow" in out
    assert "5" in out

  def test_max_depth_must_be_positive(self):
    with pytest.raises(SystemExit) as exc_info:
      driver.main(["--max-depth", "0", str(EXAMPLES_DIR / "overflow.gal")])
    assert exc_info.value.code == 2

  def test_ffi_path(self, tmp_path, script, capsys):
    (tmp_path / "greet.py").write_text("def hello(name):\n    return 'hello ' + name\n")
    path = script('from python.greet use hello\nhello("there")')
    driver.main(["--ffi-path", str(tmp_path), path])
    assert capsys.readouterr().out.strip() == '"hello there"'

  def test_version(self, capsys):
    with pytest.raises(SystemExit) as exc_info:
      driver.main(["--version"])
    assert exc_info.value.code == 0
    assert driver.VERSION in capsys.readouterr().out


class TestRepl:
  """REPL line handling"""

  @pytest.fixture
  def interpreter(self):
    return create_interpreter()

  def test_evaluates_and_prints(self, interpreter, capsys):
    assert driver.handle_repl_line(interpreter, "x = 3") is True
    assert capsys.readouterr().out == "=> 3\n"

  def test_state_persists(self, interpreter, capsys):
    driver.handle_repl_line(interpreter, "from python.arith use add")
    driver.handle_repl_line(interpreter, 'notation "$a plus $b" := add(a, b)')
    driver.handle_repl_line(interpreter, "2 plus 2")
    assert capsys.readouterr().out.splitlines()[-1] == "=> 4"

  def test_exit(self, interpreter):
    assert driver.handle_repl_line(interpreter, "exit") is False
    assert driver.handle_repl_line(interpreter, ":quit") is False

  def test_blank_line(self, interpreter, capsys):
    assert driver.handle_repl_line(interpreter, "   ") is True
    assert capsys.readouterr().out == ""

  def test_parse_command(self, interpreter, capsys):
    driver.handle_repl_line(interpreter, ":parse 1 + (2 + 3)")
    assert capsys.readouterr().out == "1 + (2 + 3)\n"

  def test_expand_command(self, interpreter, capsys):
    driver.handle_repl_line(interpreter, 'notation "$a ~ $b" := pair(a, b)')
    capsys.readouterr()
    driver.handle_repl_line(interpreter, ":expand 1 ~ 2")
    assert capsys.readouterr().out == "pair(1, 2)\n"

  def test_env_and_notations_commands(self, interpreter, capsys):
    driver.handle_repl_line(interpreter, ":env")
    driver.handle_repl_line(interpreter, ":notations")
    out = capsys.readouterr().out
    assert "(no bindings)" in out
    assert "(no notations)" in out

    driver.handle_repl_line(interpreter, "y = 1")
    driver.handle_repl_line(interpreter, 'notation "$a ~ $b" := pair(a, b)')
    driver.handle_repl_line(interpreter, ":env")
    driver.handle_repl_line(interpreter, ":notations")
    out = capsys.readouterr().out
    assert "y = 1" in out
    assert '"$a ~ $b"' in out

  def test_errors_are_reported_not_raised(self, interpreter, capsys):
    assert driver.handle_repl_line(interpreter, "missing") is True
    assert "UndefinedVariable" in capsys.readouterr().out

  def test_interactive_session(self, monkeypatch, capsys):
    lines = iter(["x = 2", "x"])

    def fake_input(prompt):
      try:
        return next(lines)
      except StopIteration:
        raise EOFError

    monkeypatch.setattr(driver, "READLINE_AVAILABLE", False)
    monkeypatch.setattr("builtins.input", fake_input)
    driver.main(["-i"])
    out = capsys.readouterr().out
    assert "=> 2" in out
    assert "Goodbye!" in out
