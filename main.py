"""
GAL Programming Language - Main Entry Point
A small expression language with user-defined notations and host-language externs
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional
import os

from termcolor import colored

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from syntax import RESERVED_WORDS, render_program, render_value
from error_handling import GalError
from external import create_default_surface, default_search_paths
from interpreter import create_interpreter, create_debug_interpreter, Interpreter, DEFAULT_MAX_DEPTH
from parsing import recursion_headroom, PARSE_RECURSION_LIMIT


VERSION = "GAL v0.1.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='gal',
      description='GAL Programming Language - expressions, closures and notations',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.gal                   # Run a GAL script
  %(prog)s -i                           # Interactive mode
  %(prog)s --parse script.gal           # Parse and show the AST
  %(prog)s --expand script.gal          # Parse, expand notations and show the AST
  %(prog)s --debug script.gal           # Run with call tracing
  %(prog)s --ffi-path lib script.gal    # Also look for python externs in lib/
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='GAL script file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the AST (for debugging)'
  )

  parser.add_argument(
      '--expand',
      action='store_true',
      help='Parse file, expand notations and show the AST (for debugging)'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Trace function calls and parser productions'
  )

  parser.add_argument(
      '--max-depth',
      type=int,
      default=DEFAULT_MAX_DEPTH,
      metavar='N',
      help=f'Maximum nested function applications (default {DEFAULT_MAX_DEPTH})'
  )

  parser.add_argument(
      '--ffi-path',
      action='append',
      default=[],
      metavar='DIR',
      help='Directory searched for python extern modules (repeatable)'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def build_interpreter(args: argparse.Namespace) -> Interpreter:
  """Interpreter configured from command line arguments"""
  search_paths = None
  if args.ffi_path:
    search_paths = list(args.ffi_path) + default_search_paths()
  surface = create_default_surface(search_paths)
  if args.debug:
    return create_debug_interpreter(max_depth=args.max_depth, surface=surface)
  return create_interpreter(max_depth=args.max_depth, surface=surface)


def report_error(error: GalError, script_path: Optional[str] = None) -> None:
  """Print an error's kind and message"""
  where = f" in '{script_path}'" if script_path else ""
  print(colored(f"{error.kind}{where}:", "red", attrs=["bold"]))
  print(f"  {error}")


def read_script(script_path: str) -> str:
  try:
    return Path(script_path).read_text(encoding='utf-8')
  except FileNotFoundError:
    print(f"Error: Script file '{script_path}' not found")
    print(f"  Hint: Check the file path and make sure the file exists")
    sys.exit(1)
  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    print(f"  Hint: Make sure you have read permissions for this file")
    sys.exit(1)
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}")
    print(f"  Hint: Make sure the file is a text file with UTF-8 encoding")
    sys.exit(1)


def parse_file(script_path: str, interpreter: Interpreter, expand: bool = False) -> None:
  """Parse (and optionally expand) a GAL script and print the canonical rendering"""
  source = read_script(script_path)
  try:
    exprs = interpreter.parse(source, script_path)
    if expand:
      exprs = interpreter.expand(exprs)
  except GalError as e:
    report_error(e, script_path)
    sys.exit(1)

  with recursion_headroom(PARSE_RECURSION_LIMIT):
    print(render_program(exprs))


def run_script_file(script_path: str, interpreter: Interpreter) -> None:
  """Run a GAL script and print its final value"""
  source = read_script(script_path)
  try:
    if interpreter.debug:
      print(f"Running {script_path}...")
    result = interpreter.run(source, script_path)
  except GalError as e:
    report_error(e, script_path)
    sys.exit(1)

  print(render_value(result))


def setup_readline(interpreter: Interpreter):
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.gal_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First time, no history yet

  readline.set_history_length(1000)

  commands = [":parse", ":expand", ":env", ":notations", ":help", "exit"]

  def completer(text, state):
    candidates = list(RESERVED_WORDS) + commands + list(interpreter.bindings)
    candidates += interpreter.notations.operators()
    options = sorted(c for c in set(candidates) if c.startswith(text))
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def print_repl_help() -> None:
  print("REPL Commands:")
  print("  :parse <code>     - Show the parsed AST")
  print("  :expand <code>    - Show the AST after notation expansion")
  print("  :env              - Show global bindings")
  print("  :notations        - Show declared notations")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language features:")
  print("  x = 5                                     - Assignment")
  print("  double(x) { mul(x, 2) }                   - Function definition")
  print("  double(4)                                 - Function call")
  print("  from python.arith use add                 - Extern declaration")
  print('  notation "$a plus $b" := add(a, b)        - Notation')
  print("  1 plus 2                                  - Notation use")


def handle_repl_line(interpreter: Interpreter, code: str) -> bool:
  """Handle one line of REPL input. Returns False when the session should end"""
  stripped = code.strip()

  if stripped in ("exit", ":quit"):
    return False

  if not stripped:
    return True

  try:
    if stripped.startswith(":parse "):
      print(render_program(interpreter.parse(stripped[len(":parse "):])))
    elif stripped.startswith(":expand "):
      exprs = interpreter.parse(stripped[len(":expand "):])
      print(render_program(interpreter.expand(exprs)))
    elif stripped == ":env":
      if interpreter.bindings:
        for name, value in interpreter.bindings.items():
          print(f"  {name} = {render_value(value)}")
      else:
        print("  (no bindings)")
    elif stripped == ":notations":
      if len(interpreter.notations):
        for notation in interpreter.notations:
          print(f'  "{notation.text}"  ({notation.operator})')
      else:
        print("  (no notations)")
    elif stripped == ":help":
      print_repl_help()
    else:
      print(f"=> {render_value(interpreter.run(code))}")
  except GalError as e:
    report_error(e)

  return True


def run_interactive_mode(interpreter: Interpreter) -> None:
  """Run GAL in interactive mode"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if interpreter.debug:
    print("Debug mode enabled")
  print()

  setup_readline(interpreter)

  while True:
    try:
      code = input("gal> ")
      if not handle_repl_line(interpreter, code):
        break
    except KeyboardInterrupt:
      print("\nGoodbye!")
      break
    except EOFError:
      print("\nGoodbye!")
      break


def show_language_info() -> None:
  """Show GAL language information"""
  print("GAL Programming Language")
  print("=" * 50)
  print("A small dynamically-typed expression language with:")
  print("• Closures and curried partial application")
  print("• User-defined infix notations")
  print("• Calls into Python through extern declarations")
  print()


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for GAL"""
  argv = sys.argv[1:] if argv is None else argv
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  if args.max_depth < 1:
    arg_parser.error("--max-depth must be at least 1")

  # No arguments - show info and start interactive mode
  if not argv:
    show_language_info()
    print("Use 'gal --help' for command line options")
    print()
    run_interactive_mode(build_interpreter(args))
    return

  interpreter = build_interpreter(args)

  if args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist")
      sys.exit(1)

    if args.parse or args.expand:
      parse_file(args.script, interpreter, expand=args.expand)
    else:
      run_script_file(args.script, interpreter)

  elif args.interactive:
    run_interactive_mode(interpreter)

  else:
    arg_parser.print_help()
    print()
    show_language_info()


if __name__ == "__main__":
  main()
