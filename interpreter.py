"""
GAL Interpreter - Functional Style
Tree-walking evaluation of expanded AST nodes over dict-based scopes
Side effects (external calls, tracing) handled through the execution context
"""

from typing import Dict, List, Optional, Sequence
from pathlib import Path

from syntax import (
    Expr, Primitive, Variable, FunctionDef, FunctionCall, Return, Assignment,
    InfixOp, NotationDecl, ExternDecl, Function, PartialApplication, External,
    Value, TRUE, FALSE, render_value, is_identifier
)
from error_handling import (
    GalRuntimeError, UndefinedVariable, TypeMismatch, ArityMismatch,
    UnhandledOperator, StackOverflow, ExternalCallError, ExternalError
)
from tracing import TraceObserver, PrintTracer
from notation import NotationTable, expand_with
from external import create_default_surface
from parsing import create_parser, create_debug_parser, recursion_headroom, PARSE_RECURSION_LIMIT


DEFAULT_MAX_DEPTH = 1000

# Host frames used per nested application: eval_ast, eval_function_call,
# apply_function, call_function, eval_body, plus argument nesting
FRAMES_PER_CALL = 12
RECURSION_MARGIN = 2000


# ============================================================================
# DATA STRUCTURES
# ============================================================================

def make_runtime_env(parent: Optional[Dict] = None, bindings: Optional[Dict] = None) -> Dict:
  """Create a scope. Scopes are mutable and shared by reference"""
  return {
      'parent': parent,
      'bindings': dict(bindings) if bindings else {}
  }


def make_execution_context(surface=None, tracer: Optional[TraceObserver] = None,
                           max_depth: int = DEFAULT_MAX_DEPTH, debug: bool = False) -> Dict:
  """Create the execution context threaded through evaluation"""
  return {
      'surface': surface,
      'tracer': tracer or TraceObserver(),
      'max_depth': max_depth,
      'debug': debug
  }


# ============================================================================
# ENVIRONMENT OPERATIONS
# ============================================================================

def env_define(env: Dict, name: str, value: Value) -> Value:
  """Bind name in this scope (last write wins)"""
  env['bindings'][name] = value
  return value


def env_lookup_value(env: Dict, name: str) -> Optional[Value]:
  """Look up a value in the environment chain"""
  if name in env['bindings']:
    return env['bindings'][name]
  elif env['parent']:
    return env_lookup_value(env['parent'], name)
  return None


# ============================================================================
# EVALUATION
# ============================================================================

def eval_ast(expr: Expr, env: Dict, context: Dict, depth: int = 0) -> Value:
  """
  Evaluate an expression in env.
  depth is the number of function applications currently in progress.
  """
  if isinstance(expr, Primitive):
    return expr
  elif isinstance(expr, Variable):
    return eval_variable(expr, env, context, depth)
  elif isinstance(expr, FunctionCall):
    return eval_function_call(expr, env, context, depth)
  elif isinstance(expr, FunctionDef):
    return eval_function_def(expr, env, context, depth)
  elif isinstance(expr, Assignment):
    return eval_assignment(expr, env, context, depth)
  elif isinstance(expr, Return):
    return eval_return(expr, env, context, depth)
  elif isinstance(expr, ExternDecl):
    return eval_extern_decl(expr, env, context, depth)
  elif isinstance(expr, InfixOp):
    # every operator must have been rewritten by a notation
    raise UnhandledOperator(expr.operator)
  elif isinstance(expr, NotationDecl):
    raise GalRuntimeError(f"Notation '{expr.pattern.pattern}' reached the evaluator unexpanded")
  else:
    raise GalRuntimeError(f"Unknown node type: {type(expr).__name__}")


def eval_variable(expr: Variable, env: Dict, context: Dict, depth: int) -> Value:
  value = env_lookup_value(env, expr.name)
  if value is None:
    raise UndefinedVariable(expr.name)
  return value


def eval_function_def(expr: FunctionDef, env: Dict, context: Dict, depth: int) -> Value:
  """Close over the current scope and bind the function there, enabling self-recursion"""
  function = Function(expr.name, expr.params, expr.body, env)
  return env_define(env, expr.name, function)


def eval_function_call(expr: FunctionCall, env: Dict, context: Dict, depth: int) -> Value:
  """Evaluate callee, then arguments strictly left to right, then apply"""
  callee = eval_ast(expr.callee, env, context, depth)
  args = [eval_ast(arg, env, context, depth) for arg in expr.args]
  return apply_function(callee, args, context, depth + 1)


def eval_assignment(expr: Assignment, env: Dict, context: Dict, depth: int) -> Value:
  value = eval_ast(expr.value, env, context, depth)
  return env_define(env, expr.name, value)


def eval_return(expr: Return, env: Dict, context: Dict, depth: int) -> Value:
  # Not an early exit: the value of return is the value of its operand
  return eval_ast(expr.value, env, context, depth)


def eval_extern_decl(expr: ExternDecl, env: Dict, context: Dict, depth: int) -> Value:
  """Load the module through the surface and bind the local name"""
  surface = context['surface']
  if surface is None:
    raise ExternalCallError(f"No external call surface available to load '{expr.module}'")

  try:
    exported = surface.load(expr.module)
  except ExternalError as e:
    raise ExternalCallError(f"Cannot load module '{expr.module}': {e}") from e

  if exported is not None and expr.name not in exported:
    raise ExternalCallError(f"Module '{expr.module}' does not export '{expr.name}'")

  env_define(env, expr.local_name, External(expr.qualified_name))
  return TRUE


def eval_body(body: Sequence[Expr], env: Dict, context: Dict, depth: int) -> Value:
  """Evaluate a sequence of expressions, returning the last value (false if empty)"""
  result = FALSE
  for expr in body:
    result = eval_ast(expr, env, context, depth)
  return result


# ============================================================================
# APPLICATION
# ============================================================================

def apply_function(callee: Value, args: Sequence[Value], context: Dict, depth: int) -> Value:
  """Apply a callee value to already-evaluated arguments"""
  if depth > context['max_depth']:
    raise StackOverflow(context['max_depth'])

  if isinstance(callee, Function):
    if len(args) < callee.arity:
      return PartialApplication(callee, tuple(args))
    if len(args) > callee.arity:
      raise ArityMismatch(callee.name, callee.arity, len(args))
    return call_function(callee, args, context, depth)

  if isinstance(callee, PartialApplication):
    return apply_function(callee.function, callee.args + tuple(args), context, depth)

  if isinstance(callee, External):
    return call_external(callee, args, context, depth)

  raise TypeMismatch(f"attempted to call a non-function value: {render_value(callee)}")


def call_function(function: Function, args: Sequence[Value], context: Dict, depth: int) -> Value:
  """Run the body in a fresh scope whose parent is the closure scope"""
  tracer = context['tracer']
  tracer.on_enter(function.name, args, depth)

  scope = make_runtime_env(function.closure_env, dict(zip(function.params, args)))
  try:
    result = eval_body(function.body, scope, context, depth)
  except Exception as e:
    tracer.on_exit(function.name, depth, error=e)
    raise

  tracer.on_exit(function.name, depth, result=result)
  return result


def call_external(callee: External, args: Sequence[Value], context: Dict, depth: int) -> Value:
  """Delegate to the External Call Surface"""
  surface = context['surface']
  if surface is None:
    raise ExternalCallError(f"No external call surface available to call '{callee.qualified_name}'")

  tracer = context['tracer']
  tracer.on_enter(callee.qualified_name, args, depth)
  try:
    result = surface.call(callee.qualified_name, list(args))
  except GalRuntimeError as e:
    tracer.on_exit(callee.qualified_name, depth, error=e)
    raise
  except Exception as e:
    error = ExternalCallError(f"{callee.qualified_name}: {e}")
    tracer.on_exit(callee.qualified_name, depth, error=error)
    raise error from e

  if not isinstance(result, (Primitive, Function, PartialApplication, External)):
    error = ExternalCallError(f"{callee.qualified_name} returned a non-GAL value: {result!r}")
    tracer.on_exit(callee.qualified_name, depth, error=error)
    raise error

  tracer.on_exit(callee.qualified_name, depth, result=result)
  return result


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def eval_program(exprs: List[Expr], env: Dict, context: Dict) -> Value:
  """
  Evaluate top-level expressions in order in env.
  Returns the last value, or false for an empty program.
  """
  with recursion_headroom(context['max_depth'] * FRAMES_PER_CALL + RECURSION_MARGIN):
    try:
      return eval_body(exprs, env, context, 0)
    except RecursionError as e:
      raise StackOverflow(context['max_depth']) from e


def evaluate(exprs: List[Expr], external_surface=None, max_depth: int = DEFAULT_MAX_DEPTH,
             tracer: Optional[TraceObserver] = None, env: Optional[Dict] = None) -> Value:
  """Evaluate an expanded program in a fresh (or given) global environment"""
  context = make_execution_context(external_surface, tracer, max_depth)
  return eval_program(exprs, env if env is not None else make_runtime_env(), context)


# ============================================================================
# INTERPRETER
# ============================================================================

class Interpreter:
  """Parser, notation table, global scope and surface that persist across runs"""

  def __init__(self, surface=None, tracer: Optional[TraceObserver] = None,
               max_depth: int = DEFAULT_MAX_DEPTH, debug: bool = False):
    self.debug = debug
    self.parser = create_debug_parser() if debug else create_parser()
    self.notations = NotationTable(debug)
    self.context = make_execution_context(surface, tracer, max_depth, debug)
    self.global_env = make_runtime_env()

  @property
  def surface(self):
    return self.context['surface']

  @property
  def bindings(self) -> Dict[str, Value]:
    return self.global_env['bindings']

  def parse(self, text: str, filename: str = "<input>") -> List[Expr]:
    """Parse text, knowing the word operators of notations declared earlier"""
    operators = [op for op in self.notations.operators() if is_identifier(op)]
    return self.parser.parse_string(text, filename, operators)

  def expand(self, exprs: List[Expr]) -> List[Expr]:
    # anything the parser accepted is shallow enough to rewrite under the same limit
    with recursion_headroom(PARSE_RECURSION_LIMIT):
      return expand_with(exprs, self.notations)

  def evaluate(self, exprs: List[Expr]) -> Value:
    return eval_program(exprs, self.global_env, self.context)

  def run(self, text: str, filename: str = "<input>") -> Value:
    """parse -> expand -> evaluate"""
    return self.evaluate(self.expand(self.parse(text, filename)))

  def run_file(self, filepath: str) -> Value:
    text = Path(filepath).read_text(encoding='utf-8')
    return self.run(text, filepath)


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_interpreter(debug: bool = False, max_depth: int = DEFAULT_MAX_DEPTH,
                       surface=None, tracer: Optional[TraceObserver] = None) -> Interpreter:
  """Factory function returning an interpreter"""
  if surface is None:
    surface = create_default_surface()
  if tracer is None and debug:
    tracer = PrintTracer()
  return Interpreter(surface, tracer, max_depth, debug)


def create_debug_interpreter(**kwargs) -> Interpreter:
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True, **kwargs)
