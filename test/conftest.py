"""
Test configuration for GAL tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from syntax import Primitive, FALSE
from external import ExternalSurface
from error_handling import LoadError, CallError
from interpreter import create_interpreter


class RecordingSurface(ExternalSurface):
  """In-memory External Call Surface that records every load and call"""

  def __init__(self, modules=None):
    self.modules = modules if modules is not None else {
        "python": {
            "square": lambda x: Primitive.of(x.value * x.value),
            "add": lambda a, b: Primitive.of(a.value + b.value),
        },
        "python.arith": {
            "add": lambda a, b: Primitive.of(a.value + b.value),
            "sub": lambda a, b: Primitive.of(a.value - b.value),
            "mul": lambda a, b: Primitive.of(a.value * b.value),
        },
        "python.logic": {
            "choose": lambda condition, a, b: a if condition.value else b,
            "le": lambda a, b: Primitive.of(a.value <= b.value),
        },
    }
    self.loads = []
    self.calls = []

  def load(self, module_path):
    self.loads.append(module_path)
    if module_path not in self.modules:
      raise LoadError(f"Module not found: {module_path}")
    return sorted(self.modules[module_path])

  def call(self, qualified_name, args):
    self.calls.append((qualified_name, list(args)))
    module_path, _, name = qualified_name.rpartition('.')
    function = self.modules.get(module_path, {}).get(name)
    if function is None:
      raise CallError(f"Function not found: {qualified_name}")
    result = function(*args)
    return FALSE if result is None else result


@pytest.fixture
def surface():
  """A fresh recording surface"""
  return RecordingSurface()


@pytest.fixture
def interpreter(surface):
  """Interpreter wired to the recording surface"""
  return create_interpreter(surface=surface)


@pytest.fixture
def run(interpreter):
  """Run program text and return its final value"""
  return interpreter.run
