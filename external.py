"""
External Call Surface for GAL
Dispatches extern declarations to a host-language backend by module prefix
"""

from abc import ABC, abstractmethod
from collections import ChainMap
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import builtins
import importlib
import importlib.util

from syntax import Primitive, Value, FALSE, render_value
from error_handling import LoadError, CallError


DEFAULT_SEARCH_PATH = Path("std") / "ffi" / "python"


def default_search_paths() -> List[Path]:
    """std/ffi/python under the working directory, then next to this file"""
    bundled = Path(__file__).resolve().parent / DEFAULT_SEARCH_PATH
    paths = [DEFAULT_SEARCH_PATH]
    if bundled != DEFAULT_SEARCH_PATH.resolve():
        paths.append(bundled)
    return paths


# ============================================================================
# INTERFACE
# ============================================================================

class ExternalSurface(ABC):
    """What the evaluator needs from the outside world"""

    @abstractmethod
    def load(self, module_path: str) -> Optional[List[str]]:
        """Make a module's functions callable and return the names it exports.

        Returning None means the exports are unknown and any name is accepted.
        Loading the same module path again must not re-run its initialization.
        """

    @abstractmethod
    def call(self, qualified_name: str, args: Sequence[Value]) -> Value:
        """Call module.function with GAL values and return a GAL value"""


# ============================================================================
# MARSHALLING
# ============================================================================

def to_host(value: Value) -> Any:
    """GAL value to the host representation"""
    if isinstance(value, Primitive):
        return value.value
    raise CallError(f"cannot pass {render_value(value)} to a host function")


def from_host(obj: Any) -> Value:
    """Host result back to a GAL value. None becomes false"""
    if obj is None:
        return FALSE
    try:
        return Primitive.of(obj)
    except TypeError:
        raise CallError(f"host value of type {type(obj).__name__} has no GAL representation") from None


# ============================================================================
# BACKENDS
# ============================================================================

class LanguageBackend(ABC):
    """Loads and calls modules of one host language"""
    language = ""

    @abstractmethod
    def load_module(self, module: str) -> List[str]:
        pass

    @abstractmethod
    def call_function(self, module: str, name: str, args: Sequence[Value]) -> Value:
        pass


def _exported_names(namespace: Mapping[str, Any]) -> List[str]:
    return sorted(name for name, obj in namespace.items()
                  if not name.startswith('_') and callable(obj))


class PythonBackend(LanguageBackend):
    """Python-hosted external functions.

    A module is resolved from, in order: namespaces registered in-process,
    ``<search path>/<module>.py`` files, then the host import system. The
    bare ``python`` module (empty module name) is the host builtins plus
    anything added with register_function.
    """
    language = "python"

    def __init__(self, search_paths: Optional[Iterable] = None):
        if search_paths is None:
            self.search_paths = default_search_paths()
        else:
            self.search_paths = [Path(p) for p in search_paths]
        self.functions: Dict[str, Callable] = {}
        self.namespaces: Dict[str, Dict[str, Callable]] = {}
        self.modules: Dict[str, Mapping[str, Any]] = {}

    def register_function(self, name: str, function: Callable) -> None:
        """Expose a host callable through the bare python module"""
        self.functions[name] = function

    def register_namespace(self, module: str, functions: Mapping[str, Callable]) -> None:
        """Expose host callables as module python.<module>"""
        self.namespaces[module] = dict(functions)

    def find_module_file(self, module: str) -> Optional[Path]:
        relative = Path(*module.split('.')).with_suffix('.py')
        for directory in self.search_paths:
            candidate = directory / relative
            if candidate.is_file():
                return candidate
        return None

    def _load_file(self, module: str, path: Path) -> Mapping[str, Any]:
        spec = importlib.util.spec_from_file_location(f"gal_ffi_{module.replace('.', '_')}", path)
        if spec is None or spec.loader is None:
            raise LoadError(f"Error loading module: cannot load {path}")
        host_module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(host_module)
        except Exception as e:
            raise LoadError(f"Error loading module {module} from {path}: {e}") from e
        return vars(host_module)

    def _resolve(self, module: str) -> Mapping[str, Any]:
        if module == "":
            return ChainMap(self.functions, vars(builtins))

        if module in self.namespaces:
            return self.namespaces[module]

        path = self.find_module_file(module)
        if path is not None:
            return self._load_file(module, path)

        try:
            return vars(importlib.import_module(module))
        except ImportError as e:
            raise LoadError(f"Module not found: python.{module}") from e

    def load_module(self, module: str) -> List[str]:
        if module not in self.modules:
            self.modules[module] = self._resolve(module)
        return _exported_names(self.modules[module])

    def call_function(self, module: str, name: str, args: Sequence[Value]) -> Value:
        namespace = self.modules.get(module)
        qualified = ".".join(part for part in ("python", module, name) if part)
        if namespace is None:
            raise CallError(f"Module not loaded: {module or 'python'}")

        function = namespace.get(name)
        if function is None or not callable(function):
            raise CallError(f"Function not found: {qualified}")

        host_args = [to_host(arg) for arg in args]
        try:
            result = function(*host_args)
        except Exception as e:
            raise CallError(f"Error calling function {qualified}: {e}") from e
        return from_host(result)


# ============================================================================
# REGISTRY
# ============================================================================

def split_module_path(module_path: str) -> Tuple[str, str]:
    """'python.math' -> ('python', 'math'); 'python' -> ('python', '')"""
    language, _, module = module_path.partition('.')
    return language, module


class ExternalRegistry(ExternalSurface):
    """External Call Surface that routes each module path to its language backend"""

    def __init__(self, backends: Optional[Iterable[LanguageBackend]] = None):
        self.backends: Dict[str, LanguageBackend] = {}
        self.loaded: Dict[str, List[str]] = {}
        for backend in backends or ():
            self.register_backend(backend)

    def register_backend(self, backend: LanguageBackend) -> None:
        self.backends[backend.language] = backend

    def load(self, module_path: str) -> List[str]:
        if module_path in self.loaded:
            return self.loaded[module_path]

        language, module = split_module_path(module_path)
        backend = self.backends.get(language)
        if backend is None:
            raise LoadError(f"FFI protocol not implemented for: {language}")

        self.loaded[module_path] = backend.load_module(module)
        return self.loaded[module_path]

    def call(self, qualified_name: str, args: Sequence[Value]) -> Value:
        module_path, _, name = qualified_name.rpartition('.')
        if module_path not in self.loaded:
            raise CallError(f"Module not loaded: {module_path or qualified_name}")

        language, module = split_module_path(module_path)
        return self.backends[language].call_function(module, name, args)


def create_default_surface(search_paths: Optional[Iterable] = None,
                           functions: Optional[Mapping[str, Callable]] = None) -> ExternalRegistry:
    """Registry with the Python backend; functions go into the bare python module"""
    python = PythonBackend(search_paths)
    for name, function in (functions or {}).items():
        python.register_function(name, function)
    return ExternalRegistry([python])
