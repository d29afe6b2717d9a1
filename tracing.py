"""
Call tracing for the GAL evaluator
The evaluator notifies an observer on every function entry and exit
"""

from typing import Any, List, Optional, Sequence, TextIO
import sys
import time

from termcolor import colored

from syntax import render_value


class TraceObserver:
    """Observer notified by the evaluator. The default does nothing."""

    def on_enter(self, name: str, args: Sequence[Any], depth: int) -> None:
        pass

    def on_exit(self, name: str, depth: int, result: Any = None,
                error: Optional[BaseException] = None) -> None:
        pass


class CallFrame:
    def __init__(self, name: str, args: Sequence[Any]):
        self.name = name
        self.args = [render_value(arg) for arg in args]
        self.started = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000.0

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.args)})"


class PrintTracer(TraceObserver):
    """Prints colored entry/exit lines with the live call stack"""

    def __init__(self, stream: Optional[TextIO] = None, show_stack: bool = True):
        self.stream = stream
        self.show_stack = show_stack
        self.stack: List[CallFrame] = []

    def _print(self, text: str = "") -> None:
        print(text, file=self.stream or sys.stdout)

    def on_enter(self, name, args, depth):
        frame = CallFrame(name, args)
        self.stack.append(frame)
        self._print(f"{colored('→', 'green')} Entering: {frame}  {colored(f'[depth {depth}]', 'dark_grey')}")
        self.print_call_stack()

    def on_exit(self, name, depth, result=None, error=None):
        frame = self.stack.pop() if self.stack else None
        elapsed = f"{frame.elapsed_ms():.3f} ms" if frame else "?"
        if error is None:
            self._print(f"{colored('←', 'blue')} Exiting: {name} = {render_value(result)}  ({elapsed})")
        else:
            self._print(f"{colored('←', 'red')} Exiting: {name} with error: {error}  ({elapsed})")
        self.print_call_stack()

    def print_call_stack(self) -> None:
        if not self.show_stack:
            return
        self._print(colored("Call Stack:", "yellow"))
        for i, frame in enumerate(reversed(self.stack)):
            self._print(f"  {i}: {frame}")
        self._print()
