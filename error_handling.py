"""
Error taxonomy for GAL and enhanced parse error reporting
Parse errors are assembled in pure functional style from pyparsing exceptions
"""

from typing import List, Optional, Dict, Tuple
from pyparsing import ParseBaseException, ParseFatalException, StringEnd


class ParseActionError(ParseFatalException):
    """Raised by grammar parse actions.

    pyparsing rewrites msg as the exception unwinds through enclosing
    elements, so the original message is kept as reason.
    """

    def __init__(self, pstr, loc=0, msg=None, elem=None):
        super().__init__(pstr, loc, msg, elem)
        self.reason = msg


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_parse_error(
    message: str,
    filename: str,
    location: int,
    line: int,
    column: int,
    expected: Optional[List[str]] = None,
    got: Optional[str] = None,
    context: Optional[str] = None,
    contexts: Optional[List[str]] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable parse error structure"""
    return {
        'message': message,
        'filename': filename,
        'location': location,
        'line': line,
        'column': column,
        'expected': expected or [],
        'got': got,
        'context': context,
        'contexts': contexts or [],
        'suggestions': suggestions or []
    }


def format_parse_error(error: Dict) -> str:
    """Format parse error as string"""
    error_msg = f"Parse error in {error['filename']} at line {error['line']}, column {error['column']}:\n"
    error_msg += f"  {error['message']}\n"

    if error['contexts']:
        error_msg += f"  While parsing: {' > '.join(error['contexts'])}\n"

    if error['expected']:
        error_msg += f"  Expected: {', '.join(error['expected'])}\n"

    if error['got']:
        error_msg += f"  Got: {error['got']}\n"

    if error['context']:
        error_msg += f"  Context:\n{error['context']}\n"

    if error['suggestions']:
        error_msg += f"  Suggestions:\n"
        for suggestion in error['suggestions']:
            error_msg += f"    - {suggestion}\n"

    return error_msg


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def line_and_column(source_text: str, location: int) -> Tuple[int, int]:
    """1-based line and column of a character offset"""
    location = max(0, min(location, len(source_text)))
    line = source_text.count('\n', 0, location) + 1
    column = location - (source_text.rfind('\n', 0, location) + 1) + 1
    return line, column


def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        if i == line_num - 1:  # Error line
            context_parts.append(f"{line_prefix}{lines[i]}")
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")
        else:
            context_parts.append(f"{line_prefix}{lines[i]}")

    return '\n'.join(context_parts)


# A recorded failure: (start, location, label, exception). start is where the
# labeled production began, location is where its exception points.
Failure = Tuple[int, int, str, BaseException]


def expected_name(exc: ParseBaseException) -> str:
    """Human-readable name of the element that failed"""
    element = getattr(exc, 'parser_element', None)
    if element is None:
        return "valid syntax"
    if isinstance(element, StringEnd):
        return "end of input"
    return str(element)


def extract_got(source_text: str, line_num: int, col_num: int) -> str:
    """Extract what was actually found at the error location"""
    lines = source_text.split('\n')

    if line_num <= len(lines):
        error_line = lines[line_num - 1]
        if col_num <= len(error_line):
            start = max(0, col_num - 1)
            end = min(len(error_line), col_num + 10)
            got_text = error_line[start:end].strip()
            if got_text:
                return f"'{got_text}'"
        if line_num == len(lines):
            return "end of input"
        return "end of line"
    return "end of input"


def generate_suggestions(got: str, contexts: List[str]) -> List[str]:
    """Generate helpful suggestions based on the error"""
    suggestions = []

    if "function definition" in contexts or "block" in contexts:
        suggestions.append("Function bodies are enclosed in braces: name(a, b) { ... }")

    if "notation declaration" in contexts or "notation pattern" in contexts:
        suggestions.append('Notations look like: notation "$x plus $y" with x, y := add(x, y)')

    if "extern declaration" in contexts:
        suggestions.append("External functions are imported with: from python.module use name [as alias]")

    if "function call" in contexts and got == "end of input":
        suggestions.append("Check for a missing closing parenthesis")

    if got.startswith("'\"") and got.count('"') == 1:
        suggestions.append("String literals must be closed with a double quote")

    return suggestions


def deepest_failure(exc: ParseBaseException, failures: List[Failure]) -> ParseBaseException:
    """The exception that got furthest into the input.

    pyparsing reports the failure of the outermost element that gave up, which
    after a repetition is often far before the real mistake.
    """
    if isinstance(exc, ParseFatalException):
        return exc

    progressed = [(loc, err) for start, loc, _, err in failures if loc > start]
    if not progressed:
        return exc

    deepest = max(loc for loc, _ in progressed)
    if exc.loc >= deepest:
        return exc
    return [err for loc, err in progressed if loc == deepest][-1]


def context_chain(target: ParseBaseException, failures: List[Failure]) -> List[str]:
    """Labels of the productions the target failure unwound through, outermost first.

    Failures are recorded innermost first as pyparsing unwinds, so the list is
    walked backwards. Unless the failure is fatal, the chain stops at the first
    production that failed where it started: the alternatives below it were
    only tried, never entered.
    """
    labels = []
    for start, loc, label, err in reversed(failures):
        if err is not target or label in labels:
            continue
        labels.append(label)
        if loc <= start and not isinstance(target, ParseFatalException):
            break
    return labels


def enhance_parse_exception_dict(
    exc: ParseBaseException,
    source_text: str,
    failures: Optional[List[Failure]] = None,
    filename: str = "<input>"
) -> Dict:
    """Convert pyparsing exception to enhanced GAL error dict"""
    failures = failures or []
    target = deepest_failure(exc, failures)
    contexts = context_chain(target, failures)

    location = target.loc
    line_num, col_num = line_and_column(source_text, location)

    # A failure at the start of a production means the production itself was expected
    innermost = [f for f in failures if f[3] is target and f[2] == contexts[-1]] if contexts else []
    if innermost and innermost[0][1] <= innermost[0][0] and not isinstance(target, ParseFatalException):
        expected = contexts[-1]
    else:
        expected = expected_name(target)

    if isinstance(target, ParseActionError):
        message = target.reason
    else:
        message = f"Expected {expected}"

    context = get_context_lines(source_text, line_num, col_num)
    got = extract_got(source_text, line_num, col_num)
    suggestions = generate_suggestions(got, contexts)

    return make_parse_error(
        message=message,
        filename=filename,
        location=location,
        line=line_num,
        column=col_num,
        expected=[expected],
        got=got,
        context=context,
        contexts=contexts,
        suggestions=suggestions
    )


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class GalError(Exception):
    """Base class for every error GAL reports"""
    kind = "Error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class GalParseError(GalError):
    """Malformed syntax, located at the deepest failure"""
    kind = "ParseError"

    def __init__(self, message: str, filename: str = "<input>", location: int = 0, line: int = 0, column: int = 0,
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 context: Optional[str] = None, contexts: Optional[List[str]] = None,
                 suggestions: Optional[List[str]] = None):
        self.filename = filename
        self.location = location
        self.line = line
        self.column = column
        self.expected = expected or []
        self.got = got
        self.context = context
        self.contexts = contexts or []
        self.suggestions = suggestions or []
        super().__init__(message)

    def __str__(self) -> str:
        error_dict = make_parse_error(
            self.message, self.filename, self.location, self.line, self.column,
            self.expected, self.got, self.context, self.contexts, self.suggestions
        )
        return format_parse_error(error_dict)


class ExpansionError(GalError):
    """Malformed or conflicting notation declaration"""
    kind = "ExpansionError"

    def __init__(self, message: str, pattern: Optional[str] = None):
        self.pattern = pattern
        super().__init__(message)


class GalRuntimeError(GalError):
    """Evaluation failure"""
    kind = "RuntimeError"


class UndefinedVariable(GalRuntimeError):
    kind = "UndefinedVariable"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Undefined variable: {name}")


class TypeMismatch(GalRuntimeError):
    kind = "TypeMismatch"


class ArityMismatch(GalRuntimeError):
    kind = "ArityMismatch"

    def __init__(self, function: str, expected: int, got: int):
        self.function = function
        self.expected = expected
        self.got = got
        super().__init__(f"Function '{function}' expects {expected} arguments, but got {got}")


class UnhandledOperator(GalRuntimeError):
    kind = "UnhandledOperator"

    def __init__(self, operator: str):
        self.operator = operator
        super().__init__(f"No notation defines the operator '{operator}'")


class StackOverflow(GalRuntimeError):
    kind = "StackOverflow"

    def __init__(self, depth: int):
        self.depth = depth
        super().__init__(f"Maximum evaluation depth of {depth} exceeded")


class ExternalCallError(GalRuntimeError):
    kind = "ExternalCallError"


class ExternalError(GalError):
    """Failure reported by an External Call Surface"""
    kind = "ExternalError"


class LoadError(ExternalError):
    kind = "LoadError"


class CallError(ExternalError):
    kind = "CallError"


# ============================================================================
# ERROR HANDLER
# ============================================================================

class GalErrorHandler:
    """Turns pyparsing exceptions into GalParseError for one source text"""
    def __init__(self, source_text: str, filename: str = "<input>"):
        self.source_text = source_text
        self.filename = filename

    def enhance_parse_exception(
        self,
        exc: ParseBaseException,
        failures: Optional[List[Failure]] = None
    ) -> GalParseError:
        """Convert pyparsing exception to enhanced GAL error"""
        error_dict = enhance_parse_exception_dict(exc, self.source_text, failures, self.filename)
        return GalParseError(
            message=error_dict['message'],
            filename=error_dict['filename'],
            location=error_dict['location'],
            line=error_dict['line'],
            column=error_dict['column'],
            expected=error_dict['expected'],
            got=error_dict['got'],
            context=error_dict['context'],
            contexts=error_dict['contexts'],
            suggestions=error_dict['suggestions']
        )

    def nesting_error(self, location: int) -> GalParseError:
        """Error for input nested deeper than the parser can follow"""
        line_num, col_num = line_and_column(self.source_text, location)
        return GalParseError(
            message="Expression nested too deeply",
            filename=self.filename,
            location=location,
            line=line_num,
            column=col_num,
            got=extract_got(self.source_text, line_num, col_num),
            context=get_context_lines(self.source_text, line_num, col_num),
            suggestions=["Split deeply nested expressions using intermediate assignments"]
        )
