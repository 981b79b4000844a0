"""
Runtime services for Fun: the builtin library, the parsing entry points and
the non-interactive ScriptRunner.
"""

import re
import inspect
from pathlib import Path
from typing import Any, Callable, List, Optional, Literal, Dict
from dataclasses import dataclass, field

from koine import Parser
from funlang.funlang_transformer import FunTransformer
from funlang.funlang_interpreter import Evaluator
from funlang.funlang_datatypes import (
    Node, File, Scope, BuiltinFunction, InterpreterError, FunSyntaxError
)

# ===================================================================
# 1. Builtins
# ===================================================================

class StdLib:
    """Contains Python implementations for all Fun built-ins.

    Every method named `_<name>` becomes the builtin `<name>`. Output goes
    to the injected `write` sink, never straight to stdout.
    """
    def __init__(self, write: Callable[[str], Any]):
        self.write = write

    def _print(self, *args):
        self.write(" ".join(str(a) for a in args) + "\n")

    def _println(self, *args):
        if not args:
            self.write("\n")
            return
        self.write("".join(f"{a}\n" for a in args))

    def install(self, scope: Scope) -> Scope:
        """Binds every builtin into `scope` and returns it."""
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                fun_name = name[1:]
                scope.define_function(fun_name, BuiltinFunction(fun_name, member))
        return scope


# ===================================================================
# 2. Parsing
# ===================================================================

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "funlang_grammar.yaml"

_LOCATION_RE = re.compile(r"L(\d+):C(\d+)")

_parser: Optional[Parser] = None
_transformer: Optional[FunTransformer] = None


def _front_end() -> tuple[Parser, FunTransformer]:
    # The grammar is compiled once per process.
    global _parser, _transformer
    if _parser is None:
        _parser = Parser.from_file(str(GRAMMAR_PATH))
    if _transformer is None:
        _transformer = FunTransformer()
    return _parser, _transformer


def _parse(text: str, start_rule: Optional[str] = None) -> Node:
    parser, transformer = _front_end()
    parse_out = parser.parse(text, start_rule=start_rule)
    if parse_out.get('status') != 'success':
        message = parse_out.get('message') or "parse failed"
        m = _LOCATION_RE.search(message)
        line = int(m.group(1)) if m else 1
        raise FunSyntaxError(line, message)
    return transformer.transform(parse_out['ast'])


def parse_program(text: str) -> File:
    """Parses a complete Fun program."""
    return _parse(text)


def parse_file(path) -> File:
    """Reads and parses a program file. Raises FileNotFoundError when absent."""
    source = Path(path).read_text(encoding="utf-8")
    return parse_program(source)


def parse_expression(text: str) -> Node:
    """Parses text that must consist of exactly one expression."""
    return _parse(text.strip(), start_rule="expression")


# ===================================================================
# 3. Script Execution
# ===================================================================

Token = Dict[str, Any]

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message, prefixed with `Error:`."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        return msg if msg.startswith("Error: ") else f"Error: {msg}"

    def output(self) -> str:
        """Concatenated text written by the program's builtins."""
        return "".join(e.get('message', '') for e in self.side_effects if e.get('topics') == ['stdout'])


class ScriptRunner:
    """Parses, transforms, and executes Fun programs."""

    def __init__(self):
        self.evaluator = Evaluator()
        self.side_effects: List[Dict] = []
        self.root_scope = self._new_root_scope()

    def _emit_stdout(self, text: str):
        self.side_effects.append({'topics': ['stdout'], 'message': text})

    def _new_root_scope(self) -> Scope:
        return StdLib(self._emit_stdout).install(Scope())

    def _format_runtime_error(self, e, source: str, node) -> tuple[str, Optional[dict]]:
        match e:
            case InterpreterError():
                msg = str(e)
                line = e.line
            case RecursionError():
                msg = "InternalError: maximum recursion depth exceeded"
                line = getattr(node, 'line', None)
            case _:
                msg = f"InternalError: {str(e)}"
                line = getattr(node, 'line', None)

        token = None
        if line is not None:
            token = {'line': line}
            context = self._source_context(source, line)
            if context:
                msg = f"{msg}\n{context}"

        # Append Fun stacktrace if available
        st = self._format_stacktrace()
        if st:
            msg += "\n" + st

        return msg, token

    def _source_context(self, source: str, line: int, radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        frames = []
        for frame in stack:
            name = frame.get('name') or '<call>'
            args_s = " ".join(str(a) for a in frame.get('args') or [])
            frames.append(f"({name} {args_s})" if args_s else f"({name})")
        return "Fun stacktrace: " + " ".join(frames)

    async def handle_script(self, source_code: str) -> 'ExecutionResult':
        """The main entry point to execute a script."""
        # Each run starts from fresh state
        self.side_effects = []
        self.evaluator.call_stack.clear()
        self.evaluator.current_node = None
        try:
            # 1. Parse and transform
            program = parse_program(source_code)

            # 2. Evaluate in a fresh root scope holding the builtins
            self.root_scope = self._new_root_scope()
            result = await self.evaluator.run(program, self.root_scope)

            return ExecutionResult(
                status='success',
                value=result,
                side_effects=self.side_effects
            )

        except Exception as e:
            node = self.evaluator.current_node
            err_msg, err_token = self._format_runtime_error(e, source_code, node)
            # Emit consolidated stderr side-effect
            self.side_effects.append({'topics': ['stderr'], 'message': err_msg})
            return ExecutionResult(
                status='error',
                error_message=err_msg,
                error_token=err_token,
                side_effects=self.side_effects
            )
