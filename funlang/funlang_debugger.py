"""
An interactive, line-oriented debugger for Fun programs.

The program runs as an asyncio task with a breakpoint listener attached to
its Evaluator. When a breakpoint condition holds, the listener hands a
Suspension to the command loop through a single-slot queue and waits on a
resume future. The command loop and the program therefore take turns on
one event loop; only one of them is ever running.
"""

import asyncio
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, TextIO

from funlang.funlang_datatypes import Node, Literal, File, Scope, InterpreterError
from funlang.funlang_interpreter import Evaluator
from funlang.funlang_runtime import StdLib, parse_file, parse_expression

# Unconditional breakpoints use this always-true condition.
ALWAYS = Literal(0, 1)


class CommandError(Exception):
    """A malformed debugger command; the message is printed as is."""


@dataclass
class Breakpoint:
    condition: Node
    description: str


@dataclass
class Suspension:
    """The paused program: where it stopped and how to let it go on."""
    node: Node
    scope: Scope
    resume: asyncio.Future


@dataclass
class Finished:
    error: Optional[BaseException] = None


class DebugSession:
    """One run of the loaded program."""
    def __init__(self, task: asyncio.Task, handoff: asyncio.Queue):
        self.task = task
        self.handoff = handoff
        self.suspension: Optional[Suspension] = None


class BreakpointListener:
    def __init__(self, breakpoints: Dict[int, Breakpoint], handoff: asyncio.Queue):
        self.breakpoints = breakpoints
        self.handoff = handoff

    async def visit_node(self, node: Node, scope: Scope) -> None:
        breakpoint = self.breakpoints.get(node.line)
        if breakpoint is None:
            return
        # Conditions run without a listener so they never suspend themselves.
        if await Evaluator().eval(breakpoint.condition, scope) == 0:
            return
        resume = asyncio.get_running_loop().create_future()
        await self.handoff.put(Suspension(node, scope, resume))
        await resume


class Debugger:
    """Reads commands from a stream and drives one program at a time.

    Everything, program output included, is written to `output`.
    """
    def __init__(self, output: Optional[TextIO] = None):
        self.output = output or sys.stdout
        self.program: Optional[File] = None
        self.breakpoints: Dict[int, Breakpoint] = {}
        self.session: Optional[DebugSession] = None

    # --- Output ---

    def _write(self, text: str):
        self.output.write(text)
        self.output.flush()

    def _println(self, text: str = ""):
        self._write(text + "\n")

    def prompt(self) -> str:
        suspension = self.session.suspension if self.session else None
        if suspension is None:
            return ">"
        return f"line={suspension.node.line},elementType={suspension.node.kind}>"

    # --- Command loop ---

    async def run(self, stream: Optional[TextIO] = None):
        """Processes commands until end of input."""
        stream = stream or sys.stdin
        loop = asyncio.get_running_loop()
        try:
            while True:
                self._write(self.prompt())
                raw = await loop.run_in_executor(None, stream.readline)
                if raw == "":
                    break
                await self.execute(raw.rstrip("\r\n"))
        finally:
            await self._stop_session()

    async def execute(self, line: str):
        """Runs a single command line and reports any failure."""
        tokens = line.split()
        if not tokens:
            self._println("Warning: empty command ignored")
            return
        command, args = tokens[0], tokens[1:]
        # The rest of the line, for commands that take an expression or a path.
        rest = line.strip()[len(command):].strip()
        # Number of arguments a fixed-arity command takes; None when it takes the rest of the line.
        arity = None
        try:
            match command:
                case "load":
                    await self.load(self._require(rest))
                case "breakpoint":
                    arity = 1
                    self.breakpoint(self._line_number(args))
                case "condition":
                    line_number = self._line_number(args)
                    self.condition(line_number, rest.split(None, 1)[1] if len(args) > 1 else "")
                case "list":
                    arity = 0
                    self.list()
                case "remove":
                    arity = 1
                    self.remove(self._line_number(args))
                case "run":
                    arity = 0
                    await self.start()
                case "evaluate":
                    await self.evaluate(self._require(rest))
                case "stop":
                    arity = 0
                    await self.stop()
                case "continue":
                    arity = 0
                    await self.resume()
                case _:
                    # Unknown commands are ignored.
                    pass
            if arity is not None and len(args) > arity:
                self._println("Warning: Extra arguments were ignored")
        except CommandError as e:
            self._println(str(e))
        except FileNotFoundError:
            self._println("Error: file wasn't found")
        except InterpreterError as e:
            self._println(f"Error: {e}")
        except Exception as e:
            self._println(f"Error: InternalError: {e}")

    def _require(self, text: str) -> str:
        if not text:
            raise CommandError("Error: some arguments missed")
        return text

    def _line_number(self, args: List[str]) -> int:
        if not args:
            raise CommandError("Error: some arguments missed")
        try:
            return int(args[0])
        except ValueError:
            raise CommandError("Error: wrong types of arguments") from None

    # --- Commands ---

    async def load(self, path: str):
        if self.session is not None:
            raise CommandError("Error: program is already running")
        self.program = parse_file(path)
        self.breakpoints.clear()
        self._println("Program loaded.")

    def breakpoint(self, line: int):
        self._set_breakpoint(line, Breakpoint(ALWAYS, "empty"))

    def condition(self, line: int, text: str):
        text = text.strip()
        if not text:
            raise CommandError("Error: condition expression is missed")
        self._set_breakpoint(line, Breakpoint(parse_expression(text), text))

    def _set_breakpoint(self, line: int, breakpoint: Breakpoint):
        if line in self.breakpoints:
            self._println(f"Warning: breakpoint at line {line} was overwritten")
        self.breakpoints[line] = breakpoint

    def list(self):
        self._println("List of breakpoints:")
        for line in sorted(self.breakpoints):
            self._println(f"   At line {line}, condition: {self.breakpoints[line].description}")
        self._println()

    def remove(self, line: int):
        if line not in self.breakpoints:
            self._println(f"Warning: there is no breakpoints on line {line}")
            return
        del self.breakpoints[line]

    async def start(self):
        if self.session is not None:
            raise CommandError("Error: program is already running")
        if self.program is None:
            raise CommandError("Error: no program loaded")
        handoff: asyncio.Queue = asyncio.Queue(maxsize=1)
        listener = BreakpointListener(self.breakpoints, handoff)
        task = asyncio.create_task(self._execute(self.program, listener, handoff))
        self.session = DebugSession(task, handoff)
        await self._wait_for_program()

    async def _execute(self, program: File, listener: BreakpointListener, handoff: asyncio.Queue):
        error = None
        try:
            scope = StdLib(self._write).install(Scope())
            await Evaluator(listener).run(program, scope)
        except Exception as e:
            error = e
        await handoff.put(Finished(error))

    async def _wait_for_program(self):
        """Gives control to the program until it suspends or finishes."""
        session = self.session
        event = await session.handoff.get()
        if isinstance(event, Suspension):
            session.suspension = event
            return
        await session.task
        self.session = None
        if event.error is not None:
            raise event.error

    async def evaluate(self, text: str):
        if self.session is None or self.session.suspension is None:
            raise CommandError("Error: command isn't available now - run any program first")
        expression = parse_expression(text)
        value = await Evaluator().eval(expression, self.session.suspension.scope)
        self._println(f"={value}")

    async def resume(self):
        if self.session is None or self.session.suspension is None:
            raise CommandError("Error: there is nothing to continue")
        suspension, self.session.suspension = self.session.suspension, None
        suspension.resume.set_result(None)
        await self._wait_for_program()

    async def stop(self):
        await self._stop_session()

    async def _stop_session(self):
        session, self.session = self.session, None
        if session is None:
            return
        session.task.cancel()
        await asyncio.wait({session.task})
