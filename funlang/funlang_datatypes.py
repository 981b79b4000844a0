"""
Defines the core data types for the Fun language runtime.

This module provides the immutable AST node classes produced by the
transformer, the operator table, the Scope chain used for lexical lookup,
the callable types (builtins and user closures) and the interpreter's
error taxonomy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from funlang.funlang_interpreter import Evaluator

# =================================================================
# Errors
# =================================================================

class InterpreterError(Exception):
    """Base class for every error a Fun program can raise.

    `kind` is the user-facing error name; `line` is the 1-based source line
    of the node that failed (None when the failure has no location yet).
    """
    kind = "InterpreterError"

    def __init__(self, line: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message or self.kind)
        self.line = line
        self.message = message

    def __str__(self) -> str:
        if self.line is None:
            return self.kind
        return f"{self.kind} at line {self.line}"


class UnknownIdentifierError(InterpreterError):
    kind = "UnknownIdentifier"

    def __init__(self, name: str, line: Optional[int] = None):
        super().__init__(line, f"unknown identifier '{name}'")
        self.name = name


class RedefinitionError(InterpreterError):
    kind = "RedefinitionError"

    def __init__(self, name: str, line: Optional[int] = None):
        super().__init__(line, f"'{name}' is already defined in this scope")
        self.name = name


class ForbiddenArithmeticError(InterpreterError):
    """Division or remainder by zero."""
    kind = "ArithmeticError"


class FunctionCallError(InterpreterError):
    """Wrong number of arguments at a call site."""
    kind = "FunctionCallError"


class FunSyntaxError(InterpreterError):
    """Raised by the parsing front end for malformed source."""
    kind = "SyntaxError"


class WrongArgumentsNumber(Exception):
    """Internal signal from UserFunction.apply; the evaluator converts it
    into a FunctionCallError carrying the call site's line."""
    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected {expected} arguments, got {actual}")
        self.expected = expected
        self.actual = actual


# =================================================================
# Operators
# =================================================================

_INT32_MODULUS = 1 << 32
_INT32_MIN = -(1 << 31)


def to_int32(value: int) -> int:
    """Wraps an arbitrary Python int into the signed 32-bit range."""
    return (value - _INT32_MIN) % _INT32_MODULUS + _INT32_MIN


def _divide(x: int, y: int) -> int:
    # Truncates toward zero; raises ZeroDivisionError for y == 0.
    quotient = abs(x) // abs(y)
    return quotient if (x >= 0) == (y >= 0) else -quotient


def _remainder(x: int, y: int) -> int:
    return x - y * _divide(x, y)


class Operator(Enum):
    PLUS = "+"
    MINUS = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    REMAINDER = "%"
    GREATER = ">"
    LESS = "<"
    GREATER_OR_EQUAL = ">="
    LESS_OR_EQUAL = "<="
    EQUAL = "=="
    NOT_EQUAL = "!="
    OR = "||"
    AND = "&&"

    @property
    def symbol(self) -> str:
        return self.value

    def apply(self, x: int, y: int) -> int:
        """Applies the operator to two already-evaluated operands."""
        return to_int32(_CALCULATORS[self](x, y))


_CALCULATORS: Dict[Operator, Callable[[int, int], int]] = {
    Operator.PLUS: lambda x, y: x + y,
    Operator.MINUS: lambda x, y: x - y,
    Operator.MULTIPLY: lambda x, y: x * y,
    Operator.DIVIDE: _divide,
    Operator.REMAINDER: _remainder,
    Operator.GREATER: lambda x, y: int(x > y),
    Operator.LESS: lambda x, y: int(x < y),
    Operator.GREATER_OR_EQUAL: lambda x, y: int(x >= y),
    Operator.LESS_OR_EQUAL: lambda x, y: int(x <= y),
    Operator.EQUAL: lambda x, y: int(x == y),
    Operator.NOT_EQUAL: lambda x, y: int(x != y),
    Operator.OR: lambda x, y: int(x != 0 or y != 0),
    Operator.AND: lambda x, y: int(x != 0 and y != 0),
}


# =================================================================
# AST Nodes
# =================================================================
# Nodes are frozen dataclasses so a parsed tree is immutable and two
# structurally identical trees (lines included) compare equal.

@dataclass(frozen=True)
class Node:
    line: int

    @property
    def kind(self) -> str:
        """The node's tag, as shown in the debugger prompt."""
        return type(self).__name__


@dataclass(frozen=True)
class Literal(Node):
    value: int


@dataclass(frozen=True)
class Identifier(Node):
    name: str


@dataclass(frozen=True)
class BinaryExpression(Node):
    left: Node
    right: Node
    operator: Operator


@dataclass(frozen=True)
class FunctionCall(Node):
    name: str
    arguments: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class Block(Node):
    statements: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class File(Node):
    block: Block


@dataclass(frozen=True)
class FunctionDefinition(Node):
    name: str
    parameters: Tuple[str, ...]
    body: Block


@dataclass(frozen=True)
class VariableDeclaration(Node):
    name: str
    expression: Optional[Node] = None


@dataclass(frozen=True)
class WhileStatement(Node):
    condition: Node
    body: Block


@dataclass(frozen=True)
class IfStatement(Node):
    condition: Node
    body: Block
    else_body: Optional[Block] = None


@dataclass(frozen=True)
class AssignmentStatement(Node):
    name: str
    expression: Node


@dataclass(frozen=True)
class ReturnStatement(Node):
    expression: Node


# =================================================================
# Core Runtime Types
# =================================================================

class Scope:
    """A frame of Fun bindings with a link to its lexical parent.

    Variables and functions live in separate namespaces. A scope also
    carries the interrupt signal used by `return`: once interrupted, the
    enclosing Block stops executing statements and copies the signal to
    its own parent, until a function call boundary reads `result`.

    Closures keep a plain reference to the scope they were defined in, so
    a scope lives as long as any closure can still reach it.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.parent = parent
        self.variables: Dict[str, int] = {}
        self.functions: Dict[str, 'FunCallable'] = {}
        self.interrupted = False
        self.result = 0

    def define(self, name: str, value: int, line: Optional[int] = None):
        if name in self.variables:
            raise RedefinitionError(name, line)
        self.variables[name] = value

    def define_function(self, name: str, function: 'FunCallable', line: Optional[int] = None):
        if name in self.functions:
            raise RedefinitionError(name, line)
        self.functions[name] = function

    def find_owner(self, name: str) -> Optional['Scope']:
        """Finds the Scope in the chain that binds the variable `name`."""
        scope = self
        while scope is not None:
            if name in scope.variables:
                return scope
            scope = scope.parent
        return None

    def get(self, name: str, line: Optional[int] = None) -> int:
        owner = self.find_owner(name)
        if owner is None:
            raise UnknownIdentifierError(name, line)
        return owner.variables[name]

    def set(self, name: str, value: int, line: Optional[int] = None):
        """Rebinds an existing variable in the scope that owns it."""
        owner = self.find_owner(name)
        if owner is None:
            raise UnknownIdentifierError(name, line)
        owner.variables[name] = value

    def get_function(self, name: str, line: Optional[int] = None) -> 'FunCallable':
        scope = self
        while scope is not None:
            if name in scope.functions:
                return scope.functions[name]
            scope = scope.parent
        raise UnknownIdentifierError(name, line)

    def interrupt(self, value: int):
        self.result = value
        self.interrupted = True

    def is_interrupted(self) -> bool:
        return self.interrupted

    def __repr__(self) -> str:
        names = ', '.join(list(self.variables) + [f"{n}()" for n in self.functions])
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{names}]{parent_id}>"


class FunCallable(ABC):
    """Abstract base class for all objects callable within Fun."""
    name: str

    @abstractmethod
    async def apply(self, arguments: List[int], evaluator: 'Evaluator') -> int:
        raise NotImplementedError


class BuiltinFunction(FunCallable):
    """Wraps a native Python callable. Builtins accept any number of
    arguments and always return 0."""
    def __init__(self, name: str, func: Callable[..., Any]):
        self.name = name
        self.func = func

    async def apply(self, arguments: List[int], evaluator: 'Evaluator') -> int:
        self.func(*arguments)
        return 0

    def __repr__(self) -> str:
        return f"<BuiltinFunction {self.name}>"


class UserFunction(FunCallable):
    """Represents a function defined in Fun using `fun`.

    This is a closure, bundling the parameter names, the body block, and
    the lexical scope in which the function was defined.
    """
    def __init__(self, name: str, parameters: Tuple[str, ...], body: Block, closure: Scope,
                 line: Optional[int] = None):
        self.name = name
        self.parameters = tuple(parameters)
        self.body = body
        self.closure = closure
        self.line = line

    async def apply(self, arguments: List[int], evaluator: 'Evaluator') -> int:
        if len(arguments) != len(self.parameters):
            raise WrongArgumentsNumber(len(self.parameters), len(arguments))
        call_scope = Scope(parent=self.closure)
        for name, value in zip(self.parameters, arguments):
            # A repeated parameter name is reported at the definition line.
            call_scope.define(name, value, line=self.line)
        await evaluator.eval(self.body, call_scope)
        return call_scope.result

    def __repr__(self) -> str:
        return f"fun {self.name}({', '.join(self.parameters)})"

    def __eq__(self, other):
        if not isinstance(other, UserFunction):
            return NotImplemented
        # NOTE: closure comparison is intentionally omitted.
        return self.parameters == other.parameters and self.body == other.body

    __hash__ = object.__hash__
