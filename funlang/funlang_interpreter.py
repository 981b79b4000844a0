"""
The Fun execution engine: a recursive, async tree walker over funlang_datatypes nodes.
"""

import os
import sys
from typing import List, Optional, Protocol

from funlang.funlang_datatypes import (
    Node, File, Block, Literal, Identifier, BinaryExpression, FunctionCall,
    FunctionDefinition, VariableDeclaration, WhileStatement, IfStatement,
    AssignmentStatement, ReturnStatement, Operator,
    Scope, UserFunction, WrongArgumentsNumber,
    ForbiddenArithmeticError, FunctionCallError
)


# Each Fun call nests about five coroutine frames; this allows a few
# thousand levels of Fun recursion.
RECURSION_LIMIT = 10000


class NodeListener(Protocol):
    """Observer awaited before a node is evaluated.

    Awaiting inside `visit_node` pauses the whole evaluation at that node;
    this is how the debugger suspends a running program.
    """
    async def visit_node(self, node: Node, scope: Scope) -> None: ...


class Evaluator:
    """The Fun execution engine."""
    def __init__(self, listener: Optional[NodeListener] = None):
        self.listener = listener
        self.current_node: Optional[Node] = None
        self.call_stack: List[dict] = []

    def _push_frame(self, name, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'args': args,
            'line': getattr(call_site_node, 'line', None),
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("FUN_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    async def run(self, program: File, scope: Scope) -> Optional[int]:
        """Evaluates a whole program with room for deep Fun recursion.

        The interpreter's recursion limit is process-wide, so it is raised
        only for the duration of the run and then restored.
        """
        previous = sys.getrecursionlimit()
        sys.setrecursionlimit(max(previous, RECURSION_LIMIT))
        try:
            return await self.eval(program, scope)
        finally:
            sys.setrecursionlimit(previous)

    async def eval(self, node: Node, scope: Scope) -> Optional[int]:
        """Evaluates any AST node.

        Returns the integer value of an expression, the program result for a
        File, and None for other statements.
        """
        self.current_node = node
        # File and Literal never observe a scope, so they are not reported.
        if self.listener is not None and not isinstance(node, (File, Literal)):
            await self.listener.visit_node(node, scope)
            self.current_node = node

        match node:
            case Literal(value=value):
                return value

            case Identifier(name=name):
                return scope.get(name, line=node.line)

            case BinaryExpression(left=left, right=right, operator=operator):
                # Both operands are always evaluated, left first; && and || included.
                x = await self.eval(left, scope)
                y = await self.eval(right, scope)
                return self._apply_operator(operator, x, y, node)

            case File(block=block):
                await self.eval(block, scope)
                return scope.result

            case Block(statements=statements):
                block_scope = Scope(parent=scope)
                for statement in statements:
                    await self.eval(statement, block_scope)
                    if block_scope.is_interrupted():
                        scope.interrupt(block_scope.result)
                        break
                return None

            case WhileStatement(condition=condition, body=body):
                while not scope.is_interrupted() and await self.eval(condition, scope) != 0:
                    await self.eval(body, scope)
                return None

            case IfStatement(condition=condition, body=body, else_body=else_body):
                if await self.eval(condition, scope) != 0:
                    await self.eval(body, scope)
                elif else_body is not None:
                    await self.eval(else_body, scope)
                return None

            case AssignmentStatement(name=name, expression=expression):
                value = await self.eval(expression, scope)
                scope.set(name, value, line=node.line)
                return None

            case VariableDeclaration(name=name, expression=expression):
                value = await self.eval(expression, scope) if expression is not None else 0
                scope.define(name, value, line=node.line)
                return None

            case FunctionDefinition(name=name, parameters=parameters, body=body):
                function = UserFunction(name, parameters, body, scope, line=node.line)
                scope.define_function(name, function, line=node.line)
                return None
            case FunctionCall(name=name, arguments=arguments):
                function = scope.get_function(name, line=node.line)
                args = []
                for argument in arguments:
                    args.append(await self.eval(argument, scope))
                self._dbg("call", name, "args", args, "line", node.line)
                self._push_frame(name, args, node)
                try:
                    result = await function.apply(args, self)
                except WrongArgumentsNumber as e:
                    raise FunctionCallError(node.line, str(e)) from None
                # Frames of a failed call stay on the stack for the error report.
                self._pop_frame()
                return result

            case ReturnStatement(expression=expression):
                value = await self.eval(expression, scope)
                scope.interrupt(value)
                return None

            case _:
                raise TypeError(f"Cannot evaluate node of type {type(node).__name__}")

    def _apply_operator(self, operator: Operator, x: int, y: int, node: Node) -> int:
        try:
            return operator.apply(x, y)
        except ZeroDivisionError:
            raise ForbiddenArithmeticError(node.line, f"{x} {operator.symbol} {y}") from None
