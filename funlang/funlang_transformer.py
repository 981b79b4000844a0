"""
Transforms the raw parser AST into a semantic AST using funlang_datatypes.
"""

from funlang.funlang_datatypes import (
    File, Block, Literal, Identifier, BinaryExpression, FunctionCall,
    FunctionDefinition, VariableDeclaration, WhileStatement, IfStatement,
    AssignmentStatement, ReturnStatement, Operator, FunSyntaxError
)

INT32_MAX = 2147483647
_OPERATORS = {op.symbol: op for op in Operator}


class FunTransformer:
    def transform(self, node: object) -> object:
        # Lists: transform each item
        if isinstance(node, list):
            return [self.transform(n) for n in node]

        # Primitives already in final form
        if not isinstance(node, dict):
            return node

        tag = node.get('tag')
        line = node.get('line', 0)
        children = node.get('children', [])

        match tag:
            # Structural containers
            case 'file':
                block = self._block(self._named(children, 'block'))
                return File(block.line, block)
            case 'block':
                return self._block(node)
            case 'braced_block':
                return self._block(self._named(children, 'block'))

            # Atomics
            case 'number':
                value = int(node['text'])
                if value > INT32_MAX:
                    raise FunSyntaxError(line, f"integer literal out of range: {node['text']}")
                return Literal(line, value)
            case 'identifier':
                return Identifier(line, node['text'])

            case 'binary_op':
                left = self.transform(node['left'])
                right = self.transform(node['right'])
                op_text = node['op']['text']
                if op_text not in _OPERATORS:
                    raise ValueError(f"Unknown operator: {op_text}")
                return BinaryExpression(left.line, left, right, _OPERATORS[op_text])
            case 'function_call':
                name = self._name(self._named(children, 'name'))
                args = self._items(self._named(children, 'args'))
                return FunctionCall(line, name, tuple(self.transform(a) for a in args))

            # Statements
            case 'function_definition':
                name = self._name(self._named(children, 'name'))
                params = tuple(self._name(p) for p in self._items(self._named(children, 'params')))
                body = self._block(self._named(children, 'body'))
                return FunctionDefinition(line, name, params, body)
            case 'variable_declaration':
                name = self._name(self._named(children, 'name'))
                value = self._named(children, 'value')
                expression = self.transform(value) if value else None
                return VariableDeclaration(line, name, expression)
            case 'while_statement':
                condition = self.transform(self._named(children, 'condition'))
                body = self._block(self._named(children, 'body'))
                return WhileStatement(line, condition, body)
            case 'if_statement':
                condition = self.transform(self._named(children, 'condition'))
                body = self._block(self._named(children, 'body'))
                else_node = self._named(children, 'else_body')
                else_body = self._block(else_node) if else_node else None
                return IfStatement(line, condition, body, else_body)
            case 'assignment_statement':
                name = self._name(self._named(children, 'name'))
                return AssignmentStatement(line, name, self.transform(self._named(children, 'value')))
            case 'return_statement':
                return ReturnStatement(line, self.transform(self._named(children, 'value')))

            case _:
                raise ValueError(f"Unknown AST node tag: {tag}")

    # --- Helpers ---

    def _named(self, children, key):
        # Named children arrive as a dict; a promoted child may still be wrapped in a list
        if not isinstance(children, dict):
            return None
        value = children.get(key)
        if isinstance(value, list):
            return value[0] if len(value) == 1 else (value or None)
        return value

    def _items(self, node):
        # 'parameters' and 'arguments' wrap a flat list of children
        if not node:
            return []
        if isinstance(node, dict):
            items = node.get('children', [])
            return items if isinstance(items, list) else [items]
        return node

    def _name(self, node) -> str:
        if isinstance(node, dict):
            return node['text']
        return str(node)

    def _block(self, node) -> Block:
        """Builds a Block; an unwrapped braced block is accepted too.

        A block takes the line of its first statement, or the line where its
        text starts when it is empty.
        """
        if isinstance(node, dict) and node.get('tag') == 'braced_block':
            node = self._named(node.get('children', {}), 'block')
        if not isinstance(node, dict):
            return Block(1, ())
        statements = tuple(self.transform(s) for s in self._items(node))
        line = statements[0].line if statements else node.get('line', 1)
        return Block(line, statements)
