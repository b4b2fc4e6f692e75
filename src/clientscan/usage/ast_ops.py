import ast
from typing import Iterator


class AstUtils:
    """
    Static utilities for AST traversal and node rendering.
    """

    @staticmethod
    def unparse_node(node: ast.AST | None) -> str | None:
        if node is None:
            return None
        try:
            return ast.unparse(node)
        except Exception:
            return f"<ast.{type(node).__name__}>"

    @staticmethod
    def iter_preorder(root: ast.AST) -> Iterator[ast.AST]:
        """Yields every node once, parents before children, in source order."""
        stack = [root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(ast.iter_child_nodes(node))))

    @staticmethod
    def node_position(node: ast.AST) -> tuple[int, int]:
        """1-based (line, column) of a node's start."""
        return getattr(node, "lineno", 0), getattr(node, "col_offset", -1) + 1

    @staticmethod
    def keyword_value(keywords: list[ast.keyword], name: str) -> ast.expr | None:
        for kw in keywords:
            if kw.arg == name:
                return kw.value
        return None
