"""
Call-site scanning, method matching and resource type extraction.

Each stage is stateless across calls; only the Aggregator accumulates.
"""

import ast
from typing import Iterator

from clientscan.source.loader import CompilationUnit

from .ast_ops import AstUtils
from .config import MethodSpecTable
from .models import CallSite, MethodSpec, ResourceIdentity


class CallSiteScanner:
    """Yields every ``receiver.method(...)`` call in a unit, in pre-order."""

    def scan(self, unit: CompilationUnit) -> Iterator[CallSite]:
        for node in AstUtils.iter_preorder(unit.tree):
            if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Attribute):
                continue
            line, col = AstUtils.node_position(node)
            yield CallSite(
                method=node.func.attr,
                path=unit.relpath,
                line=line,
                col=col,
                callee=node.func,
                args=list(node.args),
                keywords=list(node.keywords),
            )


class MethodMatcher:
    """
    Keeps calls to tracked methods whose declaring symbol lives in the target
    namespace and that pass enough arguments to reach the resource argument.
    """

    def __init__(
        self,
        table: MethodSpecTable,
        target_namespace: str,
        aliases: list[str] | None = None,
    ) -> None:
        self._table = table
        self._namespaces = {target_namespace, *(aliases or [])}

    def match(self, site: CallSite, unit: CompilationUnit) -> MethodSpec | None:
        spec = self._table.lookup(site.method)
        if spec is None:
            return None

        symbol = unit.resolve_symbol(site.callee)
        if symbol is None or symbol.module not in self._namespaces:
            return None

        if self.resource_argument(site, spec) is None:
            return None
        return spec

    @staticmethod
    def resource_argument(site: CallSite, spec: MethodSpec) -> ast.expr | None:
        """The argument expression at the spec's position, or None if the call is too short."""
        leading = site.args[: spec.arg_index]
        # A starred argument hides how many positions it fills.
        if any(isinstance(arg, ast.Starred) for arg in leading):
            return None
        if len(site.args) >= spec.arg_index:
            return site.args[spec.arg_index - 1]
        if spec.keyword:
            return AstUtils.keyword_value(site.keywords, spec.keyword)
        return None


class ResourceTypeExtractor:
    """Resolves the resource argument of a matched call to a canonical identity."""

    def extract(self, site: CallSite, spec: MethodSpec, unit: CompilationUnit) -> ResourceIdentity:
        argument = MethodMatcher.resource_argument(site, spec)
        if argument is None:
            raise ValueError(f"{site.position}: call has no argument #{spec.arg_index}")

        resolved = unit.resolve_type(argument)
        if resolved is not None:
            # The resource is the same whether the class or an instance is passed.
            return ResourceIdentity(
                identity=resolved.as_instance().render(), argument=resolved.render()
            )
        text = AstUtils.unparse_node(argument) or "<unknown>"
        return ResourceIdentity(identity=text, argument=text, resolved=False)
