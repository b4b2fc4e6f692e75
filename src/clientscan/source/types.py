from __future__ import annotations

import ast
from dataclasses import dataclass, field, replace
from typing import Literal

SymbolKind = Literal["module", "class", "function", "method", "external"]

MAPPING_NAMES = {"dict", "Dict", "Mapping", "MutableMapping", "OrderedDict", "defaultdict"}


@dataclass(slots=True, frozen=True)
class TypeDescriptor:
    """A statically resolved type."""

    qualname: str  # e.g. "lightkube.resources.apps_v1.Deployment"
    module: str  # module the type is declared in (or imported from)
    is_class: bool = False  # the class object itself rather than an instance
    optional: bool = False
    args: tuple[TypeDescriptor, ...] = ()

    def render(self) -> str:
        """Canonical, fully-qualified rendering used as the aggregation key."""
        text = self.qualname
        if self.args:
            text += "[" + ", ".join(a.render() for a in self.args) + "]"
        if self.is_class:
            text = f"type[{text}]"
        if self.optional:
            text += " | None"
        return text

    def as_instance(self) -> TypeDescriptor:
        return replace(self, is_class=False, optional=False)

    def as_class(self) -> TypeDescriptor:
        return replace(self, is_class=True, optional=False)

    def element_type(self, subscript: bool = False) -> TypeDescriptor | None:
        """Element type when iterating (or, with ``subscript``, indexing) a generic container."""
        if not self.args:
            return None
        if subscript and self.qualname.rsplit(".", 1)[-1] in MAPPING_NAMES:
            return self.args[-1] if len(self.args) == 2 else None
        return self.args[0]


@dataclass(slots=True, frozen=True)
class Symbol:
    """A declaring symbol: module, class, function or an unresolvable external name."""

    qualname: str
    module: str
    kind: SymbolKind
    node: ast.AST | None = field(default=None, compare=False, hash=False)

    @property
    def name(self) -> str:
        return self.qualname.rsplit(".", 1)[-1]

    def looks_like_class(self) -> bool:
        if self.kind == "class":
            return True
        # External names carry no declaration; CapWords marks a class.
        return self.kind == "external" and self.name[:1].isupper()

    def member(self, attr: str) -> Symbol:
        """External member access, e.g. ``lightkube.Client`` -> ``lightkube.Client.get``."""
        module = self.module
        if self.kind == "module" or (self.kind == "external" and not self.looks_like_class()):
            module = self.qualname
        return Symbol(qualname=f"{self.qualname}.{attr}", module=module, kind="external")

    def as_type(self) -> TypeDescriptor:
        return TypeDescriptor(qualname=self.qualname, module=self.module)
