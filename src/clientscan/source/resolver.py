from __future__ import annotations

import ast
import builtins
from dataclasses import replace
from typing import TYPE_CHECKING, Union

from .binder import Binding, ClassInfo, Position, Scope
from .types import Symbol, TypeDescriptor

if TYPE_CHECKING:
    from .loader import Workspace

Value = Union[Symbol, TypeDescriptor]

OPTIONAL_FORMS = {"typing.Optional", "typing_extensions.Optional"}
UNION_FORMS = {"typing.Union", "typing_extensions.Union"}
CLASS_FORMS = {"builtins.type", "typing.Type", "typing_extensions.Type"}
LITERAL_FORMS = {"typing.Literal", "typing_extensions.Literal"}
WRAPPER_FORMS = {
    "typing.Annotated",
    "typing.ClassVar",
    "typing.Final",
    "typing.Required",
    "typing.NotRequired",
    "typing_extensions.Annotated",
    "typing_extensions.Final",
    "typing_extensions.Required",
    "typing_extensions.NotRequired",
}
# Deprecated typing aliases render like the builtin they stand for.
CANONICAL_ALIASES = {
    "typing.List": "builtins.list",
    "typing.Dict": "builtins.dict",
    "typing.Set": "builtins.set",
    "typing.FrozenSet": "builtins.frozenset",
    "typing.Tuple": "builtins.tuple",
}
PROPERTY_DECORATORS = {"property", "cached_property"}

_MISSING = object()


class TypeResolver:
    """
    Static symbol and type resolution over every unit of a workspace.

    Names are looked up lexically (LEGB, class bodies invisible to nested
    scopes). In the innermost function scope the binding closest before the use
    wins, looking through comprehensions; in enclosing scopes the last binding
    wins. Types come from annotations, constructor calls, return annotations
    and a few structural rules (iteration, ``with`` targets, exception
    handlers).
    """

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace
        self._binding_cache: dict[int, Value | None] = {}
        self._active: set[int] = set()

    # --- Public API ---

    def resolve_type(self, expr: ast.expr) -> TypeDescriptor | None:
        return self._to_type(self.evaluate(expr))

    def resolve_symbol(self, expr: ast.expr) -> Symbol | None:
        value = self.evaluate(expr)
        return value if isinstance(value, Symbol) else None

    def evaluate(self, expr: ast.expr) -> Value | None:
        key = id(expr)
        if key in self._active:
            return None
        self._active.add(key)
        try:
            return self._evaluate(expr)
        finally:
            self._active.discard(key)

    # --- Expressions ---

    def _evaluate(self, expr: ast.expr) -> Value | None:
        if isinstance(expr, ast.Name):
            scope = self._workspace.scope_of(expr)
            if scope is None:
                return None
            return self._name_value(expr.id, scope, (expr.lineno, expr.col_offset))

        if isinstance(expr, ast.Attribute):
            base = self.evaluate(expr.value)
            return self._member(base, expr.attr) if base is not None else None

        if isinstance(expr, ast.Call):
            callee = self.evaluate(expr.func)
            return self._call_result(callee) if callee is not None else None

        if isinstance(expr, (ast.Await, ast.NamedExpr)):
            return self.evaluate(expr.value)

        if isinstance(expr, ast.Constant):
            if expr.value is None or expr.value is Ellipsis:
                return None
            return self._builtin_type(type(expr.value).__name__)

        if isinstance(expr, ast.JoinedStr):
            return self._builtin_type("str")

        if isinstance(expr, (ast.List, ast.Tuple, ast.Set)):
            name = {ast.List: "list", ast.Tuple: "tuple", ast.Set: "set"}[type(expr)]
            return self._container(name, [expr.elts])

        if isinstance(expr, ast.Dict):
            if any(k is None for k in expr.keys):
                return self._builtin_type("dict")
            return self._container("dict", [expr.keys, expr.values])  # type: ignore[list-item]

        if isinstance(expr, ast.Subscript):
            if isinstance(expr.slice, ast.Slice):
                return self.resolve_type(expr.value)
            base = self.resolve_type(expr.value)
            if base is None or base.is_class:
                return None
            return base.element_type(subscript=True)

        if isinstance(expr, ast.IfExp):
            body, orelse = self.resolve_type(expr.body), self.resolve_type(expr.orelse)
            return body if body is not None and body == orelse else None

        return None

    def _container(self, name: str, columns: list[list[ast.expr]]) -> TypeDescriptor:
        args: list[TypeDescriptor] = []
        for column in columns:
            types = {self.resolve_type(e) for e in column}
            if len(types) != 1 or None in types:
                return self._builtin_type(name)
            args.append(types.pop())  # type: ignore[arg-type]
        return replace(self._builtin_type(name), args=tuple(args))

    def _call_result(self, callee: Value) -> Value | None:
        if isinstance(callee, TypeDescriptor):
            return callee.as_instance() if callee.is_class else None
        if callee.kind in ("function", "method") and callee.node is not None:
            node = callee.node
            assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
            scope = self._workspace.scope_of(node)
            if node.returns is None or scope is None:
                return None
            return self.annotation_type(node.returns, scope)
        if callee.looks_like_class():
            return callee.as_type()
        return None

    # --- Names & bindings ---

    def _name_value(self, name: str, scope: Scope, position: Position | None) -> Value | None:
        binding = self.lookup(name, scope, position)
        if binding is None:
            return self._builtin(name)
        return self.binding_value(binding)

    def lookup(self, name: str, scope: Scope, position: Position | None) -> Binding | None:
        current: Scope | None = scope
        # A comprehension runs where it is written: the use position still
        # applies in the scope around it.
        positional = True
        enclosing = False
        while current is not None:
            if name in current.globals:
                current, positional, enclosing = current.root, False, True
            if current.kind == "class" and enclosing:
                current = current.parent
                continue
            found = current.bindings.get(name)
            if found:
                return self._pick(found, position if positional else None)
            if current.kind == "module":
                return self._star_lookup(current, name, set())
            enclosing = True
            if current.kind != "comprehension":
                positional = False
            current = current.parent
        return None

    @staticmethod
    def _pick(bindings: list[Binding], position: Position | None) -> Binding:
        if position is None:
            return bindings[-1]
        before = [b for b in bindings if b.position <= position]
        return before[-1] if before else bindings[0]

    def _star_lookup(self, scope: Scope, name: str, seen: set[str]) -> Binding | None:
        for module in scope.star_imports:
            if module in seen:
                continue
            seen.add(module)
            unit = self._workspace.unit(module)
            if unit is None:
                continue
            found = unit.scope.bindings.get(name)
            if found:
                return found[-1]
            nested = self._star_lookup(unit.scope, name, seen)
            if nested is not None:
                return nested
        return None

    def binding_value(self, binding: Binding) -> Value | None:
        key = id(binding)
        cached = self._binding_cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached  # type: ignore[return-value]
        if key in self._active:
            return None
        self._active.add(key)
        try:
            value = self._binding_value(binding)
        finally:
            self._active.discard(key)
        self._binding_cache[key] = value
        return value

    def _binding_value(self, b: Binding) -> Value | None:
        kind = b.kind
        if kind == "import":
            assert b.target is not None
            return Symbol(qualname=b.target, module=b.target, kind="module")

        if kind == "import_from":
            assert b.target is not None and b.qualname is not None
            return self.module_member(b.target, b.qualname)

        if kind == "class":
            assert b.owner is not None
            return Symbol(qualname=b.owner.qualname, module=b.owner.module, kind="class", node=b.node)

        if kind == "function":
            assert b.qualname is not None
            return Symbol(
                qualname=b.qualname,
                module=b.scope.module,
                kind="method" if b.owner is not None else "function",
                node=b.node,
            )

        if kind in ("self", "cls"):
            assert b.owner is not None
            instance = TypeDescriptor(qualname=b.owner.qualname, module=b.owner.module)
            return instance.as_class() if kind == "cls" else instance

        if kind in ("param", "annotation"):
            declared = self.annotation_type(b.annotation, b.scope) if b.annotation is not None else None
            if declared is not None:
                if b.variadic == "args":
                    return replace(self._builtin_type("tuple"), args=(declared,))
                if b.variadic == "kwargs":
                    return replace(self._builtin_type("dict"), args=(self._builtin_type("str"), declared))
                return declared
            if b.annotation is None and b.value is not None:
                return self.evaluate(b.value)
            return None

        if kind == "assign":
            return self.evaluate(b.value) if b.value is not None else None

        if kind == "iteration":
            assert b.value is not None
            iterable = self.resolve_type(b.value)
            return iterable.element_type() if iterable is not None else None

        if kind == "context":
            assert b.value is not None
            return self.resolve_type(b.value)

        if kind == "exception":
            if b.value is None:
                return None
            raised = self._to_type(self.evaluate(b.value))
            return raised.as_instance() if raised is not None and raised.is_class else None

        return None

    # --- Members ---

    def module_member(self, module: str, attr: str) -> Value | None:
        unit = self._workspace.unit(module)
        if unit is not None:
            found = unit.scope.bindings.get(attr)
            binding = found[-1] if found else self._star_lookup(unit.scope, attr, set())
            if binding is not None:
                return self.binding_value(binding)
        submodule = f"{module}.{attr}"
        if self._workspace.is_module(submodule):
            return Symbol(qualname=submodule, module=submodule, kind="module")
        if unit is not None or self._workspace.is_module(module):
            return None
        return Symbol(qualname=submodule, module=module, kind="external")

    def _member(self, base: Value, attr: str) -> Value | None:
        if isinstance(base, Symbol):
            if base.kind == "module":
                return self.module_member(base.qualname, attr)
            if base.kind in ("function", "method"):
                return None
            info = self._workspace.class_info(base)
            if info is not None:
                return self._class_member(info, attr, on_instance=False)
            return base.member(attr)

        info = self._workspace.class_info(base)
        if info is not None:
            return self._class_member(info, attr, on_instance=not base.is_class)
        return Symbol(qualname=f"{base.qualname}.{attr}", module=base.module, kind="external")

    def _class_member(self, info: ClassInfo, attr: str, on_instance: bool) -> Value | None:
        for klass in self._mro(info):
            if not isinstance(klass, ClassInfo):
                return klass.member(attr)
            found = klass.scope.bindings.get(attr)
            if found:
                binding = found[-1]
                if on_instance and self._is_property(binding):
                    node = binding.node
                    assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
                    if node.returns is None:
                        return None
                    return self.annotation_type(node.returns, binding.scope)
                value = self.binding_value(binding)
                if value is not None or not on_instance:
                    return value
            if on_instance and attr in klass.attributes:
                # First assignment with a resolvable type wins.
                for binding in klass.attributes[attr]:
                    value = self.binding_value(binding)
                    if value is not None:
                        return value
                return None
            if found:
                return None
        return None

    @staticmethod
    def _is_property(binding: Binding) -> bool:
        node = binding.node
        if binding.kind != "function" or not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return False
        for deco in node.decorator_list:
            name = deco.attr if isinstance(deco, ast.Attribute) else getattr(deco, "id", None)
            if name in PROPERTY_DECORATORS:
                return True
        return False

    def _mro(self, info: ClassInfo) -> list[ClassInfo | Symbol]:
        """Depth-first, left-to-right base order; external bases end a branch."""
        order: list[ClassInfo | Symbol] = []
        seen: set[int] = set()

        def walk(klass: ClassInfo) -> None:
            if id(klass) in seen:
                return
            seen.add(id(klass))
            order.append(klass)
            for base_expr in klass.node.bases:
                base = self.evaluate(base_expr)
                if isinstance(base, TypeDescriptor):
                    base = Symbol(qualname=base.qualname, module=base.module, kind="external")
                if base is None or not base.looks_like_class():
                    continue
                base_info = self._workspace.class_info(base)
                if base_info is not None:
                    walk(base_info)
                elif base.module != "builtins":
                    order.append(base)

        walk(info)
        return order

    # --- Annotations ---

    def annotation_type(self, expr: ast.expr, scope: Scope) -> TypeDescriptor | None:
        if isinstance(expr, ast.Constant) and isinstance(expr.value, str):
            try:
                parsed = ast.parse(expr.value.strip(), mode="eval").body
            except SyntaxError:
                return None
            return self.annotation_type(parsed, scope)

        if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
            return self._union(self._flatten_union(expr), scope)

        if isinstance(expr, ast.Subscript):
            return self._subscripted(expr, scope)

        if isinstance(expr, (ast.Name, ast.Attribute)):
            reference = self._reference(expr, scope)
            if isinstance(reference, TypeDescriptor):
                return reference.as_instance() if reference.is_class else None
            if reference is not None and reference.looks_like_class():
                return self._canonical(reference.as_type())
        return None

    def _reference(self, expr: ast.expr, scope: Scope) -> Value | None:
        """Evaluates a dotted name inside an annotation (no position, last binding)."""
        if isinstance(expr, ast.Name):
            return self._name_value(expr.id, scope, None)
        if isinstance(expr, ast.Attribute):
            base = self._reference(expr.value, scope)
            return self._member(base, expr.attr) if base is not None else None
        return None

    def _subscripted(self, expr: ast.Subscript, scope: Scope) -> TypeDescriptor | None:
        origin = self._reference(expr.value, scope)
        if origin is None:
            return None
        form = origin.qualname
        elts = list(expr.slice.elts) if isinstance(expr.slice, ast.Tuple) else [expr.slice]

        if form in OPTIONAL_FORMS:
            inner = self.annotation_type(elts[0], scope)
            return replace(inner, optional=True) if inner is not None else None
        if form in UNION_FORMS:
            return self._union(elts, scope)
        if form in CLASS_FORMS:
            inner = self.annotation_type(elts[0], scope)
            return inner.as_class() if inner is not None else None
        if form in WRAPPER_FORMS:
            return self.annotation_type(elts[0], scope)
        if form in LITERAL_FORMS:
            return None

        if isinstance(origin, TypeDescriptor):
            base = origin.as_instance()
        elif origin.looks_like_class():
            base = self._canonical(origin.as_type())
        else:
            return None
        args = [self.annotation_type(e, scope) for e in elts if not self._is_none(e)]
        if any(a is None for a in args):
            return base
        return replace(base, args=tuple(args))  # type: ignore[arg-type]

    def _union(self, members: list[ast.expr], scope: Scope) -> TypeDescriptor | None:
        rest = [m for m in members if not self._is_none(m)]
        if len(rest) != 1:
            return None
        inner = self.annotation_type(rest[0], scope)
        if inner is None:
            return None
        return replace(inner, optional=True) if len(rest) < len(members) else inner

    def _flatten_union(self, expr: ast.expr) -> list[ast.expr]:
        if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
            return self._flatten_union(expr.left) + self._flatten_union(expr.right)
        return [expr]

    @staticmethod
    def _is_none(expr: ast.expr) -> bool:
        return isinstance(expr, ast.Constant) and expr.value is None

    @staticmethod
    def _canonical(descriptor: TypeDescriptor) -> TypeDescriptor:
        alias = CANONICAL_ALIASES.get(descriptor.qualname)
        if alias is None:
            return descriptor
        return replace(descriptor, qualname=alias, module="builtins")

    # --- Conversions ---

    def _to_type(self, value: Value | None) -> TypeDescriptor | None:
        if value is None or isinstance(value, TypeDescriptor):
            return value
        if value.looks_like_class():
            return self._canonical(value.as_type()).as_class()
        return None

    @staticmethod
    def _builtin(name: str) -> Symbol | None:
        if not hasattr(builtins, name):
            return None
        kind = "class" if isinstance(getattr(builtins, name), type) else "function"
        return Symbol(qualname=f"builtins.{name}", module="builtins", kind=kind)  # type: ignore[arg-type]

    @staticmethod
    def _builtin_type(name: str) -> TypeDescriptor:
        return TypeDescriptor(qualname=f"builtins.{name}", module="builtins")
