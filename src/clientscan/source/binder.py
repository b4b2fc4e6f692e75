from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Literal

ScopeKind = Literal["module", "class", "function", "lambda", "comprehension"]

BindingKind = Literal[
    "import",
    "import_from",
    "class",
    "function",
    "param",
    "self",
    "cls",
    "annotation",
    "assign",
    "iteration",
    "context",
    "exception",
    "unknown",
]

Position = tuple[int, int]

# Always precedes any use in its scope (parameters, comprehension targets).
SCOPE_START: Position = (0, 0)


@dataclass(slots=True, eq=False)
class Binding:
    """One place where a name is bound, with what is needed to type it later."""

    name: str
    kind: BindingKind
    scope: Scope  # scope in which annotation/value are evaluated
    position: Position
    node: ast.AST | None = None
    annotation: ast.expr | None = None
    value: ast.expr | None = None
    target: str | None = None  # import: module path; import_from: source module
    qualname: str | None = None
    owner: ClassInfo | None = None
    variadic: Literal["args", "kwargs"] | None = None


@dataclass(slots=True, eq=False)
class Scope:
    kind: ScopeKind
    module: str
    qualname: str
    parent: Scope | None = None
    bindings: dict[str, list[Binding]] = field(default_factory=dict)
    globals: set[str] = field(default_factory=set)
    nonlocals: set[str] = field(default_factory=set)
    star_imports: list[str] = field(default_factory=list)

    def bind(self, binding: Binding) -> None:
        self.bindings.setdefault(binding.name, []).append(binding)

    @property
    def root(self) -> Scope:
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope


@dataclass(slots=True, eq=False)
class ClassInfo:
    """A class declared in the workspace and its member tables."""

    qualname: str
    module: str
    node: ast.ClassDef
    scope: Scope  # class body
    attributes: dict[str, list[Binding]] = field(default_factory=dict)  # self.<attr>


def _end(node: ast.AST) -> Position:
    return (
        getattr(node, "end_lineno", None) or node.lineno,
        getattr(node, "end_col_offset", None) or node.col_offset,
    )


def _start(node: ast.AST) -> Position:
    return (node.lineno, node.col_offset)


def _decorator_names(node: ast.FunctionDef | ast.AsyncFunctionDef) -> set[str]:
    names: set[str] = set()
    for deco in node.decorator_list:
        target = deco.func if isinstance(deco, ast.Call) else deco
        if isinstance(target, ast.Name):
            names.add(target.id)
        elif isinstance(target, ast.Attribute):
            names.add(target.attr)
    return names


class ScopeBinder(ast.NodeVisitor):
    """
    Single pass over a module that builds its lexical scopes, records the scope
    of every node, and collects class member tables (including ``self.x``
    attributes assigned inside methods).
    """

    def __init__(self, module: str, is_package: bool) -> None:
        self.module = module
        self.is_package = is_package
        self.module_scope = Scope(kind="module", module=module, qualname=module)
        self.scope_of: dict[int, Scope] = {}
        self.classes: list[ClassInfo] = []

        self._scope = self.module_scope
        self._bound: set[int] = set()  # Name nodes already bound by a handler
        self._methods: list[tuple[str, ClassInfo]] = []  # (self name, owner)
        self._class_stack: list[ClassInfo] = []

    def bind_module(self, tree: ast.Module) -> Scope:
        self.visit(tree)
        return self.module_scope

    # --- Plumbing ---

    def visit(self, node: ast.AST) -> None:
        self.scope_of[id(node)] = self._scope
        super().visit(node)

    def _push(self, kind: ScopeKind, name: str) -> Scope:
        scope = Scope(
            kind=kind,
            module=self.module,
            qualname=f"{self._scope.qualname}.{name}",
            parent=self._scope,
        )
        self._scope = scope
        return scope

    def _pop(self) -> None:
        assert self._scope.parent is not None
        self._scope = self._scope.parent

    def _target_scope(self, name: str, leak: bool) -> Scope:
        scope = self._scope
        # Walrus targets inside comprehensions bind in the enclosing scope.
        while leak and scope.kind == "comprehension" and scope.parent is not None:
            scope = scope.parent
        if name in scope.globals:
            return scope.root
        if name in scope.nonlocals and scope.parent is not None:
            parent = scope.parent
            while parent.kind == "class" and parent.parent is not None:
                parent = parent.parent
            return parent
        return scope

    def _bind(
        self,
        name: str,
        kind: BindingKind,
        position: Position,
        *,
        leak: bool = False,
        scope: Scope | None = None,
        **kw,
    ) -> Binding:
        binding = Binding(name=name, kind=kind, scope=scope or self._scope, position=position, **kw)
        self._target_scope(name, leak).bind(binding)
        return binding

    def _absolute_module(self, level: int, module: str | None) -> str | None:
        if level == 0:
            return module
        package = self.module if self.is_package else self.module.rpartition(".")[0]
        for _ in range(level - 1):
            if not package:
                return None
            package = package.rpartition(".")[0]
        if module:
            return f"{package}.{module}" if package else module
        return package or None

    # --- Imports ---

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            if alias.asname:
                self._bind(alias.asname, "import", _start(node), node=alias, target=alias.name)
            else:
                root = alias.name.split(".")[0]
                self._bind(root, "import", _start(node), node=alias, target=root)
        self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        source = self._absolute_module(node.level or 0, node.module)
        for alias in node.names:
            if alias.name == "*":
                if source:
                    self._scope.star_imports.append(source)
                continue
            local = alias.asname or alias.name
            if source is None:
                self._bind(local, "unknown", _start(node), node=alias)
                continue
            self._bind(
                local,
                "import_from",
                _start(node),
                node=alias,
                target=source,
                qualname=alias.name,
            )
        self.generic_visit(node)

    # --- Definitions ---

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for expr in [*node.decorator_list, *node.bases, *(k.value for k in node.keywords)]:
            self.visit(expr)

        qualname = f"{self._scope.qualname}.{node.name}"
        scope = self._push("class", node.name)
        info = ClassInfo(qualname=qualname, module=self.module, node=node, scope=scope)
        self.classes.append(info)
        self._pop()

        self._bind(node.name, "class", _start(node), node=node, qualname=qualname, owner=info)

        self._scope = scope
        self._class_stack.append(info)
        for stmt in node.body:
            self.visit(stmt)
        self._class_stack.pop()
        self._pop()

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        owner = self._class_stack[-1] if self._scope.kind == "class" else None
        qualname = f"{self._scope.qualname}.{node.name}"
        self._bind(node.name, "function", _start(node), node=node, qualname=qualname, owner=owner)

        args = node.args
        for expr in [*node.decorator_list, *args.defaults, *(d for d in args.kw_defaults if d)]:
            self.visit(expr)
        for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs, args.vararg, args.kwarg]:
            if arg is not None and arg.annotation is not None:
                self.visit(arg.annotation)
        if node.returns is not None:
            self.visit(node.returns)
        outer = self._scope
        depth = len(self._methods)

        self._push("function", node.name)
        self._bind_parameters(node, outer, owner)
        for stmt in node.body:
            self.visit(stmt)
        del self._methods[depth:]
        self._pop()

    visit_AsyncFunctionDef = visit_FunctionDef

    def _bind_parameters(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        outer: Scope,
        owner: ClassInfo | None,
    ) -> None:
        args = node.args
        positional = [*args.posonlyargs, *args.args]
        defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
        defaults.extend(args.defaults)

        decorators = _decorator_names(node)
        first_is_receiver = owner is not None and "staticmethod" not in decorators and positional

        for index, (arg, default) in enumerate(zip(positional, defaults)):
            if index == 0 and first_is_receiver:
                assert owner is not None
                kind: BindingKind = "cls" if "classmethod" in decorators else "self"
                self._bind(arg.arg, kind, SCOPE_START, node=arg, owner=owner)
                if kind == "self":
                    self._methods.append((arg.arg, owner))
                continue
            self._bind(
                arg.arg, "param", SCOPE_START, node=arg, scope=outer,
                annotation=arg.annotation, value=default,
            )

        for arg, default in zip(args.kwonlyargs, args.kw_defaults):
            self._bind(
                arg.arg, "param", SCOPE_START, node=arg, scope=outer,
                annotation=arg.annotation, value=default,
            )

        for arg, variadic in ((args.vararg, "args"), (args.kwarg, "kwargs")):
            if arg is None:
                continue
            self._bind(
                arg.arg, "param", SCOPE_START, node=arg, scope=outer,
                annotation=arg.annotation, variadic=variadic,
            )

    def visit_Lambda(self, node: ast.Lambda) -> None:
        for expr in [*node.args.defaults, *(d for d in node.args.kw_defaults if d)]:
            self.visit(expr)
        self._push("lambda", "<lambda>")
        args = node.args
        for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs, args.vararg, args.kwarg]:
            if arg is not None:
                self._bind(arg.arg, "unknown", SCOPE_START, node=arg)
        self.visit(node.body)
        self._pop()

    def visit_Global(self, node: ast.Global) -> None:
        self._scope.globals.update(node.names)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._scope.nonlocals.update(node.names)

    # --- Assignments ---

    def visit_Assign(self, node: ast.Assign) -> None:
        self.visit(node.value)
        for target in node.targets:
            self._bind_target(target, node.value, _end(node))
            self.visit(target)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self.visit(node.annotation)
        if node.value is not None:
            self.visit(node.value)
        target = node.target
        if isinstance(target, ast.Name):
            self._bound.add(id(target))
            self._bind(
                target.id, "annotation", _end(node), node=node,
                annotation=node.annotation, value=node.value,
            )
        elif (owner := self._self_attribute_owner(target)) is not None:
            assert isinstance(target, ast.Attribute)
            owner.attributes.setdefault(target.attr, []).append(
                Binding(
                    name=target.attr, kind="annotation", scope=self._scope,
                    position=_end(node), node=node,
                    annotation=node.annotation, value=node.value,
                )
            )
        self.visit(target)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        self._bound.add(id(node.target))
        self._bind(node.target.id, "assign", _end(node), leak=True, node=node, value=node.value)
        self.visit(node.target)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self.visit(node.value)
        # Augmented assignment keeps the existing binding.
        if isinstance(node.target, ast.Name):
            self._bound.add(id(node.target))
        self.visit(node.target)

    def _bind_target(self, target: ast.expr, value: ast.expr | None, position: Position) -> None:
        if isinstance(target, ast.Name):
            self._bound.add(id(target))
            kind: BindingKind = "assign" if value is not None else "unknown"
            self._bind(target.id, kind, position, node=target, value=value)
        elif isinstance(target, (ast.Tuple, ast.List)):
            values: list[ast.expr | None] = [None] * len(target.elts)
            if (
                isinstance(value, (ast.Tuple, ast.List))
                and len(value.elts) == len(target.elts)
                and not any(isinstance(e, ast.Starred) for e in target.elts)
            ):
                values = list(value.elts)
            for elt, elt_value in zip(target.elts, values):
                self._bind_target(elt, elt_value, position)
        elif isinstance(target, ast.Starred):
            self._bind_target(target.value, None, position)
        elif (owner := self._self_attribute_owner(target)) is not None and value is not None:
            assert isinstance(target, ast.Attribute)
            owner.attributes.setdefault(target.attr, []).append(
                Binding(
                    name=target.attr, kind="assign", scope=self._scope,
                    position=position, node=target, value=value,
                )
            )

    def _self_attribute_owner(self, target: ast.expr) -> ClassInfo | None:
        if not self._methods:
            return None
        if isinstance(target, ast.Attribute) and isinstance(target.value, ast.Name):
            self_name, owner = self._methods[-1]
            if target.value.id == self_name:
                return owner
        return None

    # --- Loops, context managers, handlers ---

    def visit_For(self, node: ast.For | ast.AsyncFor) -> None:
        self.visit(node.iter)
        self._bind_iteration(node.target, node.iter, _start(node))
        self.visit(node.target)
        for stmt in [*node.body, *node.orelse]:
            self.visit(stmt)

    visit_AsyncFor = visit_For

    def _bind_iteration(self, target: ast.expr, iterable: ast.expr, position: Position) -> None:
        if isinstance(target, ast.Name):
            self._bound.add(id(target))
            self._bind(target.id, "iteration", position, node=target, value=iterable)
        else:
            self._bind_target(target, None, position)

    def visit_With(self, node: ast.With | ast.AsyncWith) -> None:
        for item in node.items:
            self.visit(item.context_expr)
            if item.optional_vars is None:
                continue
            if isinstance(item.optional_vars, ast.Name):
                self._bound.add(id(item.optional_vars))
                self._bind(
                    item.optional_vars.id, "context", _start(node),
                    node=item.optional_vars, value=item.context_expr,
                )
            else:
                self._bind_target(item.optional_vars, None, _start(node))
            self.visit(item.optional_vars)
        for stmt in node.body:
            self.visit(stmt)

    visit_AsyncWith = visit_With

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is not None:
            self.visit(node.type)
        if node.name:
            self._bind(node.name, "exception", _start(node), node=node, value=node.type)
        for stmt in node.body:
            self.visit(stmt)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.name:
            self._bind(node.name, "unknown", _start(node), node=node)
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self._bind(node.name, "unknown", _start(node), node=node)

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        if node.rest:
            self._bind(node.rest, "unknown", _start(node), node=node)
        self.generic_visit(node)

    # --- Comprehensions ---

    def _visit_comprehension(self, node: ast.AST, results: list[ast.expr]) -> None:
        generators: list[ast.comprehension] = node.generators  # type: ignore[attr-defined]
        self.visit(generators[0].iter)
        self._push("comprehension", "<comprehension>")
        for index, gen in enumerate(generators):
            self.scope_of[id(gen)] = self._scope
            if index:
                self.visit(gen.iter)
            self._bind_iteration(gen.target, gen.iter, SCOPE_START)
            self.visit(gen.target)
            for cond in gen.ifs:
                self.visit(cond)
        for expr in results:
            self.visit(expr)
        self._pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    visit_SetComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])

    # --- Leftover stores ---

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store) and id(node) not in self._bound:
            self._bind(node.id, "unknown", _start(node), node=node)
