"""
Source loading: turns a workspace root into compilation units that expose
their syntax tree together with static symbol/type resolution.

Nothing is imported or executed; everything is derived from ``ast``.
"""

from __future__ import annotations

import ast
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clientscan.shared.console import ConsoleManager
from clientscan.shared.repo.repo_service import RepoService

from .binder import ClassInfo, Scope, ScopeBinder
from .resolver import TypeResolver
from .types import Symbol, TypeDescriptor


class WorkspaceLoadError(Exception):
    """The workspace as a whole cannot be loaded."""


@dataclass(slots=True, frozen=True)
class UnitFailure:
    """A source file that could not be loaded or analyzed."""

    path: str
    reason: str


class CompilationUnit:
    """One parsed source file with its resolved scopes."""

    def __init__(
        self,
        *,
        relpath: str,
        module: str,
        tree: ast.Module,
        binder: ScopeBinder,
    ) -> None:
        self.relpath = relpath
        self.module = module
        self.tree = tree
        self.scope: Scope = binder.module_scope
        self.classes: list[ClassInfo] = binder.classes
        self._scope_of = binder.scope_of
        self._workspace: Workspace | None = None

    def __repr__(self) -> str:
        return f"CompilationUnit({self.module!r}, {self.relpath!r})"

    @property
    def workspace(self) -> Workspace:
        if self._workspace is None:
            raise RuntimeError(f"{self.relpath} is not attached to a workspace")
        return self._workspace

    def resolve_type(self, expr: ast.expr) -> TypeDescriptor | None:
        """Static type of ``expr``, or None when it cannot be determined."""
        return self.workspace.resolver.resolve_type(expr)

    def resolve_symbol(self, expr: ast.expr) -> Symbol | None:
        """Declaring symbol of ``expr`` (a module, class, function or external name)."""
        return self.workspace.resolver.resolve_symbol(expr)


class Workspace:
    """All compilation units of one load, indexed for cross-module resolution."""

    def __init__(
        self,
        *,
        root: Path,
        units: list[CompilationUnit],
        failures: list[UnitFailure],
        files_scanned: int,
        files_excluded: int,
    ) -> None:
        self.root = root
        self.units = units
        self.failures = failures
        self.files_scanned = files_scanned
        self.files_excluded = files_excluded

        self._by_module: dict[str, CompilationUnit] = {}
        self._modules: set[str] = set()
        self._classes_by_node: dict[int, ClassInfo] = {}
        self._classes_by_qualname: dict[str, ClassInfo] = {}
        self._scope_of: dict[int, Scope] = {}
        for unit in units:
            unit._workspace = self
            self._scope_of.update(unit._scope_of)
            self._by_module[unit.module] = unit
            parts = unit.module.split(".")
            self._modules.update(".".join(parts[:i]) for i in range(1, len(parts) + 1))
            for info in unit.classes:
                self._classes_by_node[id(info.node)] = info
                self._classes_by_qualname.setdefault(info.qualname, info)

        self.resolver = TypeResolver(self)

    def unit(self, module: str) -> CompilationUnit | None:
        return self._by_module.get(module)

    def is_module(self, name: str) -> bool:
        return name in self._modules

    def scope_of(self, node: ast.AST) -> Scope | None:
        return self._scope_of.get(id(node))

    def class_info(self, value: Symbol | TypeDescriptor) -> ClassInfo | None:
        if isinstance(value, Symbol):
            if value.node is not None:
                return self._classes_by_node.get(id(value.node))
            if value.kind != "class":
                return None
        return self._classes_by_qualname.get(value.qualname)


class SourceLoader:
    """
    Discovers Python sources under a root and parses them into a Workspace.
    Files are parsed concurrently; a file that fails is reported, not fatal.
    """

    def __init__(
        self,
        *,
        root: Path,
        logger: ConsoleManager,
        app_config: dict[str, Any] | None = None,
    ) -> None:
        self._root = root
        self._logger = logger
        self._config = app_config or {}
        self._repo = RepoService(app_config=self._config)
        self._concurrency = max(1, int(self._config.get("concurrency") or 1))

    def load(self) -> Workspace:
        root = self._root
        if not root.exists():
            raise WorkspaceLoadError(f"Workspace root not found: {root}")
        if not root.is_dir():
            raise WorkspaceLoadError(f"Workspace root is not a directory: {root}")
        root = root.resolve()

        files, excluded = self._repo.scan_directory(root)
        self._logger.debug(f"Found {len(files)} source file(s) under {root}.")

        units: list[CompilationUnit] = []
        failures: list[UnitFailure] = []

        with ThreadPoolExecutor(max_workers=self._concurrency) as executor:
            futures = {executor.submit(self.parse_file, root, path): path for path in files}

            for future in as_completed(futures):
                path = futures[future]
                relpath = RepoService.normalize_relpath(root, path)
                try:
                    units.append(future.result())
                except (SyntaxError, ValueError, OSError, RecursionError) as e:
                    failures.append(UnitFailure(path=relpath, reason=self._describe(e)))
                    self._logger.warning(f"Skipping {relpath}: {self._describe(e)}")

        units.sort(key=lambda u: u.relpath)
        failures.sort(key=lambda f: f.path)
        return Workspace(
            root=root,
            units=units,
            failures=failures,
            files_scanned=len(files),
            files_excluded=excluded,
        )

    def parse_file(self, root: Path, path: Path) -> CompilationUnit:
        """Parses and binds one file. Raises on unreadable or invalid source."""
        relpath = RepoService.normalize_relpath(root, path)
        module, is_package = RepoService.module_name(relpath)
        if not module:
            module = root.name

        source = self._repo.read_source(path)
        tree = ast.parse(source, filename=relpath)
        binder = ScopeBinder(module, is_package)
        binder.bind_module(tree)
        return CompilationUnit(
            relpath=relpath,
            module=module,
            tree=tree,
            binder=binder,
        )

    @staticmethod
    def _describe(error: Exception) -> str:
        if isinstance(error, SyntaxError):
            return f"Parse Error: {error.msg} (line {error.lineno})"
        return f"{type(error).__name__}: {error}"
