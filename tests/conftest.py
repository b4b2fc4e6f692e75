"""Shared fixtures: throwaway workspaces on disk and a quiet console."""

import ast
import logging
import textwrap
from pathlib import Path

import pytest

from clientscan.shared.console import ConsoleManager
from clientscan.source.loader import CompilationUnit, SourceLoader, Workspace


@pytest.fixture
def console():
    return ConsoleManager(level=logging.DEBUG, no_color=True)


@pytest.fixture
def write_tree(tmp_path):
    """Writes {relative path: source} under a fresh directory and returns it."""

    def _write(files: dict[str, str]) -> Path:
        root = tmp_path / "workspace"
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        root.mkdir(exist_ok=True)
        return root

    return _write


@pytest.fixture
def load_workspace(write_tree, console):
    def _load(files: dict[str, str], **config) -> Workspace:
        root = write_tree(files)
        return SourceLoader(root=root, logger=console, app_config=config).load()

    return _load


def unit_for(workspace: Workspace, relpath: str) -> CompilationUnit:
    for unit in workspace.units:
        if unit.relpath == relpath:
            return unit
    raise AssertionError(f"no unit {relpath}; have {[u.relpath for u in workspace.units]}")


def calls_named(unit: CompilationUnit, name: str) -> list[ast.Call]:
    """Calls to ``name(...)`` or ``x.name(...)`` in source order."""
    found = []
    for node in ast.walk(unit.tree):
        if not isinstance(node, ast.Call):
            continue
        func = node.func
        if (isinstance(func, ast.Name) and func.id == name) or (
            isinstance(func, ast.Attribute) and func.attr == name
        ):
            found.append(node)
    return sorted(found, key=lambda c: (c.lineno, c.col_offset))
