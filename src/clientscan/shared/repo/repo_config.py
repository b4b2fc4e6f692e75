#!/usr/bin/env python3


class RepoConfig:
    """Configuration singleton for source discovery."""

    INCLUDE_EXTS: set[str] = {".py", ".pyi"}

    SKIP_DIRS: set[str] = {
        ".git",
        ".hg",
        ".svn",
        ".idea",
        ".vscode",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".tox",
        ".nox",
        ".venv",
        "venv",
        "env",
        "__pycache__",
        "site-packages",
        "dist",
        "build",
        ".eggs",
        ".cache",
        "node_modules",
        "vendor",
        "_vendor",
    }

    TEST_DIRS: set[str] = {"tests", "test", "testing"}

    TEST_FILE_GLOBS: list[str] = ["test_*.py", "*_test.py", "conftest.py"]

    MAX_FILE_BYTES: int = 2_000_000
