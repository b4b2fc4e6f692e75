#!/usr/bin/env python3

import fnmatch
import os
from pathlib import Path
from typing import Any

import pathspec

from clientscan.shared.repo.repo_config import RepoConfig


class RepoService:
    """
    Source discovery service.
    Handles directory walking, exclusion matching and source reading.
    """

    def __init__(self, *, app_config: dict[str, Any] | None = None) -> None:
        self._config = app_config or {}
        self._ext_filter = RepoConfig.INCLUDE_EXTS
        self._dir_skip = RepoConfig.SKIP_DIRS
        self._max_bytes = RepoConfig.MAX_FILE_BYTES
        self._include_tests = bool(self._config.get("include_tests"))
        self._exclude_spec = self._build_exclude_spec(self._config.get("exclude"))

    @staticmethod
    def _build_exclude_spec(patterns: list[str] | None) -> pathspec.PathSpec | None:
        if not patterns:
            return None
        try:
            return pathspec.PathSpec.from_lines("gitwildmatch", patterns)
        except Exception as e:
            raise ValueError(f"Invalid exclude patterns: {e}")

    def should_skip_dir(self, dirname: str) -> bool:
        if not self._include_tests and dirname in RepoConfig.TEST_DIRS:
            return True
        return (dirname in self._dir_skip) or (dirname.endswith(".egg-info"))

    def should_include_file(self, path: Path) -> bool:
        if path.suffix.lower() not in self._ext_filter:
            return False
        if not self._include_tests:
            return not any(fnmatch.fnmatch(path.name, g) for g in RepoConfig.TEST_FILE_GLOBS)
        return True

    def scan_directory(self, root: Path) -> tuple[list[Path], int]:
        """Returns (source files under root, number excluded by patterns)."""
        valid_files: list[Path] = []
        excluded = 0
        try:
            for dirpath, dirnames, filenames in os.walk(root):
                # Filter directories in-place
                dirnames[:] = [d for d in dirnames if not self.should_skip_dir(d)]
                for f in filenames:
                    p = Path(dirpath) / f
                    if p.is_symlink() or not self.should_include_file(p):
                        continue
                    rel = p.relative_to(root).as_posix()
                    if self._exclude_spec and self._exclude_spec.match_file(rel):
                        excluded += 1
                        continue
                    valid_files.append(p)
        except PermissionError:
            pass
        # A stub shadows the module it describes.
        stems = {p.with_suffix("") for p in valid_files if p.suffix == ".pyi"}
        valid_files = [p for p in valid_files if p.suffix == ".pyi" or p.with_suffix("") not in stems]
        return sorted(valid_files, key=lambda p: str(p.relative_to(root)).lower()), excluded

    def read_source(self, path: Path) -> str:
        """Reads file content and normalizes line endings. Raises on unreadable files."""
        size = path.stat().st_size
        if size > self._max_bytes:
            raise ValueError(f"file too large ({size} bytes)")

        data = path.read_bytes()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            text = data.decode("latin-1")

        # Windows CR fix
        return text.replace("\r\n", "\n").replace("\r", "\n")

    @staticmethod
    def normalize_relpath(root: Path, file_path: Path) -> str:
        """Return POSIX-style relative path (forward slashes)."""
        return file_path.relative_to(root).as_posix()

    @staticmethod
    def module_name(relpath: str) -> tuple[str, bool]:
        """Dotted module name for a relative source path, and whether it is a package."""
        parts = relpath.split("/")
        if len(parts) > 1 and parts[0] == "src":
            parts = parts[1:]
        stem = parts[-1].rsplit(".", 1)[0]
        if stem == "__init__":
            return ".".join(parts[:-1]), True
        return ".".join([*parts[:-1], stem]), False
