"""Helper utilities for constructing temporary source trees in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import List, Mapping

from layerfix.source_repository import SourceRepository


class SourceTreeBuilder:
    """Utility for writing files into a throwaway project and listing its sources."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "project"
        self.root.mkdir()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the project."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def discover(self) -> List[str]:
        """Return the project's candidate source files as sorted relative paths."""
        repository = SourceRepository(self.root)
        return [repository.relative(path) for path in repository.discover()]

    def path(self) -> Path:
        """Return the project root path."""
        return self.root


__all__ = ["SourceTreeBuilder"]
