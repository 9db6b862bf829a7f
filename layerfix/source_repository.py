"""Source file discovery, reads, writes and backups for a project tree."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .config import DEFAULT_EXCLUDE, DEFAULT_INCLUDE, LayerfixConfig
from .logging import get_logger

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".layerfix",
    "node_modules",
    "__pycache__",
}

logger = get_logger("source_repository")


@dataclass
class PathRule:
    """A gitignore-style glob; a trailing slash restricts it to directories."""

    pattern: str
    directory_only: bool
    has_slash: bool

    @classmethod
    def parse(cls, raw: str) -> Optional["PathRule"]:
        pattern = raw.strip()
        if not pattern:
            return None
        directory_only = pattern.endswith("/")
        pattern = pattern.rstrip("/").lstrip("/")
        if not pattern:
            return None
        return cls(pattern=pattern, directory_only=directory_only, has_slash="/" in pattern)

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if self.directory_only and not is_dir:
            return False
        if self.has_slash:
            return _glob_match(rel_path, self.pattern)
        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def _glob_match(rel_path: str, pattern: str) -> bool:
    if fnmatchcase(rel_path, pattern):
        return True
    # "**/" also matches files at the root.
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        if fnmatchcase(rel_path, pattern):
            return True
    return False


class SourceRepository:
    """File-system collaborator used by the orchestrator.

    Paths may be given relative to ``root`` or absolute. ``backup`` keeps a
    timestamped copy of a file under ``backup_dir`` before it is overwritten.
    """

    def __init__(
        self,
        root: Path | str,
        include: Sequence[str] = DEFAULT_INCLUDE,
        exclude: Sequence[str] = DEFAULT_EXCLUDE,
        backup_dir: Path | str | None = None,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.include = list(include)
        self.exclude_rules: List[PathRule] = [rule for rule in map(PathRule.parse, exclude) if rule is not None]
        if backup_dir is None:
            self.backup_dir: Optional[Path] = None
        else:
            backup_path = Path(backup_dir)
            self.backup_dir = backup_path if backup_path.is_absolute() else self.root / backup_path

    @classmethod
    def from_config(cls, config: LayerfixConfig) -> "SourceRepository":
        return cls(
            config.root,
            include=config.files.include,
            exclude=config.files.exclude,
            backup_dir=config.backup_dir,
        )

    def resolve(self, path: Path | str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return candidate.resolve()

    def relative(self, path: Path | str) -> str:
        resolved = self.resolve(path)
        try:
            return resolved.relative_to(self.root).as_posix()
        except ValueError:
            return resolved.as_posix()

    def read(self, path: Path | str) -> str:
        return self.resolve(path).read_text(encoding="utf-8")

    def write(self, path: Path | str, content: str) -> Path:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.debug("Wrote %s", target)
        return target

    def backup(self, path: Path | str) -> Optional[Path]:
        """Copy ``path`` into the backup directory; None when backups are disabled."""
        if self.backup_dir is None:
            return None
        source = self.resolve(path)
        if not source.exists():
            return None
        relative = Path(self.relative(source).lstrip("/"))
        timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S%f")
        destination = self.backup_dir / relative.parent / f"{relative.name}.{timestamp}.bak"
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
        logger.debug("Backed up %s to %s", source, destination)
        return destination

    def is_candidate(self, path: Path | str) -> bool:
        rel_path = self.relative(path)
        parts = rel_path.split("/")
        for index in range(1, len(parts)):
            if self._excluded("/".join(parts[:index]), True):
                return False
        if self._excluded(rel_path, False):
            return False
        return any(_glob_match(rel_path, pattern) for pattern in self.include)

    def discover(self, start: Path | str | None = None) -> List[Path]:
        """Return candidate source files under ``start`` (default: root), sorted.

        An explicitly named file is always returned, whatever the filters say.
        """
        base = self.resolve(start) if start is not None else self.root
        if base.is_file():
            return [base]
        if not base.exists():
            raise FileNotFoundError(f"Path not found: {base}")
        return sorted(path for path in self._iter_files(base) if self.is_candidate(path))

    def _excluded(self, rel_path: str, is_dir: bool) -> bool:
        return any(rule.matches(rel_path, is_dir) for rule in self.exclude_rules)

    def _iter_files(self, base: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(base):
            current_dir = Path(dirpath)
            kept = []
            for name in dirnames:
                if name in _EXCLUDED_DIRS:
                    continue
                if self._excluded(self.relative(current_dir / name), True):
                    continue
                kept.append(name)
            dirnames[:] = kept
            for filename in filenames:
                yield current_dir / filename


__all__ = ["PathRule", "SourceRepository"]
