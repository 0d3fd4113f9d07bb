"""Workspace file enumeration."""

from __future__ import annotations

import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable

from juno.models import SourceFile

LOGGER = logging.getLogger(__name__)

LANGUAGE_IDS = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".json": "json",
    ".md": "markdown",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".sh": "shellscript",
    ".sql": "sql",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".xml": "xml",
}


def language_id(path: Path) -> str:
    return LANGUAGE_IDS.get(path.suffix.lower(), "plaintext")


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Glob match where a leading ``**/`` also matches the workspace root."""

    candidates = (relative_path, f"./{relative_path}")
    return any(fnmatch(candidate, pattern) for pattern in patterns for candidate in candidates)


def collect_source_files(root: Path, include: list[str], exclude: list[str]) -> list[SourceFile]:
    """Return readable text files under ``root`` selected by the glob lists.

    Paths are reported relative to ``root`` using forward slashes. Files that
    are not valid UTF-8 text are skipped.
    """

    files: list[SourceFile] = []
    for directory, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(directory) / filename
            relative = path.relative_to(root).as_posix()
            if not matches_any(relative, include) or matches_any(relative, exclude):
                continue
            source = read_source_file(path, relative)
            if source is not None:
                files.append(source)
    LOGGER.info("gathered %d documents under %s", len(files), root)
    return files


def read_source_file(path: Path, display_path: str | None = None) -> SourceFile | None:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        LOGGER.debug("skipping non-text file %s", path)
        return None
    except OSError as exc:
        LOGGER.warning("failed to read %s: %s", path, exc)
        return None
    if "\x00" in text:
        LOGGER.debug("skipping binary file %s", path)
        return None
    return SourceFile(path=display_path or path.as_posix(), text=text, language_id=language_id(path))
