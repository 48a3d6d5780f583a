"""
Filesystem abstraction for llm-panel.

The file writer only talks to a FileSystem, so tests can inject failures
(permission denied, disk full) without touching real directories. Methods
are blocking; async callers run them with asyncio.to_thread.

Example:
    >>> fs = LocalFileSystem()
    >>> fs.mkdir("./answers/run-20250314-092653", recursive=True)
    >>> fs.write_file("./answers/run-20250314-092653/openai-gpt-4o.md", "# openai:gpt-4o\\n")
    >>> fs.readdir("./answers/run-20250314-092653")
    ['openai-gpt-4o.md']
"""

import logging
import os
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class FileSystem(Protocol):
    """
    Minimal filesystem interface.

    Implementations raise OSError (with errno set) on failure; the error
    classifier turns those into FileSystemError or PermissionDeniedError.
    """

    def mkdir(self, path: str, recursive: bool = True) -> None: ...

    def write_file(self, path: str, content: str) -> None: ...

    def read_file(self, path: str) -> str: ...

    def exists(self, path: str) -> bool: ...

    def stat(self, path: str) -> os.stat_result: ...

    def readdir(self, path: str) -> list[str]: ...


class LocalFileSystem:
    """FileSystem backed by the local disk. All text is UTF-8."""

    def mkdir(self, path: str, recursive: bool = True) -> None:
        Path(path).mkdir(parents=recursive, exist_ok=True)
        logger.debug(f"Ensured directory: {path}")

    def write_file(self, path: str, content: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        logger.debug(f"Wrote file: {path}")

    def read_file(self, path: str) -> str:
        with open(path, encoding="utf-8") as f:
            return f.read()

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def readdir(self, path: str) -> list[str]:
        return sorted(os.listdir(path))
