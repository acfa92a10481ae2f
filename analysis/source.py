"""
Size-bounded access to Solidity source files.
"""

from pathlib import Path
from typing import Any

from .errors import FileNotFound, FileTooLarge, NotASourceFile

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

SKIP_DIRS = {"node_modules", "lib", "out", "cache", "artifacts"}


def exists(path: str | Path) -> bool:
    return Path(path).exists()


def read_source(path: str | Path, max_size: int = DEFAULT_MAX_FILE_SIZE) -> str:
    """Read a `.sol` file.

    Raises:
        FileNotFound: path does not exist or is not a regular file
        NotASourceFile: extension is not `.sol`
        FileTooLarge: file exceeds max_size bytes
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFound(str(path))
    if p.suffix.lower() != ".sol":
        raise NotASourceFile(str(path))

    size = p.stat().st_size
    if size > max_size:
        raise FileTooLarge(str(path), size, max_size)

    return p.read_text(encoding="utf-8", errors="replace")


def file_info(path: str | Path, content: str) -> dict[str, Any]:
    """File metadata for the report header."""
    p = Path(path)
    return {
        "path": str(path),
        "name": p.name,
        "size": p.stat().st_size,
        "lines": len(content.split("\n")),
    }


def find_solidity_files(directory: str | Path, recursive: bool = True) -> list[Path]:
    """List `.sol` files under a directory, skipping hidden and dependency dirs."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFound(str(directory))

    results: list[Path] = []

    def _scan(d: Path) -> None:
        for entry in sorted(d.iterdir()):
            if entry.name.startswith(".") or entry.name in SKIP_DIRS:
                continue
            if entry.is_dir():
                if recursive:
                    _scan(entry)
            elif entry.is_file() and entry.suffix == ".sol":
                results.append(entry)

    _scan(root)
    return results
