"""Source tree helper utilities."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Collection, Generator


def iter_source_files(root: Path, exclude_dirs: Collection[str] = ()) -> Generator[Path, None, None]:
    """Yield regular files beneath ``root`` in a stable order.

    Directories named in ``exclude_dirs`` are pruned and never descended into.
    Each directory's files come before its subdirectories, both sorted by name.
    """

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in exclude_dirs)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_file():
                yield path


def relative_posix(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` with forward slashes."""

    return path.relative_to(root).as_posix()
