"""Utility helpers for the scanner."""

from .fileio import iter_text_lines, read_yaml_file
from .code import iter_source_files, relative_posix

__all__ = [
    "iter_text_lines",
    "read_yaml_file",
    "iter_source_files",
    "relative_posix",
]
