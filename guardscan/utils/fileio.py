"""Basic file IO helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import yaml

from ..errors import ConfigError, FileReadError


def read_yaml_file(path: Path) -> Any:
    """Return the parsed YAML document, raising ``ConfigError`` if unusable."""

    if not path.exists():
        raise ConfigError(f"Rules file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Rules file {path} is not valid YAML: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Rules file {path} could not be read: {exc}") from exc


def iter_text_lines(path: Path, label: str | None = None) -> Iterator[str]:
    """Yield the lines of a UTF-8 text file without their terminators.

    The file is streamed in binary mode so that binary content is detected on
    the first offending line instead of after reading the whole file. A NUL
    byte or an undecodable line raises ``FileReadError``.
    """

    name = label or str(path)
    try:
        with path.open("rb") as handle:
            for raw in handle:
                if b"\x00" in raw:
                    raise FileReadError(name, "binary content")
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError:
                    raise FileReadError(name, "not valid UTF-8 text") from None
                yield text.rstrip("\r\n")
    except OSError as exc:
        raise FileReadError(name, exc.strerror or str(exc)) from exc
