"""Load rule documents and scan settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from importlib import resources
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError
from .rules import RuleRegistry
from .utils import read_yaml_file

logger = logging.getLogger(__name__)

DEFAULT_RULES_RESOURCE = "play_store.yaml"
DEFAULT_EXCLUDE_DIRS = (".git", ".gradle", ".idea", "build", "node_modules")
SETTINGS_KEYS = frozenset(
    {"exclude_dirs", "max_file_size_bytes", "workers", "file_timeout_seconds", "expected_paths"}
)


@dataclass(frozen=True)
class ScanSettings:
    exclude_dirs: Tuple[str, ...] = DEFAULT_EXCLUDE_DIRS
    max_file_size_bytes: int = 5_000_000
    workers: int = 4
    file_timeout_seconds: float = 30.0
    expected_paths: Tuple[str, ...] = ()

    def with_overrides(self, **overrides: Any) -> "ScanSettings":
        """Return a copy with every non-``None`` override applied."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        settings = replace(self, **changes)
        _validate_settings(settings)
        return settings


@dataclass(frozen=True)
class AuditConfig:
    registry: RuleRegistry
    settings: ScanSettings
    source: str


def load_config(path: Optional[str | Path] = None) -> AuditConfig:
    """Load a rules document from ``path``, or the bundled rule set when omitted."""

    if path is None:
        source = f"{__package__}.rules/{DEFAULT_RULES_RESOURCE}"
        text = resources.files("guardscan.rules").joinpath(DEFAULT_RULES_RESOURCE).read_text(encoding="utf-8")
        document = yaml.safe_load(text)
    else:
        source = str(path)
        document = read_yaml_file(Path(path))

    registry = RuleRegistry.load(document)
    settings = parse_settings(document.get("settings"))
    logger.debug("Loaded %d rules from %s", len(registry), source)
    return AuditConfig(registry=registry, settings=settings, source=source)


def parse_settings(raw: Optional[Mapping[str, Any]]) -> ScanSettings:
    if raw is None:
        return ScanSettings()
    if not isinstance(raw, Mapping):
        raise ConfigError("'settings' must be a mapping")
    unknown = sorted(set(raw) - SETTINGS_KEYS)
    if unknown:
        raise ConfigError(f"Unknown settings keys: {', '.join(unknown)}")

    defaults = ScanSettings()
    try:
        settings = ScanSettings(
            exclude_dirs=_string_tuple(raw.get("exclude_dirs", defaults.exclude_dirs), "exclude_dirs"),
            max_file_size_bytes=int(raw.get("max_file_size_bytes", defaults.max_file_size_bytes)),
            workers=int(raw.get("workers", defaults.workers)),
            file_timeout_seconds=float(raw.get("file_timeout_seconds", defaults.file_timeout_seconds)),
            expected_paths=_string_tuple(raw.get("expected_paths", ()), "expected_paths"),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
    _validate_settings(settings)
    return settings


def _validate_settings(settings: ScanSettings) -> None:
    if settings.workers < 1:
        raise ConfigError("workers must be at least 1")
    if settings.max_file_size_bytes < 1:
        raise ConfigError("max_file_size_bytes must be positive")
    if settings.file_timeout_seconds <= 0:
        raise ConfigError("file_timeout_seconds must be positive")


def _string_tuple(value: Any, field: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{field}' must be a list of strings")
    return tuple(value)
