"""Runtime settings for the extraction engine."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "data" / "extractor.yaml"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class ExtractorConfig:
    """Tunable parameters of the tokenizer, phrase matcher and worker."""

    max_phrase_length: int = 6
    single_token_threshold: float = 0.15
    multi_token_threshold: float = 0.25
    batch_size: int = 50
    min_token_length: int = 3
    min_single_query_length: int = 4
    code_weight: float = 0.9
    prefer_longest: bool = True
    max_text_length: int = 50_000
    search_limit: int = 20
    search_threshold: float = 0.4
    terminology_path: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_phrase_length < 1:
            raise ValueError(f"max_phrase_length must be >= 1, received {self.max_phrase_length}.")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, received {self.batch_size}.")
        if self.min_token_length < 1:
            raise ValueError(f"min_token_length must be >= 1, received {self.min_token_length}.")
        if self.max_text_length < 1:
            raise ValueError(f"max_text_length must be >= 1, received {self.max_text_length}.")
        if self.search_limit < 1:
            raise ValueError(f"search_limit must be >= 1, received {self.search_limit}.")
        for name in ("single_token_threshold", "multi_token_threshold", "search_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0.0 and 1.0, received {value}.")
        if not 0.0 < self.code_weight <= 1.0:
            raise ValueError(f"code_weight must be in (0.0, 1.0], received {self.code_weight}.")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

    def with_overrides(self, **overrides: Any) -> "ExtractorConfig":
        """Return a copy with the given fields replaced (``None`` values are ignored)."""
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    def resolved_terminology_path(self) -> Optional[Path]:
        if not self.terminology_path:
            return None
        path = Path(self.terminology_path).expanduser()
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        return path


def load_config(path: str | Path | None = None) -> ExtractorConfig:
    """Load settings from a YAML mapping, falling back to defaults.

    Args:
        path: YAML file to read. ``None`` returns the built-in defaults.

    Raises:
        FileNotFoundError: The given file does not exist.
        ValueError: The file is not a mapping, names unknown keys or holds
            out-of-range values.
    """
    if path is None:
        return ExtractorConfig()

    resolved = Path(path).expanduser()
    if not resolved.exists():
        raise FileNotFoundError(f"Extractor config not found: {resolved}")

    try:
        payload = yaml.safe_load(resolved.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {resolved}: {exc}") from exc

    if payload is None:
        return ExtractorConfig()
    if not isinstance(payload, dict):
        raise ValueError(f"Extractor config must be a mapping: {resolved}")

    return _config_from_mapping(payload)


def _config_from_mapping(payload: Dict[str, Any]) -> ExtractorConfig:
    known = {field.name for field in fields(ExtractorConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}")
    return ExtractorConfig(**payload)


__all__ = ["DEFAULT_CONFIG_PATH", "ExtractorConfig", "load_config"]
