"""Build configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from docroute.errors import ConfigError

DEFAULT_TEMPLATE = "/:categories/:year/:month/:day/:slug/"

# Named permalink styles, as understood by Jekyll.
PERMALINK_STYLES = {
    "date": "/:categories/:year/:month/:day/:slug/",
    "pretty": "/:categories/:year/:month/:day/:slug/",
    "ordinal": "/:categories/:year/:y_day/:slug/",
    "none": "/:categories/:slug/",
}

TRAILING_SLASH_POLICIES = ("always", "never")
DATE_FALLBACK_POLICIES = ("filename", "none")

# _config.yml key -> BuildConfig field
_YAML_KEYS = {
    "permalink": "permalink_template",
    "trailing_slash": "trailing_slash",
    "date_fallback": "date_fallback",
    "unpublished": "include_unpublished",
    "show_unpublished": "include_unpublished",
    "workers": "workers",
    "document_timeout": "document_timeout",
}


@dataclass(slots=True)
class BuildConfig:
    permalink_template: str = DEFAULT_TEMPLATE
    trailing_slash: str = "always"
    date_fallback: str = "filename"
    include_unpublished: bool = False
    workers: int | None = None
    document_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not isinstance(self.permalink_template, str) or not self.permalink_template.strip():
            raise ConfigError("permalink template must be a non-empty string")
        self.permalink_template = PERMALINK_STYLES.get(
            self.permalink_template, self.permalink_template
        )
        if self.trailing_slash not in TRAILING_SLASH_POLICIES:
            raise ConfigError(
                f"trailing_slash must be one of {', '.join(TRAILING_SLASH_POLICIES)}, "
                f"got {self.trailing_slash!r}"
            )
        if self.date_fallback not in DATE_FALLBACK_POLICIES:
            raise ConfigError(
                f"date_fallback must be one of {', '.join(DATE_FALLBACK_POLICIES)}, "
                f"got {self.date_fallback!r}"
            )
        if self.workers is not None and (
            not isinstance(self.workers, int) or isinstance(self.workers, bool)
        ):
            raise ConfigError(f"workers must be an integer, got {self.workers!r}")
        if self.workers is not None and self.workers < 1:
            raise ConfigError(f"workers must be positive, got {self.workers}")
        if not isinstance(self.document_timeout, (int, float)) or isinstance(
            self.document_timeout, bool
        ):
            raise ConfigError(f"document_timeout must be a number, got {self.document_timeout!r}")
        if self.document_timeout <= 0:
            raise ConfigError(f"document_timeout must be positive, got {self.document_timeout}")
        if not isinstance(self.include_unpublished, bool):
            raise ConfigError(
                f"include_unpublished must be true or false, got {self.include_unpublished!r}"
            )

    def resolve_workers(self) -> int:
        return self.workers or os.cpu_count() or 1

    def replace(self, **overrides: Any) -> "BuildConfig":
        """Return a copy with the non-``None`` overrides applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({key: value for key, value in overrides.items() if value is not None})
        return BuildConfig(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> "BuildConfig":
        """Load configuration from a Jekyll-style ``_config.yml``.

        Unknown keys are ignored so a generator's full site config can be reused.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildConfig":
        values = {}
        for key, field_name in _YAML_KEYS.items():
            if key in data and data[key] is not None:
                values[field_name] = data[key]
        return cls(**values)
