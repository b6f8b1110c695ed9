"""Configuration helpers for the external links filter."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .types import ExclusionConfig

DEFAULT_MAX_REMOTE_BYTES = 32 * 1024
DEFAULT_REMOTE_TIMEOUT = 5.0


DEFAULTS: Dict[str, Any] = {
    "enabled": True,
    "weight": 0,
    "process": True,
    "built_in_css": True,
    "target": "_blank",
    "no_follow": True,
    "exclude": {
        "classes": "exclude",
        "domains": [],
        "paths": ["/admin/"],
    },
    "base_url": "",
    "document_root": "",
    "max_remote_bytes": DEFAULT_MAX_REMOTE_BYTES,
    "remote_timeout": DEFAULT_REMOTE_TIMEOUT,
}


@dataclass(frozen=True)
class LinkConfig:
    """Typed wrapper around the merged configuration dictionary."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    @property
    def enabled(self) -> bool:
        return bool(self.raw.get("enabled", True))

    @property
    def weight(self) -> int:
        return int(self.raw.get("weight", 0))

    @property
    def process(self) -> bool:
        return bool(self.raw.get("process", True))

    @property
    def built_in_css(self) -> bool:
        return bool(self.raw.get("built_in_css", False))

    @property
    def target(self) -> Optional[str]:
        return self.raw.get("target") or None

    @property
    def no_follow(self) -> bool:
        return bool(self.raw.get("no_follow", False))

    @property
    def base_url(self) -> str:
        return str(self.raw.get("base_url") or "")

    @property
    def document_root(self) -> str:
        return str(self.raw.get("document_root") or "")

    @property
    def max_remote_bytes(self) -> int:
        return int(self.raw.get("max_remote_bytes", DEFAULT_MAX_REMOTE_BYTES))

    @property
    def remote_timeout(self) -> float:
        return float(self.raw.get("remote_timeout", DEFAULT_REMOTE_TIMEOUT))

    @property
    def excluded_paths(self) -> Tuple[str, ...]:
        exclude = self.raw.get("exclude") or {}
        return tuple(path for path in exclude.get("paths") or () if path)

    @property
    def exclusions(self) -> ExclusionConfig:
        exclude = self.raw.get("exclude") or {}
        domains = exclude.get("domains") or ()
        if isinstance(domains, str):
            domains = [domains]
        css_class = str(exclude.get("classes") or "").strip()
        return ExclusionConfig(
            domains=tuple(str(domain) for domain in domains if domain),
            css_class=css_class or None,
        )

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> "LinkConfig":
        """Return a copy with ``overrides`` merged on top."""

        if not overrides:
            return self
        data = copy.deepcopy(self.raw)
        merge_into(data, _require_mapping(overrides, "overrides"))
        return LinkConfig(data)

    def for_page(self, header: Mapping[str, Any] | None) -> "LinkConfig":
        """Merge a page header's ``external_links`` section over this config.

        The legacy ``process: {external_links: bool}`` header key takes
        precedence over the ``process`` flag when deciding whether the page
        is processed at all.
        """

        if not header:
            return self
        config = self.with_overrides(header.get("external_links"))
        process = header.get("process")
        if isinstance(process, Mapping) and "external_links" in process:
            config = config.with_overrides({"process": bool(process["external_links"])})
        return config


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> LinkConfig:
    """Load configuration from YAML, merging with defaults and ``overrides``."""

    data: Dict[str, Any] = copy.deepcopy(DEFAULTS)

    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as stream:
            user = yaml.safe_load(stream) or {}
        merge_into(data, _require_mapping(user, str(path)))

    if overrides:
        merge_into(data, _require_mapping(overrides, "EXTERNAL_LINKS"))

    return LinkConfig(data)


def config_from_settings() -> LinkConfig:
    """Build the site configuration from ``EXTERNAL_LINKS*`` Django settings."""

    return load_config(
        getattr(settings, "EXTERNAL_LINKS_CONFIG", None),
        getattr(settings, "EXTERNAL_LINKS", None),
    )


@lru_cache(maxsize=None)
def get_site_config() -> LinkConfig:
    return config_from_settings()


def merge_into(base: Dict[str, Any], override: Mapping[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def _require_mapping(value: Any, source: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ImproperlyConfigured(
            f"External links configuration from {source} must be a mapping, got {type(value).__name__}."
        )
    return value


def reset_site_config(*, setting: str, **kwargs: Any) -> None:
    """``setting_changed`` receiver dropping the cached site configuration."""

    if setting in {"EXTERNAL_LINKS", "EXTERNAL_LINKS_CONFIG"}:
        get_site_config.cache_clear()
