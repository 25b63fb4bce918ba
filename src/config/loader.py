"""YAML configuration loader with environment variable overrides.

# --- CONFIGURATION HIERARCHY ------------------------------------------
#
# Layers, later ones win:
#
#   1. Settings defaults  -- the field defaults in settings.py
#   2. config/config.yaml -- deployment defaults checked into the repo
#   3. .env / environment -- only fields that were explicitly set
#
# Layer 3 uses ``Settings.model_fields_set`` so an unset env var does not
# clobber a YAML value with the code default.
#
# The merged dict is sectioned (app, llm, fetch, discovery, extraction,
# aggregation, storage, logging); :class:`PipelineConfig` is the typed
# view the pipeline consumes.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from src.config.settings import Settings

# settings field -> (section, key)
_SECTION_MAP: dict[str, tuple[str, str]] = {
    "app_host": ("app", "host"),
    "app_port": ("app", "port"),
    "app_env": ("app", "env"),
    "llm_timeout_seconds": ("llm", "timeout_seconds"),
    "fetch_timeout_seconds": ("fetch", "timeout_seconds"),
    "fetch_max_attempts": ("fetch", "max_attempts"),
    "fetch_max_bytes": ("fetch", "max_bytes"),
    "max_units": ("discovery", "max_units"),
    "discovery_max_depth": ("discovery", "max_depth"),
    "include_subdomains": ("discovery", "include_subdomains"),
    "max_parallel_seeds": ("discovery", "max_parallel_seeds"),
    "max_concurrent_calls": ("extraction", "max_concurrent_calls"),
    "call_stagger_seconds": ("extraction", "call_stagger_seconds"),
    "unit_timeout_seconds": ("extraction", "unit_timeout_seconds"),
    "model_max_attempts": ("extraction", "max_attempts"),
    "retry_base_delay_seconds": ("extraction", "retry_base_delay_seconds"),
    "retry_max_delay_seconds": ("extraction", "retry_max_delay_seconds"),
    "html_max_chars": ("extraction", "html_max_chars"),
    "name_similarity_threshold": ("aggregation", "name_similarity_threshold"),
    "staging_db_path": ("storage", "staging_db_path"),
    "entities_db_path": ("storage", "entities_db_path"),
    "log_level": ("logging", "level"),
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge it with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read otherwise.

    Returns:
        Fully resolved, sectioned configuration dictionary.
    """
    if settings is None:
        settings = Settings()

    config = _sections_from(settings, fields=_SECTION_MAP.keys())

    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        _deep_merge(config, yaml_config)

    explicit = _sections_from(settings, fields=settings.model_fields_set & _SECTION_MAP.keys())
    _deep_merge(config, explicit)

    config.setdefault("llm", {})["available_providers"] = settings.get_available_llm_providers()
    return config


def _sections_from(settings: Settings, fields) -> dict[str, dict[str, Any]]:
    sections: dict[str, dict[str, Any]] = {}
    for field in fields:
        section, key = _SECTION_MAP[field]
        sections.setdefault(section, {})[key] = getattr(settings, field)
    return sections


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


class PipelineConfig(BaseModel):
    """Read-only pipeline tunables shared by every run."""

    model_config = ConfigDict(frozen=True)

    fetch_timeout_seconds: float = 30.0
    fetch_max_attempts: int = Field(default=3, ge=1)
    fetch_max_bytes: int = 50 * 1024 * 1024
    max_units: int = Field(default=50, ge=1)
    max_depth: int = Field(default=1, ge=0)
    include_subdomains: bool = False
    max_parallel_seeds: int = Field(default=2, ge=1)
    max_concurrent_calls: int = Field(default=3, ge=1)
    call_stagger_seconds: float = Field(default=0.5, ge=0.0)
    unit_timeout_seconds: float = Field(default=100.0, gt=0.0)
    model_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=2.0, ge=0.0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0.0)
    html_max_chars: int = Field(default=60000, ge=1000)
    name_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    @classmethod
    def from_config(cls, config: dict) -> PipelineConfig:
        fetch = config.get("fetch", {})
        discovery = config.get("discovery", {})
        extraction = config.get("extraction", {})
        aggregation = config.get("aggregation", {})
        values = {
            "fetch_timeout_seconds": fetch.get("timeout_seconds"),
            "fetch_max_attempts": fetch.get("max_attempts"),
            "fetch_max_bytes": fetch.get("max_bytes"),
            "max_units": discovery.get("max_units"),
            "max_depth": discovery.get("max_depth"),
            "include_subdomains": discovery.get("include_subdomains"),
            "max_parallel_seeds": discovery.get("max_parallel_seeds"),
            "max_concurrent_calls": extraction.get("max_concurrent_calls"),
            "call_stagger_seconds": extraction.get("call_stagger_seconds"),
            "unit_timeout_seconds": extraction.get("unit_timeout_seconds"),
            "model_max_attempts": extraction.get("max_attempts"),
            "retry_base_delay_seconds": extraction.get("retry_base_delay_seconds"),
            "retry_max_delay_seconds": extraction.get("retry_max_delay_seconds"),
            "html_max_chars": extraction.get("html_max_chars"),
            "name_similarity_threshold": aggregation.get("name_similarity_threshold"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})
