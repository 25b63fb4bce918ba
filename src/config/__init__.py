"""Configuration module -- exports Settings, load_config and PipelineConfig."""

from src.config.loader import PipelineConfig, load_config
from src.config.settings import Settings

__all__ = ["PipelineConfig", "Settings", "load_config"]
