"""Configuration for the enrichment pipeline."""

from .settings import Settings, StageOptions, get_settings

__all__ = ["Settings", "StageOptions", "get_settings"]
