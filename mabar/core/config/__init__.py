"""Configuration module."""

from mabar.core.config.loader import load_config
from mabar.core.config.schema import Config

__all__ = ["Config", "load_config"]
