"""Configuration module for layerctx."""

from layerctx.config.loader import get_config_path, load_config, save_config
from layerctx.config.schema import Config, EscalationThresholds, LayeredContextConfig

__all__ = [
    "Config",
    "EscalationThresholds",
    "LayeredContextConfig",
    "load_config",
    "save_config",
    "get_config_path",
]
