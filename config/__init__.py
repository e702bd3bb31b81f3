"""Configuration module for the UI smoke harness."""
from config.models import (
    ArtifactConfig,
    BrowserConfig,
    NavigationConfig,
    PolicyConfig,
    ServerConfig,
    SmokeConfig,
    load_config,
)

__all__ = [
    "ArtifactConfig",
    "BrowserConfig",
    "NavigationConfig",
    "PolicyConfig",
    "ServerConfig",
    "SmokeConfig",
    "load_config",
]
