from __future__ import annotations

from chatstress.config.env import REQUIRED_VARS, missing_vars, target_from_env
from chatstress.config.models import ConfigError, RunConfig, TargetConfig

__all__ = [
    "REQUIRED_VARS",
    "ConfigError",
    "RunConfig",
    "TargetConfig",
    "missing_vars",
    "target_from_env",
]
