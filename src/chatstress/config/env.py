from __future__ import annotations

import os
from typing import Mapping

from chatstress.config.models import ConfigError, TargetConfig

ENDPOINT_VAR = "AZURE_OPENAI_ENDPOINT"
API_KEY_VAR = "AZURE_OPENAI_KEY"
DEPLOYMENT_VAR = "AZURE_OPENAI_DEPLOYMENT"
API_VERSION_VAR = "AZURE_OPENAI_API_VERSION"

REQUIRED_VARS = (ENDPOINT_VAR, API_KEY_VAR, DEPLOYMENT_VAR)


def missing_vars(environ: Mapping[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    return [name for name in REQUIRED_VARS if not env.get(name, "").strip()]


def target_from_env(environ: Mapping[str, str] | None = None) -> TargetConfig:
    """Build the target from the process environment.

    Raises ConfigError naming every required variable that is absent or blank.
    """
    env = os.environ if environ is None else environ
    missing = missing_vars(env)
    if missing:
        msg = "missing required environment variables: " + ", ".join(missing)
        raise ConfigError(msg)
    api_version = env.get(API_VERSION_VAR, "").strip()
    extra = {"api_version": api_version} if api_version else {}
    return TargetConfig(
        endpoint=env[ENDPOINT_VAR].strip(),
        api_key=env[API_KEY_VAR].strip(),
        deployment=env[DEPLOYMENT_VAR].strip(),
        **extra,
    )
