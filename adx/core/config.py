"""
Exchange configuration parameters for ADX.

Defines the initial global configuration of a sealed-bid exchange and
operational settings (logging, data directory). Values can be supplied
through ADX_* environment variables or a .env file.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "ADX_"


class ExchangeConfig(BaseModel):
    """Exchange-wide configuration parameters"""

    # Global config (owner-mutable after deployment)
    cooldown_seconds: int = Field(default=60, ge=0)
    paused: bool = False

    # Rate limiter keeps the caller's timestamp even if a later check fails
    charge_cooldown_on_failure: bool = True

    # Operational
    log_level: str = "INFO"
    log_to_file: bool = False
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level {value!r}")
        return value

    def ensure_dirs(self) -> None:
        """Create data and log directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)


def load_config(env_file: Optional[str] = None) -> ExchangeConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional path to a .env file. When omitted, a .env in the
            working directory is used if present.

    Returns:
        ExchangeConfig instance

    Raises:
        pydantic.ValidationError: if a variable holds an invalid value
    """
    load_dotenv(dotenv_path=env_file, override=False)

    values = {}
    for name in ExchangeConfig.model_fields:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = raw

    return ExchangeConfig(**values)
