"""
Configuration loading for the Lyceum platform.

The platform takes a plain dict. ``load_config`` builds one from the
defaults, an optional JSON file, and ``LYCEUM_*`` environment variables,
in that order of precedence (last wins). ``LyceumConfig`` checks and
normalizes the merged result.
"""

import copy
import json
import logging
import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .core.exceptions import ConfigurationError


class DatabaseConfig(BaseModel):
    database_path: str = "lyceum.db"


class LyceumConfig(BaseModel):
    """Validated platform settings."""
    database_type: Literal["sqlite"] = "sqlite"
    database_config: DatabaseConfig = Field(default_factory=DatabaseConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    rest_host: str = "0.0.0.0"
    rest_port: int = Field(8000, gt=0, lt=65536)
    max_history: int = Field(1000, gt=0)

    @field_validator("database_type", mode="before")
    @classmethod
    def _lower_database_type(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value


DEFAULT_CONFIG: Dict[str, Any] = LyceumConfig().model_dump()


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def validate_config(config: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize and check a merged config, raising ConfigurationError on bad values."""
    try:
        return LyceumConfig.model_validate(config).model_dump()
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ConfigurationError(f"Invalid configuration: {problems}")

def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load configuration from defaults, a JSON file, and the environment."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if path:
        try:
            with open(path, 'r') as f:
                file_config = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {path}: {e}")
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")
        _merge(config, file_config)

    environ = os.environ if environ is None else environ
    if environ.get("LYCEUM_DATABASE_PATH"):
        config["database_config"]["database_path"] = environ["LYCEUM_DATABASE_PATH"]
    if environ.get("LYCEUM_LOG_LEVEL"):
        config["log_level"] = environ["LYCEUM_LOG_LEVEL"]
    if environ.get("LYCEUM_REST_HOST"):
        config["rest_host"] = environ["LYCEUM_REST_HOST"]
    if environ.get("LYCEUM_REST_PORT"):
        config["rest_port"] = environ["LYCEUM_REST_PORT"]

    return validate_config(config)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
