"""
Client configuration.

Sources, in order of use:
- explicit keyword arguments to SDMConfig
- SDMConfig.from_env(): .env file (python-dotenv) then SDM_* environment variables
- SDMConfig.from_yaml(path): YAML mapping, optionally nested under an ``sdm`` key

Environment knobs:
- SDM_HOST (required), SDM_TOKEN, SDM_DATABASE
- SDM_TIMEOUT_MS (default 10000), SDM_BATCH_SIZE (default 5000)
- SDM_PRECISION=ns|us|ms|s (default ns)
- SDM_VERIFY_SSL=true|false (default true), SDM_MAX_RETRIES (default 3)
- SDM_GZIP=true|false (default false)
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from dotenv import find_dotenv, load_dotenv
from loguru import logger

from .exceptions import ValidationError

PRECISIONS = ("ns", "us", "ms", "s")


_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).lower() in _TRUE


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer, got {v!r}") from e


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from e


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _TRUE + _FALSE:
        return value.strip().lower() in _TRUE
    raise ValidationError(f"{name} must be true or false, got {value!r}")


@dataclass
class SDMConfig:
    host: str
    token: Optional[str] = None
    database: Optional[str] = None
    timeout_ms: int = 10_000
    batch_size: int = 5_000
    precision: str = "ns"
    verify_ssl: bool = True
    max_retries: int = 3
    gzip: bool = False

    def __post_init__(self):
        # YAML and env values may arrive as strings
        for name in ("timeout_ms", "batch_size", "max_retries"):
            setattr(self, name, _as_int(name, getattr(self, name)))
        for name in ("verify_ssl", "gzip"):
            setattr(self, name, _as_bool(name, getattr(self, name)))
        self.validate()

    def validate(self) -> None:
        if not self.host or not isinstance(self.host, str):
            raise ValidationError("host is required")
        if not self.host.startswith(("http://", "https://")):
            raise ValidationError(f"host must start with http:// or https://, got {self.host!r}")
        if self.timeout_ms <= 0:
            raise ValidationError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.batch_size <= 0:
            raise ValidationError(f"batch_size must be positive, got {self.batch_size}")
        if self.precision not in PRECISIONS:
            raise ValidationError(f"precision must be one of {PRECISIONS}, got {self.precision!r}")
        if self.max_retries < 0:
            raise ValidationError(f"max_retries must be >= 0, got {self.max_retries}")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def from_env(cls, dotenv_path: Optional[Union[str, Path]] = None) -> "SDMConfig":
        """Build config from SDM_* environment variables (after loading .env)."""
        load_dotenv(dotenv_path=dotenv_path or find_dotenv(usecwd=True))
        host = os.getenv("SDM_HOST")
        if not host:
            raise ValidationError("SDM_HOST is not set")
        cfg = cls(
            host=host,
            token=os.getenv("SDM_TOKEN") or None,
            database=os.getenv("SDM_DATABASE") or None,
            timeout_ms=_env_int("SDM_TIMEOUT_MS", 10_000),
            batch_size=_env_int("SDM_BATCH_SIZE", 5_000),
            precision=os.getenv("SDM_PRECISION", "ns"),
            verify_ssl=_env_bool("SDM_VERIFY_SSL", True),
            max_retries=_env_int("SDM_MAX_RETRIES", 3),
            gzip=_env_bool("SDM_GZIP", False),
        )
        logger.debug(f"Loaded SDM config from environment: host={cfg.host} database={cfg.database}")
        return cfg

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SDMConfig":
        if not isinstance(data, Mapping):
            raise ValidationError(f"config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown config keys: {unknown}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SDMConfig":
        """Build config from a YAML file; values may sit under a top-level ``sdm`` key."""
        path = Path(path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if isinstance(raw, Mapping) and isinstance(raw.get("sdm"), Mapping):
            raw = raw["sdm"]
        cfg = cls.from_mapping(raw)
        logger.debug(f"Loaded SDM config from {path}: host={cfg.host} database={cfg.database}")
        return cfg

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        d = asdict(self)
        if redact and d.get("token"):
            d["token"] = "***"
        return d
