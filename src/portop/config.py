"""Runtime configuration for portop."""

import os
import signal
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from portop.errors import ConfigurationError

ENV_PREFIX = "PORTOP_"

DEFAULT_KILL_SIGNAL = int(getattr(signal, "SIGKILL", signal.SIGTERM))

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class PortopConfig(BaseModel):
    """Settings shared by the engine and the terminal UI."""

    model_config = ConfigDict(frozen=True)

    refresh_interval: float = Field(default=5.0, gt=0)
    kill_refresh_delay: float = Field(default=0.5, ge=0)
    error_display_timeout: float = Field(default=5.0, gt=0)
    kill_signal: int = DEFAULT_KILL_SIGNAL
    kill_verify_timeout: float = Field(default=0.0, ge=0)
    inspector: Literal["psutil", "lsof"] = "psutil"
    include_udp: bool = True
    log_level: str = "WARNING"
    log_file: Path | None = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("kill_signal", mode="before")
    @classmethod
    def resolve_signal_name(cls, v):
        """Accept 'SIGTERM' / 'TERM' as well as numbers."""
        if isinstance(v, str) and not v.strip().isdigit():
            name = v.strip().upper()
            if not name.startswith("SIG"):
                name = "SIG" + name
            try:
                return int(signal.Signals[name])
            except KeyError:
                raise ValueError(f"unknown signal {v!r}") from None
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PortopConfig":
        """
        Build a config from PORTOP_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc
