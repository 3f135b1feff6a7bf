# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pydantic models for pykafkalite configuration.

Configuration Sources (in order of precedence):
    1. Command-line flags
    2. Environment variables
    3. Default values

Environment Variable Mapping:
    PYKAFKALITE_HOST            -> host
    PYKAFKALITE_PORT            -> port
    PYKAFKALITE_MAX_FRAME_SIZE  -> max_frame_size
    PYKAFKALITE_IDLE_TIMEOUT    -> idle_timeout_s
    PYKAFKALITE_LOG_LEVEL       -> log_level
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .protocol import MAX_FRAME_SIZE, REQUEST_HEADER_SIZE

ENV_PREFIX = "PYKAFKALITE_"

_ENV_FIELDS = {
    "HOST": "host",
    "PORT": "port",
    "MAX_FRAME_SIZE": "max_frame_size",
    "IDLE_TIMEOUT": "idle_timeout_s",
    "LOG_LEVEL": "log_level",
}


class ServerConfig(BaseModel):
    """Configuration for the broker listener."""

    model_config = ConfigDict(validate_assignment=True)

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=9092, ge=0, le=65535, description="Bind port (0 = ephemeral)")
    backlog: int = Field(default=128, ge=1, description="Listen backlog")
    max_frame_size: int = Field(
        default=MAX_FRAME_SIZE,
        ge=REQUEST_HEADER_SIZE,
        le=100 * 1024 * 1024,
        description="Largest request payload accepted, in bytes",
    )
    idle_timeout_s: float | None = Field(
        default=300.0,
        gt=0,
        description="Close connections idle longer than this (None = never)",
    )
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> ServerConfig:
        """
        Build a config from PYKAFKALITE_* environment variables.

        Keyword overrides that are not None win over the environment.
        """
        if environ is None:
            environ = os.environ

        values: dict[str, Any] = {}
        for suffix, name in _ENV_FIELDS.items():
            raw = environ.get(ENV_PREFIX + suffix)
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
