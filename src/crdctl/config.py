"""Runtime configuration and logging setup for crdctl."""

import logging
import os
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_POLL_INTERVAL = 2.0

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


def _env_float(name):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


def split_paths(value):
    """Split a CRDS_PATH style value on commas or the OS path separator."""
    if not value:
        return []
    parts = re.split(rf"[,{re.escape(os.pathsep)}]", value)
    return [p.strip() for p in parts if p.strip()]


class Settings(BaseModel):
    """Settings shared by the CLI and the operator hooks."""

    debug: bool = False
    log_level: str = "INFO"
    crds_paths: List[str] = Field(default_factory=list)
    error_policy: Literal["continue", "stop"] = "continue"
    strict: bool = False
    workers: int = Field(default=1, ge=1)
    wait_timeout: Optional[float] = Field(default=None, gt=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    kube_context: Optional[str] = None
    manage_crds: bool = True
    delete_on_shutdown: bool = False

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value):
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level: {value}")
        return value

    @classmethod
    def from_env(cls, **overrides):
        """Build settings from environment variables, then apply overrides."""
        values = {
            "debug": _env_flag("DEBUG"),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "crds_paths": split_paths(os.getenv("CRDS_PATH", "")),
            "error_policy": os.getenv("CRDCTL_ERROR_POLICY", "continue").lower(),
            "strict": _env_flag("CRDCTL_STRICT"),
            "workers": int(os.getenv("CRDCTL_WORKERS", "1")),
            "wait_timeout": _env_float("CRDCTL_WAIT_TIMEOUT"),
            "poll_interval": _env_float("CRDCTL_POLL_INTERVAL"),
            "kube_context": os.getenv("KUBECONFIG_CONTEXT") or None,
            "manage_crds": _env_flag("MANAGE_CRDS", "true"),
            "delete_on_shutdown": _env_flag("DELETE_CRDS_ON_SHUTDOWN"),
        }
        values = {k: v for k, v in values.items() if v is not None}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def effective_log_level(self):
        return logging.DEBUG if self.debug else getattr(logging, self.log_level)


def configure_logging(settings: Settings):
    """Configure root logging for a single process invocation."""
    logging.basicConfig(
        level=settings.effective_log_level,
        format=LOG_FORMAT,
        force=True,
    )
    logging.getLogger("kubernetes").setLevel(
        logging.DEBUG if settings.debug else logging.WARNING
    )
    return logging.getLogger("crdctl")
