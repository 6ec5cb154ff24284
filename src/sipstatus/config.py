"""Process configuration for sipstatus."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from sipstatus._constants import (
    CONNECT_WAIT_SECONDS,
    DELIVERY_TIMEOUT_SECONDS,
    KEEPALIVE_INTERVAL_SECONDS,
    SESSION_LIFETIME_SECONDS,
    SUBSCRIBER_CAPACITY,
    SYNC_CEILING_SECONDS,
)
from sipstatus.exceptions import ConfigError

_ENV_AMI_MAP: dict[str, str] = {
    "AMI_HOST": "host",
    "AMI_USER": "username",
    "AMI_PASS": "password",
}


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type[int] | type[float]) -> int | float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class AmiSettings:
    """Connection settings for the Asterisk Manager Interface.

    These correspond to the ``AMI_*`` environment variables.
    """

    host: str = "127.0.0.1"
    port: int = 5038
    username: str = ""
    password: str = ""
    dial_timeout: float = 10.0
    reconnect_interval: float = 5.0


@dataclasses.dataclass(frozen=True)
class StatusConfig:
    """Service configuration.

    Parameters
    ----------
    serve_ip : str
        Address the HTTP server binds to.
    serve_port : int
        Port the HTTP server binds to.
    admin_password : str
        Shared password that unlocks short extensions. Empty disables login.
    debug : bool
        Debug verbosity; also routes the manual ``/test-update`` endpoint.
    descriptions_file : Path or None
        Optional JSON file mapping extension to description.
    session_key : str or None
        Fernet key for the session cookie. Generated per process when unset,
        which logs everyone out on restart.
    subscriber_capacity : int
        Bounded queue size per streaming client.
    delivery_timeout : float
        Seconds a publish waits on one full subscriber before dropping.
    keepalive_interval : float
        Seconds of stream inactivity before a keep-alive comment is sent.
    sync_ceiling : float
        Upper bound in seconds on the startup bulk sync.
    connect_wait : float
        Seconds to wait for the upstream connection before syncing anyway.
    session_lifetime : float
        Session cookie lifetime in seconds.
    ami : AmiSettings
        Upstream connection settings.
    """

    serve_ip: str = "127.0.0.1"
    serve_port: int = 9000
    admin_password: str = ""
    debug: bool = False
    descriptions_file: Path | None = None
    session_key: str | None = None
    subscriber_capacity: int = SUBSCRIBER_CAPACITY
    delivery_timeout: float = DELIVERY_TIMEOUT_SECONDS
    keepalive_interval: float = KEEPALIVE_INTERVAL_SECONDS
    sync_ceiling: float = SYNC_CEILING_SECONDS
    connect_wait: float = CONNECT_WAIT_SECONDS
    session_lifetime: float = SESSION_LIFETIME_SECONDS
    ami: AmiSettings = dataclasses.field(default_factory=AmiSettings)

    @classmethod
    def from_env(cls, *, dotenv_path: str | Path | None = None, **overrides: Any) -> StatusConfig:
        """Create configuration from environment variables.

        A ``.env`` file is loaded first (without overriding variables that are
        already set). Explicit keyword arguments override environment values.

        Parameters
        ----------
        dotenv_path
            Explicit ``.env`` location; defaults to searching from the CWD.
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        StatusConfig
            Populated configuration.
        """
        load_dotenv(dotenv_path)
        env = os.environ

        ami_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_AMI_MAP.items():
            val = env.get(env_key)
            if val:
                ami_kwargs[field_name] = val

        port = _env_number(env, "AMI_PORT", int)
        if port is not None:
            ami_kwargs["port"] = port
        dial_timeout = _env_number(env, "AMI_DIAL_TIMEOUT", float)
        if dial_timeout is not None:
            ami_kwargs["dial_timeout"] = dial_timeout
        reconnect = _env_number(env, "AMI_RECONNECT_INTERVAL", float)
        if reconnect is not None:
            ami_kwargs["reconnect_interval"] = reconnect

        ami_overrides = overrides.pop("ami", None)
        if isinstance(ami_overrides, dict):
            ami_kwargs.update(ami_overrides)
        elif isinstance(ami_overrides, AmiSettings):
            ami_kwargs = dataclasses.asdict(ami_overrides)

        config_kwargs: dict[str, Any] = {"ami": AmiSettings(**ami_kwargs)}

        serve_ip = env.get("SERVE_IP")
        if serve_ip:
            config_kwargs["serve_ip"] = serve_ip
        serve_port = _env_number(env, "SERVE_PORT", int)
        if serve_port is not None:
            config_kwargs["serve_port"] = serve_port

        admin_password = env.get("ADMIN_PASSWORD")
        if admin_password is not None:
            config_kwargs["admin_password"] = admin_password

        # DEBUG is a presence switch; explicit falsy values (0, false, off) still disable it.
        if "debug" not in overrides:
            raw_debug = env.get("DEBUG")
            config_kwargs["debug"] = bool(raw_debug) and _env_bool(raw_debug, True)

        descriptions_file = env.get("DESCRIPTIONS_FILE")
        if descriptions_file:
            config_kwargs["descriptions_file"] = Path(descriptions_file)

        session_key = env.get("SESSION_KEY")
        if session_key:
            config_kwargs["session_key"] = session_key

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
