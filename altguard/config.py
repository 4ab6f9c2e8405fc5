"""Environment-driven configuration for the verification service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from .errors import ConfigError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env(environ: Mapping[str, str], *names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return default


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class VerifierConfig:
    """Settings shared by the membership handler, HTTP app and sweeper."""

    website_url: str = "http://localhost:3000"
    token_ttl_seconds: int = 600
    verified_role_id: Optional[str] = None
    unverified_role_id: Optional[str] = None
    alert_channel_id: Optional[str] = None
    verify_page: str = "public/verify.html"
    sweep_interval_seconds: int = 60
    port: int = 3000
    log_level: str = "INFO"

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(seconds=self.token_ttl_seconds)

    def verify_url(self, token: str) -> str:
        return f"{self.website_url.rstrip('/')}/verify?token={token}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VerifierConfig":
        env = os.environ if environ is None else environ
        return cls(
            website_url=_env(env, "ALTGUARD_WEBSITE_URL", "WEBSITE_URL", default=cls.website_url),
            token_ttl_seconds=_env_int(env, "ALTGUARD_TOKEN_TTL_SECONDS", cls.token_ttl_seconds),
            verified_role_id=_env(env, "ALTGUARD_VERIFIED_ROLE_ID", "VERIFIED_ROLE_ID"),
            unverified_role_id=_env(env, "ALTGUARD_UNVERIFIED_ROLE_ID", "UNVERIFIED_ROLE_ID"),
            alert_channel_id=_env(env, "ALTGUARD_ALERT_CHANNEL_ID", "ALERT_CHANNEL_ID"),
            verify_page=_env(env, "ALTGUARD_VERIFY_PAGE", default=cls.verify_page),
            sweep_interval_seconds=_env_int(env, "ALTGUARD_SWEEP_INTERVAL_SECONDS", cls.sweep_interval_seconds),
            port=_env_int(env, "PORT", cls.port),
            log_level=_env(env, "ALTGUARD_LOG_LEVEL", default=cls.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
