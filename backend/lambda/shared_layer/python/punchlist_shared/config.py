"""punchlist_shared.config — Configuration object built once per container.

Environment variables:
    SUPABASE_URL                          required
    SUPABASE_SERVICE_ROLE_KEY             required unless the secret id is set
    SUPABASE_SERVICE_ROLE_KEY_SECRET_ID   Secrets Manager fallback for the key
    PUNCHLIST_HTTP_TIMEOUT_SECONDS        default: 15
    PUNCHLIST_LOGO_TIMEOUT_SECONDS        default: 5
    BRAND_COMPANY_NAME                    default: WPUSA
    BRAND_COMPANY_TAGLINE                 default: Field Delivery • Receiving • Punchlist
    BRAND_COMPANY_ADDRESS                 default: 123 Any Street • Orlando, FL 32801
    BRAND_COMPANY_PHONE                   default: (555) 123-4567
    BRAND_LOGO_URL                        default: ""
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from punchlist_shared.aws_clients import _get_secretsmanager
from punchlist_shared.errors import ConfigError

logger = logging.getLogger(__name__)

__all__ = [
    "BrandDefaults",
    "DEFAULT_COMPANY_ADDRESS",
    "DEFAULT_COMPANY_NAME",
    "DEFAULT_COMPANY_PHONE",
    "DEFAULT_COMPANY_TAGLINE",
    "PunchlistConfig",
    "get_config",
    "reset_config",
    "resolve_service_role_key",
]

DEFAULT_COMPANY_NAME = "WPUSA"
DEFAULT_COMPANY_TAGLINE = "Field Delivery • Receiving • Punchlist"
DEFAULT_COMPANY_ADDRESS = "123 Any Street • Orlando, FL 32801"
DEFAULT_COMPANY_PHONE = "(555) 123-4567"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = str(env.get(name, "") or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _fetch_service_role_key(secret_id: str) -> str:
    """Read the service role key from Secrets Manager.

    The secret may hold the raw key or a JSON object with a
    ``service_role_key`` field.
    """
    try:
        secret_string = (
            _get_secretsmanager().get_secret_value(SecretId=secret_id).get("SecretString") or ""
        )
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code", "ClientError")
        raise ConfigError(f"Service role key secret fetch failed: {code}") from exc
    except BotoCoreError as exc:
        raise ConfigError(f"Service role key secret fetch failed: {exc.__class__.__name__}") from exc

    secret_string = secret_string.strip()
    if secret_string.startswith("{"):
        try:
            parsed = json.loads(secret_string)
        except json.JSONDecodeError as exc:
            raise ConfigError("Service role key secret is not valid JSON") from exc
        secret_string = str(parsed.get("service_role_key") or parsed.get("SUPABASE_SERVICE_ROLE_KEY") or "")
    return secret_string.strip()


def resolve_service_role_key(env: Optional[Mapping[str, str]] = None) -> str:
    """Service role key from the environment, else from Secrets Manager."""
    env = os.environ if env is None else env
    key = str(env.get("SUPABASE_SERVICE_ROLE_KEY", "") or "").strip()
    secret_id = str(env.get("SUPABASE_SERVICE_ROLE_KEY_SECRET_ID", "") or "").strip()
    if not key and secret_id:
        logger.info("[INFO] resolving service role key from secret %s", secret_id)
        key = _fetch_service_role_key(secret_id)
    return key


@dataclass(frozen=True)
class BrandDefaults:
    company_name: str = DEFAULT_COMPANY_NAME
    company_tagline: str = DEFAULT_COMPANY_TAGLINE
    company_address: str = DEFAULT_COMPANY_ADDRESS
    company_phone: str = DEFAULT_COMPANY_PHONE
    company_logo_url: str = ""

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BrandDefaults":
        env = os.environ if env is None else env
        return cls(
            company_name=env.get("BRAND_COMPANY_NAME") or DEFAULT_COMPANY_NAME,
            company_tagline=env.get("BRAND_COMPANY_TAGLINE") or DEFAULT_COMPANY_TAGLINE,
            company_address=env.get("BRAND_COMPANY_ADDRESS") or DEFAULT_COMPANY_ADDRESS,
            company_phone=env.get("BRAND_COMPANY_PHONE") or DEFAULT_COMPANY_PHONE,
            company_logo_url=env.get("BRAND_LOGO_URL") or "",
        )


@dataclass(frozen=True)
class PunchlistConfig:
    supabase_url: str
    service_role_key: str = field(repr=False)
    http_timeout_seconds: int = 15
    logo_timeout_seconds: int = 5
    branding: BrandDefaults = field(default_factory=BrandDefaults)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PunchlistConfig":
        """Build the configuration, failing fast on missing backend settings."""
        env = os.environ if env is None else env
        url = str(env.get("SUPABASE_URL", "") or "").strip().rstrip("/")
        key = resolve_service_role_key(env)

        missing = []
        if not url:
            missing.append("SUPABASE_URL")
        if not key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if missing:
            raise ConfigError(f"Missing {' or '.join(missing)}")

        return cls(
            supabase_url=url,
            service_role_key=key,
            http_timeout_seconds=_env_int(env, "PUNCHLIST_HTTP_TIMEOUT_SECONDS", 15),
            logo_timeout_seconds=_env_int(env, "PUNCHLIST_LOGO_TIMEOUT_SECONDS", 5),
            branding=BrandDefaults.from_env(env),
        )


_config: Optional[PunchlistConfig] = None


def get_config() -> PunchlistConfig:
    """Get (or build) the container-wide configuration.

    A failed build is not cached, so the next invocation retries once the
    environment is fixed.
    """
    global _config
    if _config is None:
        _config = PunchlistConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None
