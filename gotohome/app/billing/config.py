"""Payment gateway configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
import os

from .errors import ConfigurationError


@dataclass(frozen=True)
class GatewayConfig:
    """Configuration for the hosted payment gateway integration."""

    merchant_account: str
    secret_key: str
    merchant_domain: str
    currency: str
    language: str
    service_url: str
    return_url: str
    fallback_origin: str
    allowed_hosts: Tuple[str, ...]
    allowed_host_suffixes: Tuple[str, ...]
    allow_localhost: bool


@dataclass(frozen=True)
class NotifierConfig:
    """Credentials for the operators' Telegram channel."""

    bot_token: Optional[str]
    chat_id: Optional[str]
    api_base_url: str
    timeout_seconds: float

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_list(value: Optional[str], *, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip().lower() for item in value.split(",") if item.strip())


def load_gateway_config(env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Load :class:`GatewayConfig` from environment variables.

    Raises :class:`ConfigurationError` when the merchant account or the secret
    key is missing; there is no unsigned fallback mode.
    """

    env_mapping = os.environ if env is None else env

    merchant_account = (env_mapping.get("WAYFORPAY_LOGIN") or "").strip()
    secret_key = (env_mapping.get("WAYFORPAY_KEY") or "").strip()
    missing = [
        name
        for name, value in (("WAYFORPAY_LOGIN", merchant_account), ("WAYFORPAY_KEY", secret_key))
        if not value
    ]
    if missing:
        raise ConfigurationError(f"Payment gateway not configured. Missing: {', '.join(missing)}")

    fallback_origin = env_mapping.get("PAYMENTS_FALLBACK_ORIGIN", "https://www.gotohome.com.ua")

    return GatewayConfig(
        merchant_account=merchant_account,
        secret_key=secret_key,
        merchant_domain=env_mapping.get("WAYFORPAY_MERCHANT_DOMAIN", "gotohome.com.ua"),
        currency=env_mapping.get("WAYFORPAY_CURRENCY", "UAH").upper(),
        language=env_mapping.get("WAYFORPAY_LANGUAGE", "UA"),
        service_url=env_mapping.get(
            "PAYMENTS_SERVICE_URL", "https://api.gotohome.com.ua/api/payments/callback"
        ),
        return_url=env_mapping.get(
            "PAYMENTS_RETURN_URL", "https://api.gotohome.com.ua/api/payments/return"
        ),
        fallback_origin=fallback_origin.rstrip("/"),
        allowed_hosts=_to_list(
            env_mapping.get("PAYMENTS_ALLOWED_HOSTS"),
            default=("www.gotohome.com.ua", "gotohome.com.ua"),
        ),
        allowed_host_suffixes=_to_list(
            env_mapping.get("PAYMENTS_ALLOWED_HOST_SUFFIXES"),
            default=(".lovable.app",),
        ),
        allow_localhost=_to_bool(env_mapping.get("PAYMENTS_ALLOW_LOCALHOST"), default=True),
    )


def load_notifier_config(env: Optional[Mapping[str, str]] = None) -> NotifierConfig:
    """Load :class:`NotifierConfig` from environment variables."""

    env_mapping = os.environ if env is None else env
    return NotifierConfig(
        bot_token=env_mapping.get("TELEGRAM_PRO_BOT_TOKEN") or None,
        chat_id=env_mapping.get("TELEGRAM_PRO_CHAT_ID") or None,
        api_base_url=env_mapping.get("TELEGRAM_API_BASE_URL", "https://api.telegram.org").rstrip("/"),
        timeout_seconds=max(0.5, _to_float(env_mapping.get("TELEGRAM_TIMEOUT_SECONDS"), default=5.0)),
    )


__all__ = ["GatewayConfig", "NotifierConfig", "load_gateway_config", "load_notifier_config"]
