"""Operator notifications about new paid subscriptions."""
from __future__ import annotations

import html
import json
import logging
from typing import Dict
from urllib import error as urllib_error, request as urllib_request

from ..billing import DownstreamNotificationFailure, NotifierConfig, SubscriptionActivation

logger = logging.getLogger("notifications")


class SubscriptionNotifier:
    """Base notifier for subscription activations."""

    name = "base"

    def notify_subscription_activated(self, activation: SubscriptionActivation) -> None:
        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"notifier": self.name}


class LoggingSubscriptionNotifier(SubscriptionNotifier):
    """Used when no Telegram channel is configured."""

    name = "log"

    def notify_subscription_activated(self, activation: SubscriptionActivation) -> None:
        logger.info(
            "Subscription activated",
            extra={
                "user_id": activation.user_id,
                "order_reference": activation.order_reference,
                "plan": activation.plan_key.value,
            },
        )


def render_activation_message(activation: SubscriptionActivation) -> str:
    email = html.escape(activation.client_email or "—")
    product = html.escape(activation.product_name)
    return (
        "🌟 Нова PRO підписка на GoToHome!\n\n"
        f"📧 Email: {email}\n"
        f"📋 План: {product}\n"
        f"💰 Ціна: {activation.price} ₴ за {activation.duration_days} днів\n"
        f"⏳ Діє до: {activation.expires_at:%d.%m.%Y %H:%M} UTC\n\n"
        "🎉 Користувач успішно оформив підписку!"
    )


class TelegramSubscriptionNotifier(SubscriptionNotifier):
    """Posts activations to a Telegram chat through the Bot API."""

    name = "telegram"

    def __init__(self, *, bot_token: str, chat_id: str, api_base_url: str, timeout_seconds: float) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base_url = api_base_url
        self.timeout_seconds = timeout_seconds

    def notify_subscription_activated(self, activation: SubscriptionActivation) -> None:
        body = json.dumps(
            {
                "chat_id": self.chat_id,
                "text": render_activation_message(activation),
                "parse_mode": "HTML",
            }
        ).encode("utf-8")
        http_request = urllib_request.Request(
            f"{self.api_base_url}/bot{self.bot_token}/sendMessage",
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib_request.urlopen(http_request, timeout=self.timeout_seconds) as response:
                payload = json.loads(response.read().decode("utf-8"))
        except (urllib_error.URLError, urllib_error.HTTPError, json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            raise DownstreamNotificationFailure(f"Telegram request failed: {exc}") from exc

        if not payload.get("ok"):
            raise DownstreamNotificationFailure(
                f"Telegram API error: {payload.get('description', 'unknown error')}"
            )


def create_subscription_notifier(config: NotifierConfig) -> SubscriptionNotifier:
    if config.enabled:
        return TelegramSubscriptionNotifier(
            bot_token=config.bot_token or "",
            chat_id=config.chat_id or "",
            api_base_url=config.api_base_url,
            timeout_seconds=config.timeout_seconds,
        )
    return LoggingSubscriptionNotifier()


def deliver_safely(notifier: SubscriptionNotifier, activation: SubscriptionActivation) -> bool:
    """Run ``notifier`` and report failures to the log only."""

    try:
        notifier.notify_subscription_activated(activation)
    except DownstreamNotificationFailure as exc:
        logger.warning(
            "Subscription notification failed: %s",
            exc.message,
            extra={"order_reference": activation.order_reference, "notifier": notifier.name},
        )
        return False
    except Exception:
        logger.exception(
            "Unexpected error while sending subscription notification",
            extra={"order_reference": activation.order_reference, "notifier": notifier.name},
        )
        return False
    return True


__all__ = [
    "LoggingSubscriptionNotifier",
    "SubscriptionNotifier",
    "TelegramSubscriptionNotifier",
    "create_subscription_notifier",
    "deliver_safely",
    "render_activation_message",
]
