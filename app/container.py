"""Explicitly constructed service clients, built at startup and closed at shutdown."""

from dataclasses import dataclass

from fastapi import Request

from app.config import Settings
from app.logging_config import get_logger
from app.services.alert_service import Alerter
from app.services.context_store import ContextStore
from app.services.llm import build_llm_provider
from app.services.llm.base import LLMProvider
from app.services.notification_service import NotificationDispatcher
from app.services.paystack_service import PaymentProvider, PaystackClient
from app.services.whatsapp_service import WhatsAppClient

logger = get_logger("container")


@dataclass
class Services:
    settings: Settings
    context_store: ContextStore
    messenger: WhatsAppClient
    llm: LLMProvider
    payments: PaymentProvider
    notifier: NotificationDispatcher
    alerter: Alerter

    async def aclose(self) -> None:
        for name, close in (
            ("context_store", self.context_store.close),
            ("messenger", self.messenger.aclose),
            ("llm", self.llm.aclose),
            ("payments", self.payments.aclose),
            ("alerter", self.alerter.aclose),
        ):
            try:
                await close()
            except Exception as e:
                logger.warning(f"Failed to close {name}: {e}")


def build_services(settings: Settings) -> Services:
    messenger = WhatsAppClient(
        settings.whatsapp_access_token,
        settings.whatsapp_phone_number_id,
        api_version=settings.whatsapp_api_version,
        timeout_seconds=settings.messaging_timeout_seconds,
    )
    return Services(
        settings=settings,
        context_store=ContextStore.from_url(settings.redis_url, ttl_seconds=settings.context_ttl_seconds),
        messenger=messenger,
        llm=build_llm_provider(settings),
        payments=PaystackClient(
            settings.paystack_secret_key,
            settings.frontend_url,
            default_currency=settings.default_currency,
            timeout_seconds=settings.paystack_timeout_seconds,
        ),
        notifier=NotificationDispatcher(messenger),
        alerter=Alerter(settings.alert_bot_token, settings.alert_chat_id),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
