from datetime import datetime, timezone

from fastapi import FastAPI

from app.config import settings
from app.container import build_services
from app.database import init_db
from app.logging_config import get_logger, setup_logging
from app.routers import conversations, orders, payment_webhook, whatsapp_webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Storefront API",
    description="WhatsApp storefront: AI sales conversations, orders and payment webhooks",
    version="0.1.0",
)

app.include_router(whatsapp_webhook.router)
app.include_router(payment_webhook.router)
app.include_router(conversations.router)
app.include_router(orders.router)


@app.on_event("startup")
async def startup() -> None:
    settings.ensure_credentials()
    if settings.auto_create_tables:
        init_db()
    app.state.services = build_services(settings)
    logger.info("Storefront API started", extra={"context": {"llm_provider": settings.llm_provider}})


@app.on_event("shutdown")
async def shutdown() -> None:
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()


@app.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
