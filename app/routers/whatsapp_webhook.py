import json

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from app.container import Services, get_services
from app.database import get_db
from app.errors import AuthenticationFailure, StorefrontError, ValidationFailure
from app.logging_config import get_logger
from app.schemas.whatsapp import WebhookAck
from app.services.chat_service import handle_inbound_message
from app.services.whatsapp_service import parse_inbound, require_signature, verify_webhook

logger = get_logger("whatsapp_webhook")

router = APIRouter(prefix="/api/webhook/whatsapp")


@router.get("")
async def verify_subscription(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
    services: Services = Depends(get_services),
):
    """Meta subscription handshake: echo the challenge only for a matching token."""
    echoed = verify_webhook(mode, token, challenge, services.settings.whatsapp_verify_token)
    if echoed is None:
        logger.warning("WhatsApp webhook verification failed", extra={"context": {"mode": mode}})
        return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)
    logger.info("WhatsApp webhook verified")
    return PlainTextResponse(echoed)


@router.post("", response_model=WebhookAck)
async def receive_message(
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Inbound messages. Always 200 unless the signature is wrong; the platform retries non-2xx."""
    raw = await request.body()

    try:
        require_signature(raw, request.headers.get("x-hub-signature-256"), services.settings.whatsapp_app_secret)
    except AuthenticationFailure as e:
        logger.warning(f"Rejected WhatsApp webhook: {e.message}")
        return JSONResponse({"success": False, "message": "Invalid signature"}, status_code=status.HTTP_401_UNAUTHORIZED)

    try:
        payload = json.loads(raw or b"{}")
        inbound = parse_inbound(payload)
        if inbound is None:
            return WebhookAck(success=True, message="No message in payload", action="ignored")
        return await handle_inbound_message(db, services, inbound)
    except (json.JSONDecodeError, ValidationFailure) as e:
        logger.warning(f"Malformed WhatsApp webhook: {e}")
        return WebhookAck(success=False, message="Malformed payload", action="ignored")
    except StorefrontError as e:
        logger.warning(f"WhatsApp webhook not processed: {e.message}", extra={"context": {"code": e.code}})
        db.rollback()
        return WebhookAck(success=False, message=e.code, action="error")
    except Exception as e:
        logger.error(f"WhatsApp webhook handler crashed: {e}", exc_info=True)
        db.rollback()
        await services.alerter.error("WhatsApp webhook handler crashed", {"error": str(e)[:300]})
        return WebhookAck(success=False, message="Internal error", action="error")


@router.post("/status")
async def receive_status(request: Request):
    """Delivery-status callbacks: logged and acknowledged."""
    try:
        payload = await request.json()
    except Exception:
        logger.warning("Unreadable WhatsApp status callback")
        return {"success": True}

    for entry in payload.get("entry", []) if isinstance(payload, dict) else []:
        for change in entry.get("changes", []):
            for item in change.get("value", {}).get("statuses", []):
                logger.info(
                    "WhatsApp delivery status",
                    extra={"context": {"message_id": item.get("id"), "status": item.get("status"), "recipient": item.get("recipient_id")}},
                )
    return {"success": True}
