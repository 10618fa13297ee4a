from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.container import Services, get_services
from app.database import get_db
from app.errors import AuthenticationFailure
from app.logging_config import get_logger
from app.schemas.payment import PaymentWebhookResponse
from app.services.payment_webhook_service import authenticate_event, parse_event, process_event

logger = get_logger("payment_webhook")

router = APIRouter(prefix="/api/webhook")


@router.post("/paystack", response_model=PaymentWebhookResponse)
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """200 for handled or ignored events, 401 on a bad signature, 500 so the provider retries."""
    raw = await request.body()
    try:
        authenticate_event(services.payments, raw, request.headers.get("x-paystack-signature"))
    except AuthenticationFailure as e:
        logger.warning(f"Rejected Paystack webhook: {e.message}")
        return JSONResponse({"received": False, "outcome": "invalid_signature"}, status_code=status.HTTP_401_UNAUTHORIZED)

    event = parse_event(raw)
    if event is None:
        logger.warning("Unparseable Paystack webhook body")
        return PaymentWebhookResponse(received=True, outcome="malformed")

    try:
        outcome = await process_event(db, services, event)
    except Exception as e:
        db.rollback()
        logger.error(f"Paystack webhook processing failed: {e}", exc_info=True, extra={"context": {"event": event.event}})
        await services.alerter.error("Paystack webhook processing failed", {"event": event.event, "error": str(e)[:300]})
        return JSONResponse(
            {"received": False, "event": event.event, "outcome": "error"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return PaymentWebhookResponse(received=True, event=event.event, outcome=outcome)
