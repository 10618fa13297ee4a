"""Best-effort fan-out of store events to operators over WhatsApp."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Operator
from app.services import templates

logger = get_logger("notification_service")


@dataclass
class DispatchReport:
    attempted: int = 0
    delivered: int = 0

    @property
    def failed(self) -> int:
        return self.attempted - self.delivered


class NotificationDispatcher:
    """Sends a formatted event to every active operator with a phone number.

    A failed send is logged and skipped; it never reaches the caller.
    """

    def __init__(self, messenger):
        self.messenger = messenger

    def recipients(self, db: Session) -> list[str]:
        rows = (
            db.query(Operator.phone_number)
            .filter(Operator.is_active.is_(True), Operator.phone_number.isnot(None), Operator.phone_number != "")
            .order_by(Operator.created_at)
            .all()
        )
        return [row[0] for row in rows]

    async def broadcast(self, db: Session, text: str, event: str = "custom") -> DispatchReport:
        report = DispatchReport()
        try:
            phones = self.recipients(db)
        except Exception as e:
            logger.error(f"Could not load operators for {event}: {e}")
            return report

        if not phones:
            logger.info("No operators with phone numbers configured", extra={"context": {"event": event}})
            return report

        for phone in phones:
            report.attempted += 1
            try:
                await self.messenger.send_text(phone, text)
                report.delivered += 1
            except Exception as e:
                logger.warning(
                    "Operator notification failed",
                    extra={"context": {"event": event, "operator_phone": phone, "error": str(e)}},
                )
        return report

    async def new_order(self, db: Session, order, customer) -> DispatchReport:
        lines = [(item.product.name, item.quantity, item.price) for item in order.items]
        text = templates.op_new_order(
            order.order_number,
            customer.name or "Unknown",
            customer.phone_number,
            lines,
            order.total_amount,
            order.currency,
        )
        return await self.broadcast(db, text, event="new_order")

    async def order_status(self, db: Session, order, customer, previous_status: Optional[str] = None) -> DispatchReport:
        text = templates.op_order_status(order.order_number, customer.name or "Unknown", order.status, previous_status)
        return await self.broadcast(db, text, event="order_status")

    async def needs_help(self, db: Session, conversation, customer, last_message: str, reason: str) -> DispatchReport:
        text = templates.op_needs_help(
            customer.name or "Unknown", customer.phone_number, last_message, reason, conversation.id
        )
        return await self.broadcast(db, text, event="needs_help")

    async def low_stock(self, db: Session, product) -> DispatchReport:
        return await self.broadcast(db, templates.op_low_stock(product.name, product.stock), event="low_stock")

    async def new_conversation(self, db: Session, customer, first_message: str) -> DispatchReport:
        text = templates.op_new_conversation(customer.name or "Unknown", customer.phone_number, first_message)
        return await self.broadcast(db, text, event="new_conversation")
