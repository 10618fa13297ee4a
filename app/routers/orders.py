from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.container import Services, get_services
from app.database import get_db
from app.errors import StorefrontError
from app.models import Order
from app.routers.errors import to_http
from app.schemas.admin import OrderResponse, OrderStatusUpdate, RefundRequest
from app.services.order_service import cancel_order, request_refund, update_order_status

router = APIRouter(prefix="/api/orders")


def _response(order: Order, message: str) -> OrderResponse:
    return OrderResponse(
        success=True,
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        message=message,
    )


@router.post("/{order_id}/status", response_model=OrderResponse)
async def set_order_status(
    order_id: UUID,
    body: OrderStatusUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        order = await update_order_status(db, services, order_id, body.status, body.tracking_number)
    except StorefrontError as e:
        raise to_http(e) from e
    return _response(order, "Status updated")


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel(
    order_id: UUID,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        order = await cancel_order(db, services, order_id)
    except StorefrontError as e:
        raise to_http(e) from e
    return _response(order, "Order cancelled")


@router.post("/{order_id}/refund", response_model=OrderResponse)
async def refund(
    order_id: UUID,
    body: Optional[RefundRequest] = None,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        order = await request_refund(db, services, order_id, body.amount if body else None)
    except StorefrontError as e:
        raise to_http(e) from e
    return _response(order, "Refund requested")
