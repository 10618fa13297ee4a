"""Customer-facing and operator-facing message texts."""

from decimal import Decimal
from typing import Iterable, Optional

GENERIC_APOLOGY = "Sorry, there was an error processing your order. Please try again or contact our support team."
FALLBACK_REPLY = "Sorry, something went wrong on our side. Please try again in a moment, or reply \"agent\" to talk to our team."
HANDOFF_ACK = "👋 Connecting you with our team...\n\nAn agent will be with you shortly. Thank you for your patience!"

ORDER_STATUS_EMOJI = {
    "CONFIRMED": "✅",
    "PROCESSING": "⚙️",
    "SHIPPED": "🚚",
    "DELIVERED": "📦",
    "CANCELLED": "❌",
    "REFUNDED": "💸",
}


def money(currency: str, amount) -> str:
    return f"{currency} {Decimal(str(amount)).quantize(Decimal('0.01'))}"


def insufficient_stock(product_name: str, available: int) -> str:
    if available <= 0:
        return f"Sorry, {product_name} is currently out of stock. We'll let you know when it's back!"
    return (
        f"Sorry, we only have {available} units of {product_name} in stock. "
        f"Would you like to order {available} instead?"
    )


def payment_link(payment_url: str, amount, currency: str, provider_name: str = "Paystack") -> str:
    return (
        "💳 *Complete Your Payment*\n\n"
        f"Amount: {money(currency, amount)}\n"
        f"Payment Provider: {provider_name}\n\n"
        f"Click the link below to pay securely:\n{payment_url}\n\n"
        "This link expires in 24 hours."
    )


def order_confirmation(order_number: str, lines: Iterable[tuple[str, int, object]], total, currency: str) -> str:
    items = "\n".join(f"  • {name} x{quantity} - {money(currency, price)}" for name, quantity, price in lines)
    return (
        "✅ *Order Confirmed!*\n\n"
        f"Order #{order_number}\n\n"
        f"*Items:*\n{items}\n\n"
        f"*Total:* {money(currency, total)}\n\n"
        "We'll send you tracking information once your order ships!\n\n"
        "Thank you for your purchase! 🎉"
    )


def payment_failed(order_number: str, reason: Optional[str] = None) -> str:
    detail = f"\nReason: {reason}\n" if reason else ""
    return (
        f"❌ *Payment Failed*\n\nOrder #{order_number}\n{detail}\n"
        "Don't worry! You can try again by sending me a message like \"I want to order [product name]\".\n\n"
        "Need assistance? Feel free to ask!"
    )


def refund_processed(order_number: str, amount, currency: str) -> str:
    return (
        f"💸 *Refund Processed*\n\nOrder #{order_number}\n"
        f"Amount: {money(currency, amount)}\n\n"
        "The funds will be returned to your original payment method within 5-10 business days.\n\n"
        "If you have any questions, please let us know!"
    )


def order_update(order_number: str, status: str, tracking_number: Optional[str] = None) -> str:
    message = f"📦 *Order Update*\n\nOrder #{order_number}\nStatus: {status}"
    if tracking_number:
        message += f"\n\nTracking Number: {tracking_number}\n\nYou can track your package with this number."
    return message


# Operator notifications


def op_new_order(order_number: str, customer_name: str, customer_phone: str, lines, total, currency: str) -> str:
    items = "\n".join(f"• {name} x{quantity} - {money(currency, price)}" for name, quantity, price in lines)
    return (
        "🎉 *NEW ORDER RECEIVED!*\n\n"
        f"📦 Order: #{order_number}\n\n"
        f"👤 Customer: {customer_name}\n"
        f"📱 Phone: {customer_phone}\n\n"
        f"🛒 *Items:*\n{items}\n\n"
        f"💰 *Total: {money(currency, total)}*\n\n"
        "⏳ Waiting for payment confirmation..."
    )


def op_order_status(order_number: str, customer_name: str, status: str, previous_status: Optional[str] = None) -> str:
    message = (
        f"{ORDER_STATUS_EMOJI.get(status, '📋')} *ORDER STATUS UPDATE*\n\n"
        f"📦 Order: #{order_number}\n"
        f"👤 Customer: {customer_name}\n\n"
        f"Status: {status}"
    )
    if previous_status:
        message += f" (was {previous_status})"
    return message


def op_needs_help(customer_name: str, customer_phone: str, last_message: str, reason: str, conversation_id) -> str:
    return (
        "🆘 *AI NEEDS YOUR HELP!*\n\n"
        f"👤 Customer: {customer_name}\n"
        f"📱 Phone: {customer_phone}\n\n"
        f"💬 Last message:\n\"{last_message}\"\n\n"
        f"❓ Reason: {reason}\n\n"
        "👉 Please check your dashboard to take over this conversation.\n\n"
        f"🔗 Conversation ID: {conversation_id}"
    )


def op_low_stock(product_name: str, current_stock: int) -> str:
    return (
        "⚠️ *LOW STOCK ALERT*\n\n"
        f"📦 Product: {product_name}\n"
        f"📊 Current Stock: {current_stock}\n\n"
        "Please restock soon to avoid running out!"
    )


def op_new_conversation(customer_name: str, customer_phone: str, first_message: str) -> str:
    return (
        "💬 *NEW CUSTOMER CONVERSATION*\n\n"
        f"👤 Customer: {customer_name}\n"
        f"📱 Phone: {customer_phone}\n\n"
        f"First message:\n\"{first_message}\""
    )
