from typing import List, Optional

from app.logging_config import get_logger
from app.schemas.context import ConversationContext, ConversationTurn
from app.services.catalog_service import format_catalog
from app.services.llm.base import LLMProvider

logger = get_logger("ai_service")

MAX_TOKENS = 1024
TEMPERATURE = 0.7

SYSTEM_PROMPT_TEMPLATE = """You are a helpful WhatsApp AI assistant for an e-commerce business. Your role is to:
1. Help customers discover and learn about products
2. Answer questions about inventory, pricing, and product details
3. Guide customers through the purchase process
4. Provide excellent customer service

Available Products:
{catalog}

Current Conversation Context:
- Customer: {customer_name}
- Cart Items: {cart_count} items
{cart_lines}

Guidelines:
- Be friendly, professional, and concise
- Always check product availability before recommending
- If asked about a product not in the list, politely explain it's not available
- To buy, the customer can say e.g. "I want to buy 2 <product name>" and we will send a payment link
- If you need to escalate to a human agent, say "Let me connect you with our team"
- Use emojis sparingly and appropriately

Remember: Keep responses short for WhatsApp (2-3 sentences max when possible)."""


def build_system_prompt(context: ConversationContext, products: list) -> str:
    cart_lines = "\n".join(
        f"  * {item.name} x{item.quantity} - {item.unit_price}" for item in context.cart
    )
    return SYSTEM_PROMPT_TEMPLATE.format(
        catalog=format_catalog(products),
        customer_name=context.customer_name or "Unknown",
        cart_count=len(context.cart),
        cart_lines=cart_lines,
    )


def build_messages(context: ConversationContext, user_message: str, max_turns: int = 10) -> List[dict]:
    """Turn window plus the new message, starting with a user turn, consecutive same-role turns merged."""
    messages: List[dict] = []
    for turn in [*context.turns[-max_turns:], ConversationTurn(role="user", content=user_message)]:
        if not messages and turn.role != "user":
            continue
        if messages and messages[-1]["role"] == turn.role:
            messages[-1]["content"] += "\n" + turn.content
        else:
            messages.append({"role": turn.role, "content": turn.content})
    return messages


async def generate_reply(
    llm: LLMProvider,
    context: ConversationContext,
    user_message: str,
    products: list,
    model: Optional[str] = None,
    max_turns: int = 10,
) -> str:
    """Ask the LLM for the next assistant turn. Upstream errors propagate to the caller."""
    response = await llm.generate(
        messages=build_messages(context, user_message, max_turns),
        system=build_system_prompt(context, products),
        model=model,
        temperature=TEMPERATURE,
        max_tokens=MAX_TOKENS,
    )
    reply = response.content.strip()
    logger.info(
        "AI reply generated",
        extra={"context": {"conversation_id": str(context.conversation_id), "model": response.model, "length": len(reply)}},
    )
    return reply
