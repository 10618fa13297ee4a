import asyncio
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from app.schemas.context import CartItem, ConversationContext, ConversationTurn
from app.services.ai_service import MAX_TOKENS, build_messages, build_system_prompt, generate_reply
from app.services.llm.base import LLMProvider, LLMResponse


class RecordingLLM(LLMProvider):
    def __init__(self):
        self.kwargs = None

    async def generate(self, messages, system=None, model=None, temperature=0.7, max_tokens=1024):
        self.kwargs = {"messages": messages, "system": system, "max_tokens": max_tokens}
        return LLMResponse(content="  Sure thing!  ", model="fake")


def context(turns=()):
    return ConversationContext(conversation_id=uuid4(), customer_name="Ama", turns=list(turns))


class TestBuildMessages:
    def test_appends_new_message(self):
        ctx = context([ConversationTurn(role="user", content="hi"), ConversationTurn(role="assistant", content="hello")])
        assert build_messages(ctx, "price?") == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "price?"},
        ]

    def test_drops_leading_assistant_turns(self):
        ctx = context([ConversationTurn(role="assistant", content="welcome")])
        assert build_messages(ctx, "hi") == [{"role": "user", "content": "hi"}]

    def test_merges_consecutive_user_turns(self):
        ctx = context([ConversationTurn(role="user", content="hello?")])
        assert build_messages(ctx, "anyone?") == [{"role": "user", "content": "hello?\nanyone?"}]


def test_system_prompt_lists_catalog_and_cart():
    ctx = context()
    ctx.cart.append(CartItem(product_id=uuid4(), name="Blue Shirt", quantity=2, unit_price=Decimal("50.00")))
    products = [SimpleNamespace(name="Blue Shirt", currency="GHS", price=Decimal("50.00"), description="Cotton", stock=4)]

    prompt = build_system_prompt(ctx, products)

    assert "Blue Shirt (GHS 50.00) - Cotton - Stock: 4 units" in prompt
    assert "Customer: Ama" in prompt
    assert "Cart Items: 1 items" in prompt
    assert "Let me connect you with our team" in prompt


def test_generate_reply_strips_and_uses_token_limit():
    llm = RecordingLLM()
    reply = asyncio.run(generate_reply(llm, context(), "hi", []))
    assert reply == "Sure thing!"
    assert llm.kwargs["max_tokens"] == MAX_TOKENS == 1024
