"""Keyword heuristics over customer messages and AI replies.

Every function here is pure: no database, cache or network access, so the
routing decisions they feed are deterministic and testable in isolation.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence


class Intent(str, Enum):
    PURCHASE = "PURCHASE"
    INQUIRY_PRICE = "INQUIRY_PRICE"
    INQUIRY_AVAILABILITY = "INQUIRY_AVAILABILITY"
    ORDER_TRACKING = "ORDER_TRACKING"
    ORDER_MODIFICATION = "ORDER_MODIFICATION"
    HELP = "HELP"
    GENERAL = "GENERAL"


# Checked in order; the first rule with a matching keyword wins.
INTENT_RULES: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    (Intent.PURCHASE, ("buy", "purchase", "order")),
    (Intent.INQUIRY_PRICE, ("price", "cost", "how much")),
    (Intent.INQUIRY_AVAILABILITY, ("available", "stock", "in stock")),
    (Intent.ORDER_TRACKING, ("track", "order status", "delivery")),
    (Intent.ORDER_MODIFICATION, ("cancel", "return", "refund")),
    (Intent.HELP, ("help", "support", "agent")),
)

AGENT_REQUEST_KEYWORDS = ("agent", "human", "real person", "representative")

AI_CONFUSION_PHRASES = (
    "connect you with",
    "i don't understand",
    "i do not understand",
    "beyond my knowledge",
    "i'm not sure how to help",
    "i am not sure how to help",
    "i can't help with",
    "i cannot help with",
    "unable to assist",
    "transfer you to",
    "speak with a human",
    "human agent",
)

FRUSTRATION_KEYWORDS = (
    "frustrated",
    "frustrating",
    "annoyed",
    "angry",
    "ridiculous",
    "useless",
    "terrible",
    "worst",
    "not helpful",
    "stupid",
    "waste of time",
    "fed up",
    "nonsense",
    "disappointed",
)

COMPLEXITY_KEYWORDS = (
    "refund",
    "broken",
    "damaged",
    "defective",
    "urgent",
    "emergency",
    "complaint",
    "wrong item",
    "never arrived",
    "missing item",
    "scam",
    "fraud",
    "legal",
)

REPETITION_THRESHOLD = 3
HELP_WINDOW_TURNS = 5
FRUSTRATION_LOOKBACK_TURNS = 2

_QUANTITY_PATTERN = re.compile(r"(\d+)")
_WHITESPACE = re.compile(r"\s+")
_EDGE_PUNCTUATION = " \t\n.,!?;:'\"()"


class CatalogProduct(Protocol):
    name: str
    is_active: bool


class Turn(Protocol):
    role: str
    content: str


@dataclass(frozen=True)
class HelpAssessment:
    needs_help: bool
    reason: Optional[str] = None


NO_HELP_NEEDED = HelpAssessment(needs_help=False)


def normalize_for_matching(text: Optional[str]) -> str:
    if not text:
        return ""
    collapsed = _WHITESPACE.sub(" ", text.casefold())
    return collapsed.strip(_EDGE_PUNCTUATION)


def _contains_any(normalized: str, keywords: Sequence[str]) -> bool:
    return any(keyword in normalized for keyword in keywords)


def detect_intent(text: Optional[str]) -> Intent:
    lowered = (text or "").lower()
    for intent, keywords in INTENT_RULES:
        if _contains_any(lowered, keywords):
            return intent
    return Intent.GENERAL


def is_agent_request(text: Optional[str]) -> bool:
    return _contains_any((text or "").lower(), AGENT_REQUEST_KEYWORDS)


def extract_mentioned_products(text: Optional[str], catalog: Sequence[CatalogProduct]) -> list:
    """Active products whose name occurs in the message, in catalog order.

    Callers treat the first element as the product being bought; one product
    per purchase message.
    """
    lowered = (text or "").lower()
    if not lowered:
        return []
    return [product for product in catalog if product.is_active and product.name and product.name.lower() in lowered]


def parse_quantity(text: Optional[str], default: int = 1) -> int:
    """First integer literal in the message; `default` when there is none."""
    match = _QUANTITY_PATTERN.search(text or "")
    if not match:
        return default
    return max(int(match.group(1)), 1)


def detect_ai_confusion(reply_text: Optional[str]) -> HelpAssessment:
    lowered = (reply_text or "").lower()
    for phrase in AI_CONFUSION_PHRASES:
        if phrase in lowered:
            return HelpAssessment(needs_help=True, reason=f"AI reply signalled handoff ('{phrase}')")
    return NO_HELP_NEEDED


def _has_repeated_run(texts: Sequence[str], threshold: int) -> bool:
    run = 1
    for previous, current in zip(texts, texts[1:]):
        if current and current == previous:
            run += 1
            if run >= threshold:
                return True
        else:
            run = 1
    return threshold <= 1 and bool(texts)


def analyze_conversation_for_help(
    recent_turns: Sequence[Turn],
    *,
    repetition_threshold: int = REPETITION_THRESHOLD,
    window: int = HELP_WINDOW_TURNS,
    frustration_lookback: int = FRUSTRATION_LOOKBACK_TURNS,
) -> HelpAssessment:
    """Any one of three heuristics over the last `window` turns triggers a handoff.

    1. `repetition_threshold` consecutive customer turns with the same text.
    2. Frustration vocabulary in the last `frustration_lookback` customer turns.
    3. Complexity vocabulary in the latest customer turn.
    """
    windowed = list(recent_turns)[-window:] if window > 0 else []
    customer_texts = [normalize_for_matching(turn.content) for turn in windowed if turn.role == "user"]
    if not customer_texts:
        return NO_HELP_NEEDED

    if _has_repeated_run(customer_texts, repetition_threshold):
        return HelpAssessment(needs_help=True, reason="Customer repeated the same message")

    lookback = customer_texts[-frustration_lookback:] if frustration_lookback > 0 else []
    if any(_contains_any(text, FRUSTRATION_KEYWORDS) for text in lookback):
        return HelpAssessment(needs_help=True, reason="Customer appears frustrated")

    if _contains_any(customer_texts[-1], COMPLEXITY_KEYWORDS):
        return HelpAssessment(needs_help=True, reason="Request needs human attention")

    return NO_HELP_NEEDED
