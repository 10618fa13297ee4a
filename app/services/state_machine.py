from enum import Enum


class ConversationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    WAITING_FOR_AGENT = "WAITING_FOR_AGENT"
    WITH_AGENT = "WITH_AGENT"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


OPEN_STATUSES = frozenset(
    {ConversationStatus.ACTIVE, ConversationStatus.WAITING_FOR_AGENT, ConversationStatus.WITH_AGENT}
)
TERMINAL_STATUSES = frozenset({ConversationStatus.RESOLVED, ConversationStatus.CLOSED})

VALID_TRANSITIONS = {
    ConversationStatus.ACTIVE: [
        ConversationStatus.WAITING_FOR_AGENT,
        ConversationStatus.WITH_AGENT,
        ConversationStatus.RESOLVED,
        ConversationStatus.CLOSED,
    ],
    ConversationStatus.WAITING_FOR_AGENT: [
        ConversationStatus.WITH_AGENT,
        ConversationStatus.ACTIVE,
        ConversationStatus.RESOLVED,
        ConversationStatus.CLOSED,
    ],
    ConversationStatus.WITH_AGENT: [
        ConversationStatus.ACTIVE,
        ConversationStatus.RESOLVED,
        ConversationStatus.CLOSED,
    ],
    ConversationStatus.RESOLVED: [],
    ConversationStatus.CLOSED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Raises InvalidTransitionError if the table does not allow the move."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def escalate(current: ConversationStatus) -> ConversationStatus:
    """Hand the conversation to the human queue."""
    return transition(current, ConversationStatus.WAITING_FOR_AGENT)


def agent_take(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.WITH_AGENT)

