from enum import Enum


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


VALID_TRANSITIONS = {
    ConversationStatus.ACTIVE: [ConversationStatus.PENDING, ConversationStatus.ESCALATED, ConversationStatus.RESOLVED],
    ConversationStatus.PENDING: [ConversationStatus.ACTIVE, ConversationStatus.ESCALATED, ConversationStatus.RESOLVED],
    ConversationStatus.ESCALATED: [ConversationStatus.ACTIVE, ConversationStatus.RESOLVED],
    ConversationStatus.RESOLVED: [ConversationStatus.ACTIVE],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ConversationStatus, to_status: ConversationStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status.value} -> {to_status.value}")


def can_transition(from_status: ConversationStatus, to_status: ConversationStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def transition(from_status: ConversationStatus, to_status: ConversationStatus) -> ConversationStatus:
    """Perform status transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)
    return to_status


def reopen(current: ConversationStatus) -> ConversationStatus:
    """A resolved thread becomes active again when the customer writes back."""
    if current == ConversationStatus.RESOLVED:
        return transition(current, ConversationStatus.ACTIVE)
    return current


def escalate(current: ConversationStatus) -> ConversationStatus:
    """Hand the thread over to a human agent."""
    if current == ConversationStatus.ESCALATED:
        return current
    return transition(current, ConversationStatus.ESCALATED)


def resolve(current: ConversationStatus) -> ConversationStatus:
    return transition(current, ConversationStatus.RESOLVED)
