"""Wallet delivery state machine transitions enforced by the delivery service."""

CREATED = "CREATED"
CLAIM_LINK_ISSUED = "CLAIM_LINK_ISSUED"
FIRST_SENT = "FIRST_SENT"
FIRST_FAILED = "FIRST_FAILED"
SECOND_SCHEDULED = "SECOND_SCHEDULED"
SECOND_SENT = "SECOND_SENT"
SECOND_FAILED = "SECOND_FAILED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    CREATED: {CLAIM_LINK_ISSUED},
    CLAIM_LINK_ISSUED: {FIRST_SENT, FIRST_FAILED},
    FIRST_SENT: {SECOND_SCHEDULED},
    # Terminal: the secret-bearing message is never retried automatically.
    FIRST_FAILED: set(),
    SECOND_SCHEDULED: {SECOND_SENT, SECOND_FAILED},
    SECOND_SENT: set(),
    SECOND_FAILED: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
