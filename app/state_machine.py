from __future__ import annotations

from typing import Final


class InvalidTransitionError(ValueError):
    pass


IDLE: Final[str] = "IDLE"
PROCESSING: Final[str] = "PROCESSING"
SUCCESS: Final[str] = "SUCCESS"
ERROR: Final[str] = "ERROR"

RESETTABLE_STATES: Final[set[str]] = {SUCCESS, ERROR}

ALLOWED_TRANSITIONS: Final[dict[str, set[str]]] = {
    IDLE: {PROCESSING},
    PROCESSING: {SUCCESS, ERROR},
    SUCCESS: {IDLE},
    ERROR: {IDLE},
}


def can_transition(from_state: str, to_state: str) -> bool:
    from_norm = from_state.strip().upper()
    to_norm = to_state.strip().upper()
    return to_norm in ALLOWED_TRANSITIONS.get(from_norm, set())


def transition_state(from_state: str, to_state: str) -> str:
    from_norm = from_state.strip().upper()
    to_norm = to_state.strip().upper()

    if from_norm not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown state: {from_state}")
    if to_norm not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown state: {to_state}")
    if to_norm not in ALLOWED_TRANSITIONS[from_norm]:
        raise InvalidTransitionError(f"Invalid transition: {from_norm} -> {to_norm}")
    return to_norm
