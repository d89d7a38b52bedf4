from __future__ import annotations

from typing import Dict, List

from app.core.enums import PickupStatus

# missed is reserved for a time-based expiry sweep; nothing produces it yet
ALLOWED_TRANSITIONS: Dict[str, List[str]] = {
    PickupStatus.pending.value: [
        PickupStatus.assigned.value,
        PickupStatus.completed.value,
        PickupStatus.cancelled.value,
        PickupStatus.missed.value,
    ],
    PickupStatus.assigned.value: [
        PickupStatus.completed.value,
        PickupStatus.cancelled.value,
        PickupStatus.missed.value,
    ],
    PickupStatus.completed.value: [],
    PickupStatus.cancelled.value: [],
    PickupStatus.missed.value: [],
}


def get_allowed_next(state: str) -> List[str]:
    return ALLOWED_TRANSITIONS.get(state, [])


def can_transition(current_state: str, target_state: str) -> bool:
    return target_state in get_allowed_next(current_state)

