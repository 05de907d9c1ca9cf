# src/core/rides/state_machine.py
from src.common.constants import RideStatus


class RideStateMachine:
    """Допустимые переходы статуса поездки. Только вперёд, без пропусков."""

    ALLOWED_TRANSITIONS: dict[RideStatus, tuple[RideStatus, ...]] = {
        RideStatus.REQUESTED: (RideStatus.ACCEPTED, RideStatus.CANCELLED),
        RideStatus.ACCEPTED: (RideStatus.STARTED, RideStatus.CANCELLED),
        RideStatus.STARTED: (RideStatus.COMPLETED,),
        RideStatus.COMPLETED: (),
        RideStatus.CANCELLED: (),
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = RideStatus(current_status)
            new = RideStatus(new_status)
        except ValueError:
            return False
        return new in RideStateMachine.ALLOWED_TRANSITIONS.get(curr, ())

    @staticmethod
    def sources_for(new_status: str) -> tuple[RideStatus, ...]:
        """Статусы, из которых достижим new_status."""
        target = RideStatus(new_status)
        return tuple(
            status
            for status, targets in RideStateMachine.ALLOWED_TRANSITIONS.items()
            if target in targets
        )

    @staticmethod
    def is_terminal(status: str) -> bool:
        return not RideStateMachine.ALLOWED_TRANSITIONS.get(RideStatus(status))
