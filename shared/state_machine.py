from enum import Enum
from typing import List
from dataclasses import dataclass


class MemberState(str, Enum):
    INVITED = "invited"
    ACCEPTED = "accepted"
    REMOVED = "removed"  # row deleted


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: MemberState
    to_state: MemberState
    action: str


class MemberStateMachine:
    """
    Team membership lifecycle.

    invited --accept--> accepted
    invited --reject/remove--> removed
    accepted --remove/leave--> removed
    """
    TRANSITIONS = [
        Transition(MemberState.INVITED, MemberState.ACCEPTED, "accept"),
        Transition(MemberState.INVITED, MemberState.REMOVED, "reject"),
        Transition(MemberState.INVITED, MemberState.REMOVED, "remove"),
        Transition(MemberState.ACCEPTED, MemberState.REMOVED, "remove"),
        Transition(MemberState.ACCEPTED, MemberState.REMOVED, "leave"),
    ]

    ALLOWED_ACTIONS = {
        MemberState.INVITED: ["accept", "reject", "remove"],
        MemberState.ACCEPTED: ["remove", "leave"],
        MemberState.REMOVED: [],
    }

    def __init__(self, initial_state: MemberState = MemberState.INVITED):
        self._state = initial_state
        self._history: List[tuple] = []

    @property
    def state(self) -> MemberState:
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_actions

    def can_transition(self, action: str) -> bool:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                return True
        return False

    def transition(self, action: str) -> MemberState:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                old_state = self._state
                self._state = t.to_state
                self._history.append((old_state, action, self._state))
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )

    def get_history(self) -> List[tuple]:
        return self._history.copy()

    @classmethod
    def from_state_string(cls, state_str: str) -> "MemberStateMachine":
        try:
            state = MemberState(state_str)
        except ValueError:
            raise TransitionError(state_str, "unknown", f"Unknown member status '{state_str}'")
        return cls(initial_state=state)
