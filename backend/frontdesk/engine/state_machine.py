"""
frontdesk/engine/state_machine.py

State machine definitions for persisted entities.

Unlike an in-memory machine, persisted rows carry their own current state, so a
machine here is a validated transition table: given the stored state and a trigger
it answers which state (if any) the row may move to.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class StateTransition:
    """
    One allowed edge

    Attributes:
        from_state: source state
        to_state: target state
        trigger: action name that fires the edge
    """

    from_state: str
    to_state: str
    trigger: str


@dataclass
class StateMachineConfig:
    """
    State machine configuration

    Attributes:
        name: machine name (entity type)
        states: every state
        transitions: allowed edges
        initial_state: state of a newly created row
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str


class StateMachine:
    """
    Transition table with validation

    Example:
        >>> machine = StateMachine(StateMachineConfig(
        ...     name="Room",
        ...     states=["available", "occupied"],
        ...     transitions=[
        ...         StateTransition("available", "occupied", "occupy"),
        ...         StateTransition("occupied", "available", "release"),
        ...     ],
        ...     initial_state="available",
        ... ))
        >>> machine.target_for("available", "occupy")
        'occupied'
    """

    def __init__(self, config: StateMachineConfig):
        self._config = config
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}

        for t in config.transitions:
            if t.from_state not in config.states or t.to_state not in config.states:
                raise ValueError(
                    f"{config.name}: transition {t.from_state} -> {t.to_state} uses an unknown state"
                )
            self._transition_map.setdefault(t.from_state, {})[t.trigger] = t

    @property
    def config(self) -> StateMachineConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    def target_for(self, current_state: str, trigger: str) -> Optional[str]:
        """Target state for ``trigger`` from ``current_state``, or None if not allowed."""
        transition = self._transition_map.get(_value(current_state), {}).get(trigger)
        return transition.to_state if transition else None

    def can_fire(self, current_state: str, trigger: str) -> bool:
        return self.target_for(current_state, trigger) is not None

    def sources_for(self, trigger: str) -> List[str]:
        """States from which ``trigger`` may fire"""
        return [
            state for state, triggers in self._transition_map.items()
            if trigger in triggers
        ]

    def is_edge(self, from_state: str, to_state: str) -> bool:
        """Whether any trigger moves ``from_state`` directly to ``to_state``"""
        return any(
            t.to_state == _value(to_state)
            for t in self._transition_map.get(_value(from_state), {}).values()
        )

    def edges(self) -> List[Tuple[str, str]]:
        return [(t.from_state, t.to_state) for t in self._config.transitions]


def _value(state) -> str:
    """Accept plain strings or str-valued enums"""
    return getattr(state, "value", state)


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
]
