"""
frontdesk/engine - transition tables for persisted entities
"""
from frontdesk.engine.state_machine import StateTransition, StateMachineConfig, StateMachine

__all__ = ["StateTransition", "StateMachineConfig", "StateMachine"]
