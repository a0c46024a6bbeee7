# Security module
from frontdesk.security.auth import (
    get_password_hash, verify_password, create_access_token,
    get_current_user, get_actor_context, require_operator
)
from frontdesk.security.authorization import (
    ActorContext, Capabilities, AuthorizationGate, Operation, OperationRequest,
    authorization_gate
)
from frontdesk.security.step_up import issue_step_up_token, verify_step_up_token

__all__ = [
    'get_password_hash', 'verify_password', 'create_access_token',
    'get_current_user', 'get_actor_context', 'require_operator',
    'ActorContext', 'Capabilities', 'AuthorizationGate', 'Operation', 'OperationRequest',
    'authorization_gate', 'issue_step_up_token', 'verify_step_up_token'
]
