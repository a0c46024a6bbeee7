"""
Step-up authorization routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.errors import FrontDeskError
from frontdesk.models.schemas import StepUpRequest, StepUpResponse
from frontdesk.routers.errors import http_error
from frontdesk.security.auth import get_actor_context
from frontdesk.security.authorization import ActorContext
from frontdesk.security.step_up import issue_step_up_token

router = APIRouter(prefix="/auth", tags=["Authorization"])


@router.post("/step-up", response_model=StepUpResponse)
def step_up(
    data: StepUpRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    """Exchange the operator password for a short-lived authorization token"""
    try:
        grant = issue_step_up_token(db, ctx.operator_id, data.password, requested_by=ctx.actor_id)
    except FrontDeskError as e:
        raise http_error(e)
    return StepUpResponse(
        authorization_token=grant.token,
        authorized_by=grant.authorizer_id,
        expires_at=grant.expires_at
    )
