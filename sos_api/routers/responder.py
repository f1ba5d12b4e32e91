"""Responder router.

Actions a responder takes on an alert they were notified of.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.core.auth import ResponderCaller
from sos_api.database import get_db
from sos_api.schemas.alert import AlertResponse, ResponderAssignmentResponse
from sos_api.schemas.responder import (
    AlertActionResponse,
    AssignmentActionResponse,
    ForwardRequest,
    NotesRequest,
    ProgressRequest,
)
from sos_api.services import alert_lifecycle, responder_assignment
from sos_api.services.notification_channel import NotificationSender, get_notification_sender

router = APIRouter(prefix="/api/responder", tags=["responder"])


@router.post("/alerts/{alert_id}/accept", response_model=AssignmentActionResponse)
async def accept_alert(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
) -> AssignmentActionResponse:
    """Become the primary responder for an alert."""
    assignment = await responder_assignment.accept(
        db, alert_id, caller.user_id, sender=sender
    )
    return AssignmentActionResponse(
        message="Alert accepted",
        assignment=ResponderAssignmentResponse.model_validate(assignment),
    )


@router.post("/alerts/{alert_id}/reject", response_model=AssignmentActionResponse)
async def reject_alert(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    request: NotesRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> AssignmentActionResponse:
    """Decline an alert."""
    notes = request.notes if request else None
    assignment = await responder_assignment.reject(db, alert_id, caller.user_id, notes)
    return AssignmentActionResponse(
        message="Alert rejected",
        assignment=ResponderAssignmentResponse.model_validate(assignment),
    )


@router.post("/alerts/{alert_id}/forward", response_model=AssignmentActionResponse)
async def forward_alert(
    alert_id: uuid.UUID,
    request: ForwardRequest,
    caller: ResponderCaller,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
) -> AssignmentActionResponse:
    """Hand an accepted alert to another responder."""
    result = await responder_assignment.forward(
        db,
        alert_id,
        caller.user_id,
        request.to_responder_id,
        request.notes,
        sender=sender,
    )
    return AssignmentActionResponse(
        message="Alert forwarded",
        assignment=ResponderAssignmentResponse.model_validate(result.origin),
        forwarded_to=ResponderAssignmentResponse.model_validate(result.target),
        notified_count=result.dispatch.notified_count,
    )


@router.put("/alerts/{alert_id}/progress", response_model=AssignmentActionResponse)
async def update_progress(
    alert_id: uuid.UUID,
    request: ProgressRequest,
    caller: ResponderCaller,
    db: AsyncSession = Depends(get_db),
) -> AssignmentActionResponse:
    """Report EN_ROUTE or ARRIVED."""
    assignment = await responder_assignment.update_progress(
        db,
        alert_id,
        caller.user_id,
        request.status,
        request.eta_minutes,
        request.notes,
    )
    return AssignmentActionResponse(
        message=f"Status updated to {assignment.status.value}",
        assignment=ResponderAssignmentResponse.model_validate(assignment),
    )


@router.get("/alerts/{alert_id}/status", response_model=AssignmentActionResponse)
async def get_assignment_status(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    db: AsyncSession = Depends(get_db),
) -> AssignmentActionResponse:
    assignment = await responder_assignment.get_responder_status_for_alert(
        db, alert_id, caller.user_id
    )
    return AssignmentActionResponse(
        message="",
        assignment=ResponderAssignmentResponse.model_validate(assignment),
    )


@router.post("/alerts/{alert_id}/resolve", response_model=AlertActionResponse)
async def resolve_alert(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    request: NotesRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> AlertActionResponse:
    """Close an alert the caller is handling."""
    notes = request.notes if request else None
    alert = await alert_lifecycle.resolve(db, alert_id, caller.user_id, notes)
    return AlertActionResponse(
        message="Alert resolved",
        alert=AlertResponse.model_validate(alert),
    )


@router.post("/alerts/{alert_id}/critical", response_model=AlertActionResponse)
async def mark_alert_critical(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
) -> AlertActionResponse:
    """Escalate an alert to emergency services."""
    alert = await alert_lifecycle.mark_critical(db, alert_id, caller.user_id, sender=sender)
    return AlertActionResponse(
        message="Alert marked critical",
        alert=AlertResponse.model_validate(alert),
    )


@router.post("/alerts/{alert_id}/false-alarm", response_model=AlertActionResponse)
async def mark_false_alarm(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    request: NotesRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> AlertActionResponse:
    notes = request.notes if request else None
    alert = await alert_lifecycle.mark_false_alarm(db, alert_id, caller.user_id, notes)
    return AlertActionResponse(
        message="Alert marked as false alarm",
        alert=AlertResponse.model_validate(alert),
    )


@router.post("/alerts/{alert_id}/verify", response_model=AlertActionResponse)
async def verify_alert(
    alert_id: uuid.UUID,
    caller: ResponderCaller,
    db: AsyncSession = Depends(get_db),
) -> AlertActionResponse:
    alert = await alert_lifecycle.verify(db, alert_id, caller.user_id)
    return AlertActionResponse(
        message="Alert verified",
        alert=AlertResponse.model_validate(alert),
    )
