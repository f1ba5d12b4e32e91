"""SOS router.

Trigger endpoints (text, voice by URL, voice upload), cancel, and alert
listings for users and responder dashboards.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.core.auth import CurrentCaller, DashboardCaller
from sos_api.core.location import Location
from sos_api.database import get_db
from sos_api.models.alert import Alert
from sos_api.schemas.alert import (
    AlertDetailsResponse,
    AlertListResponse,
    AlertNotificationResponse,
    AlertResponse,
    ParticipantInfo,
    ParticipantLocationResponse,
    ResponderAssignmentResponse,
)
from sos_api.schemas.sos import (
    CancelAlertRequest,
    SOSAlertResponse,
    TextCommandRequest,
    VoiceUrlCommandRequest,
)
from sos_api.services import alert_lifecycle, alert_query, sos_trigger
from sos_api.services.notification_channel import NotificationSender, get_notification_sender
from sos_api.services.sos_trigger import TriggerOutcome, TriggerStatus
from sos_api.services.transcription import (
    AudioTranscriber,
    UrlTranscriber,
    get_audio_transcriber,
    get_url_transcriber,
)

router = APIRouter(prefix="/api/sos", tags=["sos"])


def _alert_fields(alert: Alert) -> dict:
    return {
        "alert_id": alert.id,
        "user_id": alert.user_id,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "address": alert.address,
        "trigger_method": alert.trigger_method,
        "alert_message": alert.alert_message,
        "audio_recording": alert.audio_recording,
        "triggered_at": alert.triggered_at,
        "status": alert.status,
        "verification_status": alert.verification_status,
        "canceled_at": alert.canceled_at,
        "resolved_at": alert.resolved_at,
    }


def _outcome_response(outcome: TriggerOutcome, response: Response) -> SOSAlertResponse:
    """Map a trigger outcome to the response body and status code.

    201 when an alert was raised or reused, 200 with success=False otherwise.
    """
    if not outcome.raised:
        response.status_code = status.HTTP_200_OK
        return SOSAlertResponse(
            success=False,
            message=outcome.reason,
            outcome=outcome.status.value,
            transcript=outcome.transcript,
        )

    response.status_code = status.HTTP_201_CREATED
    if outcome.status == TriggerStatus.CREATED:
        message = "SOS alert triggered successfully"
    else:
        message = "SOS alert already active; returning the existing alert"
    return SOSAlertResponse(
        success=True,
        message=message,
        outcome=outcome.status.value,
        notified_count=outcome.dispatch.notified_count if outcome.dispatch else None,
        failed_count=outcome.dispatch.failed_count if outcome.dispatch else None,
        transcript=outcome.transcript,
        **_alert_fields(outcome.alert),
    )


@router.post("/text-command", response_model=SOSAlertResponse, status_code=status.HTTP_201_CREATED)
async def text_command(
    request: TextCommandRequest,
    response: Response,
    caller: CurrentCaller,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
) -> SOSAlertResponse:
    """Raise an SOS from a typed message if the keyword matches."""
    outcome = await sos_trigger.trigger_text_alert(
        db,
        caller.user_id,
        request.message,
        request.keyword,
        request.location.to_location(),
        sender=sender,
    )
    return _outcome_response(outcome, response)


@router.post("/voice-command", response_model=SOSAlertResponse, status_code=status.HTTP_201_CREATED)
async def voice_command(
    request: VoiceUrlCommandRequest,
    response: Response,
    caller: CurrentCaller,
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
    transcriber: UrlTranscriber = Depends(get_url_transcriber),
) -> SOSAlertResponse:
    """Raise an SOS from a hosted voice recording."""
    outcome = await sos_trigger.trigger_voice_url(
        db,
        caller.user_id,
        request.audio_url,
        request.location.to_location(),
        request.language_code,
        transcriber=transcriber,
        sender=sender,
    )
    return _outcome_response(outcome, response)


@router.post("/voice-upload", response_model=SOSAlertResponse, status_code=status.HTTP_201_CREATED)
async def voice_upload(
    response: Response,
    caller: CurrentCaller,
    audio: UploadFile = File(..., description="Voice recording"),
    latitude: float = Form(..., ge=-90.0, le=90.0),
    longitude: float = Form(..., ge=-180.0, le=180.0),
    address: str | None = Form(default=None, max_length=500),
    language_code: str | None = Form(default=None, max_length=10),
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
    transcriber: AudioTranscriber = Depends(get_audio_transcriber),
) -> SOSAlertResponse:
    """Raise an SOS from an uploaded voice recording."""
    content = await audio.read()
    outcome = await sos_trigger.trigger_voice_upload(
        db,
        caller.user_id,
        content,
        audio.filename,
        Location(latitude, longitude, address),
        language_code,
        transcriber=transcriber,
        sender=sender,
    )
    return _outcome_response(outcome, response)


@router.post("/cancel", response_model=SOSAlertResponse)
async def cancel_alert(
    request: CancelAlertRequest,
    caller: CurrentCaller,
    db: AsyncSession = Depends(get_db),
) -> SOSAlertResponse:
    """Cancel one of the caller's open alerts."""
    alert = await alert_lifecycle.cancel(db, request.alert_id, caller.user_id)
    return SOSAlertResponse(
        success=True,
        message="SOS alert canceled",
        **_alert_fields(alert),
    )


@router.get("/alerts", response_model=AlertListResponse)
async def list_my_alerts(
    caller: CurrentCaller,
    limit: int | None = Query(default=None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    """The caller's alerts, newest first."""
    alerts = await alert_query.get_user_alerts(db, caller.user_id, limit=limit)
    return AlertListResponse(
        alerts=[AlertResponse.model_validate(a) for a in alerts],
        count=len(alerts),
    )


@router.get("/active-alerts", response_model=AlertListResponse)
async def list_active_alerts(
    caller: DashboardCaller,
    limit: int | None = Query(default=None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    """Open alerts for responder dashboards."""
    alerts = await alert_query.get_active_alerts(db, limit=limit)
    return AlertListResponse(
        alerts=[AlertResponse.model_validate(a) for a in alerts],
        count=len(alerts),
    )


@router.get("/alerts/window", response_model=AlertListResponse)
async def list_alerts_in_window(
    caller: DashboardCaller,
    start: datetime = Query(...),
    end: datetime = Query(...),
    limit: int | None = Query(default=None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    """Alerts triggered between ``start`` and ``end``."""
    alerts = await alert_query.get_alerts_in_window(db, start, end, limit=limit)
    return AlertListResponse(
        alerts=[AlertResponse.model_validate(a) for a in alerts],
        count=len(alerts),
    )


@router.get("/alerts/area", response_model=AlertListResponse)
async def list_alerts_in_area(
    caller: DashboardCaller,
    lat_min: float = Query(...),
    lat_max: float = Query(...),
    lon_min: float = Query(...),
    lon_max: float = Query(...),
    limit: int | None = Query(default=None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    """Alerts inside a bounding box."""
    alerts = await alert_query.get_alerts_in_area(
        db, lat_min, lat_max, lon_min, lon_max, limit=limit
    )
    return AlertListResponse(
        alerts=[AlertResponse.model_validate(a) for a in alerts],
        count=len(alerts),
    )


@router.get("/alerts/{alert_id}", response_model=AlertDetailsResponse)
async def get_alert_details(
    alert_id: uuid.UUID,
    caller: CurrentCaller,
    db: AsyncSession = Depends(get_db),
) -> AlertDetailsResponse:
    """Alert details for its owner or a responder assigned to it."""
    details = await alert_query.get_alert_details(
        db, alert_id, caller.user_id, is_admin=caller.is_admin
    )
    return AlertDetailsResponse(
        alert=AlertResponse.model_validate(details.alert),
        responders=[ResponderAssignmentResponse.model_validate(r) for r in details.responders],
        notifications=[
            AlertNotificationResponse.model_validate(n) for n in details.notifications
        ],
    )


@router.get(
    "/alerts/{alert_id}/participant-location",
    response_model=ParticipantLocationResponse,
)
async def get_participant_location(
    alert_id: uuid.UUID,
    caller: CurrentCaller,
    db: AsyncSession = Depends(get_db),
) -> ParticipantLocationResponse:
    """Owner sees the handling responder; an assigned responder sees the owner."""
    participant = await alert_query.get_participant_location(db, alert_id, caller.user_id)
    return ParticipantLocationResponse(
        participant=ParticipantInfo.model_validate(participant),
    )
