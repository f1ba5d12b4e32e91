"""SOS trigger processors.

Text commands, uploaded voice recordings and voice recordings by URL all
end up in ``alert_lifecycle.create_alert``. A keyword mismatch or a failed
transcription is not an error: it yields a ``TriggerOutcome`` saying no
alert was raised and why.
"""

import asyncio
import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.config import settings
from sos_api.core.errors import DependencyError, ValidationError
from sos_api.core.location import Location
from sos_api.logging_config import get_logger
from sos_api.models.alert import Alert, TriggerMethod
from sos_api.models.base import utcnow
from sos_api.models.user_settings import UserSettings
from sos_api.services import alert_lifecycle, notification_dispatcher
from sos_api.services.notification_channel import NotificationSender, send_notification
from sos_api.services.transcription import (
    AudioTranscriber,
    UrlTranscriber,
    transcribe_audio,
    transcribe_url,
)

logger = get_logger(__name__)

ALLOWED_AUDIO_EXTENSIONS = {".wav", ".mp3", ".m4a", ".aac", ".ogg", ".webm", ".3gp", ".amr", ".flac"}


class TriggerStatus(str, enum.Enum):
    """What a trigger attempt did."""

    CREATED = "created"
    REUSED = "reused"
    KEYWORD_MISMATCH = "keyword_mismatch"
    TRANSCRIPTION_FAILED = "transcription_failed"


@dataclass
class TriggerOutcome:
    """Result of a trigger attempt."""

    status: TriggerStatus
    alert: Alert | None = None
    dispatch: notification_dispatcher.DispatchResult | None = None
    reason: str = ""
    transcript: str | None = None

    @property
    def raised(self) -> bool:
        """True when an alert exists for this trigger (new or reused)."""
        return self.status in (TriggerStatus.CREATED, TriggerStatus.REUSED)


async def get_user_sos_keyword(db: AsyncSession, user_id: uuid.UUID) -> str:
    """The user's configured SOS keyword, falling back to the default."""
    user_settings = await db.get(UserSettings, user_id)
    if user_settings is not None and user_settings.sos_keyword and user_settings.sos_keyword.strip():
        return user_settings.sos_keyword.strip()
    return settings.default_sos_keyword


def keyword_matches(keyword: str | None, configured: str) -> bool:
    """Case-insensitive exact match of a typed keyword."""
    if not keyword:
        return False
    return keyword.strip().casefold() == configured.strip().casefold()


def transcript_has_keyword(transcript: str, configured: str) -> bool:
    """True if the transcript mentions the user's keyword or a default one."""
    spoken = transcript.casefold()
    candidates = {configured.strip().casefold()}
    candidates.update(k.strip().casefold() for k in settings.voice_default_keywords)
    return any(candidate and candidate in spoken for candidate in candidates)


async def _raise_alert(
    db: AsyncSession,
    user_id: uuid.UUID,
    location: Location,
    trigger_method: TriggerMethod,
    message: str | None,
    audio_ref: str | None,
    now: datetime | None,
    sender: NotificationSender,
    transcript: str | None = None,
) -> TriggerOutcome:
    alert, created = await alert_lifecycle.create_alert(
        db,
        user_id,
        location,
        trigger_method,
        message=message,
        audio_ref=audio_ref,
        now=now,
    )
    if not created:
        return TriggerOutcome(
            status=TriggerStatus.REUSED,
            alert=alert,
            reason="An SOS alert was raised moments ago; returning it",
            transcript=transcript,
        )

    dispatch_result = await notification_dispatcher.dispatch(db, alert, sender=sender)
    return TriggerOutcome(
        status=TriggerStatus.CREATED,
        alert=alert,
        dispatch=dispatch_result,
        reason="SOS alert raised",
        transcript=transcript,
    )


async def trigger_text_alert(
    db: AsyncSession,
    user_id: uuid.UUID,
    message: str | None,
    keyword: str | None,
    location: Location,
    *,
    now: datetime | None = None,
    sender: NotificationSender = send_notification,
) -> TriggerOutcome:
    """Raise an alert from a typed command if the keyword matches."""
    configured = await get_user_sos_keyword(db, user_id)
    if not keyword_matches(keyword, configured):
        logger.info("Text trigger keyword mismatch", user_id=str(user_id))
        return TriggerOutcome(
            status=TriggerStatus.KEYWORD_MISMATCH,
            reason=f"Alert not triggered. Keyword must be '{configured}'.",
        )

    return await _raise_alert(
        db,
        user_id,
        location,
        TriggerMethod.TEXT,
        message=message,
        audio_ref=None,
        now=now,
        sender=sender,
    )


def audio_extension(filename: str | None) -> str:
    """Extension to store an upload under; unknown types fall back to .wav."""
    suffix = Path(filename or "").suffix.lower()
    return suffix if suffix in ALLOWED_AUDIO_EXTENSIONS else ".wav"


async def save_audio_recording(
    user_id: uuid.UUID,
    audio: bytes,
    filename: str | None,
    now: datetime | None = None,
) -> str:
    """Persist an uploaded recording and return its relative path."""
    now = now or utcnow()
    millis = int(now.timestamp() * 1000)
    target_dir = Path(settings.sos_audio_dir)
    target = target_dir / f"sos_voice_{user_id}_{millis}{audio_extension(filename)}"

    def _write() -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(audio)

    await asyncio.to_thread(_write)
    return target.as_posix()


async def remove_audio_recording(path: str) -> None:
    """Delete a stored recording that no alert references."""
    await asyncio.to_thread(Path(path).unlink, missing_ok=True)
    logger.info("Discarded unreferenced voice recording", path=path)


async def trigger_voice_upload(
    db: AsyncSession,
    user_id: uuid.UUID,
    audio: bytes,
    filename: str | None,
    location: Location,
    language_code: str | None = None,
    *,
    now: datetime | None = None,
    transcriber: AudioTranscriber = transcribe_audio,
    sender: NotificationSender = send_notification,
) -> TriggerOutcome:
    """Raise an alert from an uploaded recording.

    The recording is transcribed; if the transcript mentions an SOS keyword
    the audio is stored and the alert raised with the transcript as its
    message. A reused alert keeps its existing recording and the new file is
    discarded. Transcription failures become TRANSCRIPTION_FAILED outcomes.

    Raises:
        ValidationError: Empty or oversized upload.
    """
    if not audio:
        raise ValidationError("Audio file is empty", field="audio")
    if len(audio) > settings.max_audio_upload_bytes:
        raise ValidationError(
            "Audio file is too large",
            field="audio",
            max_bytes=settings.max_audio_upload_bytes,
        )

    try:
        transcription = await transcriber(audio, filename or "audio.wav", language_code)
    except DependencyError as exc:
        logger.warning("Voice upload transcription failed", user_id=str(user_id), error=exc.message)
        return TriggerOutcome(
            status=TriggerStatus.TRANSCRIPTION_FAILED,
            reason=f"Could not transcribe audio: {exc.reason or exc.message}",
        )

    configured = await get_user_sos_keyword(db, user_id)
    if not transcript_has_keyword(transcription.text, configured):
        logger.info("No SOS keyword in voice upload", user_id=str(user_id))
        return TriggerOutcome(
            status=TriggerStatus.KEYWORD_MISMATCH,
            reason="No emergency keywords detected in the audio.",
            transcript=transcription.text,
        )

    audio_ref = await save_audio_recording(user_id, audio, filename, now)
    outcome = await _raise_alert(
        db,
        user_id,
        location,
        TriggerMethod.VOICE,
        message=transcription.text,
        audio_ref=audio_ref,
        now=now,
        sender=sender,
        transcript=transcription.text,
    )
    if outcome.alert is not None and outcome.alert.audio_recording != audio_ref:
        # Reused alert already carries a recording
        await remove_audio_recording(audio_ref)
    return outcome


async def trigger_voice_url(
    db: AsyncSession,
    user_id: uuid.UUID,
    audio_url: str,
    location: Location,
    language_code: str | None = None,
    *,
    now: datetime | None = None,
    transcriber: UrlTranscriber = transcribe_url,
    sender: NotificationSender = send_notification,
) -> TriggerOutcome:
    """Raise an alert from a recording the client already uploaded elsewhere."""
    if not audio_url or not audio_url.startswith(("http://", "https://")):
        raise ValidationError("audio_url must be an http(s) URL", field="audio_url")

    try:
        transcription = await transcriber(audio_url, language_code)
    except DependencyError as exc:
        logger.warning(
            "Voice URL transcription failed",
            user_id=str(user_id),
            audio_url=audio_url,
            error=exc.message,
        )
        return TriggerOutcome(
            status=TriggerStatus.TRANSCRIPTION_FAILED,
            reason=f"Could not transcribe audio: {exc.reason or exc.message}",
        )

    configured = await get_user_sos_keyword(db, user_id)
    if not transcript_has_keyword(transcription.text, configured):
        logger.info("No SOS keyword in voice URL", user_id=str(user_id))
        return TriggerOutcome(
            status=TriggerStatus.KEYWORD_MISMATCH,
            reason="No emergency keywords detected in the audio.",
            transcript=transcription.text,
        )

    return await _raise_alert(
        db,
        user_id,
        location,
        TriggerMethod.VOICE,
        message=transcription.text,
        audio_ref=audio_url,
        now=now,
        sender=sender,
        transcript=transcription.text,
    )
