"""Speech-to-text client.

Audio conversion and recognition happen in the transcription service; this
module only submits audio (bytes or a URL) and validates the answer.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from sos_api.config import settings
from sos_api.core.errors import TranscriptionError
from sos_api.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TranscriptionResult:
    """Recognised text and the service's confidence in it (0..1)."""

    text: str
    confidence: float | None = None


AudioTranscriber = Callable[[bytes, str, str | None], Awaitable[TranscriptionResult]]
UrlTranscriber = Callable[[str, str | None], Awaitable[TranscriptionResult]]


def parse_transcription_response(response: httpx.Response) -> TranscriptionResult:
    if response.status_code != 200:
        raise TranscriptionError(
            f"service returned {response.status_code}",
            status_code=response.status_code,
        )
    try:
        data = response.json()
    except ValueError as exc:
        raise TranscriptionError("response was not valid JSON") from exc

    if not isinstance(data, dict):
        raise TranscriptionError("response was not a JSON object")

    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        raise TranscriptionError("no speech recognised")

    confidence = data.get("confidence")
    if confidence is not None:
        try:
            confidence = float(confidence)
        except (TypeError, ValueError) as exc:
            raise TranscriptionError(f"invalid confidence {confidence!r}") from exc
    return TranscriptionResult(text=text.strip(), confidence=confidence)


async def transcribe_audio(
    audio: bytes,
    filename: str,
    language_code: str | None = None,
) -> TranscriptionResult:
    """Transcribe uploaded audio bytes.

    Raises:
        TranscriptionError: On transport failure, non-200 status or an empty
            transcript.
    """
    language = language_code or settings.transcription_language
    try:
        async with httpx.AsyncClient(
            timeout=settings.transcription_timeout_seconds
        ) as client:
            response = await client.post(
                settings.transcription_service_url,
                files={"audio": (filename, audio)},
                data={"language_code": language},
            )
    except httpx.HTTPError as exc:
        logger.warning("Transcription request failed", error=str(exc))
        raise TranscriptionError(str(exc) or type(exc).__name__) from exc

    return parse_transcription_response(response)


async def transcribe_url(
    audio_url: str,
    language_code: str | None = None,
) -> TranscriptionResult:
    """Transcribe audio the service fetches from ``audio_url`` itself."""
    language = language_code or settings.transcription_language
    try:
        async with httpx.AsyncClient(
            timeout=settings.transcription_timeout_seconds
        ) as client:
            response = await client.post(
                settings.transcription_service_url,
                json={"audio_url": audio_url, "language_code": language},
            )
    except httpx.HTTPError as exc:
        logger.warning("Transcription request failed", error=str(exc), audio_url=audio_url)
        raise TranscriptionError(str(exc) or type(exc).__name__) from exc

    return parse_transcription_response(response)


def get_audio_transcriber() -> AudioTranscriber:
    return transcribe_audio


def get_url_transcriber() -> UrlTranscriber:
    return transcribe_url
