"""Tests for the text and voice SOS trigger processors."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import func, select

from sos_api.config import settings
from sos_api.core.errors import TranscriptionError, ValidationError
from sos_api.core.location import Location
from sos_api.models import Alert, AlertStatus, TriggerMethod, VerificationStatus
from sos_api.services import sos_trigger
from sos_api.services.sos_trigger import TriggerStatus
from sos_api.services.transcription import TranscriptionResult, parse_transcription_response

DHAKA = Location(23.81, 90.41)


async def alert_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Alert))).scalar_one()


def transcriber_returning(text: str) -> AsyncMock:
    return AsyncMock(return_value=TranscriptionResult(text=text, confidence=0.92))


class TestKeywordMatching:
    """Keyword helpers."""

    def test_text_keyword_is_case_insensitive_exact(self):
        assert sos_trigger.keyword_matches("HELP ", "help")
        assert not sos_trigger.keyword_matches("helpme", "help")
        assert not sos_trigger.keyword_matches(None, "help")

    def test_transcript_matches_default_keywords(self):
        assert sos_trigger.transcript_has_keyword("This is an EMERGENCY", "banana")
        assert sos_trigger.transcript_has_keyword("banana banana", "banana")
        assert not sos_trigger.transcript_has_keyword("nice weather today", "banana")

    def test_audio_extension(self):
        assert sos_trigger.audio_extension("clip.MP3") == ".mp3"
        assert sos_trigger.audio_extension("clip.exe") == ".wav"
        assert sos_trigger.audio_extension(None) == ".wav"


class TestTranscriptionResponse:
    """parse_transcription_response()"""

    def test_valid_answer(self):
        result = parse_transcription_response(
            httpx.Response(200, json={"text": " help me ", "confidence": "0.8"})
        )

        assert result == TranscriptionResult(text="help me", confidence=0.8)

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json=["help"]),
            httpx.Response(200, json={"text": "help me", "confidence": "high"}),
            httpx.Response(200, json={"text": "help me", "confidence": [0.9]}),
            httpx.Response(200, json={"text": "   "}),
            httpx.Response(200, content=b"not json"),
            httpx.Response(503, json={"text": "help"}),
        ],
    )
    def test_malformed_answers_are_transcription_errors(self, response):
        with pytest.raises(TranscriptionError):
            parse_transcription_response(response)


class TestTextTrigger:
    """trigger_text_alert()"""

    @pytest.mark.asyncio
    async def test_matching_keyword_raises_alert(self, db_session, make_user):
        user = await make_user()
        sender = AsyncMock()

        outcome = await sos_trigger.trigger_text_alert(
            db_session, user.id, "Help me, emergency!", "help", DHAKA, sender=sender
        )

        assert outcome.status == TriggerStatus.CREATED
        assert outcome.raised
        alert = outcome.alert
        assert alert.status == AlertStatus.ACTIVE
        assert alert.verification_status == VerificationStatus.PENDING
        assert alert.trigger_method == TriggerMethod.TEXT
        assert alert.alert_message == "Help me, emergency!"
        assert (alert.latitude, alert.longitude) == (23.81, 90.41)
        assert outcome.dispatch.notified_count == 0

    @pytest.mark.asyncio
    async def test_wrong_keyword_creates_nothing(self, db_session, make_user):
        user = await make_user()

        outcome = await sos_trigger.trigger_text_alert(
            db_session, user.id, "Help me, emergency!", "test", DHAKA, sender=AsyncMock()
        )

        assert outcome.status == TriggerStatus.KEYWORD_MISMATCH
        assert not outcome.raised
        assert outcome.alert is None
        assert outcome.reason == "Alert not triggered. Keyword must be 'help'."
        assert await alert_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_user_keyword_overrides_default(self, db_session, make_user):
        user = await make_user(sos_keyword="Mayday")

        default_attempt = await sos_trigger.trigger_text_alert(
            db_session, user.id, "msg", "help", DHAKA, sender=AsyncMock()
        )
        custom_attempt = await sos_trigger.trigger_text_alert(
            db_session, user.id, "msg", "mayday", DHAKA, sender=AsyncMock()
        )

        assert default_attempt.status == TriggerStatus.KEYWORD_MISMATCH
        assert custom_attempt.status == TriggerStatus.CREATED

    @pytest.mark.asyncio
    async def test_repeat_trigger_reuses_alert(self, db_session, make_user, make_contact):
        user = await make_user()
        await make_contact(user.id)
        sender = AsyncMock()

        first = await sos_trigger.trigger_text_alert(
            db_session, user.id, "Help", "help", DHAKA, sender=sender
        )
        second = await sos_trigger.trigger_text_alert(
            db_session, user.id, "Help again", "help", DHAKA, sender=sender
        )

        assert second.status == TriggerStatus.REUSED
        assert second.alert.id == first.alert.id
        assert second.dispatch is None
        assert sender.await_count == 1
        assert await alert_count(db_session) == 1


class TestVoiceUpload:
    """trigger_voice_upload()"""

    @pytest.fixture(autouse=True)
    def audio_dir(self, tmp_path, monkeypatch):
        target = tmp_path / "audio"
        monkeypatch.setattr(settings, "sos_audio_dir", str(target))
        return target

    @pytest.mark.asyncio
    async def test_keyword_in_transcript_raises_voice_alert(
        self, db_session, make_user, audio_dir
    ):
        user = await make_user()
        now = datetime(2026, 5, 1, 8, 30, tzinfo=UTC)
        transcriber = transcriber_returning("please help me")

        outcome = await sos_trigger.trigger_voice_upload(
            db_session,
            user.id,
            b"RIFF....WAVE",
            "clip.m4a",
            DHAKA,
            now=now,
            transcriber=transcriber,
            sender=AsyncMock(),
        )

        assert outcome.status == TriggerStatus.CREATED
        assert outcome.transcript == "please help me"
        alert = outcome.alert
        assert alert.trigger_method == TriggerMethod.VOICE
        assert alert.alert_message == "please help me"
        expected = audio_dir / f"sos_voice_{user.id}_{int(now.timestamp() * 1000)}.m4a"
        assert alert.audio_recording == expected.as_posix()
        assert Path(alert.audio_recording).read_bytes() == b"RIFF....WAVE"
        transcriber.assert_awaited_once_with(b"RIFF....WAVE", "clip.m4a", None)

    @pytest.mark.asyncio
    async def test_no_keyword_stores_nothing(self, db_session, make_user, audio_dir):
        user = await make_user()

        outcome = await sos_trigger.trigger_voice_upload(
            db_session,
            user.id,
            b"audio",
            "clip.wav",
            DHAKA,
            transcriber=transcriber_returning("what a lovely day"),
            sender=AsyncMock(),
        )

        assert outcome.status == TriggerStatus.KEYWORD_MISMATCH
        assert outcome.reason == "No emergency keywords detected in the audio."
        assert outcome.transcript == "what a lovely day"
        assert not audio_dir.exists()
        assert await alert_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_transcription_failure_is_an_outcome(self, db_session, make_user):
        user = await make_user()
        transcriber = AsyncMock(side_effect=TranscriptionError("service returned 500"))

        outcome = await sos_trigger.trigger_voice_upload(
            db_session,
            user.id,
            b"audio",
            "clip.wav",
            DHAKA,
            transcriber=transcriber,
            sender=AsyncMock(),
        )

        assert outcome.status == TriggerStatus.TRANSCRIPTION_FAILED
        assert "service returned 500" in outcome.reason
        assert await alert_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_empty_audio_rejected(self, db_session, make_user):
        user = await make_user()

        with pytest.raises(ValidationError, match="empty"):
            await sos_trigger.trigger_voice_upload(
                db_session, user.id, b"", "clip.wav", DHAKA, transcriber=AsyncMock()
            )

    @pytest.mark.asyncio
    async def test_oversized_audio_rejected(self, db_session, make_user, monkeypatch):
        user = await make_user()
        monkeypatch.setattr(settings, "max_audio_upload_bytes", 4)

        with pytest.raises(ValidationError, match="too large"):
            await sos_trigger.trigger_voice_upload(
                db_session, user.id, b"12345", "clip.wav", DHAKA, transcriber=AsyncMock()
            )

    @pytest.mark.asyncio
    async def test_reused_alert_without_audio_takes_recording(
        self, db_session, make_user, audio_dir
    ):
        user = await make_user()
        now = datetime(2026, 5, 1, 8, 30, tzinfo=UTC)
        text_outcome = await sos_trigger.trigger_text_alert(
            db_session, user.id, "Help", "help", DHAKA, now=now, sender=AsyncMock()
        )

        outcome = await sos_trigger.trigger_voice_upload(
            db_session,
            user.id,
            b"RIFF....WAVE",
            "clip.wav",
            DHAKA,
            now=now + timedelta(seconds=5),
            transcriber=transcriber_returning("help me"),
            sender=AsyncMock(),
        )

        assert outcome.status == TriggerStatus.REUSED
        assert outcome.alert.id == text_outcome.alert.id
        assert outcome.alert.audio_recording is not None
        assert Path(outcome.alert.audio_recording).read_bytes() == b"RIFF....WAVE"
        await db_session.refresh(outcome.alert)
        assert outcome.alert.audio_recording is not None

    @pytest.mark.asyncio
    async def test_reused_alert_with_audio_discards_new_file(
        self, db_session, make_user, audio_dir
    ):
        user = await make_user()
        now = datetime(2026, 5, 1, 8, 30, tzinfo=UTC)

        async def upload(audio: bytes, at: datetime):
            return await sos_trigger.trigger_voice_upload(
                db_session,
                user.id,
                audio,
                "clip.wav",
                DHAKA,
                now=at,
                transcriber=transcriber_returning("help me"),
                sender=AsyncMock(),
            )

        first = await upload(b"first", now)
        second = await upload(b"second", now + timedelta(seconds=5))

        assert second.status == TriggerStatus.REUSED
        assert second.alert.audio_recording == first.alert.audio_recording
        assert [p.read_bytes() for p in audio_dir.iterdir()] == [b"first"]


class TestVoiceUrl:
    """trigger_voice_url()"""

    @pytest.mark.asyncio
    async def test_url_is_kept_as_recording_reference(self, db_session, make_user):
        user = await make_user()
        url = "https://cdn.example.com/recordings/abc.wav"
        transcriber = transcriber_returning("SOS somebody")

        outcome = await sos_trigger.trigger_voice_url(
            db_session, user.id, url, DHAKA, "bn-BD", transcriber=transcriber, sender=AsyncMock()
        )

        assert outcome.status == TriggerStatus.CREATED
        assert outcome.alert.audio_recording == url
        transcriber.assert_awaited_once_with(url, "bn-BD")

    @pytest.mark.asyncio
    async def test_transcription_failure_is_an_outcome(self, db_session, make_user):
        user = await make_user()

        outcome = await sos_trigger.trigger_voice_url(
            db_session,
            user.id,
            "https://cdn.example.com/a.wav",
            DHAKA,
            transcriber=AsyncMock(side_effect=TranscriptionError("no speech recognised")),
            sender=AsyncMock(),
        )

        assert outcome.status == TriggerStatus.TRANSCRIPTION_FAILED
        assert await alert_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_malformed_service_answer_is_an_outcome(self, db_session, make_user):
        user = await make_user()

        async def transcriber(audio_url, language_code):
            return parse_transcription_response(httpx.Response(200, json=["help"]))

        outcome = await sos_trigger.trigger_voice_url(
            db_session,
            user.id,
            "https://cdn.example.com/a.wav",
            DHAKA,
            transcriber=transcriber,
            sender=AsyncMock(),
        )

        assert outcome.status == TriggerStatus.TRANSCRIPTION_FAILED
        assert "not a JSON object" in outcome.reason
        assert await alert_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, db_session, make_user):
        user = await make_user()

        with pytest.raises(ValidationError):
            await sos_trigger.trigger_voice_url(
                db_session, user.id, "ftp://example.com/a.wav", DHAKA, transcriber=AsyncMock()
            )
