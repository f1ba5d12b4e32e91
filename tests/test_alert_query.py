"""Tests for the read-side alert queries."""

import uuid
from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from sos_api.core.errors import ForbiddenError, NotFoundError, ValidationError
from sos_api.core.location import Location
from sos_api.models import AlertStatus, ResponderType, TriggerMethod, UserRole
from sos_api.services import (
    alert_lifecycle,
    alert_query,
    notification_dispatcher,
    responder_assignment,
)

T0 = datetime(2026, 4, 10, 9, 0, tzinfo=UTC)


async def raise_at(db, user_id, when, location=Location(23.81, 90.41)):
    alert, _ = await alert_lifecycle.create_alert(
        db, user_id, location, TriggerMethod.TEXT, now=when
    )
    return alert


class TestListings:
    """User and dashboard listings."""

    @pytest.mark.asyncio
    async def test_user_alerts_newest_first(self, db_session, make_user):
        user = await make_user()
        other = await make_user()
        old = await raise_at(db_session, user.id, T0)
        new = await raise_at(db_session, user.id, T0 + timedelta(hours=2))
        await raise_at(db_session, other.id, T0 + timedelta(hours=1))

        alerts = await alert_query.get_user_alerts(db_session, user.id)

        assert [a.id for a in alerts] == [new.id, old.id]

    @pytest.mark.asyncio
    async def test_user_alerts_limit(self, db_session, make_user):
        user = await make_user()
        await raise_at(db_session, user.id, T0)
        latest = await raise_at(db_session, user.id, T0 + timedelta(hours=2))

        alerts = await alert_query.get_user_alerts(db_session, user.id, limit=1)

        assert [a.id for a in alerts] == [latest.id]

    @pytest.mark.asyncio
    async def test_invalid_limit(self, db_session):
        with pytest.raises(ValidationError):
            await alert_query.get_user_alerts(db_session, uuid.uuid4(), limit=0)

    @pytest.mark.asyncio
    async def test_active_alerts_include_critical_only_open(self, db_session, make_user):
        user = await make_user()
        active = await raise_at(db_session, user.id, T0)
        critical = await raise_at(db_session, user.id, T0 + timedelta(hours=1))
        critical.status = AlertStatus.CRITICAL
        canceled = await raise_at(db_session, user.id, T0 + timedelta(hours=2))
        canceled.status = AlertStatus.CANCELED
        await db_session.commit()

        alerts = await alert_query.get_active_alerts(db_session)

        assert [a.id for a in alerts] == [critical.id, active.id]


class TestWindowAndArea:
    """Time window and bounding box filters."""

    @pytest.mark.asyncio
    async def test_window_is_inclusive(self, db_session, make_user):
        user = await make_user()
        before = await raise_at(db_session, user.id, T0 - timedelta(hours=1))
        edge = await raise_at(db_session, user.id, T0)
        inside = await raise_at(db_session, user.id, T0 + timedelta(hours=3))

        alerts = await alert_query.get_alerts_in_window(
            db_session, T0, T0 + timedelta(hours=3)
        )

        assert [a.id for a in alerts] == [inside.id, edge.id]
        assert before.id not in {a.id for a in alerts}

    @pytest.mark.asyncio
    async def test_window_accepts_other_timezones(self, db_session, make_user):
        user = await make_user()
        alert = await raise_at(db_session, user.id, T0)
        dhaka_tz = timezone(timedelta(hours=6))

        alerts = await alert_query.get_alerts_in_window(
            db_session,
            datetime(2026, 4, 10, 14, 0, tzinfo=dhaka_tz),
            datetime(2026, 4, 10, 16, 0, tzinfo=dhaka_tz),
        )

        assert [a.id for a in alerts] == [alert.id]

    @pytest.mark.asyncio
    async def test_window_start_after_end(self, db_session):
        with pytest.raises(ValidationError):
            await alert_query.get_alerts_in_window(db_session, T0, T0 - timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_area_filter(self, db_session, make_user):
        user = await make_user()
        dhaka = await raise_at(db_session, user.id, T0, Location(23.81, 90.41))
        await raise_at(db_session, user.id, T0 + timedelta(hours=1), Location(22.36, 91.78))

        alerts = await alert_query.get_alerts_in_area(db_session, 23.0, 24.0, 90.0, 91.0)

        assert [a.id for a in alerts] == [dhaka.id]

    @pytest.mark.asyncio
    async def test_area_rejects_inverted_box(self, db_session):
        with pytest.raises(ValidationError):
            await alert_query.get_alerts_in_area(db_session, 24.0, 23.0, 90.0, 91.0)

    @pytest.mark.asyncio
    async def test_area_rejects_out_of_range(self, db_session):
        with pytest.raises(ValidationError):
            await alert_query.get_alerts_in_area(db_session, 23.0, 95.0, 90.0, 91.0)


class TestAlertDetails:
    """Access-controlled detail view."""

    @pytest.mark.asyncio
    async def test_owner_sees_responders_and_notifications(
        self, db_session, make_user, make_responder, make_contact
    ):
        user = await make_user()
        await make_contact(user.id, name="Mother")
        responder = await make_responder()
        alert = await raise_at(db_session, user.id, T0)
        await notification_dispatcher.dispatch(db_session, alert, sender=AsyncMock())

        details = await alert_query.get_alert_details(db_session, alert.id, user.id)

        assert details.alert.id == alert.id
        assert [r.responder_id for r in details.responders] == [responder.id]
        assert len(details.notifications) == 2

    @pytest.mark.asyncio
    async def test_assigned_responder_may_view(self, db_session, make_user, make_responder):
        user = await make_user()
        responder = await make_responder()
        alert = await raise_at(db_session, user.id, T0)
        await notification_dispatcher.dispatch(db_session, alert, sender=AsyncMock())

        details = await alert_query.get_alert_details(db_session, alert.id, responder.id)

        assert details.alert.id == alert.id

    @pytest.mark.asyncio
    async def test_stranger_is_forbidden(self, db_session, make_user):
        user = await make_user()
        stranger = await make_user()
        alert = await raise_at(db_session, user.id, T0)

        with pytest.raises(ForbiddenError):
            await alert_query.get_alert_details(db_session, alert.id, stranger.id)

        admin_view = await alert_query.get_alert_details(
            db_session, alert.id, stranger.id, is_admin=True
        )
        assert admin_view.alert.id == alert.id

    @pytest.mark.asyncio
    async def test_unknown_alert(self, db_session):
        with pytest.raises(NotFoundError):
            await alert_query.get_alert_details(db_session, uuid.uuid4(), uuid.uuid4())


class TestParticipantLocation:
    """Counterpart location for the owner and the handling responder."""

    @pytest.mark.asyncio
    async def test_owner_sees_handling_responder(self, db_session, make_user, make_responder):
        user = await make_user(full_name="Karim")
        responder = await make_responder(name="Officer Rahim", latitude=23.80, longitude=90.40)
        alert = await raise_at(db_session, user.id, T0)
        await notification_dispatcher.dispatch(db_session, alert, sender=AsyncMock())
        await responder_assignment.accept(db_session, alert.id, responder.id, sender=AsyncMock())

        participant = await alert_query.get_participant_location(db_session, alert.id, user.id)

        assert participant.role == UserRole.RESPONDER
        assert participant.name == "Officer Rahim"
        assert participant.email.endswith("@example.com")
        assert (participant.latitude, participant.longitude) == (23.80, 90.40)
        assert participant.responder_type == ResponderType.POLICE
        assert participant.last_update is not None

    @pytest.mark.asyncio
    async def test_responder_sees_owner_at_alert_location(
        self, db_session, make_user, make_responder
    ):
        user = await make_user(full_name="Karim", phone="+8801799999999")
        responder = await make_responder()
        alert = await raise_at(db_session, user.id, T0, Location(23.75, 90.39))
        await notification_dispatcher.dispatch(db_session, alert, sender=AsyncMock())

        participant = await alert_query.get_participant_location(
            db_session, alert.id, responder.id
        )

        assert participant.role == UserRole.USER
        assert participant.name == "Karim"
        assert participant.phone == "+8801799999999"
        assert (participant.latitude, participant.longitude) == (23.75, 90.39)
        assert participant.responder_type is None

    @pytest.mark.asyncio
    async def test_owner_before_anyone_accepts(self, db_session, make_user, make_responder):
        user = await make_user()
        await make_responder()
        alert = await raise_at(db_session, user.id, T0)
        await notification_dispatcher.dispatch(db_session, alert, sender=AsyncMock())

        with pytest.raises(NotFoundError):
            await alert_query.get_participant_location(db_session, alert.id, user.id)

    @pytest.mark.asyncio
    async def test_stranger_is_forbidden(self, db_session, make_user):
        user = await make_user()
        stranger = await make_user()
        alert = await raise_at(db_session, user.id, T0)

        with pytest.raises(ForbiddenError):
            await alert_query.get_participant_location(db_session, alert.id, stranger.id)

    @pytest.mark.asyncio
    async def test_unknown_alert(self, db_session):
        with pytest.raises(NotFoundError):
            await alert_query.get_participant_location(db_session, uuid.uuid4(), uuid.uuid4())
