"""Tests for lenient status parsing."""

import pytest

from sos_api.core.errors import ValidationError
from sos_api.models.alert import AlertStatus
from sos_api.models.alert_responder import ResponderStatus


class TestAlertStatusParsing:
    """AlertStatus.from_string."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ACTIVE", AlertStatus.ACTIVE),
            ("active", AlertStatus.ACTIVE),
            ("  critical ", AlertStatus.CRITICAL),
            ("cancelled", AlertStatus.CANCELED),
            ("false-alarm", AlertStatus.FALSE_ALARM),
            ("false alarm", AlertStatus.FALSE_ALARM),
            ("expired", AlertStatus.EXPIRED),
        ],
    )
    def test_accepts_known_spellings(self, raw, expected):
        assert AlertStatus.from_string(raw) == expected

    def test_unknown_value_lists_allowed(self):
        with pytest.raises(ValidationError) as exc_info:
            AlertStatus.from_string("panicking")

        assert "ACTIVE" in exc_info.value.details["allowed"]

    def test_open_and_terminal(self):
        assert AlertStatus.ACTIVE.is_open
        assert AlertStatus.CRITICAL.is_open
        assert AlertStatus.RESOLVED.is_terminal
        assert AlertStatus.FALSE_ALARM.is_terminal


class TestResponderStatusParsing:
    """ResponderStatus.from_string."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("EN_ROUTE", ResponderStatus.EN_ROUTE),
            ("enroute", ResponderStatus.EN_ROUTE),
            ("en-route", ResponderStatus.EN_ROUTE),
            ("on the way", ResponderStatus.EN_ROUTE),
            ("arrived", ResponderStatus.ARRIVED),
            ("declined", ResponderStatus.REJECTED),
        ],
    )
    def test_accepts_known_spellings(self, raw, expected):
        assert ResponderStatus.from_string(raw) == expected

    def test_unknown_value_rejected(self):
        with pytest.raises(ValidationError):
            ResponderStatus.from_string("teleported")

    def test_holds_alert(self):
        assert ResponderStatus.ACCEPTED.holds_alert
        assert ResponderStatus.ARRIVED.holds_alert
        assert not ResponderStatus.PENDING.holds_alert
        assert not ResponderStatus.FORWARDED.holds_alert
