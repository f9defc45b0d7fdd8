from __future__ import annotations

from io import StringIO
from unittest.mock import MagicMock, patch

import pytest
from django.core.management import CommandError, call_command

from guide_booking.notifications.gateway import OperationResult
from guide_booking.notifications.services import get_new_booking_tracker, get_status_tracker


def test_check_notification_feed_reports_success(settings):
    settings.NOTIFICATION_FEED_BACKEND = "memory"
    out = StringIO()

    call_command("check_notification_feed", stdout=out)

    assert "connection OK" in out.getvalue()


def test_check_notification_feed_fails_loudly():
    gateway = MagicMock()
    gateway.check_connection.return_value = OperationResult(success=False, error="offline")

    with patch("guide_booking.notifications.management.commands.check_notification_feed.get_gateway",
               return_value=gateway):
        with pytest.raises(CommandError, match="offline"):
            call_command("check_notification_feed")


@pytest.mark.django_db
def test_clear_notification_history_for_one_tracker(settings):
    settings.NOTIFICATION_HISTORY_BACKEND = "database"

    get_status_tracker().store.set("u1", {"b1": "pending"})
    get_new_booking_tracker().store.set("u1", {"b2": "2024-05-01T00:00:00+00:00"})
    out = StringIO()

    call_command("clear_notification_history", "u1", "--tracker", "status", stdout=out)

    assert get_status_tracker().store.get("u1") == {}
    assert get_new_booking_tracker().store.get("u1") == {"b2": "2024-05-01T00:00:00+00:00"}
    assert "Cleared status history for u1" in out.getvalue()


@pytest.mark.django_db
def test_clear_notification_history_all(settings):
    settings.NOTIFICATION_HISTORY_BACKEND = "database"

    get_status_tracker().store.set("u1", {"b1": "pending"})
    get_new_booking_tracker().store.set("u1", {"b2": "2024-05-01T00:00:00+00:00"})

    call_command("clear_notification_history", "u1", stdout=StringIO())

    assert get_status_tracker().store.get("u1") == {}
    assert get_new_booking_tracker().store.get("u1") == {}
