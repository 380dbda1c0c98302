from __future__ import annotations

import base64
import email
from email.header import decode_header, make_header
from unittest.mock import MagicMock, patch

import pytest

from bookmycare.context import ClinicContext
from bookmycare.db import Database
from bookmycare.models import AppointmentStatus
from bookmycare.notifications import (
    GmailNotifier,
    LogNotifier,
    NotificationDispatcher,
    Notifier,
    booking_confirmation_email,
    build_raw_message,
    status_update_email,
)
from tests.conftest import RecordingNotifier, make_doctor, make_patient


def _decode_raw(raw: str) -> email.message.Message:
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded))


class TestTemplates:
    def test_booking_email(self):
        subject, body = booking_confirmation_email("Sarah Johnson", "2024-05-01", "10:00")
        assert subject == "Appointment Booked - BookMyCare"
        assert "Dr. Sarah Johnson" in body
        assert "<strong>Date:</strong> 2024-05-01" in body

    def test_names_are_escaped(self):
        _, body = booking_confirmation_email("<script>x</script>", "2024-05-01", "10:00")
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_status_colors(self):
        _, approved = status_update_email(AppointmentStatus.APPROVED, "A", "d", "t")
        subject, rejected = status_update_email(AppointmentStatus.REJECTED, "A", "d", "t")
        assert "#059669" in approved
        assert "#dc2626" in rejected
        assert subject == "Appointment Rejected - BookMyCare"

    def test_only_approved_is_green(self):
        for status in (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED):
            _, body = status_update_email(status, "A", "d", "t")
            assert "#dc2626" in body
            assert "#059669" not in body


class TestDispatcher:
    def test_inline_delivery(self):
        rec = RecordingNotifier()
        NotificationDispatcher(rec).dispatch(1, "s", "b")
        assert rec.sent == [(1, "s", "b")]

    def test_failures_are_swallowed(self, caplog):
        dispatcher = NotificationDispatcher(RecordingNotifier(fail=True))
        assert dispatcher.dispatch(1, "Appointment Booked", "b") is None
        assert "Error sending notification" in caplog.text

    def test_thread_pool_delivery(self):
        rec = RecordingNotifier()
        dispatcher = NotificationDispatcher(rec, workers=1)
        future = dispatcher.dispatch(7, "s", "b")

        assert future.result(timeout=5) is True
        dispatcher.shutdown()
        assert rec.sent == [(7, "s", "b")]

    def test_thread_pool_failure_resolves_false(self):
        dispatcher = NotificationDispatcher(RecordingNotifier(fail=True), workers=1)
        assert dispatcher.dispatch(7, "s", "b").result(timeout=5) is False
        dispatcher.shutdown()

    def test_log_notifier(self):
        assert LogNotifier().send(1, "s", "b") is True

    def test_notifier_interface_is_abstract(self):
        with pytest.raises(TypeError):
            Notifier()


class TestGmailNotifier:
    def test_raw_message(self):
        msg = _decode_raw(build_raw_message("Appointment Booked - BookMyCare", "<p>hi</p>"))

        assert str(make_header(decode_header(msg["Subject"]))) == "Appointment Booked - BookMyCare"
        assert msg["To"] == "me"
        assert msg.get_content_type() == "text/html"
        assert msg.get_payload(decode=True).decode("utf-8") == "<p>hi</p>"

    def test_user_without_tokens_is_skipped(self, ctx, patient):
        notifier = GmailNotifier(ctx.database, "cid", "csecret")
        with patch("bookmycare.notifications.build") as build:
            assert notifier.send(patient, "s", "b") is False
        build.assert_not_called()

    def test_unknown_user_is_skipped(self, ctx):
        with patch("bookmycare.notifications.build") as build:
            assert GmailNotifier(ctx.database, "cid", "csecret").send(999, "s", "b") is False
        build.assert_not_called()

    def test_sends_through_gmail_api(self, ctx, patient):
        ctx.auth.set_google_tokens(patient, "access", "refresh")
        service = MagicMock()

        with patch("bookmycare.notifications.build", return_value=service) as build:
            assert GmailNotifier(ctx.database, "cid", "csecret").send(patient, "Subject", "<b>Body</b>") is True

        creds = build.call_args.kwargs["credentials"]
        assert creds.token == "access"
        assert creds.refresh_token == "refresh"
        send = service.users.return_value.messages.return_value.send
        assert send.call_args.kwargs["userId"] == "me"
        msg = _decode_raw(send.call_args.kwargs["body"]["raw"])
        assert msg.get_payload(decode=True).decode("utf-8") == "<b>Body</b>"

    def test_api_error_does_not_break_booking(self, settings):
        db = Database(settings.database_url)
        c = ClinicContext(settings, database=db, notifier=GmailNotifier(db, "cid", "csecret"))
        c.init_db(seed=False)
        try:
            patient = make_patient(c)
            _, doctor_id = make_doctor(c)
            c.auth.set_google_tokens(patient, "access", "refresh")
            service = MagicMock()
            service.users.return_value.messages.return_value.send.return_value.execute.side_effect = RuntimeError(
                "quota"
            )

            with patch("bookmycare.notifications.build", return_value=service):
                app = c.booking.book_appointment(patient, doctor_id, "2024-05-01", "10:00")

            assert c.queries.get_appointment(app.id)["status"] == "pending"
        finally:
            c.close()
