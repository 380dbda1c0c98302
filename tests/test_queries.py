from __future__ import annotations

import pytest

from bookmycare.errors import NotFoundError, ValidationError
from bookmycare.models import Payment, PaymentStatus
from tests.conftest import make_doctor, make_patient


@pytest.fixture
def clinic(ctx):
    """Due medici, due pazienti, appuntamenti incrociati."""
    house_user, house = make_doctor(ctx, "Gregory House", "house@doc.com")
    wilson_user, wilson = make_doctor(ctx, "James Wilson", "wilson@doc.com")
    john = make_patient(ctx, "John Doe", "john@mail.com")
    jane = make_patient(ctx, "Jane Roe", "jane@mail.com")

    apps = {
        "john_house_1": ctx.booking.book_appointment(john, house, "2024-05-01", "10:00").id,
        "john_house_2": ctx.booking.book_appointment(john, house, "2024-05-02", "09:00").id,
        "john_wilson": ctx.booking.book_appointment(john, wilson, "2024-05-01", "11:00").id,
        "jane_house": ctx.booking.book_appointment(jane, house, "2024-05-01", "11:00").id,
    }
    return {
        "house_user": house_user,
        "wilson_user": wilson_user,
        "house": house,
        "wilson": wilson,
        "john": john,
        "jane": jane,
        "apps": apps,
    }


class TestRoleScopedViews:
    def test_patient_sees_only_own_rows(self, ctx, clinic):
        rows = ctx.queries.list_appointments(clinic["jane"], "patient")

        assert [r["id"] for r in rows] == [clinic["apps"]["jane_house"]]
        assert all(r["patient_id"] == clinic["jane"] for r in rows)

    def test_doctor_sees_only_own_rows(self, ctx, clinic):
        rows = ctx.queries.list_appointments(clinic["wilson_user"], "doctor")

        assert [r["id"] for r in rows] == [clinic["apps"]["john_wilson"]]
        assert rows[0]["patient_name"] == "John Doe"

    def test_doctor_view_is_keyed_on_owning_user(self, ctx, clinic):
        house_rows = {r["id"] for r in ctx.queries.list_appointments(clinic["house_user"], "doctor")}

        assert house_rows == {
            clinic["apps"]["john_house_1"],
            clinic["apps"]["john_house_2"],
            clinic["apps"]["jane_house"],
        }
        # uno user che non possiede un medico non vede nulla
        assert ctx.queries.list_appointments(clinic["john"], "doctor") == []

    def test_admin_sees_everything(self, ctx, clinic):
        rows = ctx.queries.list_appointments(0, "admin")
        assert {r["id"] for r in rows} == set(clinic["apps"].values())

    def test_most_recent_first(self, ctx, clinic):
        rows = ctx.queries.list_appointments(clinic["john"], "patient")
        assert [(r["date"], r["time"]) for r in rows] == [
            ("2024-05-02", "09:00"),
            ("2024-05-01", "11:00"),
            ("2024-05-01", "10:00"),
        ]

    def test_rows_are_enriched(self, ctx, clinic):
        row = ctx.queries.get_appointment(clinic["apps"]["jane_house"])

        assert row["doctor_name"] == "Gregory House"
        assert row["patient_name"] == "Jane Roe"
        assert row["specialization"] == "Diagnostics"
        assert row["consultation_fee"] == 500.0
        assert row["status"] == "pending"
        assert row["payment_status"] is None

    def test_unknown_role(self, ctx, clinic):
        with pytest.raises(ValidationError):
            ctx.queries.list_appointments(clinic["john"], "nurse")

    def test_get_unknown_appointment(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.queries.get_appointment(31337)


class TestPaymentStatus:
    def test_payment_status_from_completed_payment(self, ctx, clinic):
        app_id = clinic["apps"]["john_house_1"]
        ctx.payments.create_payment(app_id, 500.0)

        assert ctx.queries.get_appointment(app_id)["payment_status"] == "completed"

    def test_first_payment_row_wins(self, ctx, clinic):
        app_id = clinic["apps"]["john_house_1"]
        with ctx.database.session() as s:
            s.add(Payment(appointment_id=app_id, amount=500.0, status=PaymentStatus.FAILED, transaction_id="TXNFAILED01"))
        ctx.payments.create_payment(app_id, 500.0)

        assert ctx.queries.get_appointment(app_id)["payment_status"] == "failed"
