from __future__ import annotations

import pytest
from sqlalchemy import func, select

from bookmycare.errors import NotFoundError, ValidationError
from bookmycare.models import Appointment, Doctor, Payment, PaymentStatus, User
from tests.conftest import make_doctor, make_patient


def _count(ctx, model, *where) -> int:
    with ctx.database.session() as s:
        return s.scalar(select(func.count()).select_from(model).where(*where))


class TestCascadeDelete:
    def test_deleting_doctor_removes_appointments_and_payments(self, ctx, doctor, patient):
        doctor_user, doctor_id = doctor
        _, other_doctor = make_doctor(ctx, "James Wilson", "wilson@doc.com")
        app = ctx.booking.book_appointment(patient, doctor_id, "2024-05-01", "10:00")
        kept = ctx.booking.book_appointment(patient, other_doctor, "2024-05-01", "10:00")
        ctx.payments.create_payment(app.id, 500.0)
        ctx.payments.create_payment(kept.id, 300.0)

        ctx.doctors.delete_doctor(doctor_id)

        assert _count(ctx, User, User.id == doctor_user) == 0
        assert _count(ctx, Doctor, Doctor.id == doctor_id) == 0
        assert _count(ctx, Appointment, Appointment.doctor_id == doctor_id) == 0
        assert _count(ctx, Payment, Payment.appointment_id == app.id) == 0
        # il resto resta intatto
        assert _count(ctx, User, User.id == patient) == 1
        assert _count(ctx, Payment, Payment.appointment_id == kept.id) == 1

    def test_deleting_patient_user_removes_their_appointments(self, ctx, doctor, patient):
        _, doctor_id = doctor
        ctx.booking.book_appointment(patient, doctor_id, "2024-05-01", "10:00")

        with ctx.database.session() as s:
            s.delete(s.get(User, patient))

        assert _count(ctx, Appointment) == 0

    def test_delete_unknown_doctor(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.doctors.delete_doctor(777)


class TestDoctorDirectory:
    def test_list_joins_user_fields(self, ctx, doctor):
        rows = ctx.doctors.list_doctors()
        assert rows[0]["name"] == "Gregory House"
        assert rows[0]["email"] == "house@doc.com"
        assert rows[0]["consultation_fee"] == 500.0

    def test_update_touches_user_and_doctor(self, ctx, doctor):
        _, doctor_id = doctor
        ctx.doctors.update_doctor(doctor_id, name="Dr. G. House", phone="555-0100", consultation_fee=900.0, bio=None)

        row = ctx.doctors.get_doctor(doctor_id)
        assert row["name"] == "Dr. G. House"
        assert row["phone"] == "555-0100"
        assert row["consultation_fee"] == 900.0
        assert row["specialization"] == "Diagnostics"

    def test_update_rejects_unknown_fields(self, ctx, doctor):
        _, doctor_id = doctor
        with pytest.raises(ValidationError):
            ctx.doctors.update_doctor(doctor_id, email="new@doc.com")

    def test_update_unknown_doctor(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.doctors.update_doctor(404, name="Nobody")


class TestStats:
    def test_empty_database(self, ctx):
        assert ctx.stats.compute_stats() == {
            "totalPatients": 0,
            "totalDoctors": 0,
            "totalAppointments": 0,
            "revenue": 0.0,
        }

    def test_counts_and_completed_revenue(self, ctx, doctor, patient):
        _, doctor_id = doctor
        make_patient(ctx, "Jane Roe", "jane@mail.com")
        ctx.auth.register_user("Root", "root@bookmycare.com", "admin", "admin")

        a1 = ctx.booking.book_appointment(patient, doctor_id, "2024-05-01", "10:00")
        a2 = ctx.booking.book_appointment(patient, doctor_id, "2024-05-01", "11:00")
        ctx.payments.create_payment(a1.id, 100.0)
        ctx.payments.create_payment(a2.id, 50.5)
        with ctx.database.session() as s:
            s.add(Payment(appointment_id=a2.id, amount=999.0, status=PaymentStatus.FAILED, transaction_id="TXNX"))
            s.add(Payment(appointment_id=a2.id, amount=10.0, status=PaymentStatus.PENDING, transaction_id="TXNY"))

        assert ctx.stats.compute_stats() == {
            "totalPatients": 2,
            "totalDoctors": 1,
            "totalAppointments": 2,
            "revenue": 150.5,
        }


class TestPayments:
    def test_payment_is_completed_with_transaction_id(self, ctx, doctor, patient):
        _, doctor_id = doctor
        app = ctx.booking.book_appointment(patient, doctor_id, "2024-05-01", "10:00")

        payment = ctx.payments.create_payment(app.id, 500)

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.transaction_id.startswith("TXN")
        assert len(payment.transaction_id) == 12
        assert [p.id for p in ctx.payments.list_payments(app.id)] == [payment.id]

    @pytest.mark.parametrize("amount", [0, -10, None, float("nan"), float("inf"), float("-inf")])
    def test_amount_must_be_positive_and_finite(self, ctx, amount):
        with pytest.raises(ValidationError):
            ctx.payments.create_payment(1, amount)

    def test_unknown_appointment(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.payments.create_payment(12345, 100.0)
