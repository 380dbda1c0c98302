from __future__ import annotations

import enum
import logging
import math
import secrets
import string
from typing import Any, TypeVar

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from .db import Database
from .errors import ConflictError, ConstraintError, NotFoundError, TransitionError, ValidationError
from .models import Appointment, AppointmentStatus, Doctor, Payment, PaymentStatus, Role, User
from .notifications import NotificationDispatcher, booking_confirmation_email, status_update_email

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=enum.Enum)

SLOT_TAKEN_MESSAGE = "This slot is already booked."

# pending -> {approved, rejected, cancelled}; approved -> {completed, cancelled}; il resto è terminale
TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.APPROVED, AppointmentStatus.REJECTED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.APPROVED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.REJECTED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


# =========================
# Helper
# =========================
def parse_enum(enum_cls: type[E], value: Any, label: str) -> E:
    """Accetta l'enum stesso o il suo valore stringa ("pending"); altrimenti ValidationError."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"Invalid {label} {value!r}: expected one of {allowed}.")


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in TRANSITIONS[current]


def _required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Field '{field}' is required.")
    return value.strip()


def _is_slot_violation(exc: IntegrityError) -> bool:
    msg = str(exc.orig)
    return "uq_appointments_active_slot" in msg or "appointments.doctor_id" in msg


# =========================
# Prenotazione (use case core)
# =========================
class BookingService:
    def __init__(self, database: Database, dispatcher: NotificationDispatcher) -> None:
        self.database = database
        self.dispatcher = dispatcher

    @staticmethod
    def _slot_taken(s, doctor_id: int, date: str, time: str) -> bool:
        q = (
            select(Appointment.id)
            .where(
                and_(
                    Appointment.doctor_id == doctor_id,
                    Appointment.date == date,
                    Appointment.time == time,
                    Appointment.status != AppointmentStatus.CANCELLED,
                )
            )
            .limit(1)
        )
        return s.execute(q).first() is not None

    def book_appointment(self, patient_id: int, doctor_id: int, date: str, time: str) -> Appointment:
        """
        Use case: prenotare uno slot (medico, data, ora).
        - verifica che medico e paziente esistano
        - rifiuta lo slot se esiste già un appuntamento non annullato
        - l'indice unico parziale copre la corsa tra controllo e insert
        - notifica il paziente dopo il commit (best-effort)
        """
        date = _required_text(date, "date")
        time = _required_text(time, "time")

        with self.database.session() as s:
            doctor = s.get(Doctor, doctor_id)
            if doctor is None:
                raise NotFoundError("Doctor not found.")
            patient = s.get(User, patient_id)
            if patient is None:
                raise NotFoundError("Patient not found.")
            if patient.role != Role.PATIENT:
                raise ValidationError("Appointments can only be booked for patient accounts.")

            if self._slot_taken(s, doctor_id, date, time):
                logger.info("Slot taken: doctor=%s %s %s", doctor_id, date, time)
                raise ConflictError(SLOT_TAKEN_MESSAGE)

            app = Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                date=date,
                time=time,
                status=AppointmentStatus.PENDING,
            )
            s.add(app)
            try:
                s.flush()
            except IntegrityError as e:
                if _is_slot_violation(e):
                    logger.info("Slot taken concurrently: doctor=%s %s %s", doctor_id, date, time)
                    raise ConflictError(SLOT_TAKEN_MESSAGE) from e
                raise ConstraintError("Appointment violates a database constraint.") from e

            doctor_name = doctor.user.name

        logger.info("Appointment %s booked: patient=%s doctor=%s %s %s", app.id, patient_id, doctor_id, date, time)
        subject, body = booking_confirmation_email(doctor_name, date, time)
        self.dispatcher.dispatch(patient_id, subject, body)
        return app


# =========================
# Transizioni di stato
# =========================
class StatusTransitionService:
    def __init__(self, database: Database, dispatcher: NotificationDispatcher) -> None:
        self.database = database
        self.dispatcher = dispatcher

    def set_status(
        self,
        appointment_id: int,
        new_status: AppointmentStatus | str,
        notes: str | None = None,
    ) -> Appointment:
        """
        Cambia lo stato secondo TRANSITIONS.
        Riscrivere lo stato corrente è ammesso solo per stati non terminali
        (aggiorna le note e notifica di nuovo il paziente).
        notes=None lascia invariate le note esistenti.
        """
        status = parse_enum(AppointmentStatus, new_status, "status")

        with self.database.session() as s:
            app = s.get(Appointment, appointment_id)
            if app is None:
                raise NotFoundError("Appointment not found.")

            previous = app.status
            if status == previous:
                if not TRANSITIONS[previous]:
                    raise TransitionError(f"Appointment is already {previous.value} and cannot be changed.")
            elif not can_transition(previous, status):
                raise TransitionError(
                    f"Cannot change appointment status from {previous.value} to {status.value}."
                )

            app.status = status
            if notes is not None:
                app.notes = notes

            doctor_name = app.doctor.user.name

        logger.info("Appointment %s: %s -> %s", app.id, previous.value, status.value)
        subject, body = status_update_email(status, doctor_name, app.date, app.time)
        self.dispatcher.dispatch(app.patient_id, subject, body)
        return app

    def cancel_appointment(self, appointment_id: int, notes: str | None = None) -> Appointment:
        return self.set_status(appointment_id, AppointmentStatus.CANCELLED, notes)


# =========================
# Viste per ruolo
# =========================
class AppointmentQueryService:
    def __init__(self, database: Database) -> None:
        self.database = database

    @staticmethod
    def _enriched_select():
        patient_user = aliased(User, name="patient_user")
        doctor_user = aliased(User, name="doctor_user")

        # stato del primo pagamento registrato, se esiste
        payment_status = (
            select(Payment.status)
            .where(Payment.appointment_id == Appointment.id)
            .order_by(Payment.id.asc())
            .limit(1)
            .correlate(Appointment)
            .scalar_subquery()
        )

        q = (
            select(
                Appointment.id,
                Appointment.patient_id,
                Appointment.doctor_id,
                Appointment.date,
                Appointment.time,
                Appointment.status,
                Appointment.notes,
                Appointment.created_at,
                doctor_user.name.label("doctor_name"),
                patient_user.name.label("patient_name"),
                Doctor.specialization,
                Doctor.consultation_fee,
                Doctor.user_id.label("doctor_user_id"),
                payment_status.label("payment_status"),
            )
            .select_from(Appointment)
            .join(Doctor, Doctor.id == Appointment.doctor_id)
            .join(doctor_user, doctor_user.id == Doctor.user_id)
            .join(patient_user, patient_user.id == Appointment.patient_id)
        )
        return q

    @staticmethod
    def _flat(r) -> dict:
        return {
            "id": r.id,
            "patient_id": r.patient_id,
            "doctor_id": r.doctor_id,
            "date": r.date,
            "time": r.time,
            "status": r.status.value,
            "notes": r.notes,
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "doctor_name": r.doctor_name,
            "patient_name": r.patient_name,
            "specialization": r.specialization,
            "consultation_fee": r.consultation_fee,
            "payment_status": r.payment_status.value if r.payment_status else None,
        }

    def list_appointments(self, viewer_id: int, role: Role | str) -> list[dict]:
        """
        Appuntamenti visibili a chi chiede:
        - patient: solo i propri
        - doctor : solo quelli del medico di cui è titolare
        - admin  : tutti
        Più recenti prima (data, ora).
        """
        role = parse_enum(Role, role, "role")
        q = self._enriched_select()
        if role == Role.PATIENT:
            q = q.where(Appointment.patient_id == viewer_id)
        elif role == Role.DOCTOR:
            q = q.where(Doctor.user_id == viewer_id)
        q = q.order_by(Appointment.date.desc(), Appointment.time.desc(), Appointment.id.desc())

        with self.database.session() as s:
            rows = s.execute(q).all()
            return [self._flat(r) for r in rows]

    def get_appointment(self, appointment_id: int) -> dict:
        q = self._enriched_select().where(Appointment.id == appointment_id)
        with self.database.session() as s:
            r = s.execute(q).first()
            if r is None:
                raise NotFoundError("Appointment not found.")
            return self._flat(r)


# =========================
# Statistiche admin
# =========================
class AdminStatsService:
    def __init__(self, database: Database) -> None:
        self.database = database

    def compute_stats(self) -> dict[str, Any]:
        with self.database.session() as s:
            def count_role(role: Role) -> int:
                return s.scalar(select(func.count()).select_from(User).where(User.role == role)) or 0

            total_appointments = s.scalar(select(func.count()).select_from(Appointment)) or 0
            revenue = s.scalar(
                select(func.coalesce(func.sum(Payment.amount), 0.0)).where(Payment.status == PaymentStatus.COMPLETED)
            )
            return {
                "totalPatients": count_role(Role.PATIENT),
                "totalDoctors": count_role(Role.DOCTOR),
                "totalAppointments": total_appointments,
                "revenue": float(revenue or 0.0),
            }


# =========================
# Pagamenti
# =========================
_TXN_ALPHABET = string.ascii_uppercase + string.digits


def new_transaction_id() -> str:
    return "TXN" + "".join(secrets.choice(_TXN_ALPHABET) for _ in range(9))


class PaymentService:
    def __init__(self, database: Database) -> None:
        self.database = database

    def create_payment(self, appointment_id: int, amount: float) -> Payment:
        """Registra un pagamento già concluso (nessun gateway): stato completed, transaction id generato."""
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Payment amount must be greater than zero.")

        with self.database.session() as s:
            if s.get(Appointment, appointment_id) is None:
                raise NotFoundError("Appointment not found.")

            payment = Payment(
                appointment_id=appointment_id,
                amount=float(amount),
                status=PaymentStatus.COMPLETED,
                transaction_id=new_transaction_id(),
            )
            s.add(payment)
            try:
                s.flush()
            except IntegrityError as e:
                raise ConstraintError("Payment violates a database constraint.") from e

        logger.info("Payment %s recorded for appointment %s: %.2f", payment.transaction_id, appointment_id, amount)
        return payment

    def list_payments(self, appointment_id: int) -> list[Payment]:
        with self.database.session() as s:
            q = select(Payment).where(Payment.appointment_id == appointment_id).order_by(Payment.id.asc())
            return list(s.scalars(q))
