from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select

from .db import Database
from .errors import NotFoundError, ValidationError
from .models import Doctor, User

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "phone")
DOCTOR_FIELDS = ("specialization", "degree", "qualification", "experience", "consultation_fee", "bio", "availability")


class DoctorService:
    def __init__(self, database: Database) -> None:
        self.database = database

    @staticmethod
    def _select():
        return (
            select(
                Doctor.id,
                Doctor.user_id,
                User.name,
                User.email,
                User.phone,
                Doctor.specialization,
                Doctor.degree,
                Doctor.qualification,
                Doctor.bio,
                Doctor.experience,
                Doctor.consultation_fee,
                Doctor.availability,
            )
            .join(User, User.id == Doctor.user_id)
        )

    def list_doctors(self) -> list[dict]:
        with self.database.session() as s:
            rows = s.execute(self._select().order_by(User.name, Doctor.id)).all()
            return [dict(r._mapping) for r in rows]

    def get_doctor(self, doctor_id: int) -> dict:
        with self.database.session() as s:
            r = s.execute(self._select().where(Doctor.id == doctor_id)).first()
            if r is None:
                raise NotFoundError("Doctor not found.")
            return dict(r._mapping)

    def update_doctor(self, doctor_id: int, **fields: Any) -> None:
        """Aggiorna nome/telefono sull'utente e i dati professionali sul medico; None = campo invariato."""
        unknown = set(fields) - set(USER_FIELDS) - set(DOCTOR_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown doctor fields: {', '.join(sorted(unknown))}.")
        if "name" in fields and fields["name"] is not None and not str(fields["name"]).strip():
            raise ValidationError("Name cannot be empty.")
        if "specialization" in fields and fields["specialization"] is not None and not fields["specialization"].strip():
            raise ValidationError("Specialization cannot be empty.")

        with self.database.session() as s:
            doctor = s.get(Doctor, doctor_id)
            if doctor is None:
                raise NotFoundError("Doctor not found.")

            for key in USER_FIELDS:
                if fields.get(key) is not None:
                    setattr(doctor.user, key, fields[key])
            for key in DOCTOR_FIELDS:
                if fields.get(key) is not None:
                    setattr(doctor, key, fields[key])

        logger.info("Doctor %s updated", doctor_id)

    def delete_doctor(self, doctor_id: int) -> None:
        """
        Elimina l'utente titolare: il DB propaga (ON DELETE CASCADE) a medico,
        appuntamenti e pagamenti.
        """
        with self.database.session() as s:
            user_id = s.execute(select(Doctor.user_id).where(Doctor.id == doctor_id)).scalar_one_or_none()
            if user_id is None:
                raise NotFoundError("Doctor not found.")
            s.execute(delete(User).where(User.id == user_id))

        logger.info("Doctor %s deleted together with user %s", doctor_id, user_id)
