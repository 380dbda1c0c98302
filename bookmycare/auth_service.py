from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .db import Database
from .errors import ConstraintError, NotFoundError, ValidationError
from .models import Doctor, Patient, Role, User
from .security import hash_password, verify_password
from .services import parse_enum

logger = logging.getLogger(__name__)


def _user_flat(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "phone": u.phone,
        "role": u.role.value,
    }


class AuthService:
    def __init__(self, database: Database) -> None:
        self.database = database

    def register_user(
        self,
        name: str,
        email: str,
        password: str,
        role: Role | str,
        phone: str | None = None,
        **profile: Any,
    ) -> int:
        """
        Crea l'utente e, secondo il ruolo, la riga Patient o Doctor collegata.
        profile: age, gender, blood_group (patient) oppure
                 specialization, degree, qualification, experience, consultation_fee, bio (doctor).
        """
        role = parse_enum(Role, role, "role")
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email or not password:
            raise ValidationError("Name, email and password are required.")
        if role == Role.DOCTOR and not (profile.get("specialization") or "").strip():
            raise ValidationError("Specialization is required for doctors.")

        with self.database.session() as s:
            exists = s.execute(select(User.id).where(User.email == email)).first()
            if exists:
                raise ConstraintError("Email already registered.")

            u = User(name=name, email=email, phone=phone, password_hash=hash_password(password), role=role)
            s.add(u)

            if role == Role.PATIENT:
                u.patient_profile = Patient(
                    age=profile.get("age"),
                    gender=profile.get("gender"),
                    blood_group=profile.get("blood_group"),
                )
            elif role == Role.DOCTOR:
                doctor = Doctor(
                    specialization=profile["specialization"].strip(),
                    degree=profile.get("degree"),
                    qualification=profile.get("qualification"),
                    experience=profile.get("experience") or 0,
                    bio=profile.get("bio"),
                )
                if profile.get("consultation_fee") is not None:
                    doctor.consultation_fee = float(profile["consultation_fee"])
                u.doctor_profile = doctor

            try:
                s.flush()
            except IntegrityError as e:
                raise ConstraintError("Email already registered.") from e

            logger.info("Registered %s user %s (%s)", role.value, u.id, email)
            return u.id

    def authenticate(self, email: str, password: str) -> dict[str, Any] | None:
        """Ritorna il profilo completo (con patientId/doctorId) oppure None se le credenziali non valgono."""
        email = (email or "").strip().lower()
        with self.database.session() as s:
            u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if not u or not verify_password(password or "", u.password_hash):
                logger.info("Login failed for: %s", email)
                return None

            full = _user_flat(u)
            if u.role == Role.PATIENT and u.patient_profile is not None:
                p = u.patient_profile
                full.update({"patientId": p.id, "age": p.age, "gender": p.gender, "blood_group": p.blood_group})
            elif u.role == Role.DOCTOR and u.doctor_profile is not None:
                d = u.doctor_profile
                full.update(
                    {
                        "doctorId": d.id,
                        "specialization": d.specialization,
                        "degree": d.degree,
                        "qualification": d.qualification,
                        "experience": d.experience,
                        "consultation_fee": d.consultation_fee,
                        "bio": d.bio,
                        "availability": d.availability,
                    }
                )

            logger.info("Login successful for: %s", email)
            return full

    def get_user(self, user_id: int) -> dict[str, Any]:
        with self.database.session() as s:
            u = s.get(User, user_id)
            if u is None:
                raise NotFoundError("User not found.")
            return _user_flat(u)

    def set_google_tokens(self, user_id: int, access_token: str, refresh_token: str | None = None) -> None:
        with self.database.session() as s:
            u = s.get(User, user_id)
            if u is None:
                raise NotFoundError("User not found.")
            u.google_access_token = access_token
            # Google rimanda il refresh token solo al primo consenso
            if refresh_token:
                u.google_refresh_token = refresh_token

    def google_connected(self, user_id: int) -> bool:
        with self.database.session() as s:
            token = s.execute(select(User.google_access_token).where(User.id == user_id)).scalar_one_or_none()
            return bool(token)
