from __future__ import annotations

import logging

from sqlalchemy import select

from .db import Database
from .models import Doctor, Role, User
from .security import hash_password

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@bookmycare.com"

DOCTORS = [
    # nome, email, specializzazione, onorario, titolo, qualifica, anni di esperienza
    ("Sarah Johnson", "sarah@doc.com", "Cardiologist", 800.0, "MBBS, MD", "Senior Cardiologist", 12),
    ("Michael Chen", "michael@doc.com", "Dermatologist", 600.0, "MBBS, DDVL", "Skin Specialist", 8),
    ("Emily Davis", "emily@doc.com", "Pediatrician", 500.0, "MBBS, DCH", "Child Specialist", 5),
]


def seed_base(database: Database, admin_password: str = "admin123", doctor_password: str = "doc123") -> bool:
    """
    Popola dati minimi (idempotente):
    - amministratore di sistema
    - tre medici con profilo
    Ritorna True se ha inserito qualcosa.
    """
    with database.session() as s:
        if s.execute(select(User.id).where(User.email == ADMIN_EMAIL)).first() is not None:
            return False

        logger.info("Seeding initial data...")
        s.add(User(name="System Admin", email=ADMIN_EMAIL, password_hash=hash_password(admin_password), role=Role.ADMIN))

        doctor_hash = hash_password(doctor_password)
        for name, email, spec, fee, degree, qual, exp in DOCTORS:
            if s.execute(select(User.id).where(User.email == email)).first() is not None:
                continue
            u = User(name=name, email=email, password_hash=doctor_hash, role=Role.DOCTOR)
            u.doctor_profile = Doctor(
                specialization=spec,
                consultation_fee=fee,
                degree=degree,
                qualification=qual,
                experience=exp,
            )
            s.add(u)

    return True
