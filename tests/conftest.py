"""
Fixture comuni: DB SQLite temporaneo per test, notifier che registra gli invii.
"""
from __future__ import annotations

import pytest

from bookmycare.config import Settings
from bookmycare.context import ClinicContext
from bookmycare.notifications import Notifier


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[int, str, str]] = []

    def send(self, user_id: int, subject: str, body_html: str) -> bool:
        if self.fail:
            raise RuntimeError("mail backend down")
        self.sent.append((user_id, subject, body_html))
        return True


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        notify_workers=0,
        seed_on_startup=False,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ctx(settings, notifier):
    c = ClinicContext(settings, notifier=notifier)
    c.init_db(seed=False)
    yield c
    c.close()


def make_doctor(ctx: ClinicContext, name: str = "Gregory House", email: str = "house@doc.com") -> tuple[int, int]:
    """Ritorna (user_id, doctor_id)."""
    user_id = ctx.auth.register_user(name, email, "doc123", "doctor", specialization="Diagnostics")
    doctor_id = next(d["id"] for d in ctx.doctors.list_doctors() if d["user_id"] == user_id)
    return user_id, doctor_id


def make_patient(ctx: ClinicContext, name: str = "John Doe", email: str = "john@mail.com") -> int:
    return ctx.auth.register_user(name, email, "secret", "patient", age=40, gender="male")


@pytest.fixture
def doctor(ctx) -> tuple[int, int]:
    return make_doctor(ctx)


@pytest.fixture
def patient(ctx) -> int:
    return make_patient(ctx)
