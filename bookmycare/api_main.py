from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, Field

from bookmycare.config import Settings, configure_logging
from bookmycare.context import ClinicContext
from bookmycare.errors import (
    ClinicError,
    ConflictError,
    ConstraintError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# ordine rilevante: TransitionError è una ConflictError
ERROR_STATUS: list[tuple[type[ClinicError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ConstraintError, status.HTTP_409_CONFLICT),
]



# Schemi Auth

class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    role: str
    phone: str | None = None

    # paziente
    age: int | None = None
    gender: str | None = None
    blood_group: str | None = None

    # medico
    specialization: str | None = None
    degree: str | None = None
    qualification: str | None = None
    experience: int | None = None
    consultation_fee: float | None = None
    bio: str | None = None


class LoginIn(BaseModel):
    email: str
    password: str


class MeOut(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    role: str



# Schemi Domain

class DoctorUpdateIn(BaseModel):
    name: str | None = None
    phone: str | None = None
    specialization: str | None = None
    degree: str | None = None
    qualification: str | None = None
    experience: int | None = None
    consultation_fee: float | None = Field(default=None, ge=0)
    bio: str | None = None
    availability: str | None = None


class AppointmentCreateIn(BaseModel):
    patient_id: int
    doctor_id: int
    date: str
    time: str


class AppointmentStatusIn(BaseModel):
    status: str
    notes: str | None = None


class PaymentCreateIn(BaseModel):
    appointment_id: int
    amount: float = Field(..., gt=0)



# Dipendenze

def get_context(request: Request) -> ClinicContext:
    return request.app.state.context


def get_current_user(
    token: str = Depends(oauth2_scheme),
    ctx: ClinicContext = Depends(get_context),
) -> dict[str, Any]:
    # protezione extra: elimina spazi / virgolette accidentali
    token = token.strip().strip('"').strip("'")

    subject = ctx.tokens.get_subject(token)
    if not subject or not subject.isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        return ctx.auth.get_user(int(subject))
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user") from None


def _error_response(exc: ClinicError) -> JSONResponse:
    code = status.HTTP_400_BAD_REQUEST
    for cls, mapped in ERROR_STATUS:
        if isinstance(exc, cls):
            code = mapped
            break
    return JSONResponse(status_code=code, content={"success": False, "message": exc.message})


def create_app(context: ClinicContext | None = None) -> FastAPI:
    """
    Costruisce l'app FastAPI. Senza context usa Settings.from_env().
    Avvio con uvicorn: `uvicorn bookmycare.api_main:create_app --factory`.
    """
    ctx = context or ClinicContext(Settings.from_env())

    app = FastAPI(title="BookMyCare API", version="1.0.0")
    app.state.context = ctx

    @app.on_event("startup")
    def startup() -> None:
        configure_logging(ctx.settings.log_level)
        # Crea tabelle e seed base (idempotente)
        ctx.init_db()

    @app.on_event("shutdown")
    def shutdown() -> None:
        ctx.close()

    @app.exception_handler(ClinicError)
    async def clinic_error_handler(request: Request, exc: ClinicError) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
        return _error_response(exc)

    # AUTH endpoints

    @app.post("/api/auth/register")
    def register(payload: RegisterIn, ctx: ClinicContext = Depends(get_context)) -> dict[str, Any]:
        profile = payload.model_dump(exclude={"name", "email", "password", "role", "phone"}, exclude_none=True)
        user_id = ctx.auth.register_user(
            payload.name, payload.email, payload.password, payload.role, phone=payload.phone, **profile
        )
        return {"success": True, "userId": user_id}

    @app.post("/api/auth/login")
    def login(payload: LoginIn, ctx: ClinicContext = Depends(get_context)) -> Any:
        user = ctx.auth.authenticate(payload.email, payload.password)
        if not user:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"success": False, "message": "Invalid credentials"},
            )

        token = ctx.tokens.create_access_token(subject=str(user["id"]), extra={"role": user["role"]})
        return {"success": True, "user": user, "access_token": token, "token_type": "bearer"}

    @app.get("/api/me", response_model=MeOut)
    def me(user: dict[str, Any] = Depends(get_current_user)) -> MeOut:
        return MeOut(**user)

    @app.get("/api/auth/google/status/{user_id}")
    def google_status(user_id: int, ctx: ClinicContext = Depends(get_context)) -> dict[str, bool]:
        return {"connected": ctx.auth.google_connected(user_id)}

    # DOCTORS endpoints

    @app.get("/api/doctors")
    def api_doctors(ctx: ClinicContext = Depends(get_context)) -> list[dict]:
        return ctx.doctors.list_doctors()

    @app.get("/api/doctors/{doctor_id}")
    def api_doctor(doctor_id: int, ctx: ClinicContext = Depends(get_context)) -> dict:
        return ctx.doctors.get_doctor(doctor_id)

    @app.put("/api/doctors/{doctor_id}")
    def api_update_doctor(
        doctor_id: int, payload: DoctorUpdateIn, ctx: ClinicContext = Depends(get_context)
    ) -> dict[str, Any]:
        ctx.doctors.update_doctor(doctor_id, **payload.model_dump(exclude_none=True))
        return {"success": True}

    @app.delete("/api/doctors/{doctor_id}")
    def api_delete_doctor(doctor_id: int, ctx: ClinicContext = Depends(get_context)) -> dict[str, Any]:
        ctx.doctors.delete_doctor(doctor_id)
        return {"success": True}

    # APPOINTMENTS endpoints

    @app.post("/api/appointments")
    def api_book(payload: AppointmentCreateIn, ctx: ClinicContext = Depends(get_context)) -> dict[str, Any]:
        app_ = ctx.booking.book_appointment(payload.patient_id, payload.doctor_id, payload.date, payload.time)
        return {"success": True, "appointmentId": app_.id}

    @app.get("/api/appointments/{user_id}")
    def api_appointments(
        user_id: int,
        role: str = Query(...),
        ctx: ClinicContext = Depends(get_context),
    ) -> list[dict]:
        return ctx.queries.list_appointments(user_id, role)

    @app.patch("/api/appointments/{appointment_id}")
    def api_set_status(
        appointment_id: int, payload: AppointmentStatusIn, ctx: ClinicContext = Depends(get_context)
    ) -> dict[str, Any]:
        app_ = ctx.status.set_status(appointment_id, payload.status, payload.notes)
        return {"success": True, "status": app_.status.value}

    # PAYMENTS / ADMIN endpoints

    @app.post("/api/payments")
    def api_create_payment(payload: PaymentCreateIn, ctx: ClinicContext = Depends(get_context)) -> dict[str, Any]:
        payment = ctx.payments.create_payment(payload.appointment_id, payload.amount)
        return {"success": True, "transaction_id": payment.transaction_id}

    @app.get("/api/admin/stats")
    def api_stats(ctx: ClinicContext = Depends(get_context)) -> dict[str, Any]:
        return ctx.stats.compute_stats()

    return app
