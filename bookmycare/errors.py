"""Errori di dominio: i servizi li sollevano, l'API li traduce in risposte HTTP."""
from __future__ import annotations


class ClinicError(Exception):
    """Base per tutti gli errori applicativi; `message` è sicuro da mostrare all'utente."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    """Input mancante o malformato."""


class NotFoundError(ClinicError):
    """Entità riferita inesistente."""


class ConflictError(ClinicError):
    """Slot già prenotato o stato incompatibile con l'operazione."""


class TransitionError(ConflictError):
    """Cambio di stato non ammesso dalla tabella delle transizioni."""


class ConstraintError(ClinicError):
    """Violazione di unicità o di foreign key rilevata dal DB."""
