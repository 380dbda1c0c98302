from __future__ import annotations

import logging

from .auth_service import AuthService
from .config import Settings
from .db import Database
from .doctor_service import DoctorService
from .notifications import GmailNotifier, LogNotifier, NotificationDispatcher, Notifier
from .security import TokenIssuer
from .seed import seed_base
from .services import (
    AdminStatsService,
    AppointmentQueryService,
    BookingService,
    PaymentService,
    StatusTransitionService,
)

logger = logging.getLogger(__name__)


class ClinicContext:
    """
    Tutte le dipendenze dell'applicazione, costruite in un punto solo:
    database, dispatcher delle notifiche, servizi. close() le rilascia.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database | None = None,
        notifier: Notifier | None = None,
        notify_workers: int | None = None,
    ) -> None:
        self.settings = settings
        self.database = database or Database(settings.database_url, echo=settings.sql_echo)

        if notifier is None:
            if settings.gmail_enabled:
                notifier = GmailNotifier(self.database, settings.google_client_id, settings.google_client_secret)
            else:
                notifier = LogNotifier()
        workers = settings.notify_workers if notify_workers is None else notify_workers
        self.dispatcher = NotificationDispatcher(notifier, workers=workers)

        self.tokens = TokenIssuer(settings.jwt_secret, settings.jwt_expire_minutes)

        self.auth = AuthService(self.database)
        self.doctors = DoctorService(self.database)
        self.booking = BookingService(self.database, self.dispatcher)
        self.status = StatusTransitionService(self.database, self.dispatcher)
        self.queries = AppointmentQueryService(self.database)
        self.stats = AdminStatsService(self.database)
        self.payments = PaymentService(self.database)

    def init_db(self, seed: bool | None = None) -> None:
        """Crea le tabelle e, se richiesto, carica il seed (idempotente)."""
        if seed is None:
            seed = self.settings.seed_on_startup

        self.database.create_all()
        if seed:
            if seed_base(self.database):
                logger.info("Database seeded")
        logger.info("Database initialized: %s", self.database.url)

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)
        self.database.dispose()
