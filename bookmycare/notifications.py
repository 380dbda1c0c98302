"""
Notifiche email ai pazienti.

Il core conosce solo `Notifier.send(user_id, subject, body_html) -> bool`:
- GmailNotifier : invia via Gmail API con i token Google salvati sull'utente
- LogNotifier   : scrive solo a log (default senza credenziali Google)

Le notifiche sono best-effort: NotificationDispatcher le esegue dopo il commit
(in un thread pool o inline) e non propaga mai gli errori.
"""
from __future__ import annotations

import base64
import html
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from email.header import Header
from email.mime.text import MIMEText

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from sqlalchemy import select

from .db import Database
from .models import AppointmentStatus, User

logger = logging.getLogger(__name__)

APP_NAME = "BookMyCare"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

_STATUS_COLORS = {
    AppointmentStatus.APPROVED: "#059669",
}
_DEFAULT_STATUS_COLOR = "#dc2626"


# =========================
# Template email
# =========================
def _wrap(title: str, color: str, lines: list[str], footer: str) -> str:
    body = "\n".join(f"  <p>{line}</p>" for line in lines)
    return (
        '<div style="font-family: sans-serif; padding: 20px; border: 1px solid #e2e8f0; border-radius: 12px;">\n'
        f'  <h2 style="color: {color};">{title}</h2>\n'
        f"{body}\n"
        '  <hr style="border: 0; border-top: 1px solid #e2e8f0; margin: 20px 0;">\n'
        f'  <p style="font-size: 12px; color: #64748b;">{footer}</p>\n'
        "</div>"
    )


def booking_confirmation_email(doctor_name: str, date: str, time: str) -> tuple[str, str]:
    """Ritorna (subject, body_html) per una nuova prenotazione."""
    subject = f"Appointment Booked - {APP_NAME}"
    body = _wrap(
        "Appointment Confirmation",
        "#0284c7",
        [
            f"Your appointment with <strong>Dr. {html.escape(doctor_name)}</strong> has been successfully booked.",
            f"<strong>Date:</strong> {html.escape(date)}",
            f"<strong>Time:</strong> {html.escape(time)}",
        ],
        f"This is an automated reminder from {APP_NAME}.",
    )
    return subject, body


def status_update_email(status: AppointmentStatus, doctor_name: str, date: str, time: str) -> tuple[str, str]:
    """Ritorna (subject, body_html) per un cambio di stato."""
    label = status.value.capitalize()
    subject = f"Appointment {label} - {APP_NAME}"
    body = _wrap(
        f"Appointment {label}",
        _STATUS_COLORS.get(status, _DEFAULT_STATUS_COLOR),
        [
            f"Your appointment with <strong>Dr. {html.escape(doctor_name)}</strong> has been "
            f"<strong>{status.value}</strong>.",
            f"<strong>Date:</strong> {html.escape(date)}",
            f"<strong>Time:</strong> {html.escape(time)}",
        ],
        f"This is an automated notification from {APP_NAME}.",
    )
    return subject, body


# =========================
# Notifier
# =========================
class Notifier(ABC):
    """Interfaccia del collaboratore esterno di notifica."""

    @abstractmethod
    def send(self, user_id: int, subject: str, body_html: str) -> bool:
        ...


class LogNotifier(Notifier):
    def send(self, user_id: int, subject: str, body_html: str) -> bool:
        logger.info("Notification for user %s (not delivered, no mail backend): %s", user_id, subject)
        return True


def build_raw_message(subject: str, body_html: str, sender: str = f"{APP_NAME} <me>", to: str = "me") -> str:
    """MIME html codificato base64url, come richiesto da users.messages.send."""
    msg = MIMEText(body_html, "html", "utf-8")
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = Header(subject, "utf-8").encode()
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


class GmailNotifier(Notifier):
    """
    Invia email dall'account Google collegato dall'utente stesso.
    Utenti senza token Google vengono saltati (send ritorna False).
    """

    def __init__(self, database: Database, client_id: str | None, client_secret: str | None) -> None:
        self.database = database
        self.client_id = client_id
        self.client_secret = client_secret

    def _load_tokens(self, user_id: int) -> tuple[str | None, str | None]:
        with self.database.session() as s:
            row = s.execute(
                select(User.google_access_token, User.google_refresh_token).where(User.id == user_id)
            ).first()
        if row is None:
            return None, None
        return row.google_access_token, row.google_refresh_token

    def create_credentials(self, access_token: str, refresh_token: str | None) -> Credentials:
        return Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )

    def send(self, user_id: int, subject: str, body_html: str) -> bool:
        access_token, refresh_token = self._load_tokens(user_id)
        if not access_token:
            logger.info("User %s has no Google account connected, skipping email", user_id)
            return False

        creds = self.create_credentials(access_token, refresh_token)
        service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        service.users().messages().send(
            userId="me",
            body={"raw": build_raw_message(subject, body_html)},
        ).execute()

        logger.info("Gmail reminder sent to user %s", user_id)
        return True


# =========================
# Dispatcher best-effort
# =========================
class NotificationDispatcher:
    """
    Esegue le notifiche fuori dal percorso critico.
    workers > 0: thread pool (fire-and-forget); workers == 0: inline.
    In entrambi i casi gli errori del notifier vengono loggati e mai propagati.
    """

    def __init__(self, notifier: Notifier, workers: int = 0) -> None:
        self.notifier = notifier
        self._executor = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") if workers > 0 else None
        )

    def dispatch(self, user_id: int, subject: str, body_html: str) -> Future | None:
        if self._executor is None:
            self._deliver(user_id, subject, body_html)
            return None
        return self._executor.submit(self._deliver, user_id, subject, body_html)

    def _deliver(self, user_id: int, subject: str, body_html: str) -> bool:
        try:
            return bool(self.notifier.send(user_id, subject, body_html))
        except Exception:
            logger.exception("Error sending notification %r to user %s", subject, user_id)
            return False

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
