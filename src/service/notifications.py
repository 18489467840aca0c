"""
Notifiers - deliver ledger events to operators.
"""
import smtplib
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import List, Optional

from loguru import logger

from ..account.events import LedgerEvent


class Notifier(ABC):
    """Delivery target for ledger events. May raise; the service logs and moves on."""

    @abstractmethod
    def notify(self, event: LedgerEvent) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes every event to the log."""

    def notify(self, event: LedgerEvent) -> None:
        logger.info(f"[{event.subject}] {event.describe()}")


class EmailNotifier(Notifier):
    """Sends one plain-text e-mail per event to the admin address over SMTP."""

    def __init__(
        self,
        smtp_server: str,
        admin_email: str,
        smtp_port: int = 587,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: str = "noreply@ledger.local",
        timeout: float = 10.0,
    ):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.admin_email = admin_email
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"EmailNotifier({self.smtp_server}:{self.smtp_port} -> {self.admin_email})"

    def build_message(self, event: LedgerEvent) -> MIMEText:
        msg = MIMEText(event.describe(), "plain")
        msg["Subject"] = event.subject
        msg["From"] = self.from_email
        msg["To"] = self.admin_email
        return msg

    def notify(self, event: LedgerEvent) -> None:
        msg = self.build_message(event)
        with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)
        logger.info(f"Email sent: {event.subject} ({event.username})")


class CompositeNotifier(Notifier):
    """Fans one event out to several notifiers; one failing does not stop the others."""

    def __init__(self, notifiers: List[Notifier]):
        self.notifiers = list(notifiers)

    def notify(self, event: LedgerEvent) -> None:
        for notifier in self.notifiers:
            try:
                notifier.notify(event)
            except Exception as e:
                logger.error(f"{notifier!r} failed for {event.kind.value}: {e}")
