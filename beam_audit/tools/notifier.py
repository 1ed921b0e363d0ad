# ============================================================================
# Beam Audit -- Email Notifier (beam_audit/tools/notifier.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Sends the alert emails ("[Beam Alert] Transfer STOPPED on Line B")
#   and the --test-email message, over SMTP with implicit TLS (port 465).
#
# FAILURE POLICY:
#   send_alert() never raises. Any SMTP, network or address problem is
#   written to the error log and reported as False. By the time an alert
#   is sent the state change is already saved, and a mail outage must
#   not turn into a failed audit.
#
# INTERNET ACCESS: YES -- outbound SMTP to alerts.smtp_host only
# ============================================================================

from __future__ import annotations

import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage
from typing import Callable, Optional

from beam_audit.core.exceptions import NotificationError
from beam_audit.monitoring.logger import get_app_logger, get_error_logger
from beam_audit.security.credentials import EmailCredentials


class EmailNotifier:
    """
    Notifier backed by smtplib.SMTP_SSL.

    smtp_factory exists so tests can hand in a fake; production always
    uses SMTP_SSL with the default certificate checks.
    """

    def __init__(
        self,
        credentials: EmailCredentials,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 465,
        timeout: float = 30.0,
        smtp_factory: Optional[Callable[..., smtplib.SMTP]] = None,
    ) -> None:
        self.credentials = credentials
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.timeout = timeout
        self._smtp_factory = smtp_factory or smtplib.SMTP_SSL
        self.logger = get_app_logger("notifier")
        self.error_logger = get_error_logger("notifier_errors")

    def build_message(self, subject: str, body: str) -> EmailMessage:
        if not self.credentials.is_ready:
            raise NotificationError("Email credentials are incomplete.")
        msg = EmailMessage()
        msg["From"] = self.credentials.smtp_user
        msg["To"] = self.credentials.recipient
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def deliver(self, msg: EmailMessage) -> None:
        """Send one message; raises NotificationError on any failure."""
        try:
            with self._smtp_factory(
                self.smtp_host,
                self.smtp_port,
                timeout=self.timeout,
                context=ssl.create_default_context(),
            ) as smtp:
                smtp.login(self.credentials.smtp_user, self.credentials.smtp_pass)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery failed: {type(e).__name__}: {e}")

    def send_alert(self, line_id: str, subject: str, body: str) -> bool:
        try:
            self.deliver(self.build_message(subject, body))
        except NotificationError as e:
            self.error_logger.error(
                "alert_failed", line=line_id, subject=subject, **e.to_dict()
            )
            return False
        self.logger.info("alert_sent", line=line_id, subject=subject)
        return True

    def send_test_email(self, base_dir: str = "") -> bool:
        """The --test-email message; same failure policy as send_alert()."""
        now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        body = (
            "This is a test email from the beam transfer audit tool.\n\n"
            "If you received this, alert emails are configured correctly.\n\n"
            f"Base directory: {base_dir or '(default)'}\n"
            f"Time: {now}\n"
        )
        return self.send_alert("-", "[Beam Audit] Test Email", body)
