# ============================================================================
# test_notifier.py -- Alert email construction and SMTP failure handling
# ============================================================================
#
# COVERS:
#   Tests 01-02: message building
#   Tests 03-06: delivery through a fake SMTP_SSL, failures return False
#
# RUN:
#   python -m pytest tests/test_notifier.py -v
#
# INTERNET ACCESS: NONE (SMTP is faked)
# ============================================================================

import smtplib

import pytest

from beam_audit.core.exceptions import NotificationError
from beam_audit.security.credentials import EmailCredentials
from beam_audit.tools.notifier import EmailNotifier

CREDS = EmailCredentials(
    smtp_user="alerts@example.org",
    smtp_pass="app-password",
    recipient="oncall@example.org",
)


class FakeSMTP:
    """Records the SMTP conversation; optionally fails at login."""

    instances = []

    def __init__(self, host, port, timeout=None, context=None, fail_with=None):
        self.host, self.port, self.timeout, self.context = host, port, timeout, context
        self.fail_with = fail_with
        self.logins = []
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def login(self, user, password):
        if self.fail_with is not None:
            raise self.fail_with
        self.logins.append((user, password))

    def send_message(self, msg):
        self.messages.append(msg)


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []


def _factory(fail_with=None):
    def make(host, port, timeout=None, context=None):
        return FakeSMTP(host, port, timeout, context, fail_with=fail_with)
    return make


class TestEmailNotifier:

    # ------------------------------------------------------------------
    # TEST 01: From/To/Subject come from credentials and the alert
    # ------------------------------------------------------------------
    def test_01_build_message(self):
        msg = EmailNotifier(CREDS).build_message("[Beam Alert] Transfer STOPPED on Line B", "body")
        assert msg["From"] == "alerts@example.org"
        assert msg["To"] == "oncall@example.org"
        assert msg["Subject"] == "[Beam Alert] Transfer STOPPED on Line B"
        assert msg.get_content().strip() == "body"

    # ------------------------------------------------------------------
    # TEST 02: incomplete credentials cannot build a message
    # ------------------------------------------------------------------
    def test_02_incomplete_credentials(self):
        notifier = EmailNotifier(EmailCredentials(smtp_user="u"))
        with pytest.raises(NotificationError):
            notifier.build_message("s", "b")

    # ------------------------------------------------------------------
    # TEST 03: a successful alert logs in over TLS and sends once
    # ------------------------------------------------------------------
    def test_03_send_alert(self):
        notifier = EmailNotifier(CREDS, "smtp.example.org", 465, smtp_factory=_factory())
        assert notifier.send_alert("B", "subject", "body") is True

        smtp = FakeSMTP.instances[0]
        assert (smtp.host, smtp.port) == ("smtp.example.org", 465)
        assert smtp.context is not None
        assert smtp.logins == [("alerts@example.org", "app-password")]
        assert len(smtp.messages) == 1

    # ------------------------------------------------------------------
    # TEST 04: SMTP and network failures are swallowed into False
    # ------------------------------------------------------------------
    @pytest.mark.parametrize("error", [
        smtplib.SMTPAuthenticationError(535, b"bad credentials"),
        ConnectionRefusedError("refused"),
    ])
    def test_04_delivery_failure_returns_false(self, error):
        notifier = EmailNotifier(CREDS, smtp_factory=_factory(fail_with=error))
        assert notifier.send_alert("A", "subject", "body") is False
        assert FakeSMTP.instances[0].messages == []

    # ------------------------------------------------------------------
    # TEST 05: deliver() itself raises the typed error
    # ------------------------------------------------------------------
    def test_05_deliver_raises_notification_error(self):
        notifier = EmailNotifier(CREDS, smtp_factory=_factory(fail_with=OSError("down")))
        with pytest.raises(NotificationError) as exc:
            notifier.deliver(notifier.build_message("s", "b"))
        assert exc.value.error_code == "MAIL-001"
        assert "OSError" in str(exc.value)

    # ------------------------------------------------------------------
    # TEST 06: test email goes through the same path
    # ------------------------------------------------------------------
    def test_06_test_email(self):
        notifier = EmailNotifier(CREDS, smtp_factory=_factory())
        assert notifier.send_test_email("/srv/share") is True
        msg = FakeSMTP.instances[0].messages[0]
        assert msg["Subject"] == "[Beam Audit] Test Email"
        assert "Base directory: /srv/share" in msg.get_content()
