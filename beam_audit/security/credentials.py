# ===========================================================================
# Beam Audit -- EMAIL CREDENTIALS
# ===========================================================================
# FILE: beam_audit/security/credentials.py
#
# WHAT THIS IS:
#   The one place that reads the SMTP account used for alert emails.
#   The notifier and the --test-email command both go through
#   resolve_email_credentials(); nothing else reads env vars, keyring
#   or .email_config for mail settings.
#
# RESOLUTION ORDER (first match wins, per value):
#   1. OS credential store (via keyring) -- password only
#   2. Environment variables
#   3. <base_dir>/.email_config  (KEY=value lines, quotes stripped)
#
#   .email_config is what the share has always used:
#       SMTP_USER="alerts@example.org"
#       SMTP_PASS="app-password"
#       RECIPIENT_EMAIL="oncall@example.org"
#
# ACCEPTED ENVIRONMENT VARIABLE ALIASES:
#   User:       BEAM_AUDIT_SMTP_USER (canonical), SMTP_USER
#   Password:   BEAM_AUDIT_SMTP_PASS (canonical), SMTP_PASS
#   Recipient:  BEAM_AUDIT_RECIPIENT_EMAIL (canonical), RECIPIENT_EMAIL
#
# MISSING CREDENTIALS ARE NOT AN ERROR:
#   is_ready is False and alerting is switched off for the run. The
#   audit itself carries on.
#
# DESIGN DECISIONS:
#   - Returns a dataclass (EmailCredentials), not a dict
#   - Records WHERE each value came from for the status command
#   - Never logs or prints the password -- only masked previews
# ===========================================================================

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import keyring
from keyring.errors import PasswordDeleteError

logger = logging.getLogger(__name__)


@dataclass
class EmailCredentials:
    """
    Container for resolved SMTP credentials.

    Attributes:
        smtp_user: Sender account (also the From address).
        smtp_pass: Account or app password.
        recipient: Address alerts are sent to.
        source_*: Where each value came from ("keyring", "env:VAR", "file").
    """
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    recipient: Optional[str] = None
    source_user: Optional[str] = None
    source_pass: Optional[str] = None
    source_recipient: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        """True if all three values are present -- minimum to send mail."""
        return bool(self.smtp_user and self.smtp_pass and self.recipient)

    @property
    def pass_preview(self) -> str:
        """Masked password for logs. NEVER log the full value."""
        if not self.smtp_pass:
            return "(not set)"
        if len(self.smtp_pass) <= 8:
            return "****"
        return self.smtp_pass[:2] + "..." + self.smtp_pass[-2:]

    def to_diagnostic_dict(self) -> dict:
        return {
            "smtp_user": self.smtp_user or "(not set)",
            "smtp_pass": self.pass_preview,
            "recipient": self.recipient or "(not set)",
            "source_user": self.source_user or "(not found)",
            "source_pass": self.source_pass or "(not found)",
            "source_recipient": self.source_recipient or "(not found)",
            "ready": self.is_ready,
        }


# ---------------------------------------------------------------------------
# PUBLIC CONSTANTS -- import these, don't hardcode names elsewhere
# ---------------------------------------------------------------------------

USER_ENV_ALIASES = ["BEAM_AUDIT_SMTP_USER", "SMTP_USER"]
PASS_ENV_ALIASES = ["BEAM_AUDIT_SMTP_PASS", "SMTP_PASS"]
RECIPIENT_ENV_ALIASES = ["BEAM_AUDIT_RECIPIENT_EMAIL", "RECIPIENT_EMAIL"]

KEYRING_SERVICE = "beam_audit"
KEYRING_PASS_NAME = "smtp_pass"

EMAIL_CONFIG_FILENAME = ".email_config"


def _resolve_env_var(aliases):
    """(value, var_name) of the first alias set and non-empty, else (None, None)."""
    for var_name in aliases:
        value = os.environ.get(var_name, "").strip()
        if value:
            return value, var_name
    return None, None


def _read_keyring(key_name):
    """
    Read a value from the OS credential store.

    Returns None if no backend is available on this machine (a headless
    Linux box usually has none) or the value is not stored.
    """
    try:
        value = keyring.get_password(KEYRING_SERVICE, key_name)
        if value and value.strip():
            return value.strip()
    except Exception as e:
        logger.debug("keyring read failed for '%s': %s", key_name, e)
    return None


def read_email_config(path) -> Dict[str, str]:
    """
    Parse a KEY=value file. Surrounding whitespace and double quotes are
    stripped from values; blank lines and # comments are ignored.
    Missing file -> empty dict.
    """
    try:
        content = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return {}

    values: Dict[str, str] = {}
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, val = stripped.partition("=")
        if key.strip().startswith("export "):
            key = key.strip()[len("export "):]
        values[key.strip()] = val.strip().strip('"')
    return values


def resolve_email_credentials(base_dir=None, config_path=None) -> EmailCredentials:
    """
    Resolve SMTP credentials from all sources.

    Args:
        base_dir: Folder holding .email_config (ignored if config_path given).
        config_path: Explicit path to the KEY=value file.

    Does NOT raise for missing values; check is_ready.
    """
    if config_path is None and base_dir is not None:
        config_path = Path(base_dir) / EMAIL_CONFIG_FILENAME
    file_values = read_email_config(config_path) if config_path else {}

    creds = EmailCredentials()

    user, user_var = _resolve_env_var(USER_ENV_ALIASES)
    if user:
        creds.smtp_user, creds.source_user = user, f"env:{user_var}"
    elif file_values.get("SMTP_USER"):
        creds.smtp_user, creds.source_user = file_values["SMTP_USER"], "file"

    from_keyring = _read_keyring(KEYRING_PASS_NAME)
    if from_keyring:
        creds.smtp_pass, creds.source_pass = from_keyring, "keyring"
    else:
        pw, pw_var = _resolve_env_var(PASS_ENV_ALIASES)
        if pw:
            creds.smtp_pass, creds.source_pass = pw, f"env:{pw_var}"
        elif file_values.get("SMTP_PASS"):
            creds.smtp_pass, creds.source_pass = file_values["SMTP_PASS"], "file"

    rcpt, rcpt_var = _resolve_env_var(RECIPIENT_ENV_ALIASES)
    if rcpt:
        creds.recipient, creds.source_recipient = rcpt, f"env:{rcpt_var}"
    elif file_values.get("RECIPIENT_EMAIL"):
        creds.recipient, creds.source_recipient = file_values["RECIPIENT_EMAIL"], "file"

    if creds.is_ready:
        logger.debug(
            "Email credentials resolved (user: %s, recipient: %s, pass: %s)",
            creds.smtp_user, creds.recipient, creds.pass_preview,
        )
    return creds


def store_smtp_password(password):
    """Store the SMTP password in the OS credential store."""
    keyring.set_password(KEYRING_SERVICE, KEYRING_PASS_NAME, password)
    logger.info("SMTP password stored in keyring")


def clear_smtp_password():
    """Remove the stored SMTP password; no-op if none is stored."""
    try:
        keyring.delete_password(KEYRING_SERVICE, KEYRING_PASS_NAME)
    except PasswordDeleteError:
        logger.debug("No SMTP password stored in keyring")
    else:
        logger.info("SMTP password cleared from keyring")


# ---------------------------------------------------------------------------
# CLI HANDLER:
#   python -m beam_audit.security.credentials store   (hidden prompt)
#   python -m beam_audit.security.credentials status  [base_dir]
#   python -m beam_audit.security.credentials delete
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import sys
    import getpass

    command = sys.argv[1] if len(sys.argv) > 1 else "status"

    if command == "store":
        try:
            pw = getpass.getpass(prompt="SMTP password: ")
        except EOFError:
            pw = ""
        if not pw.strip():
            print("ERROR: No password entered. Nothing stored.")
            sys.exit(1)
        store_smtp_password(pw.strip())
        print("SMTP password stored in the OS credential store.")

    elif command == "status":
        base = sys.argv[2] if len(sys.argv) > 2 else "."
        creds = resolve_email_credentials(base)
        print("")
        print("  Email Credential Status:")
        print("  ------------------------")
        for key, value in creds.to_diagnostic_dict().items():
            print(f"  {key:<17} {value}")
        print("")

    elif command == "delete":
        clear_smtp_password()
        print("SMTP password removed from the OS credential store.")

    else:
        print(f"Unknown command: {command}")
        print("Usage: python -m beam_audit.security.credentials [store|status|delete]")
        sys.exit(1)
