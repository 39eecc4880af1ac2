"""
Outbound email over SMTP.

Send helpers return (ok, error) instead of raising: a failed email must never break the request that triggered it.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from flask import render_template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mailer:
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    encryption: str = "tls"  # tls | ssl | none
    from_address: str = "noreply@knowmypatient.nhs.uk"
    from_name: str = "Know My Patient"
    reply_to: str = ""
    timeout: int = 15

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _connect(self) -> smtplib.SMTP:
        if self.encryption == "ssl":
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=ssl.create_default_context()
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.encryption == "tls":
                server.starttls(context=ssl.create_default_context())
        if self.username and self.password:
            server.login(self.username, self.password)
        return server

    def build_message(self, to: str, subject: str, html: str, text: str | None = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = to
        if self.reply_to:
            msg["Reply-To"] = self.reply_to
        msg.attach(MIMEText(text or "", "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> tuple[bool, str]:
        if not self.configured:
            logger.warning("SMTP not configured (SMTP_HOST empty); email to %s not sent: %s", to, subject)
            return False, "SMTP server not configured"

        msg = self.build_message(to, subject, html, text)
        try:
            server = self._connect()
            try:
                server.send_message(msg)
            finally:
                server.quit()
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed: %s", e)
            return False, f"SMTP authentication failed: {e}"
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP error sending to %s: %s", to, e)
            return False, f"SMTP error: {e}"
        logger.info("Sent email to %s subject=%s", to, subject)
        return True, "sent"

    def test_connection(self) -> tuple[bool, str]:
        if not self.configured:
            return False, "SMTP server not configured"
        try:
            server = self._connect()
            server.noop()
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            return False, str(e)
        return True, "ok"

    # ---------- Templated messages (need an app context) ----------

    def send_password_reset(self, to: str, name: str, reset_url: str) -> tuple[bool, str]:
        html = render_template("emails/password_reset.html", name=name, reset_url=reset_url)
        text = (
            f"Hello {name},\n\nUse the link below to reset your Know My Patient password. "
            f"It expires in 1 hour.\n\n{reset_url}\n\nIf you did not ask for this, ignore this email."
        )
        return self.send(to, "Reset your Know My Patient password", html, text)

    def send_welcome(self, to: str, name: str) -> tuple[bool, str]:
        html = render_template("emails/welcome.html", name=name)
        text = f"Hello {name},\n\nWelcome to Know My Patient. Your account is ready."
        return self.send(to, "Welcome to Know My Patient", html, text)

    def send_nhs_verification(self, to: str, verify_url: str) -> tuple[bool, str]:
        html = render_template("emails/nhs_verification.html", verify_url=verify_url)
        text = f"Confirm your NHS email address for Know My Patient:\n\n{verify_url}"
        return self.send(to, "Verify your NHS email address", html, text)


def mailer_from_config(config: dict) -> Mailer:
    return Mailer(
        host=(config.get("SMTP_HOST") or "").strip(),
        port=int(config.get("SMTP_PORT") or 587),
        username=(config.get("SMTP_USERNAME") or "").strip(),
        password=config.get("SMTP_PASSWORD") or "",
        encryption=(config.get("SMTP_ENCRYPTION") or "tls").strip().lower(),
        from_address=(config.get("MAIL_FROM_ADDRESS") or "noreply@knowmypatient.nhs.uk").strip(),
        from_name=(config.get("MAIL_FROM_NAME") or "Know My Patient").strip(),
        reply_to=(config.get("MAIL_REPLY_TO") or "").strip(),
    )
