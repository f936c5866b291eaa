import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests

logger = logging.getLogger(__name__)


class EmailChannelError(Exception):
    pass


class SmtpChannel:
    """Primary channel: SMTP with STARTTLS (Gmail by default)."""

    name = "smtp"

    def __init__(self, host, port, user, password, from_name, timeout=30):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_name = from_name
        self.timeout = timeout

    @property
    def configured(self):
        return bool(self.user and self.password)

    def _send_sync(self, recipient, subject, html):
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f'"{self.from_name}" <{self.user}>'
        msg["To"] = recipient
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.user, recipient, msg.as_string())

    async def send(self, recipient, subject, html):
        if not self.configured:
            raise EmailChannelError("SMTP credentials missing")
        try:
            await asyncio.to_thread(self._send_sync, recipient, subject, html)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailChannelError(f"SMTP delivery failed: {e}") from e


class RelayChannel:
    """Secondary channel: the HTTP email relay service."""

    name = "relay"

    def __init__(self, base_url, timeout=30, from_name=None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.from_name = from_name

    @property
    def configured(self):
        return bool(self.base_url)

    def _post_sync(self, payload):
        response = requests.post(f"{self.base_url}/send-email", json=payload, timeout=self.timeout)
        response.raise_for_status()

    async def send(self, recipient, subject, html):
        if not self.configured:
            raise EmailChannelError("Email relay URL missing")
        payload = {"to": recipient, "subject": subject, "html": html, "fromName": self.from_name}
        try:
            await asyncio.to_thread(self._post_sync, payload)
        except requests.RequestException as e:
            raise EmailChannelError(f"Relay delivery failed: {e}") from e
