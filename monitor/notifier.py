"""
Email notification dispatch over a single SMTP session.

This module provides:
- Loading and expansion of message body templates
- STARTTLS-secured, PLAIN-authenticated SMTP delivery
- Per-recipient delivery tracking with an explicit partial-failure result
"""

import smtplib
import ssl
from pathlib import Path
from string import Template
from typing import Callable, Iterable, Optional

import structlog

from monitor.exceptions import SmtpError, TemplateError
from monitor.models import DispatchResult, EmailConfig, NotificationEvent, SmtpConfig

logger = structlog.get_logger(__name__)

TEMPLATE_FIELDS = frozenset({"to", "from", "subject", "url"})

# smtplib encodes commands as ASCII unless SMTPUTF8 is negotiated
SMTP_ERRORS = (smtplib.SMTPException, OSError, UnicodeError)


class BodyTemplate:
    """
    Message body template merged from one or more files.

    Placeholders use ``string.Template`` syntax: ``$to``, ``$from``,
    ``$subject`` and ``$url``. The expanded text is the complete message,
    headers included.
    """

    def __init__(self, source: str):
        self.template = Template(source)
        if not self.template.is_valid():
            raise TemplateError("Malformed placeholder in body template")
        unknown = set(self.template.get_identifiers()) - TEMPLATE_FIELDS
        if unknown:
            raise TemplateError(
                f"Unknown body template fields: {', '.join(sorted(unknown))}"
            )

    @classmethod
    def from_files(cls, paths: Iterable[str]) -> "BodyTemplate":
        """Concatenate template files in order and parse the result."""
        parts = []
        for path in paths:
            try:
                parts.append(Path(path).read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError) as e:
                raise TemplateError(f"Cannot read body template {path}: {e}") from e
        return cls("".join(parts))

    def render(self, to: str, sender: str, subject: str, url: str) -> str:
        fields = {"to": to, "from": sender, "subject": subject, "url": url}
        try:
            return self.template.substitute(fields)
        except (KeyError, ValueError) as e:
            raise TemplateError(f"Failed to expand body template: {e}") from e


def encode_message(body: str) -> bytes:
    """Encode a message body for DATA with CRLF line endings."""
    normalized = body.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")
    return normalized.encode("utf-8")


class NotificationDispatcher:
    """
    Sends one notification event to all of its recipients.

    Each dispatch opens its own connection and walks
    Connect, StartTLS, Authenticate, then MAIL/RCPT/DATA per recipient,
    then Quit. The first failure stops the dispatch; recipients after the
    failing one are not attempted.
    """

    def __init__(
        self,
        smtp_config: SmtpConfig,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        """
        Initialize the dispatcher.

        Args:
            smtp_config: Relay host, port and credentials
            timeout: Socket timeout in seconds for every protocol stage
            ssl_context: TLS context for STARTTLS (defaults to system trust store)
            smtp_factory: Callable returning a connected SMTP client
        """
        self.config = smtp_config
        self.timeout = timeout
        self.ssl_context = ssl_context
        self.smtp_factory = smtp_factory
        self.logger = logger.bind(component="notifier", smtp=smtp_config.address)

    def dispatch(
        self,
        event: NotificationEvent,
        email_config: EmailConfig,
        url: str,
    ) -> DispatchResult:
        """
        Send ``event``'s message to every configured recipient.

        Args:
            event: Notification being sent
            email_config: Subject, sender, recipients and body templates
            url: Monitored URL, substituted into the body

        Returns:
            DispatchResult listing delivered recipients and, on failure,
            the failing stage, recipient and error
        """
        result = DispatchResult(event=event, recipients=list(email_config.recipients))
        log = self.logger.bind(event=event.value)

        try:
            template = BodyTemplate.from_files(email_config.body_templates)
        except TemplateError as e:
            return self._failed(result, log, "template", e)

        try:
            client = self._connect()
        except SmtpError as e:
            return self._failed(result, log, e.stage, e)

        index = None
        try:
            self._start_tls(client)
            self._authenticate(client)

            for index, recipient in enumerate(email_config.recipients):
                try:
                    body = template.render(
                        to=recipient,
                        sender=email_config.sender,
                        subject=email_config.subject,
                        url=url,
                    )
                except TemplateError as e:
                    raise SmtpError("template", str(e)) from e

                log.info("Emailing recipient", recipient=recipient, index=index)
                log.debug("Message body", body=body)
                self._send(client, email_config.sender, recipient, body)
                result.delivered.append(recipient)
            index = None

        except SmtpError as e:
            if index is not None:
                result.failed_index = index
                result.failed_recipient = email_config.recipients[index]
            return self._failed(result, log, e.stage, e)

        finally:
            self._quit(client)

        log.info("Notification sent", recipients=len(result.delivered))
        return result

    def _connect(self) -> smtplib.SMTP:
        try:
            return self.smtp_factory(self.config.host, self.config.port, timeout=self.timeout)
        except SMTP_ERRORS as e:
            raise SmtpError("connect", f"cannot connect to {self.config.address}: {e}") from e

    def _start_tls(self, client: smtplib.SMTP) -> None:
        context = self.ssl_context or ssl.create_default_context()
        try:
            client.ehlo()
            client.starttls(context=context)
            client.ehlo()
        except SMTP_ERRORS as e:
            raise SmtpError("starttls", str(e)) from e

    def _authenticate(self, client: smtplib.SMTP) -> None:
        client.user = self.config.username
        client.password = self.config.password
        try:
            client.auth("PLAIN", client.auth_plain)
        except SMTP_ERRORS as e:
            raise SmtpError("authenticate", str(e)) from e

    def _send(self, client: smtplib.SMTP, sender: str, recipient: str, body: str) -> None:
        options = []
        if not (sender.isascii() and recipient.isascii()):
            try:
                if client.has_extn("smtputf8"):
                    # smtplib switches command_encoding to utf-8 for this option
                    options.append("SMTPUTF8")
            except SMTP_ERRORS as e:
                raise SmtpError("mail", str(e)) from e

        try:
            code, response = client.mail(sender, options)
        except SMTP_ERRORS as e:
            raise SmtpError("mail", str(e)) from e
        if code != 250:
            raise SmtpError("mail", f"{code} {_decode(response)}")

        try:
            code, response = client.rcpt(recipient)
        except SMTP_ERRORS as e:
            raise SmtpError("rcpt", str(e)) from e
        if code not in (250, 251):
            raise SmtpError("rcpt", f"{code} {_decode(response)}")

        try:
            code, response = client.data(encode_message(body))
        except SMTP_ERRORS as e:
            raise SmtpError("data", str(e)) from e
        if code != 250:
            raise SmtpError("data", f"{code} {_decode(response)}")

    def _quit(self, client: smtplib.SMTP) -> None:
        try:
            client.quit()
        except SMTP_ERRORS as e:
            self.logger.debug("QUIT failed, closing connection", error=str(e))
            client.close()

    def _failed(self, result: DispatchResult, log, stage: str, error: Exception) -> DispatchResult:
        result.stage = stage
        result.error = str(error)
        log.error(
            "Notification failed",
            stage=stage,
            error=str(error),
            delivered=len(result.delivered),
            undelivered=result.undelivered,
        )
        return result


def _decode(response) -> str:
    if isinstance(response, bytes):
        return response.decode("utf-8", "replace")
    return str(response)
