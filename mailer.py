import logging
import mimetypes
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional, Tuple

from settings import SMTPSettings

logger = logging.getLogger(__name__)

# (filename, content)
Attachment = Tuple[str, bytes]


class SMTPConfigError(RuntimeError):
    """Raised when a send is attempted without a usable SMTP host."""


def build_message(
    sender: str,
    recipient: str,
    subject: str,
    body: str,
    attachments: Iterable[Attachment] = (),
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.set_content(body)

    for filename, content in attachments:
        ctype, _ = mimetypes.guess_type(filename)
        maintype, subtype = ("text", "csv")
        if ctype and "/" in ctype:
            maintype, subtype = ctype.split("/", 1)
        msg.add_attachment(
            content,
            maintype=maintype,
            subtype=subtype,
            filename=filename,
        )

    return msg


class SMTPMailer:
    """
    Sends plain-text mail through the configured relay.
    One connection per send, so worker threads never share a socket.
    """

    def __init__(self, settings: SMTPSettings) -> None:
        self.settings = settings

    def _connect(self) -> smtplib.SMTP:
        """Establish and return an authenticated SMTP connection."""
        config = self.settings
        if not config.host:
            raise SMTPConfigError("SMTP_HOST is not configured")

        if config.use_tls:
            server = smtplib.SMTP(config.host, config.port, timeout=config.timeout)
            server.ehlo()
            server.starttls()
            server.ehlo()
        else:
            server = smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout)

        if config.user:
            server.login(config.user, config.password)

        return server

    def send(
        self,
        sender: str,
        recipient: str,
        subject: str,
        body: str,
        attachments: Optional[Iterable[Attachment]] = None,
    ) -> None:
        msg = build_message(sender, recipient, subject, body, attachments or ())

        server = self._connect()
        try:
            server.send_message(msg)
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                logger.warning("Failed to close SMTP connection cleanly")

        logger.debug("Mail '%s' sent to %s from %s", subject, recipient, sender)
