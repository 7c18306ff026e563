"""SMTP email driver.

Subscribers are addressed on the envelope only. The visible To header is the
sender address, so recipients never see each other.
"""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any

from apps.notify.drivers.base import BaseNotifyDriver, DeliveryResult, NotificationMessage

logger = logging.getLogger(__name__)


class EmailNotifyDriver(BaseNotifyDriver):
    name = "email"
    description = "SMTP email to active subscribers (or explicit to_addresses)"
    required_config = ("smtp_host", "from_address")
    optional_config = (
        "smtp_port",
        "use_tls",
        "use_ssl",
        "username",
        "password",
        "to_addresses",
        "timeout",
        "text_template",
        "html_template",
    )

    DEFAULT_PORT = 587
    DEFAULT_SSL_PORT = 465
    X_PRIORITY = {"critical": "1", "warning": "2"}

    def recipients(self, config: dict[str, Any]) -> list[str]:
        """Configured addresses, stripped and de-duplicated in order."""
        result: list[str] = []
        for address in config.get("to_addresses") or []:
            address = str(address).strip()
            if address and address not in result:
                result.append(address)
        return result

    def compose(self, message: NotificationMessage, config: dict[str, Any]) -> EmailMessage:
        text, html = self.render_bodies(message, config)

        mail = EmailMessage()
        mail["Subject"] = message.subject
        mail["From"] = config["from_address"]
        mail["To"] = config["from_address"]
        mail["Message-ID"] = make_msgid(domain=config["smtp_host"])
        mail["X-Priority"] = self.X_PRIORITY.get(message.severity, "3")
        mail.set_content(text)
        if html:
            mail.add_alternative(html, subtype="html")
        return mail

    def _connect(self, config: dict[str, Any]) -> smtplib.SMTP:
        host = config["smtp_host"]
        timeout = config.get("timeout", 30)
        if config.get("use_ssl"):
            return smtplib.SMTP_SSL(host, config.get("smtp_port", self.DEFAULT_SSL_PORT), timeout=timeout)
        return smtplib.SMTP(host, config.get("smtp_port", self.DEFAULT_PORT), timeout=timeout)

    def deliver(self, message: NotificationMessage, config: dict[str, Any]) -> DeliveryResult:
        if not self.validate_config(config):
            return DeliveryResult.failed(
                "Invalid email configuration (smtp_host and from_address required)"
            )

        recipients = self.recipients(config)
        if not recipients:
            logger.info("Email notification skipped: no recipients")
            return DeliveryResult.skip("no recipients")

        try:
            mail = self.compose(message, config)
        except ValueError as e:
            return self._failure("render email", e)

        try:
            with self._connect(config) as server:
                if config.get("use_tls", True) and not config.get("use_ssl"):
                    server.starttls()
                if config.get("username") and config.get("password"):
                    server.login(config["username"], config["password"])
                server.send_message(mail, from_addr=config["from_address"], to_addrs=recipients)
        except smtplib.SMTPAuthenticationError as e:
            return self._failure("authenticate with SMTP server", e)
        except (smtplib.SMTPException, OSError) as e:
            return self._failure("send email", e)

        logger.info(f"Email '{message.subject}' sent to {len(recipients)} recipient(s)")
        return DeliveryResult(
            success=True,
            message_id=mail["Message-ID"],
            metadata={"recipients": len(recipients)},
        )
