"""
Email Service

SMTP transport for compliance emails. Sends a multipart/alternative
message (plain text plus HTML). When SMTP is not fully configured the send
is skipped with a warning rather than treated as a failure.
"""

import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.errors import HeaderParseError
from typing import Optional, Dict, Any
from models import EmailTransport
from errors import EmailDeliveryError
from utils.config_validator import load_smtp_settings
from utils.security import AuditDataSanitizer

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


class EmailService:
    """Service class for SMTP delivery"""

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        self._settings = settings

    @property
    def settings(self) -> Dict[str, Any]:
        if self._settings is None:
            self._settings = load_smtp_settings()
        return self._settings

    def is_configured(self) -> bool:
        settings = self.settings
        return all([settings['host'], settings['user'], settings['password'], settings['from_address']])

    def build_message(self, to_email: str, subject: str, text_body: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.settings['from_address']
        msg['To'] = to_email

        msg.attach(MIMEText(text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(html_body, 'html', 'utf-8'))
        return msg

    def send(self, to_email: str, subject: str, text_body: str, html_body: str) -> EmailTransport:
        """
        Send an email via SMTP

        Args:
            to_email: Recipient email address
            subject: Email subject
            text_body: Plain text version
            html_body: HTML version

        Returns:
            EmailTransport.SMTP when sent, EmailTransport.SKIPPED when SMTP
            is not configured

        Raises:
            EmailDeliveryError: when the SMTP server rejects or drops the send
        """
        masked = AuditDataSanitizer.mask_email(to_email)

        if not self.is_configured():
            logger.warning(f"SMTP not configured - skipping email to {masked}: {subject}")
            return EmailTransport.SKIPPED

        settings = self.settings
        msg = self.build_message(to_email, subject, text_body, html_body)

        try:
            if settings['implicit_tls']:
                server = smtplib.SMTP_SSL(settings['host'], settings['port'], timeout=SMTP_TIMEOUT_SECONDS)
            else:
                server = smtplib.SMTP(settings['host'], settings['port'], timeout=SMTP_TIMEOUT_SECONDS)

            with server:
                if not settings['implicit_tls']:
                    server.starttls()
                server.login(settings['user'], settings['password'])
                server.sendmail(settings['from_address'], [to_email], msg.as_string())

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            raise EmailDeliveryError('SMTP authentication failed') from e
        except (smtplib.SMTPException, HeaderParseError, OSError) as e:
            logger.error(f"SMTP error sending email to {masked}: {e}")
            raise EmailDeliveryError(f'Failed to send email: {e}') from e

        logger.info(f"Email sent successfully to {masked}: {subject}")
        return EmailTransport.SMTP
