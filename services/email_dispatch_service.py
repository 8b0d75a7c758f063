"""
Email Dispatch Service

Composes the compliance email for a notification, sends it through the
SMTP transport, stamps the notification as sent and, when asked, puts the
entity on hold.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any, List
import logging
import os
from models import Notification, EmailTransport
from services.certificate_service import required_documents
from services.email_service import EmailService
from services.entities import EntityRef, load_entity, entity_display_name
from services.hold_service import HoldService, HoldResult
from services.logging_service import LoggingService
from services.notification_service import NotificationService
from services.user_directory import UserDirectory
from errors import AuthError, ValidationError, EmailDeliveryError
from utils.email_format import text_to_html, html_document
from utils.security import AuditDataSanitizer

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'http://localhost:3000'
UPLOAD_PATH = '/upload-document/'
APPOINTMENT_PATH = '/book-appointment/'
DATE_FORMAT = '%d/%m/%Y'

# Days remaining at or below which the subject escalates to upper case
URGENT_DAYS = 7


def resolve_base_url(origin: Optional[str] = None) -> str:
    """App URL env, then site URL env, then the request Origin, then localhost"""
    for candidate in (os.getenv('NEXT_PUBLIC_APP_URL'), os.getenv('SITE_URL'), origin):
        if candidate and candidate.strip():
            return candidate.strip().rstrip('/')
    return DEFAULT_BASE_URL


def build_upload_link(base_url: str, token: str) -> str:
    return f"{base_url}{UPLOAD_PATH}{token}"


def build_appointment_link(base_url: str, token: str) -> str:
    return f"{base_url}{APPOINTMENT_PATH}{token}"


def expiry_tag(days: int) -> str:
    if days < 0:
        return 'EXPIRED'
    if days <= URGENT_DAYS:
        return 'EXPIRING SOON'
    return 'Expiring Soon'


def expiry_status_line(days: int) -> str:
    if days < 0:
        return f"EXPIRED {abs(days)} day{'s' if abs(days) != 1 else ''} ago"
    if days == 0:
        return 'Expires today'
    return f"Expires in {days} day{'s' if days != 1 else ''}"


def build_default_subject(notification: Notification, entity_name: str) -> str:
    return f"[{expiry_tag(notification.days_until_expiry)}] {notification.certificate_name} - {entity_name}"


def build_default_body(notification: Notification, entity_name: str, documents: List[str],
                       upload_link: str) -> str:
    """Plain-text body without the appointment section"""
    recipient_name = (notification.recipient_email or '').split('@')[0] or 'Team'
    expiry = notification.expiry_date.strftime(DATE_FORMAT) if notification.expiry_date else 'N/A'
    document_lines = '\n'.join(f"- {document}" for document in documents)

    return (
        f"Dear {recipient_name},\n"
        "\n"
        "This is an automated notification regarding compliance certificate expiry.\n"
        "\n"
        "**Certificate Details:**\n"
        f"- Certificate: {notification.certificate_name}\n"
        f"- Entity: {entity_name}\n"
        f"- Expiry Date: {expiry}\n"
        f"- Status: {expiry_status_line(notification.days_until_expiry)}\n"
        "\n"
        "**Required Documents:**\n"
        f"{document_lines}\n"
        "\n"
        "**Action Required:**\n"
        "Please upload the renewed documents using the link below.\n"
        "\n"
        f"Upload Link: {upload_link}\n"
        "\n"
        "Best regards,\n"
        "Fleet Management System"
    )


def appointment_section(appointment_link: str) -> str:
    return (
        "**Book an Appointment (optional):**\n"
        "If you would prefer to bring the documents in person, book a time slot here:\n"
        f"{appointment_link}"
    )


def apply_appointment_link(body: str, appointment_link: str, include: bool) -> str:
    """
    Add or strip the appointment section.

    When included, the section is appended unless the link is already in
    the body. When excluded, every line carrying an appointment link is
    removed, including any from a caller-supplied body.
    """
    if include:
        if appointment_link in body:
            return body
        return f"{body.rstrip()}\n\n{appointment_section(appointment_link)}"

    kept = [line for line in body.split('\n') if APPOINTMENT_PATH not in line]
    return '\n'.join(kept)


@dataclass
class ComposedEmail:
    recipient: str
    subject: str
    body: str
    html: str
    upload_link: str
    appointment_link: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'to': self.recipient,
            'subject': self.subject,
            'body': self.body,
            'html': self.html,
            'uploadLink': self.upload_link,
            'appointmentLink': self.appointment_link,
        }


@dataclass
class DispatchResult:
    notification: Notification
    email: ComposedEmail
    transport: EmailTransport
    hold: Optional[HoldResult] = None

    @property
    def message(self) -> str:
        if self.transport == EmailTransport.SKIPPED:
            return 'SMTP not configured; notification recorded as sent without delivery'
        return 'Email sent successfully'


class EmailDispatchService:
    """Service class for compliance email dispatch"""

    def __init__(self, notification_service: Optional[NotificationService] = None,
                 hold_service: Optional[HoldService] = None,
                 email_service: Optional[EmailService] = None,
                 user_directory: Optional[UserDirectory] = None):
        self.notification_service = notification_service or NotificationService()
        self.hold_service = hold_service or HoldService()
        self.email_service = email_service or EmailService()
        self.user_directory = user_directory or UserDirectory()
        self.logging_service = LoggingService()

    def _entity_name(self, notification: Notification) -> str:
        ref = EntityRef(notification.entity_type, notification.entity_id)
        return entity_display_name(ref.kind, load_entity(ref, required=False))

    def compose(self, notification: Notification, subject: Optional[str] = None,
                email_body: Optional[str] = None, include_appointment_link: bool = True,
                origin: Optional[str] = None) -> ComposedEmail:
        """
        Build the subject, plain-text body and HTML body for a notification.

        Args:
            notification: Notification being dispatched
            subject: Caller-supplied subject, default generated when blank
            email_body: Caller-supplied body, default generated when blank
            include_appointment_link: Whether the booking link is offered
            origin: Request Origin header, used when no base URL is configured

        Returns:
            ComposedEmail
        """
        base_url = resolve_base_url(origin)
        upload_link = build_upload_link(base_url, notification.email_token)
        appointment_link = build_appointment_link(base_url, notification.email_token)
        entity_name = self._entity_name(notification)

        if not subject or not subject.strip():
            subject = build_default_subject(notification, entity_name)
        subject = subject.strip()
        if '\r' in subject or '\n' in subject:
            raise ValidationError('Subject must not contain line breaks')

        if not email_body or not email_body.strip():
            documents = required_documents(notification.entity_type, notification.certificate_type,
                                           notification.certificate_name)
            email_body = build_default_body(notification, entity_name, documents, upload_link)

        body = apply_appointment_link(email_body, appointment_link, include_appointment_link)

        return ComposedEmail(
            recipient=notification.recipient_email,
            subject=subject,
            body=body,
            html=html_document(text_to_html(body)),
            upload_link=upload_link,
            appointment_link=appointment_link if include_appointment_link else None,
        )

    def build_email_template(self, notification_id: int, origin: Optional[str] = None) -> Dict[str, Any]:
        """
        Default subject and body for the admin preview, without the
        appointment section.
        """
        notification = self.notification_service.get_notification(notification_id)
        email = self.compose(notification, include_appointment_link=False, origin=origin)
        return {
            'subject': email.subject,
            'body': email.body,
            'uploadLink': email.upload_link,
            'appointmentLink': build_appointment_link(resolve_base_url(origin), notification.email_token),
            'recipientEmail': notification.recipient_email,
        }

    def send_compliance_email(self, notification_id: int, identity, subject: Optional[str] = None,
                              email_body: Optional[str] = None, hold: bool = True,
                              include_appointment_link: bool = True,
                              origin: Optional[str] = None) -> DispatchResult:
        """
        Send the compliance email for a notification.

        The notification is committed as sent before the hold is applied;
        the hold runs as its own transaction.

        Args:
            notification_id: Notification to dispatch
            identity: Authenticated caller
            subject: Optional custom subject
            email_body: Optional custom body
            hold: Whether to put the entity on hold after sending
            include_appointment_link: Whether to offer appointment booking
            origin: Request Origin header

        Returns:
            DispatchResult

        Raises:
            AuthError: no authenticated caller
            NotFoundError: unknown notification
            ValidationError: notification has no recipient email, or the subject spans lines
            EmailDeliveryError: SMTP configured but the send failed
            PersistenceError: database update failed
        """
        if identity is None or not getattr(identity, 'is_authenticated', False):
            raise AuthError()

        notification = self.notification_service.get_notification(notification_id)
        if not notification.recipient_email:
            raise ValidationError('No recipient email address')

        acting_user_id = self.user_directory.resolve_acting_user_id(identity)
        email = self.compose(notification, subject, email_body, include_appointment_link, origin)
        masked = AuditDataSanitizer.mask_email(email.recipient)

        try:
            transport = self.email_service.send(email.recipient, email.subject, email.body, email.html)
        except EmailDeliveryError as e:
            self.notification_service.mark_failed(notification, e.message, acting_user_id)
            self.logging_service.log_email_event('failed', notification.id, masked, level=logging.ERROR)
            raise

        self.notification_service.mark_sent(notification, transport, acting_user_id)
        self.logging_service.log_email_event(transport.value, notification.id, masked)

        result = DispatchResult(notification=notification, email=email, transport=transport)
        if hold:
            ref = EntityRef(notification.entity_type, notification.entity_id)
            result.hold = self.hold_service.apply_hold(ref, notification.id, acting_user_id)

        return result
