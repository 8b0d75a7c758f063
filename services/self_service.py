"""
Recipient Self-Service

Actions reachable from the links in a compliance email, keyed by the
notification's email token: uploading renewal documents and booking an
appointment slot. Each response is recorded on the notification and as a
system activity for admin review.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable
import json
import logging
from sqlalchemy.exc import IntegrityError
from models import (db, Notification, AppointmentSlot, AppointmentBooking, DocumentSubmission,
                    SystemActivity, ActivityType)
from services.audit_service import AuditService
from services.certificate_service import required_documents
from services.entities import EntityRef, load_entity, entity_display_name
from services.file_service import FileService
from services.notification_service import NotificationService
from services.transaction_helper import TransactionHelper
from errors import NotFoundError, ValidationError, ConflictError
from timezone_utils import get_app_timezone, get_local_time_naive

logger = logging.getLogger(__name__)

UPLOAD_SUBFOLDER = 'compliance'
SLOT_DISPLAY_DATE = '%d/%m/%Y'
SLOT_DISPLAY_TIME = '%H:%M'


def parse_slot_datetime(value, field_name: str) -> datetime:
    """ISO datetime string to naive local time; aware values are converted"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith('Z'):
            raw = raw[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f'{field_name} must be an ISO datetime')
    else:
        raise ValidationError(f'{field_name} is required')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(get_app_timezone()).replace(tzinfo=None)
    return parsed


class SelfService:
    """Service class for token-keyed recipient actions"""

    def __init__(self, notification_service: Optional[NotificationService] = None,
                 file_service: Optional[FileService] = None):
        self.notification_service = notification_service or NotificationService()
        self.file_service = file_service or FileService()
        self.audit_service = AuditService()

    def _entity_name(self, notification: Notification) -> str:
        ref = EntityRef(notification.entity_type, notification.entity_id)
        return entity_display_name(ref.kind, load_entity(ref, required=False))

    def get_token_context(self, token: str) -> Dict[str, Any]:
        """
        What the recipient sees when opening a link.

        Args:
            token: Email token from the link

        Returns:
            dict: certificate, entity and required documents
        """
        notification = self.notification_service.get_by_token(token)
        return {
            'notificationId': notification.id,
            'entityType': notification.entity_type.value,
            'entityName': self._entity_name(notification),
            'certificateName': notification.certificate_name,
            'expiryDate': notification.expiry_date.isoformat() if notification.expiry_date else None,
            'daysUntilExpiry': notification.days_until_expiry,
            'requiredDocuments': required_documents(notification.entity_type,
                                                    notification.certificate_type,
                                                    notification.certificate_name),
        }

    def _record_activity(self, activity_type: ActivityType, notification: Notification,
                         recipient_name: Optional[str], recipient_email: Optional[str],
                         details: Dict[str, Any]) -> SystemActivity:
        activity = SystemActivity(
            activity_type=activity_type,
            notification_id=notification.id,
            entity_type=notification.entity_type,
            entity_id=notification.entity_id,
            entity_name=self._entity_name(notification),
            certificate_name=notification.certificate_name,
            recipient_name=recipient_name or None,
            recipient_email=recipient_email or notification.recipient_email,
            details=json.dumps(details, default=str),
        )
        db.session.add(activity)
        return activity

    def submit_documents(self, token: str, files: Iterable, recipient_name: Optional[str] = None) -> List[DocumentSubmission]:
        """
        Store renewal documents uploaded through a recipient link.

        Args:
            token: Email token from the link
            files: Uploaded file objects
            recipient_name: Optional name typed by the uploader

        Returns:
            list: the DocumentSubmission rows created
        """
        notification = self.notification_service.get_by_token(token)
        files = [f for f in files if f and f.filename]
        if not files:
            raise ValidationError('At least one file is required')

        for upload in files:
            self.file_service.validate_file(upload)

        saved = []
        for upload in files:
            saved.append(self.file_service.save_uploaded_file(
                upload, 'notification', notification.id, subfolder=UPLOAD_SUBFOLDER
            ))

        try:
            return self._record_submissions(notification, saved, recipient_name)
        except Exception:
            for filename, _, _ in saved:
                self.file_service.delete_file(filename, subfolder=UPLOAD_SUBFOLDER)
            raise

    @TransactionHelper.with_transaction
    def _record_submissions(self, notification: Notification, saved: List[tuple],
                            recipient_name: Optional[str]) -> List[DocumentSubmission]:
        name = (recipient_name or '').strip() or None
        submissions = []
        for filename, original_filename, file_size in saved:
            submission = DocumentSubmission(
                notification_id=notification.id,
                filename=filename,
                original_filename=original_filename,
                file_size=file_size,
                uploaded_by_name=name,
            )
            db.session.add(submission)
            submissions.append(submission)

        details = {
            'files': [original for _, original, _ in saved],
            'fileCount': len(saved),
            'uploadedAt': get_local_time_naive().isoformat(),
        }
        self._record_activity(ActivityType.DOCUMENT_UPLOAD, notification, name, None, details)
        self.notification_service.record_employee_response(notification, 'document_uploaded', details)

        logger.info(f"{len(saved)} document(s) uploaded for notification {notification.id}")
        return submissions

    def list_slots(self, include_booked: bool = True, upcoming_only: bool = False) -> List[AppointmentSlot]:
        """Appointment slots ordered by start time"""
        query = AppointmentSlot.query
        if upcoming_only:
            query = query.filter(AppointmentSlot.slot_start >= get_local_time_naive())
        slots = query.order_by(AppointmentSlot.slot_start.asc(), AppointmentSlot.id.asc()).all()
        if not include_booked:
            slots = [slot for slot in slots if not slot.is_booked]
        return slots

    def list_open_slots(self) -> List[AppointmentSlot]:
        return self.list_slots(include_booked=False, upcoming_only=True)

    @TransactionHelper.with_transaction
    def create_slot(self, slot_start, slot_end, notes: Optional[str] = None,
                    acting_user_id: Optional[int] = None) -> AppointmentSlot:
        """
        Publish an appointment slot.

        Args:
            slot_start: ISO datetime string
            slot_end: ISO datetime string, after slot_start
            notes: Optional notes shown to recipients
            acting_user_id: Internal id of the creating user

        Returns:
            The new AppointmentSlot
        """
        start = parse_slot_datetime(slot_start, 'slotStart')
        end = parse_slot_datetime(slot_end, 'slotEnd')
        if end <= start:
            raise ValidationError('slotEnd must be after slotStart')

        slot = AppointmentSlot(slot_start=start, slot_end=end,
                               notes=(notes or '').strip() or None, created_by=acting_user_id)
        db.session.add(slot)
        db.session.flush()

        self.audit_service.log_action(
            action='create_appointment_slot',
            table_name='appointment_slots',
            record_id=slot.id,
            user_id=acting_user_id
        )
        return slot

    @TransactionHelper.with_transaction
    def book_appointment(self, token: str, slot_id, name: Optional[str] = None,
                         email: Optional[str] = None) -> AppointmentBooking:
        """
        Book a slot for the recipient of a notification.

        Args:
            token: Email token from the link
            slot_id: Slot to book
            name: Optional name of the person booking
            email: Optional contact email, defaults to the notification recipient

        Returns:
            The new AppointmentBooking

        Raises:
            ValidationError: missing or unknown token or slot id
            NotFoundError: slot does not exist
            ConflictError: slot already booked
        """
        if not token or slot_id in (None, ''):
            raise ValidationError('token and slotId are required')

        notification = Notification.query.filter_by(email_token=token).first()
        if notification is None:
            raise ValidationError('Invalid token')

        try:
            slot = db.session.get(AppointmentSlot, int(slot_id))
        except (TypeError, ValueError):
            raise ValidationError('slotId must be an integer')
        if slot is None:
            raise NotFoundError('Appointment slot not found')
        if slot.is_booked:
            raise ConflictError('Slot already booked')

        name = (name or '').strip() or None
        email = (email or '').strip() or notification.recipient_email
        booking = AppointmentBooking(
            appointment_slot_id=slot.id,
            notification_id=notification.id,
            booked_by_email=email,
            booked_by_name=name,
        )
        db.session.add(booking)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError('Slot already booked')

        details = {
            'appointmentDate': slot.slot_start.strftime(SLOT_DISPLAY_DATE),
            'appointmentTime': f"{slot.slot_start.strftime(SLOT_DISPLAY_TIME)} - {slot.slot_end.strftime(SLOT_DISPLAY_TIME)}",
            'slotStart': slot.slot_start.isoformat(),
            'slotEnd': slot.slot_end.isoformat(),
        }
        self._record_activity(ActivityType.APPOINTMENT_BOOKING, notification, name, email, details)
        self.notification_service.record_employee_response(notification, 'appointment_booked', details)

        logger.info(f"Slot {slot.id} booked for notification {notification.id}")
        return booking
