"""
Compliance Case Service

Remediation tracking for notifications: one case per notification with
application status and dates, plus an append-only log of staff notes.
"""

from datetime import date, datetime
from typing import Optional, List, Tuple, Union
import logging
from models import db, ComplianceCase, ComplianceCaseUpdate, ApplicationStatus
from services.audit_service import AuditService
from services.notification_service import NotificationService
from services.transaction_helper import TransactionHelper
from errors import NotFoundError, ValidationError
from timezone_utils import get_local_time_naive

logger = logging.getLogger(__name__)

NOTE_UPDATE_TYPE = 'note'


def parse_iso_date(value: Union[str, date, None], field_name: str) -> Optional[date]:
    """Parse 'YYYY-MM-DD' (a trailing time part is ignored); blank means None"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f'{field_name} must be an ISO date string')

    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value.split('T')[0])
    except ValueError:
        raise ValidationError(f'{field_name} must be an ISO date (YYYY-MM-DD)')


def parse_application_status(value: Union[str, ApplicationStatus, None]) -> ApplicationStatus:
    if isinstance(value, ApplicationStatus):
        return value
    try:
        return ApplicationStatus(value)
    except ValueError:
        raise ValidationError('application_status must be one of: not_applied, applied')


class ComplianceCaseService:
    """Service class for compliance case tracking"""

    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.notification_service = notification_service or NotificationService()
        self.audit_service = AuditService()

    @TransactionHelper.with_transaction
    def open_case(self, notification_id: int, acting_user_id: Optional[int] = None) -> Tuple[ComplianceCase, bool]:
        """
        Get or create the case for a notification.

        Args:
            notification_id: Notification the case tracks
            acting_user_id: Internal id of the acting user

        Returns:
            tuple: (case, existing: bool)
        """
        notification = self.notification_service.get_notification(notification_id)

        case = ComplianceCase.query.filter_by(notification_id=notification.id).first()
        if case is not None:
            return case, True

        case = ComplianceCase(notification_id=notification.id,
                              application_status=ApplicationStatus.NOT_APPLIED)
        db.session.add(case)
        db.session.flush()

        self.audit_service.log_action(
            action='open_compliance_case',
            table_name='compliance_cases',
            record_id=case.id,
            details={'notification_id': notification.id},
            user_id=acting_user_id
        )
        logger.info(f"Compliance case {case.id} opened for notification {notification.id}")
        return case, False

    def get_case(self, case_id: int) -> ComplianceCase:
        case = db.session.get(ComplianceCase, case_id)
        if case is None:
            raise NotFoundError('Compliance case not found')
        return case

    def get_updates(self, case_id: int) -> List[ComplianceCaseUpdate]:
        """Case log, newest first"""
        return (ComplianceCaseUpdate.query
                .filter_by(case_id=case_id)
                .order_by(ComplianceCaseUpdate.created_at.desc(), ComplianceCaseUpdate.id.desc())
                .all())

    def list_cases(self) -> List[ComplianceCase]:
        return ComplianceCase.query.order_by(ComplianceCase.updated_at.desc(), ComplianceCase.id.desc()).all()

    @TransactionHelper.with_transaction
    def update_tracking(self, case_id: int, application_status, date_applied=None,
                        appointment_date=None, acting_user_id: Optional[int] = None) -> ComplianceCase:
        """
        Overwrite the tracked fields of a case.

        Args:
            case_id: Case to update
            application_status: 'not_applied' or 'applied'
            date_applied: ISO date string or None
            appointment_date: ISO date string or None
            acting_user_id: Internal id of the acting user

        Returns:
            The updated case
        """
        status = parse_application_status(application_status)
        applied_on = parse_iso_date(date_applied, 'date_applied')
        appointment_on = parse_iso_date(appointment_date, 'appointment_date')

        case = self.get_case(case_id)
        case.application_status = status
        case.date_applied = applied_on
        case.appointment_date = appointment_on
        case.updated_at = get_local_time_naive()

        self.audit_service.log_action(
            action='update_compliance_tracking',
            table_name='compliance_cases',
            record_id=case.id,
            details={
                'application_status': status.value,
                'date_applied': applied_on,
                'appointment_date': appointment_on,
            },
            user_id=acting_user_id
        )
        return case

    @TransactionHelper.with_transaction
    def add_update(self, case_id: int, notes: Optional[str],
                   acting_user_id: Optional[int] = None) -> ComplianceCaseUpdate:
        """
        Append a staff note to a case log.

        Args:
            case_id: Case to annotate
            notes: Note text, must not be blank
            acting_user_id: Internal id of the acting user

        Returns:
            The new ComplianceCaseUpdate
        """
        text = notes.strip() if isinstance(notes, str) else ''
        if not text:
            raise ValidationError('Note text is required')

        case = self.get_case(case_id)
        update = ComplianceCaseUpdate(case_id=case.id, update_type=NOTE_UPDATE_TYPE, notes=text)
        db.session.add(update)
        db.session.flush()

        self.audit_service.log_action(
            action='add_compliance_note',
            table_name='compliance_case_updates',
            record_id=update.id,
            details={'case_id': case.id},
            user_id=acting_user_id
        )
        return update
