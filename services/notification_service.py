"""
Notification Service

Access to the notification record store: lookup by id or token, listing,
status transitions and recipient self-service responses.
"""

from typing import Optional, Dict, Any, List
import logging
from models import db, Notification, NotificationStatus, EmailTransport, EntityType, Route
from services.audit_service import AuditService
from services.entities import EntityRef, load_entity, entity_employee
from services.transaction_helper import TransactionHelper
from errors import NotFoundError, ValidationError
from timezone_utils import get_local_time_naive
from utils.security import AuditDataSanitizer

logger = logging.getLogger(__name__)

# Routes inspected when collecting vehicle recipients
MAX_RECIPIENT_ROUTES = 20


class NotificationService:
    """Service class for notification record operations"""

    def __init__(self):
        self.audit_service = AuditService()

    def get_notification(self, notification_id: int) -> Notification:
        """
        Fetch a notification by id.

        Args:
            notification_id: Notification primary key

        Returns:
            The Notification

        Raises:
            NotFoundError: when no notification has that id
        """
        notification = db.session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError('Notification not found')
        return notification

    def get_by_token(self, token: str) -> Notification:
        """Resolve a recipient self-service token to its notification"""
        if not token:
            raise NotFoundError('Invalid or expired link')
        notification = Notification.query.filter_by(email_token=token).first()
        if notification is None:
            raise NotFoundError('Invalid or expired link')
        return notification

    def list_notifications(self, status: Optional[str] = None,
                           entity_type: Optional[str] = None) -> List[Notification]:
        """
        List notifications, most urgent first.

        Args:
            status: Optional status filter ('pending', 'sent', ...)
            entity_type: Optional entity type filter ('vehicle', 'driver', 'assistant')

        Returns:
            list: matching notifications ordered by days until expiry
        """
        query = Notification.query

        if status:
            try:
                query = query.filter(Notification.status == NotificationStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status '{status}'")

        if entity_type:
            try:
                query = query.filter(Notification.entity_type == EntityType(entity_type))
            except ValueError:
                raise ValidationError(f"Invalid entity type '{entity_type}'")

        return query.order_by(Notification.days_until_expiry.asc(), Notification.id.asc()).all()

    @TransactionHelper.with_transaction
    def mark_sent(self, notification: Notification, transport: EmailTransport,
                  acting_user_id: Optional[int] = None) -> Notification:
        """Stamp a notification as sent"""
        notification.status = NotificationStatus.SENT
        notification.email_sent_at = get_local_time_naive()
        notification.email_transport = transport

        self.audit_service.log_action(
            action='send_compliance_email',
            table_name='notifications',
            record_id=notification.id,
            details={
                'recipient': AuditDataSanitizer.mask_email(notification.recipient_email),
                'transport': transport.value,
            },
            user_id=acting_user_id
        )
        return notification

    @TransactionHelper.with_transaction
    def mark_failed(self, notification: Notification, error: str,
                    acting_user_id: Optional[int] = None) -> Notification:
        """Stamp a notification as failed after a transport error"""
        notification.status = NotificationStatus.FAILED

        self.audit_service.log_action(
            action='send_compliance_email_failed',
            table_name='notifications',
            record_id=notification.id,
            details={'error': error},
            user_id=acting_user_id
        )
        return notification

    @TransactionHelper.with_transaction
    def dismiss(self, notification_id: int, acting_user_id: Optional[int] = None) -> Notification:
        """Dismiss a notification that needs no further action"""
        notification = self.get_notification(notification_id)
        notification.status = NotificationStatus.DISMISSED

        self.audit_service.log_action(
            action='dismiss_notification',
            table_name='notifications',
            record_id=notification.id,
            user_id=acting_user_id
        )
        logger.info(f"Notification {notification.id} dismissed by user {acting_user_id}")
        return notification

    @TransactionHelper.with_transaction
    def resolve(self, notification_id: int, acting_user_id: Optional[int] = None) -> Notification:
        """Mark a notification resolved once the recipient's response has been reviewed"""
        notification = self.get_notification(notification_id)
        notification.status = NotificationStatus.RESOLVED
        notification.resolved_at = get_local_time_naive()
        notification.admin_response_required = False

        self.audit_service.log_action(
            action='resolve_notification',
            table_name='notifications',
            record_id=notification.id,
            user_id=acting_user_id
        )
        logger.info(f"Notification {notification.id} resolved by user {acting_user_id}")
        return notification

    def record_employee_response(self, notification: Notification, response_type: str,
                                 details: Optional[Dict[str, Any]] = None) -> Notification:
        """
        Record a recipient's self-service response for admin review.

        The caller owns the transaction.

        Args:
            notification: Notification the response belongs to
            response_type: 'document_uploaded' or 'appointment_booked'
            details: Response details stored as JSON
        """
        notification.employee_response_type = response_type
        notification.set_employee_response_details(details)
        notification.employee_response_received_at = get_local_time_naive()
        notification.admin_response_required = True
        return notification

    def get_recipients(self, notification_id: int) -> List[Dict[str, Any]]:
        """
        Candidate recipients for a notification.

        Vehicles: the assigned employee plus the drivers and assistants on
        routes using the vehicle. Drivers and assistants: the employee.

        Args:
            notification_id: Notification primary key

        Returns:
            list: dicts with employeeId, name, email, role
        """
        notification = self.get_notification(notification_id)
        ref = EntityRef(notification.entity_type, notification.entity_id)
        entity = load_entity(ref, required=False)

        recipients: Dict[int, Dict[str, Any]] = {}

        def add(employee, role):
            if employee is None or employee.id in recipients:
                return
            recipients[employee.id] = {
                'employeeId': employee.id,
                'name': employee.full_name,
                'email': employee.personal_email,
                'role': role,
            }

        if ref.kind == EntityType.VEHICLE:
            add(entity_employee(ref.kind, entity), 'assigned')
            routes = (Route.query
                      .filter(Route.vehicle_id == ref.id)
                      .order_by(Route.id.asc())
                      .limit(MAX_RECIPIENT_ROUTES)
                      .all())
            for route in routes:
                if route.driver is not None:
                    add(route.driver.employee, 'driver')
                if route.passenger_assistant is not None:
                    add(route.passenger_assistant.employee, 'assistant')
        else:
            add(entity_employee(ref.kind, entity), ref.kind.value)
            if notification.recipient is not None:
                add(notification.recipient, ref.kind.value)

        return list(recipients.values())
