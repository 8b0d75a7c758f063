"""
Admin JSON API for the compliance workflow: notifications, email dispatch,
holds, compliance cases and appointment slots. Every endpoint requires a
logged-in dashboard user.
"""

from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
import logging

from services.certificate_service import CertificateService
from services.compliance_case_service import ComplianceCaseService
from services.email_dispatch_service import EmailDispatchService
from services.entities import parse_entity_ref
from services.hold_service import HoldService
from services.notification_service import NotificationService
from services.self_service import SelfService
from services.user_directory import UserDirectory
from errors import ComplianceError, ValidationError

compliance_bp = Blueprint('compliance', __name__)

logger = logging.getLogger(__name__)

TRUE_VALUES = {'true', '1', 'yes', 'on'}
FALSE_VALUES = {'false', '0', 'no', 'off'}


def _json_body():
    return request.get_json(silent=True) or {}

def _require_int(data, key):
    value = data.get(key)
    if value is None or value == '':
        raise ValidationError(f'{key} is required')
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f'{key} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be an integer')

def _parse_bool(value, default):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValidationError(f'Invalid boolean value: {value!r}')

def _acting_user_id():
    return UserDirectory().resolve_acting_user_id(current_user)

def _iso(value):
    return value.isoformat() if value is not None else None


def serialize_notification(notification):
    return {
        'id': notification.id,
        'notificationType': notification.notification_type,
        'entityType': notification.entity_type.value,
        'entityId': notification.entity_id,
        'certificateType': notification.certificate_type,
        'certificateName': notification.certificate_name,
        'expiryDate': _iso(notification.expiry_date),
        'daysUntilExpiry': notification.days_until_expiry,
        'recipientEmail': notification.recipient_email,
        'status': notification.status.value,
        'emailSentAt': _iso(notification.email_sent_at),
        'emailTransport': notification.email_transport.value if notification.email_transport else None,
        'employeeResponseType': notification.employee_response_type,
        'employeeResponseDetails': notification.get_employee_response_details(),
        'employeeResponseReceivedAt': _iso(notification.employee_response_received_at),
        'adminResponseRequired': notification.admin_response_required,
        'resolvedAt': _iso(notification.resolved_at),
        'createdAt': _iso(notification.created_at),
    }

def serialize_case_update(update):
    return {
        'id': update.id,
        'caseId': update.case_id,
        'updateType': update.update_type,
        'notes': update.notes,
        'createdAt': _iso(update.created_at),
    }

def serialize_case(case, updates=None):
    data = {
        'id': case.id,
        'notificationId': case.notification_id,
        'applicationStatus': case.application_status.value,
        'dateApplied': _iso(case.date_applied),
        'appointmentDate': _iso(case.appointment_date),
        'createdAt': _iso(case.created_at),
        'updatedAt': _iso(case.updated_at),
    }
    if updates is not None:
        data['updates'] = [serialize_case_update(update) for update in updates]
    return data

def serialize_booking(booking):
    return {
        'id': booking.id,
        'slotId': booking.appointment_slot_id,
        'notificationId': booking.notification_id,
        'bookedByEmail': booking.booked_by_email,
        'bookedByName': booking.booked_by_name,
        'status': booking.status,
        'bookedAt': _iso(booking.booked_at),
    }

def serialize_slot(slot, include_booking=True):
    data = {
        'id': slot.id,
        'slotStart': _iso(slot.slot_start),
        'slotEnd': _iso(slot.slot_end),
        'notes': slot.notes,
        'isBooked': slot.is_booked,
    }
    if include_booking:
        data['booking'] = serialize_booking(slot.booking) if slot.booking else None
    return data


# Notifications

@compliance_bp.route('/notifications', methods=['GET'])
@login_required
def list_notifications():
    notifications = NotificationService().list_notifications(
        status=request.args.get('status'),
        entity_type=request.args.get('entityType'),
    )
    return jsonify({'notifications': [serialize_notification(n) for n in notifications]})

@compliance_bp.route('/notifications/send-email', methods=['POST'])
@login_required
def send_email():
    """Send the compliance email for a notification and, by default, hold the entity"""
    data = _json_body()

    try:
        result = EmailDispatchService().send_compliance_email(
            notification_id=_require_int(data, 'notificationId'),
            identity=current_user,
            subject=data.get('subject'),
            email_body=data.get('emailBody'),
            hold=_parse_bool(data.get('hold'), True),
            include_appointment_link=_parse_bool(data.get('includeAppointmentLink'), True),
            origin=request.headers.get('Origin'),
        )
    except ComplianceError:
        raise
    except Exception as e:
        logger.exception("Unexpected error sending compliance email")
        return jsonify({'error': str(e) or 'Failed to send email'}), 500

    response = {'success': True, 'message': result.message}
    if result.hold is not None:
        response['hold'] = result.hold.to_dict()
    if current_app.config.get('RUNTIME_MODE') == 'development':
        response['emailContent'] = result.email.to_dict()
    return jsonify(response)

@compliance_bp.route('/notifications/get-email-template', methods=['POST'])
@login_required
def get_email_template():
    data = _json_body()
    template = EmailDispatchService().build_email_template(
        _require_int(data, 'notificationId'),
        origin=request.headers.get('Origin'),
    )
    return jsonify(template)

@compliance_bp.route('/notifications/get-recipients', methods=['POST'])
@login_required
def get_recipients():
    data = _json_body()
    recipients = NotificationService().get_recipients(_require_int(data, 'notificationId'))
    return jsonify({'recipients': recipients})

@compliance_bp.route('/notifications/refresh', methods=['POST'])
@login_required
def refresh_notifications():
    """Run the certificate expiry scan on demand"""
    data = _json_body()
    window_days = data.get('windowDays')
    if window_days is not None:
        window_days = _require_int(data, 'windowDays')
        if window_days < 0:
            raise ValidationError('windowDays must not be negative')

    summary = CertificateService(window_days=window_days).refresh_notifications()
    return jsonify({'success': True, **summary})

@compliance_bp.route('/notifications/dismiss', methods=['POST'])
@login_required
def dismiss_notification():
    data = _json_body()
    notification = NotificationService().dismiss(_require_int(data, 'notificationId'), _acting_user_id())
    return jsonify({'success': True, 'notification': serialize_notification(notification)})

@compliance_bp.route('/notifications/resolve', methods=['POST'])
@login_required
def resolve_notification():
    data = _json_body()
    notification = NotificationService().resolve(_require_int(data, 'notificationId'), _acting_user_id())
    return jsonify({'success': True, 'notification': serialize_notification(notification)})


# Certificates

@compliance_bp.route('/certificates/expiring', methods=['GET'])
@login_required
def expiring_certificates():
    period = request.args.get('period', '30-days')
    certificates = CertificateService().list_expiring(period, request.args.get('type') or None)
    return jsonify({'period': period, 'certificates': certificates})


# Holds

@compliance_bp.route('/entities/hold', methods=['POST'])
@login_required
def hold_entity():
    data = _json_body()
    ref = parse_entity_ref(data.get('entityType'), data.get('entityId'))
    notification_id = _require_int(data, 'notificationId') if data.get('notificationId') is not None else None

    result = HoldService().apply_hold(ref, notification_id, _acting_user_id(), reason=data.get('reason'))
    return jsonify({'success': True, 'hold': result.to_dict()})

@compliance_bp.route('/entities/unhold', methods=['POST'])
@login_required
def unhold_entity():
    data = _json_body()
    ref = parse_entity_ref(data.get('entityType'), data.get('entityId'))

    result = HoldService().clear_hold(ref, _acting_user_id())
    return jsonify({'success': True, 'hold': result.to_dict()})


# Compliance cases

@compliance_bp.route('/compliance/cases', methods=['POST'])
@login_required
def open_case():
    data = _json_body()
    service = ComplianceCaseService()
    case, existing = service.open_case(_require_int(data, 'notificationId'), _acting_user_id())
    return jsonify({'case': serialize_case(case, service.get_updates(case.id)), 'existing': existing}), \
        200 if existing else 201

@compliance_bp.route('/compliance/cases', methods=['GET'])
@login_required
def list_cases():
    cases = ComplianceCaseService().list_cases()
    return jsonify({'cases': [serialize_case(case) for case in cases]})

@compliance_bp.route('/compliance/cases/<int:case_id>', methods=['GET'])
@login_required
def get_case(case_id):
    service = ComplianceCaseService()
    case = service.get_case(case_id)
    return jsonify({
        'case': serialize_case(case, service.get_updates(case.id)),
        'notification': serialize_notification(case.notification),
    })

@compliance_bp.route('/compliance/cases/<int:case_id>/tracking', methods=['PUT'])
@login_required
def update_tracking(case_id):
    data = _json_body()
    case = ComplianceCaseService().update_tracking(
        case_id,
        data.get('application_status'),
        data.get('date_applied'),
        data.get('appointment_date'),
        acting_user_id=_acting_user_id(),
    )
    return jsonify({'success': True, 'case': serialize_case(case)})

@compliance_bp.route('/compliance/cases/<int:case_id>/updates', methods=['POST'])
@login_required
def add_case_update(case_id):
    data = _json_body()
    update = ComplianceCaseService().add_update(case_id, data.get('notes'), _acting_user_id())
    return jsonify({'success': True, 'update': serialize_case_update(update)}), 201


# Appointment slots

@compliance_bp.route('/appointments/slots', methods=['GET'])
@login_required
def list_slots():
    slots = SelfService().list_slots()
    return jsonify({'slots': [serialize_slot(slot) for slot in slots]})

@compliance_bp.route('/appointments/slots', methods=['POST'])
@login_required
def create_slot():
    data = _json_body()
    if not data.get('slotStart') or not data.get('slotEnd'):
        raise ValidationError('slotStart and slotEnd are required')

    slot = SelfService().create_slot(data['slotStart'], data['slotEnd'], data.get('notes'), _acting_user_id())
    return jsonify({'success': True, 'slot': serialize_slot(slot)}), 201

