import json
import secrets
from enum import Enum
from app import db
from flask_login import UserMixin
from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import declared_attr
from timezone_utils import get_local_time_naive

# Enums for better data integrity
class UserRole(Enum):
    ADMIN = 'admin'
    COORDINATOR = 'coordinator'
    VIEWER = 'viewer'

class EntityType(Enum):
    VEHICLE = 'vehicle'
    DRIVER = 'driver'
    ASSISTANT = 'assistant'

class NotificationStatus(Enum):
    PENDING = 'pending'
    SENT = 'sent'
    FAILED = 'failed'
    DISMISSED = 'dismissed'
    RESOLVED = 'resolved'

class EmailTransport(Enum):
    SMTP = 'smtp'
    SKIPPED = 'skipped'

class ApplicationStatus(Enum):
    NOT_APPLIED = 'not_applied'
    APPLIED = 'applied'

class ActivityType(Enum):
    DOCUMENT_UPLOAD = 'document_upload'
    APPOINTMENT_BOOKING = 'appointment_booking'


def generate_email_token():
    """Opaque, unguessable token for unauthenticated recipient links"""
    return secrets.token_urlsafe(32)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(100))
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.COORDINATOR, index=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    @property
    def is_active(self):
        return bool(self.active)

    def __repr__(self):
        return f'<User {self.email}>'


class HoldMixin:
    """Operational hold columns shared by vehicles, drivers, assistants and routes"""

    on_hold = db.Column(db.Boolean, nullable=False, default=False, index=True)
    on_hold_reason = db.Column(db.Text)
    on_hold_set_at = db.Column(db.DateTime)
    on_hold_cleared_at = db.Column(db.DateTime)

    @declared_attr
    def on_hold_notification_id(cls):
        return db.Column(db.Integer, db.ForeignKey('notifications.id'))

    @declared_attr
    def on_hold_set_by(cls):
        return db.Column(db.Integer, db.ForeignKey('users.id'))


class Employee(db.Model):
    __tablename__ = 'employees'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(100), nullable=False, index=True)
    personal_email = db.Column(db.String(120), index=True)
    phone_number = db.Column(db.String(30))
    role = db.Column(db.String(50))  # Driver, PA, Coordinator...

    # Work authorization gate, revoked when a required certificate is missing or expired
    can_work = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    driver = db.relationship('Driver', back_populates='employee', uselist=False)
    passenger_assistant = db.relationship('PassengerAssistant', back_populates='employee', uselist=False)

    def __repr__(self):
        return f'<Employee {self.full_name}>'


class Driver(HoldMixin, db.Model):
    __tablename__ = 'drivers'

    employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), primary_key=True)

    tas_badge_number = db.Column(db.String(50))
    tas_badge_expiry_date = db.Column(db.Date, index=True)
    taxi_badge_number = db.Column(db.String(50))
    taxi_badge_expiry_date = db.Column(db.Date)
    dbs_number = db.Column(db.String(50))
    dbs_expiry_date = db.Column(db.Date, index=True)
    first_aid_certificate_expiry_date = db.Column(db.Date)
    driving_license_number = db.Column(db.String(50))
    driving_license_expiry_date = db.Column(db.Date, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    employee = db.relationship('Employee', back_populates='driver')

    def __repr__(self):
        return f'<Driver {self.employee_id}>'


class PassengerAssistant(HoldMixin, db.Model):
    __tablename__ = 'passenger_assistants'

    employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), primary_key=True)

    tas_badge_number = db.Column(db.String(50))
    tas_badge_expiry_date = db.Column(db.Date, index=True)
    dbs_number = db.Column(db.String(50))
    dbs_expiry_date = db.Column(db.Date, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    employee = db.relationship('Employee', back_populates='passenger_assistant')

    def __repr__(self):
        return f'<PassengerAssistant {self.employee_id}>'


class Vehicle(HoldMixin, db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    vehicle_identifier = db.Column(db.String(50), index=True)
    registration = db.Column(db.String(20), unique=True, index=True)
    make = db.Column(db.String(50))
    model = db.Column(db.String(100))
    spare_vehicle = db.Column(db.Boolean, default=False)

    # Employee responsible for the vehicle's paperwork; default notification recipient
    assigned_employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), index=True)

    # Certificates
    registration_expiry_date = db.Column(db.Date)
    plate_expiry_date = db.Column(db.Date)
    insurance_expiry_date = db.Column(db.Date, index=True)
    mot_date = db.Column(db.Date, index=True)
    tax_date = db.Column(db.Date)
    loler_expiry_date = db.Column(db.Date)
    first_aid_expiry = db.Column(db.Date)
    fire_extinguisher_expiry = db.Column(db.Date)

    # Vehicle off road; set when a required certificate is missing or expired
    off_the_road = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    assigned_employee = db.relationship('Employee', foreign_keys=[assigned_employee_id])

    __table_args__ = (
        Index('idx_vehicle_expiry_dates', 'insurance_expiry_date', 'mot_date'),
    )

    def __repr__(self):
        return f'<Vehicle {self.vehicle_identifier or self.registration}>'


class Route(HoldMixin, db.Model):
    __tablename__ = 'routes'

    id = db.Column(db.Integer, primary_key=True)
    route_number = db.Column(db.String(30), index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.employee_id'), index=True)
    passenger_assistant_id = db.Column(db.Integer, db.ForeignKey('passenger_assistants.employee_id'), index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    driver = db.relationship('Driver', foreign_keys=[driver_id])
    passenger_assistant = db.relationship('PassengerAssistant', foreign_keys=[passenger_assistant_id])
    vehicle = db.relationship('Vehicle', foreign_keys=[vehicle_id])

    def __repr__(self):
        return f'<Route {self.route_number}>'


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    notification_type = db.Column(db.String(50), nullable=False, default='certificate_expiry', index=True)

    entity_type = db.Column(db.Enum(EntityType), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    certificate_type = db.Column(db.String(60), nullable=False)
    certificate_name = db.Column(db.String(120), nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)
    days_until_expiry = db.Column(db.Integer, nullable=False)

    recipient_email = db.Column(db.String(120))
    recipient_employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'))

    status = db.Column(db.Enum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING, index=True)
    email_sent_at = db.Column(db.DateTime)
    email_transport = db.Column(db.Enum(EmailTransport))
    email_token = db.Column(db.String(64), unique=True, nullable=False, default=generate_email_token)

    # Recipient self-service response awaiting admin review
    employee_response_type = db.Column(db.String(50))
    employee_response_details = db.Column(db.Text)  # JSON
    employee_response_received_at = db.Column(db.DateTime)
    admin_response_required = db.Column(db.Boolean, nullable=False, default=False)

    resolved_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    recipient = db.relationship('Employee', foreign_keys=[recipient_employee_id])
    compliance_case = db.relationship('ComplianceCase', back_populates='notification', uselist=False)

    __table_args__ = (
        UniqueConstraint('entity_type', 'entity_id', 'certificate_type', 'expiry_date',
                         name='unique_notification_expiry_cycle'),
        Index('idx_notification_entity', 'entity_type', 'entity_id'),
    )

    def get_employee_response_details(self):
        if self.employee_response_details:
            try:
                return json.loads(self.employee_response_details)
            except json.JSONDecodeError:
                return {}
        return {}

    def set_employee_response_details(self, details):
        self.employee_response_details = json.dumps(details) if details else None

    def __repr__(self):
        return f'<Notification {self.id} {self.certificate_type}:{self.status.value}>'


class ComplianceCase(db.Model):
    __tablename__ = 'compliance_cases'

    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.Integer, db.ForeignKey('notifications.id'), nullable=False, unique=True)
    application_status = db.Column(db.Enum(ApplicationStatus), nullable=False, default=ApplicationStatus.NOT_APPLIED)
    date_applied = db.Column(db.Date)
    appointment_date = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    notification = db.relationship('Notification', back_populates='compliance_case')
    updates = db.relationship('ComplianceCaseUpdate', back_populates='compliance_case',
                              cascade='all, delete-orphan')

    def __repr__(self):
        return f'<ComplianceCase {self.id} notification={self.notification_id}>'


class ComplianceCaseUpdate(db.Model):
    __tablename__ = 'compliance_case_updates'

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(db.Integer, db.ForeignKey('compliance_cases.id'), nullable=False, index=True)
    update_type = db.Column(db.String(30), nullable=False, default='note')
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False, index=True)

    compliance_case = db.relationship('ComplianceCase', back_populates='updates')


class AppointmentSlot(db.Model):
    __tablename__ = 'appointment_slots'

    id = db.Column(db.Integer, primary_key=True)
    slot_start = db.Column(db.DateTime, nullable=False, index=True)
    slot_end = db.Column(db.DateTime, nullable=False)
    notes = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    booking = db.relationship('AppointmentBooking', back_populates='slot', uselist=False)

    @property
    def is_booked(self):
        return self.booking is not None


class AppointmentBooking(db.Model):
    __tablename__ = 'appointment_bookings'

    id = db.Column(db.Integer, primary_key=True)
    appointment_slot_id = db.Column(db.Integer, db.ForeignKey('appointment_slots.id'), nullable=False, unique=True)
    notification_id = db.Column(db.Integer, db.ForeignKey('notifications.id'), nullable=False, index=True)
    booked_by_email = db.Column(db.String(120))
    booked_by_name = db.Column(db.String(100))
    status = db.Column(db.String(20), nullable=False, default='booked')
    booked_at = db.Column(db.DateTime, default=get_local_time_naive)

    slot = db.relationship('AppointmentSlot', back_populates='booking')
    notification = db.relationship('Notification')


class DocumentSubmission(db.Model):
    """File uploaded by a recipient through their token link"""
    __tablename__ = 'document_submissions'

    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.Integer, db.ForeignKey('notifications.id'), nullable=False, index=True)
    filename = db.Column(db.String(255), nullable=False)
    original_filename = db.Column(db.String(255))
    file_size = db.Column(db.Integer)
    uploaded_by_name = db.Column(db.String(100))
    uploaded_at = db.Column(db.DateTime, default=get_local_time_naive)

    notification = db.relationship('Notification')


class SystemActivity(db.Model):
    __tablename__ = 'system_activities'

    id = db.Column(db.Integer, primary_key=True)
    activity_type = db.Column(db.Enum(ActivityType), nullable=False, index=True)
    notification_id = db.Column(db.Integer, db.ForeignKey('notifications.id'), index=True)
    entity_type = db.Column(db.Enum(EntityType))
    entity_id = db.Column(db.Integer)
    entity_name = db.Column(db.String(120))
    certificate_name = db.Column(db.String(120))
    recipient_name = db.Column(db.String(100))
    recipient_email = db.Column(db.String(120))
    details = db.Column(db.Text)  # JSON
    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    table_name = db.Column(db.String(50), index=True)
    record_id = db.Column(db.Integer)

    new_values = db.Column(db.Text)  # JSON

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    user = db.relationship('User', backref='audit_logs')

    __table_args__ = (
        Index('idx_audit_record', 'table_name', 'record_id'),
    )
