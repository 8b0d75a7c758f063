"""
Certificate Expiry Detector

Scans vehicles, drivers and passenger assistants for dated certificate
fields, records a Notification for each certificate inside the expiry
window and revokes the work gate of entities whose required certificates
are missing or expired.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Dict, List, Iterator, Tuple
import logging
from flask import current_app, has_app_context
from models import (db, EntityType, NotificationStatus, Notification, Vehicle, Driver,
                    PassengerAssistant)
from services.audit_service import AuditService
from services.entities import EntityRef, entity_display_name, entity_identifier, entity_employee
from services.logging_service import LoggingService
from services.transaction_helper import TransactionHelper
from errors import ValidationError
from timezone_utils import get_local_date

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_WINDOW_DAYS = 30

# Notifications still awaiting action get their countdown refreshed on each scan
OPEN_STATUSES = (NotificationStatus.PENDING, NotificationStatus.SENT, NotificationStatus.FAILED)


@dataclass(frozen=True)
class CertificateSpec:
    field: str
    name: str
    document: str
    required: bool = False


CERTIFICATE_CATALOGUE: Dict[EntityType, Tuple[CertificateSpec, ...]] = {
    EntityType.VEHICLE: (
        CertificateSpec('registration_expiry_date', 'Registration', 'Vehicle Registration Certificate'),
        CertificateSpec('plate_expiry_date', 'Plate', 'Vehicle Registration/Plate Certificate'),
        CertificateSpec('insurance_expiry_date', 'Insurance', 'Vehicle Insurance Certificate', required=True),
        CertificateSpec('mot_date', 'MOT', 'MOT Certificate', required=True),
        CertificateSpec('tax_date', 'Road Tax', 'Vehicle Tax Certificate'),
        CertificateSpec('loler_expiry_date', 'LOLER', 'LOLER Certificate'),
        CertificateSpec('first_aid_expiry', 'First Aid Kit', 'First Aid Kit Certificate'),
        CertificateSpec('fire_extinguisher_expiry', 'Fire Extinguisher', 'Fire Extinguisher Certificate'),
    ),
    EntityType.DRIVER: (
        CertificateSpec('tas_badge_expiry_date', 'TAS Badge', 'TAS Badge Certificate', required=True),
        CertificateSpec('taxi_badge_expiry_date', 'Taxi Badge', 'Taxi Badge Certificate'),
        CertificateSpec('dbs_expiry_date', 'DBS', 'DBS Certificate', required=True),
        CertificateSpec('first_aid_certificate_expiry_date', 'First Aid Certificate', 'First Aid Certificate'),
        CertificateSpec('driving_license_expiry_date', 'Driving License', 'Driving License', required=True),
    ),
    EntityType.ASSISTANT: (
        CertificateSpec('tas_badge_expiry_date', 'TAS Badge', 'TAS Badge Certificate', required=True),
        CertificateSpec('dbs_expiry_date', 'DBS', 'DBS Certificate', required=True),
    ),
}

ENTITY_MODELS = {
    EntityType.VEHICLE: Vehicle,
    EntityType.DRIVER: Driver,
    EntityType.ASSISTANT: PassengerAssistant,
}

EXPIRY_PERIODS = {
    '30-days': (0, 30),
    '14-days': (0, 14),
    'expired': (None, -1),
}

ENTITY_SCOPES = {
    'employees': (EntityType.DRIVER, EntityType.ASSISTANT),
    'vehicles': (EntityType.VEHICLE,),
}


def get_certificate_spec(entity_type: EntityType, certificate_type: str) -> Optional[CertificateSpec]:
    for spec in CERTIFICATE_CATALOGUE.get(entity_type, ()):
        if spec.field == certificate_type:
            return spec
    return None


def required_documents(entity_type: EntityType, certificate_type: str, certificate_name: str) -> List[str]:
    """Documents the recipient must supply to renew a certificate"""
    spec = get_certificate_spec(entity_type, certificate_type)
    if spec is not None:
        return [spec.document]
    return [certificate_name or certificate_type]


def days_until_expiry(expiry_date, today: Optional[date] = None) -> int:
    """Whole days from today until expiry; negative once expired"""
    if isinstance(expiry_date, datetime):
        expiry_date = expiry_date.date()
    if today is None:
        today = get_local_date()
    return (expiry_date - today).days


def compute_work_gate(entity_type: EntityType, entity, today: Optional[date] = None) -> bool:
    """False when any required certificate is missing or already expired"""
    if today is None:
        today = get_local_date()

    for spec in CERTIFICATE_CATALOGUE[entity_type]:
        if not spec.required:
            continue
        expiry = getattr(entity, spec.field)
        if expiry is None or days_until_expiry(expiry, today) < 0:
            return False
    return True


def scan_entity(entity_type: EntityType, entity, today: date, window_days: int) -> Iterator[Tuple[CertificateSpec, date, int]]:
    """Yield (certificate, expiry_date, days) for every certificate inside the window"""
    for spec in CERTIFICATE_CATALOGUE[entity_type]:
        expiry = getattr(entity, spec.field)
        if expiry is None:
            continue
        days = days_until_expiry(expiry, today)
        if days <= window_days:
            yield spec, expiry, days


def entity_key(entity_type: EntityType, entity) -> int:
    return entity.id if entity_type == EntityType.VEHICLE else entity.employee_id


class CertificateService:
    """Service class for certificate expiry detection"""

    def __init__(self, window_days: Optional[int] = None):
        self.window_days = window_days
        self.audit_service = AuditService()
        self.logging_service = LoggingService()

    def get_window_days(self) -> int:
        if self.window_days is not None:
            return int(self.window_days)
        if has_app_context():
            return int(current_app.config.get('NOTIFICATION_EXPIRY_WINDOW_DAYS', DEFAULT_EXPIRY_WINDOW_DAYS))
        return DEFAULT_EXPIRY_WINDOW_DAYS

    @TransactionHelper.with_transaction
    def refresh_notifications(self, today: Optional[date] = None) -> Dict[str, int]:
        """
        Scan every entity and bring notifications and work gates up to date.

        Args:
            today: Reference date, defaults to the local date

        Returns:
            dict: counts of notifications created and updated and gates revoked
        """
        if today is None:
            today = get_local_date()
        window_days = self.get_window_days()
        summary = {'created': 0, 'updated': 0, 'gates_revoked': 0}

        for entity_type, model in ENTITY_MODELS.items():
            for entity in model.query.all():
                ref = EntityRef(entity_type, entity_key(entity_type, entity))

                for spec, expiry, days in scan_entity(entity_type, entity, today, window_days):
                    outcome = self._upsert_notification(ref, entity, spec, expiry, days)
                    if outcome is not None:
                        summary[outcome] += 1

                if not compute_work_gate(entity_type, entity, today) and self._revoke_gate(entity_type, entity):
                    summary['gates_revoked'] += 1

        self.logging_service.log_business_operation(
            'refresh_notifications', 'notification', details={**summary, 'window_days': window_days}
        )
        return summary

    def _upsert_notification(self, ref: EntityRef, entity, spec: CertificateSpec,
                             expiry: date, days: int) -> Optional[str]:
        """Create the notification for this expiry cycle, or refresh an open one.

        Returns 'created', 'updated', or None when untouched.
        """
        existing = Notification.query.filter_by(
            entity_type=ref.kind,
            entity_id=ref.id,
            certificate_type=spec.field,
            expiry_date=expiry,
        ).first()

        if existing is not None:
            if existing.status in OPEN_STATUSES and existing.days_until_expiry != days:
                existing.days_until_expiry = days
                return 'updated'
            return None

        employee = entity_employee(ref.kind, entity)
        notification = Notification(
            entity_type=ref.kind,
            entity_id=ref.id,
            certificate_type=spec.field,
            certificate_name=spec.name,
            expiry_date=expiry,
            days_until_expiry=days,
            recipient_email=employee.personal_email if employee is not None else None,
            recipient_employee_id=employee.id if employee is not None else None,
            status=NotificationStatus.PENDING,
        )
        db.session.add(notification)
        logger.info(f"Notification created for {ref.kind.value} {ref.id} {spec.field} expiring {expiry}")
        return 'created'

    def _revoke_gate(self, entity_type: EntityType, entity) -> bool:
        if entity_type == EntityType.VEHICLE:
            if entity.off_the_road:
                return False
            entity.off_the_road = True
            table_name, record_id = 'vehicles', entity.id
        else:
            employee = entity.employee
            if employee is None or not employee.can_work:
                return False
            employee.can_work = False
            table_name, record_id = 'employees', employee.id

        self.audit_service.log_action(
            action='revoke_work_gate',
            table_name=table_name,
            record_id=record_id,
            details={'entity_type': entity_type.value, 'reason': 'required certificate missing or expired'}
        )
        return True

    def list_expiring(self, period: str = '30-days', entity_scope: Optional[str] = None,
                      today: Optional[date] = None) -> List[Dict]:
        """
        List certificates expiring in a dashboard period.

        Args:
            period: '30-days', '14-days' or 'expired'
            entity_scope: 'employees', 'vehicles' or None for both
            today: Reference date, defaults to the local date

        Returns:
            list: certificate rows sorted by days remaining
        """
        if period not in EXPIRY_PERIODS:
            raise ValidationError(f"Invalid period '{period}'. Expected one of: {', '.join(EXPIRY_PERIODS)}")
        if entity_scope and entity_scope not in ENTITY_SCOPES:
            raise ValidationError(f"Invalid type '{entity_scope}'. Expected 'employees' or 'vehicles'")

        if today is None:
            today = get_local_date()
        low, high = EXPIRY_PERIODS[period]
        entity_types = ENTITY_SCOPES[entity_scope] if entity_scope else tuple(ENTITY_MODELS)

        rows = []
        for entity_type in entity_types:
            for entity in ENTITY_MODELS[entity_type].query.all():
                for spec in CERTIFICATE_CATALOGUE[entity_type]:
                    expiry = getattr(entity, spec.field)
                    if expiry is None:
                        continue
                    days = days_until_expiry(expiry, today)
                    if (low is not None and days < low) or days > high:
                        continue
                    rows.append({
                        'entityType': entity_type.value,
                        'entityId': entity_key(entity_type, entity),
                        'entityName': entity_display_name(entity_type, entity),
                        'entityIdentifier': entity_identifier(entity_type, entity),
                        'certificateType': spec.field,
                        'certificateName': spec.name,
                        'expiryDate': expiry.isoformat(),
                        'daysRemaining': days,
                    })

        rows.sort(key=lambda row: row['daysRemaining'])
        return rows

