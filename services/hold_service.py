"""
Hold Service

Applies and clears operational holds across an entity's footprint: the
entity row, every route referencing it and, for drivers and assistants,
every vehicle those routes use. Each call is a single transaction.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import logging
from models import db, Route, Vehicle
from services.audit_service import AuditService
from services.entities import EntityRef, load_entity
from services.logging_service import LoggingService
from services.notification_service import NotificationService
from services.transaction_helper import TransactionHelper
from timezone_utils import get_local_time_naive

logger = logging.getLogger(__name__)

DEFAULT_HOLD_REASON = 'Auto hold after compliance email sent - awaiting documents/appointment'


@dataclass
class HoldResult:
    entity: EntityRef
    on_hold: bool
    route_ids: List[int] = field(default_factory=list)
    vehicle_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entityType': self.entity.kind.value,
            'entityId': self.entity.id,
            'onHold': self.on_hold,
            'routeIds': self.route_ids,
            'vehicleIds': self.vehicle_ids,
        }


class HoldService:
    """Service class for hold propagation"""

    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.audit_service = AuditService()
        self.logging_service = LoggingService()
        self.notification_service = notification_service or NotificationService()

    @TransactionHelper.with_transaction
    def apply_hold(self, ref: EntityRef, notification_id: Optional[int] = None,
                   acting_user_id: Optional[int] = None, reason: Optional[str] = None) -> HoldResult:
        """
        Put an entity and its operational footprint on hold.

        Re-applying overwrites reason, notification, acting user and
        timestamp with the latest values.

        Args:
            ref: Entity to hold
            notification_id: Notification that triggered the hold
            acting_user_id: Internal id of the acting user, or None
            reason: Hold reason, defaults to the post-email reason

        Returns:
            HoldResult: the routes and cascaded vehicles that were held
        """
        if notification_id is not None:
            # Raises NotFoundError before anything is written
            self.notification_service.get_notification(notification_id)

        payload = {
            'on_hold': True,
            'on_hold_reason': reason or DEFAULT_HOLD_REASON,
            'on_hold_notification_id': notification_id,
            'on_hold_set_by': acting_user_id,
            'on_hold_set_at': get_local_time_naive(),
            'on_hold_cleared_at': None,
        }
        result = self._propagate(ref, payload, on_hold=True)

        self.audit_service.log_action(
            action='apply_hold',
            table_name=ref.target.table_name,
            record_id=ref.id,
            details={**result.to_dict(), 'notification_id': notification_id, 'reason': payload['on_hold_reason']},
            user_id=acting_user_id
        )
        self.logging_service.log_business_operation(
            'apply_hold', ref.kind.value, ref.id, acting_user_id,
            details={'routes': len(result.route_ids), 'vehicles': len(result.vehicle_ids)}
        )
        return result

    @TransactionHelper.with_transaction
    def clear_hold(self, ref: EntityRef, acting_user_id: Optional[int] = None) -> HoldResult:
        """
        Release a hold across the same footprint apply_hold covers.

        Args:
            ref: Entity to release
            acting_user_id: Internal id of the user clearing the hold

        Returns:
            HoldResult: the routes and cascaded vehicles that were released
        """
        payload = {
            'on_hold': False,
            'on_hold_reason': None,
            'on_hold_notification_id': None,
            'on_hold_set_by': acting_user_id,
            'on_hold_set_at': None,
            'on_hold_cleared_at': get_local_time_naive(),
        }
        result = self._propagate(ref, payload, on_hold=False)

        self.audit_service.log_action(
            action='clear_hold',
            table_name=ref.target.table_name,
            record_id=ref.id,
            details=result.to_dict(),
            user_id=acting_user_id
        )
        self.logging_service.log_business_operation(
            'clear_hold', ref.kind.value, ref.id, acting_user_id,
            details={'routes': len(result.route_ids), 'vehicles': len(result.vehicle_ids)}
        )
        return result

    def _propagate(self, ref: EntityRef, payload: Dict[str, Any], on_hold: bool) -> HoldResult:
        target = ref.target
        load_entity(ref)

        target.model.query.filter(getattr(target.model, target.key_column) == ref.id).update(payload)

        route_ids = [route_id for (route_id,) in
                     db.session.query(Route.id).filter(ref.route_filter).order_by(Route.id)]
        if route_ids:
            Route.query.filter(Route.id.in_(route_ids)).update(payload)

        vehicle_ids = []
        if target.cascades_to_vehicles:
            vehicle_ids = sorted(
                vehicle_id for (vehicle_id,) in
                db.session.query(Route.vehicle_id)
                .filter(ref.route_filter, Route.vehicle_id.isnot(None))
                .distinct()
            )
            if vehicle_ids:
                Vehicle.query.filter(Vehicle.id.in_(vehicle_ids)).update(payload)

        logger.info(
            f"Hold {'applied to' if on_hold else 'cleared from'} {ref.kind.value} {ref.id}: "
            f"{len(route_ids)} routes, {len(vehicle_ids)} vehicles"
        )
        return HoldResult(entity=ref, on_hold=on_hold, route_ids=route_ids, vehicle_ids=vehicle_ids)
