"""
Entity references shared by the detector, the hold propagator and the
email dispatcher.

Each compliance entity kind maps to its model, the column that keys it and
the Route column that points at it. Drivers and assistants also cascade a
hold to the vehicles their routes use.
"""
from dataclasses import dataclass
from typing import Optional, Union

from models import db, EntityType, Vehicle, Driver, PassengerAssistant, Route
from errors import ValidationError, NotFoundError


@dataclass(frozen=True)
class EntityTarget:
    model: type
    key_column: str
    route_column: str
    table_name: str
    cascades_to_vehicles: bool = False


ENTITY_TARGETS = {
    EntityType.VEHICLE: EntityTarget(Vehicle, 'id', 'vehicle_id', 'vehicles'),
    EntityType.DRIVER: EntityTarget(Driver, 'employee_id', 'driver_id', 'drivers',
                                    cascades_to_vehicles=True),
    EntityType.ASSISTANT: EntityTarget(PassengerAssistant, 'employee_id', 'passenger_assistant_id',
                                       'passenger_assistants', cascades_to_vehicles=True),
}


@dataclass(frozen=True)
class EntityRef:
    """A compliance entity addressed by kind and id"""
    kind: EntityType
    id: int

    @property
    def target(self) -> EntityTarget:
        return ENTITY_TARGETS[self.kind]

    @property
    def route_filter(self):
        return getattr(Route, self.target.route_column) == self.id


def parse_entity_type(value: Union[str, EntityType, None]) -> EntityType:
    """Parse 'vehicle' | 'driver' | 'assistant' into an EntityType"""
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType((value or '').strip().lower())
    except ValueError:
        raise ValidationError('entityType must be one of: vehicle, driver, assistant')


def parse_entity_ref(entity_type, entity_id) -> EntityRef:
    kind = parse_entity_type(entity_type)
    if isinstance(entity_id, bool):
        raise ValidationError('entityId must be an integer')
    try:
        return EntityRef(kind, int(entity_id))
    except (TypeError, ValueError):
        raise ValidationError('entityId must be an integer')


def load_entity(ref: EntityRef, required: bool = True):
    """Fetch the entity row, raising NotFoundError when required and missing"""
    entity = db.session.get(ref.target.model, ref.id)
    if entity is None and required:
        raise NotFoundError(f'{ref.kind.value.capitalize()} {ref.id} not found')
    return entity


def entity_display_name(kind: EntityType, entity) -> str:
    """Human label used in email subjects and activity rows"""
    if entity is None:
        return 'Unknown'

    if kind == EntityType.VEHICLE:
        return entity.vehicle_identifier or entity.registration or f'Vehicle #{entity.id}'

    employee = entity.employee
    if employee is not None and employee.full_name:
        return employee.full_name
    label = 'Driver' if kind == EntityType.DRIVER else 'Assistant'
    return f'{label} #{entity.employee_id}'


def entity_identifier(kind: EntityType, entity) -> Optional[str]:
    """Secondary identifier: registration for vehicles, badge number for staff"""
    if entity is None:
        return None
    if kind == EntityType.VEHICLE:
        return entity.registration
    return entity.tas_badge_number


def entity_employee(kind: EntityType, entity):
    """Employee who receives notifications about this entity"""
    if entity is None:
        return None
    if kind == EntityType.VEHICLE:
        return entity.assigned_employee
    return entity.employee
