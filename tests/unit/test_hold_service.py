"""
Unit tests for hold propagation
"""

import pytest
from datetime import datetime
from sqlalchemy.exc import OperationalError

from models import Driver, Vehicle, Route, AuditLog, EntityType
from services import hold_service as hold_module
from services.hold_service import HoldService, DEFAULT_HOLD_REASON
from services.entities import EntityRef
from errors import NotFoundError, PersistenceError
from tests.conftest import (PassengerAssistantFactory, VehicleFactory, RouteFactory, NotificationFactory,
                            notification_for)

FIXED_NOW = datetime(2025, 3, 1, 9, 30)

HOLD_FIELDS = ('on_hold', 'on_hold_reason', 'on_hold_notification_id', 'on_hold_set_by',
               'on_hold_set_at', 'on_hold_cleared_at')


def hold_state(row):
    return tuple(getattr(row, name) for name in HOLD_FIELDS)


@pytest.fixture
def fixed_clock(monkeypatch):
    monkeypatch.setattr(hold_module, 'get_local_time_naive', lambda: FIXED_NOW)


class TestApplyHold:

    def test_driver_hold_covers_routes_and_their_vehicles(self, db_session, driver_footprint, coordinator):
        driver = driver_footprint['driver']
        notification = notification_for(driver)

        result = HoldService().apply_hold(EntityRef(EntityType.DRIVER, driver.employee_id),
                                          notification.id, coordinator.id)

        assert driver.on_hold is True
        for row in driver_footprint['routes'] + driver_footprint['vehicles']:
            assert row.on_hold is True
        assert sorted(result.route_ids) == sorted(r.id for r in driver_footprint['routes'])
        assert result.vehicle_ids == sorted(v.id for v in driver_footprint['vehicles'])

    def test_driver_hold_does_not_touch_unrelated_vehicles(self, db_session, driver_footprint):
        driver = driver_footprint['driver']

        HoldService().apply_hold(EntityRef(EntityType.DRIVER, driver.employee_id))

        assert driver_footprint['other_vehicle'].on_hold is False
        assert driver_footprint['other_route'].on_hold is False

    def test_every_row_receives_identical_payload(self, db_session, driver_footprint, coordinator, fixed_clock):
        driver = driver_footprint['driver']
        notification = notification_for(driver)

        HoldService().apply_hold(EntityRef(EntityType.DRIVER, driver.employee_id),
                                 notification.id, coordinator.id)

        expected = (True, DEFAULT_HOLD_REASON, notification.id, coordinator.id, FIXED_NOW, None)
        for row in [driver] + driver_footprint['routes'] + driver_footprint['vehicles']:
            assert hold_state(row) == expected

    def test_reapplying_is_idempotent(self, db_session, driver_footprint, coordinator, fixed_clock):
        driver = driver_footprint['driver']
        ref = EntityRef(EntityType.DRIVER, driver.employee_id)
        notification = notification_for(driver)
        service = HoldService()

        service.apply_hold(ref, notification.id, coordinator.id)
        first = [hold_state(row) for row in [driver] + driver_footprint['routes'] + driver_footprint['vehicles']]
        service.apply_hold(ref, notification.id, coordinator.id)
        second = [hold_state(row) for row in [driver] + driver_footprint['routes'] + driver_footprint['vehicles']]

        assert first == second

    def test_reapplying_overwrites_with_latest_values(self, db_session, driver_footprint):
        driver = driver_footprint['driver']
        ref = EntityRef(EntityType.DRIVER, driver.employee_id)
        first = notification_for(driver)
        second = notification_for(driver, certificate_type='tas_badge_expiry_date', certificate_name='TAS Badge')

        HoldService().apply_hold(ref, first.id, reason='first')
        HoldService().apply_hold(ref, second.id, reason='second')

        assert driver.on_hold_notification_id == second.id
        assert driver.on_hold_reason == 'second'

    def test_vehicle_hold_covers_its_routes_only(self, db_session):
        vehicle = VehicleFactory()
        other = VehicleFactory()
        route = RouteFactory(vehicle_id=vehicle.id)
        other_route = RouteFactory(vehicle_id=other.id)

        result = HoldService().apply_hold(EntityRef(EntityType.VEHICLE, vehicle.id))

        assert vehicle.on_hold is True
        assert route.on_hold is True
        assert other.on_hold is False
        assert other_route.on_hold is False
        assert result.vehicle_ids == []

    def test_assistant_hold_cascades_through_assistant_routes(self, db_session):
        assistant = PassengerAssistantFactory()
        vehicle = VehicleFactory()
        route = RouteFactory(passenger_assistant_id=assistant.employee_id, vehicle_id=vehicle.id)
        route_without_vehicle = RouteFactory(passenger_assistant_id=assistant.employee_id)

        result = HoldService().apply_hold(EntityRef(EntityType.ASSISTANT, assistant.employee_id))

        assert assistant.on_hold is True
        assert route.on_hold is True
        assert route_without_vehicle.on_hold is True
        assert vehicle.on_hold is True
        assert result.vehicle_ids == [vehicle.id]

    def test_unknown_entity(self, db_session):
        with pytest.raises(NotFoundError):
            HoldService().apply_hold(EntityRef(EntityType.DRIVER, 9999))

    def test_unknown_notification_leaves_footprint_untouched(self, db_session, driver_footprint):
        driver = driver_footprint['driver']

        with pytest.raises(NotFoundError) as exc_info:
            HoldService().apply_hold(EntityRef(EntityType.DRIVER, driver.employee_id), 99999)

        assert exc_info.value.message == 'Notification not found'
        assert driver.on_hold is False
        assert driver.on_hold_notification_id is None
        assert all(not row.on_hold for row in driver_footprint['routes'] + driver_footprint['vehicles'])
        assert AuditLog.query.filter_by(action='apply_hold').count() == 0

    def test_audit_entry_written(self, db_session, driver, coordinator):
        HoldService().apply_hold(EntityRef(EntityType.DRIVER, driver.employee_id), acting_user_id=coordinator.id)

        audit = AuditLog.query.filter_by(action='apply_hold').one()
        assert audit.table_name == 'drivers'
        assert audit.record_id == driver.employee_id
        assert audit.user_id == coordinator.id

    def test_failure_rolls_back_whole_cascade(self, db_session, driver_footprint, monkeypatch):
        driver = driver_footprint['driver']
        service = HoldService()

        def failing_audit(*args, **kwargs):
            raise OperationalError('UPDATE', {}, Exception('database is locked'))

        monkeypatch.setattr(service.audit_service, 'log_action', failing_audit)

        with pytest.raises(PersistenceError) as exc_info:
            service.apply_hold(EntityRef(EntityType.DRIVER, driver.employee_id))

        assert 'database is locked' in exc_info.value.message
        db_session.expire_all()
        assert db_session.get(Driver, driver.employee_id).on_hold is False
        assert Route.query.filter_by(on_hold=True).count() == 0
        assert Vehicle.query.filter_by(on_hold=True).count() == 0


class TestClearHold:

    def test_clear_reverses_cascade(self, db_session, driver_footprint, coordinator, fixed_clock):
        driver = driver_footprint['driver']
        ref = EntityRef(EntityType.DRIVER, driver.employee_id)
        notification = NotificationFactory(entity_id=driver.employee_id)
        service = HoldService()
        service.apply_hold(ref, notification.id, coordinator.id)

        result = service.clear_hold(ref, coordinator.id)

        assert result.on_hold is False
        for row in [driver] + driver_footprint['routes'] + driver_footprint['vehicles']:
            assert row.on_hold is False
            assert row.on_hold_reason is None
            assert row.on_hold_notification_id is None
            assert row.on_hold_set_at is None
            assert row.on_hold_cleared_at == FIXED_NOW
            assert row.on_hold_set_by == coordinator.id

    def test_clear_leaves_unrelated_holds(self, db_session, driver_footprint):
        other = driver_footprint['other_vehicle']
        service = HoldService()
        service.apply_hold(EntityRef(EntityType.VEHICLE, other.id))

        service.clear_hold(EntityRef(EntityType.DRIVER, driver_footprint['driver'].employee_id))

        assert other.on_hold is True
