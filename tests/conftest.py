"""
Pytest configuration, fixtures and factories for the fleet compliance service
"""

import pytest
import os
from datetime import timedelta

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'TESTING': 'true',
    'SESSION_SECRET': 'test_secret_key_for_testing_only',
    'DATABASE_URL': 'sqlite:///:memory:',
})

from app import create_app, db
from models import (User, UserRole, Employee, Driver, PassengerAssistant, Vehicle, Route,
                    Notification, NotificationStatus, EntityType, AppointmentSlot)
from timezone_utils import get_local_date, get_local_time_naive
import factory
from factory import Faker
from werkzeug.security import generate_password_hash


def days_from_today(days):
    return get_local_date() + timedelta(days=days)


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'WTF_CSRF_ENABLED': False,  # Disable CSRF for testing
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'RUNTIME_MODE': 'testing',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing"""
    yield db.session
    db.session.rollback()


@pytest.fixture(autouse=True)
def smtp_unconfigured(monkeypatch):
    """Tests start with SMTP and base-URL settings unset"""
    for var in ('SMTP_HOST', 'SMTP_PORT', 'SMTP_USER', 'SMTP_PASS', 'SMTP_FROM',
                'NEXT_PUBLIC_APP_URL', 'SITE_URL'):
        monkeypatch.delenv(var, raising=False)


# Factory classes for test data generation
class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"


class UserFactory(BaseFactory):
    class Meta:
        model = User

    email = factory.Sequence(lambda n: f"coordinator{n}@fleet.test")
    password_hash = factory.LazyFunction(lambda: generate_password_hash('testpass123'))
    full_name = Faker('name')
    role = UserRole.COORDINATOR
    active = True


class AdminUserFactory(UserFactory):
    role = UserRole.ADMIN
    email = factory.Sequence(lambda n: f"admin{n}@fleet.test")


class EmployeeFactory(BaseFactory):
    class Meta:
        model = Employee

    full_name = Faker('name')
    personal_email = factory.Sequence(lambda n: f"employee{n}@staff.test")
    role = 'Driver'
    can_work = True


class DriverFactory(BaseFactory):
    class Meta:
        model = Driver

    employee = factory.SubFactory(EmployeeFactory)
    tas_badge_number = factory.Sequence(lambda n: f"TAS{n:05d}")
    tas_badge_expiry_date = factory.LazyFunction(lambda: days_from_today(365))
    dbs_expiry_date = factory.LazyFunction(lambda: days_from_today(365))
    driving_license_expiry_date = factory.LazyFunction(lambda: days_from_today(365))


class PassengerAssistantFactory(BaseFactory):
    class Meta:
        model = PassengerAssistant

    employee = factory.SubFactory(EmployeeFactory, role='PA')
    tas_badge_number = factory.Sequence(lambda n: f"PA{n:05d}")
    tas_badge_expiry_date = factory.LazyFunction(lambda: days_from_today(365))
    dbs_expiry_date = factory.LazyFunction(lambda: days_from_today(365))


class VehicleFactory(BaseFactory):
    class Meta:
        model = Vehicle

    vehicle_identifier = factory.Sequence(lambda n: f"BUS-{n:03d}")
    registration = factory.Sequence(lambda n: f"AB{n:02d} CDE")
    make = "Ford"
    model = "Transit"
    insurance_expiry_date = factory.LazyFunction(lambda: days_from_today(365))
    mot_date = factory.LazyFunction(lambda: days_from_today(365))


class RouteFactory(BaseFactory):
    class Meta:
        model = Route

    route_number = factory.Sequence(lambda n: f"R{n:03d}")


class NotificationFactory(BaseFactory):
    class Meta:
        model = Notification

    entity_type = EntityType.DRIVER
    entity_id = factory.Sequence(lambda n: 1000 + n)
    certificate_type = 'dbs_expiry_date'
    certificate_name = 'DBS'
    expiry_date = factory.LazyFunction(lambda: days_from_today(5))
    days_until_expiry = 5
    recipient_email = factory.Sequence(lambda n: f"recipient{n}@staff.test")
    status = NotificationStatus.PENDING


class AppointmentSlotFactory(BaseFactory):
    class Meta:
        model = AppointmentSlot

    slot_start = factory.LazyFunction(lambda: get_local_time_naive().replace(microsecond=0) + timedelta(days=3))
    slot_end = factory.LazyAttribute(lambda o: o.slot_start + timedelta(minutes=30))


def notification_for(entity, **kwargs):
    """Notification about an existing vehicle, driver or assistant"""
    if isinstance(entity, Vehicle):
        kwargs.setdefault('entity_type', EntityType.VEHICLE)
        kwargs.setdefault('entity_id', entity.id)
        kwargs.setdefault('certificate_type', 'mot_date')
        kwargs.setdefault('certificate_name', 'MOT')
    else:
        kwargs.setdefault('entity_type', EntityType.DRIVER if isinstance(entity, Driver) else EntityType.ASSISTANT)
        kwargs.setdefault('entity_id', entity.employee_id)
        kwargs.setdefault('recipient_email', entity.employee.personal_email)
    return NotificationFactory(**kwargs)


# Fixtures for test data
@pytest.fixture
def coordinator(db_session):
    """Create dashboard user"""
    return UserFactory(email='coordinator@fleet.test')


@pytest.fixture
def driver(db_session):
    return DriverFactory(employee__full_name='Dana Driver')


@pytest.fixture
def driver_footprint(db_session, driver):
    """Driver on two routes using two vehicles, plus an unrelated vehicle"""
    v1 = VehicleFactory()
    v2 = VehicleFactory()
    v3 = VehicleFactory()
    r1 = RouteFactory(driver_id=driver.employee_id, vehicle_id=v1.id)
    r2 = RouteFactory(driver_id=driver.employee_id, vehicle_id=v2.id)
    r3 = RouteFactory(vehicle_id=v3.id)
    return {'driver': driver, 'routes': [r1, r2], 'vehicles': [v1, v2],
            'other_vehicle': v3, 'other_route': r3}


@pytest.fixture
def auth_client(client, coordinator):
    """Client with authenticated dashboard user"""
    with client.session_transaction() as sess:
        sess['_user_id'] = str(coordinator.id)
        sess['_fresh'] = True
    return client
