"""
Pytest configuration and fixtures for the Fleet Manager test suite
"""

import os
from datetime import date, timedelta
from decimal import Decimal

import pytest

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'SESSION_SECRET': 'test_secret_key_for_testing_only_0123456789',
    'DATABASE_URL': 'sqlite:///:memory:',
    'DEMO_SEED': 'false',
    'LOG_LEVEL': 'WARNING',
})

from app import create_app, db
from models import (User, UserRole, Route, Operator, Bus, Driver, DailyRecord, MaintenanceRecord,
                    MaintenanceType, SparePart, AccountsPayable, ExpenseCategory, Payment)
import factory
from factory import Faker
from werkzeug.security import generate_password_hash

TEST_PASSWORD = 'testpass123'


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'WTF_CSRF_ENABLED': False,
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
    """Database session for testing"""
    yield db.session
    db.session.rollback()


# Factory classes for test data generation
class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"


class UserFactory(BaseFactory):
    class Meta:
        model = User

    email = factory.Sequence(lambda n: f"user{n}@test.com")
    password_hash = factory.LazyFunction(lambda: generate_password_hash(TEST_PASSWORD))
    name = Faker('name')
    role = UserRole.OPERATOR
    active = True


class SuperAdminFactory(UserFactory):
    role = UserRole.SUPER_ADMIN
    email = factory.Sequence(lambda n: f"admin{n}@test.com")


class RouteFactory(BaseFactory):
    class Meta:
        model = Route

    name = factory.Sequence(lambda n: f"Route {n}")
    description = Faker('sentence')
    operator_share_percent = Decimal('60')
    driver_share_percent = Decimal('40')
    is_active = True


class OperatorFactory(BaseFactory):
    class Meta:
        model = Operator

    name = Faker('company')
    contact_number = Faker('phone_number')
    share_percent = Decimal('0')
    is_active = True


class BusFactory(BaseFactory):
    class Meta:
        model = Bus

    bus_number = factory.Sequence(lambda n: f"{n + 1:03d}")
    plate_number = factory.Sequence(lambda n: f"ABC{n:04d}")
    model = "Hino RK1J"
    capacity = 50
    is_active = True
    operator = factory.SubFactory(OperatorFactory)


class DriverFactory(BaseFactory):
    class Meta:
        model = Driver

    name = Faker('name')
    license_number = factory.Sequence(lambda n: f"N01-{n:08d}")
    contact_number = Faker('phone_number')
    share_percent = Decimal('0')
    is_active = True


class DailyRecordFactory(BaseFactory):
    class Meta:
        model = DailyRecord

    date = factory.Sequence(lambda n: date(2024, 1, 1) + timedelta(days=n))
    bus = factory.SubFactory(BusFactory)
    driver = factory.SubFactory(DriverFactory)
    total_collection = Decimal('8000.00')
    passenger_count = 200
    trip_count = 10
    diesel_liters = Decimal('50.00')
    diesel_cost = Decimal('3000.00')
    odometer_start = Decimal('1000')
    odometer_end = Decimal('1200')
    minimum_collection = Decimal('6500.00')
    excess_collection = Decimal('1500.00')
    coop_contribution = Decimal('0')
    other_expenses = Decimal('0')
    driver_share = Decimal('500.00')
    assignee_share = Decimal('400.00')


class MaintenanceRecordFactory(BaseFactory):
    class Meta:
        model = MaintenanceRecord

    bus = factory.SubFactory(BusFactory)
    date = date(2024, 1, 15)
    maintenance_type = MaintenanceType.CHANGE_OIL
    description = "Oil and filter"
    spare_parts_cost = Decimal('1200.00')
    labor_cost = Decimal('300.00')
    miscellaneous_cost = Decimal('0')
    total_cost = Decimal('1500.00')


class SparePartFactory(BaseFactory):
    class Meta:
        model = SparePart

    bus = factory.SubFactory(BusFactory)
    part_name = "Front tire"
    part_type = "TIRE"
    quantity = 2
    unit_cost = Decimal('4500.00')
    total_cost = Decimal('9000.00')
    purchase_date = date(2024, 1, 10)


class AccountsPayableFactory(BaseFactory):
    class Meta:
        model = AccountsPayable

    bus = factory.SubFactory(BusFactory)
    category = ExpenseCategory.SPARE_PARTS
    description = Faker('sentence')
    amount = Decimal('1000.00')
    due_date = date(2024, 2, 1)
    paid_amount = Decimal('0')
    is_paid = False
    supplier = Faker('company')


class PaymentFactory(BaseFactory):
    class Meta:
        model = Payment

    accounts_payable = factory.SubFactory(AccountsPayableFactory)
    amount = Decimal('100.00')
    date_paid = date(2024, 1, 20)


def login(client, user):
    """Authenticate the test client as the given user"""
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user.id)
        sess['_fresh'] = True
    return client


# Fixtures for test data
@pytest.fixture
def admin_user(db_session):
    """Create super admin user"""
    return SuperAdminFactory()


@pytest.fixture
def route(db_session):
    return RouteFactory()


@pytest.fixture
def operator(db_session, route):
    return OperatorFactory(route=route)


@pytest.fixture
def operator_user(db_session, operator):
    """Create operator user scoped to an operator"""
    return UserFactory(role=UserRole.OPERATOR, operator_id=operator.id)


@pytest.fixture
def route_admin_user(db_session, route):
    return UserFactory(role=UserRole.ROUTE_ADMIN, route_id=route.id)


@pytest.fixture
def bus(db_session, operator):
    return BusFactory(operator=operator)


@pytest.fixture
def payable(db_session, bus):
    """Unpaid payable of 1000.00"""
    return AccountsPayableFactory(bus=bus, amount=Decimal('1000.00'))


@pytest.fixture
def admin_client(client, admin_user):
    """Client with authenticated super admin"""
    return login(client, admin_user)


@pytest.fixture
def operator_client(client, operator_user):
    """Client with authenticated operator"""
    return login(client, operator_user)


@pytest.fixture
def route_admin_client(client, route_admin_user):
    return login(client, route_admin_user)
