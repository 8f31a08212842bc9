from datetime import date
from decimal import Decimal
from enum import Enum
from app import db
from flask_login import UserMixin
from sqlalchemy import Index, UniqueConstraint
from timezone_utils import get_local_time_naive, get_local_date

# Money columns: fixed-point, never float
MONEY = db.Numeric(14, 4)

# Days left before a part is flagged for replacement
REPLACEMENT_WARNING_DAYS = 30


class UserRole(Enum):
    SUPER_ADMIN = 'SUPER_ADMIN'
    ROUTE_ADMIN = 'ROUTE_ADMIN'
    OPERATOR = 'OPERATOR'


class MaintenanceType(Enum):
    CHANGE_OIL = 'CHANGE_OIL'
    TIRE_REPLACEMENT = 'TIRE_REPLACEMENT'
    BRAKE_SERVICE = 'BRAKE_SERVICE'
    ENGINE_REPAIR = 'ENGINE_REPAIR'
    TRANSMISSION = 'TRANSMISSION'
    ELECTRICAL = 'ELECTRICAL'
    AIRCON = 'AIRCON'
    BODY_REPAIR = 'BODY_REPAIR'
    GENERAL_SERVICE = 'GENERAL_SERVICE'
    OTHER = 'OTHER'


class ExpenseCategory(Enum):
    SPARE_PARTS = 'SPARE_PARTS'
    LABOR = 'LABOR'
    MISCELLANEOUS = 'MISCELLANEOUS'
    DIESEL = 'DIESEL'
    OTHER = 'OTHER'


def _money(value):
    """Serialize a Numeric column value for JSON responses"""
    if value is None:
        return None
    return float(value)


def _iso(value):
    return value.isoformat() if value else None


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)


class User(UserMixin, TimestampMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=False)

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.OPERATOR, index=True)
    active = db.Column('is_active', db.Boolean, nullable=False, default=True)

    # Scope of the principal
    operator_id = db.Column(db.Integer, db.ForeignKey('operators.id'), index=True)
    route_id = db.Column(db.Integer, db.ForeignKey('routes.id'), index=True)

    last_login = db.Column(db.DateTime)

    operator = db.relationship('Operator', foreign_keys=[operator_id])
    route = db.relationship('Route', foreign_keys=[route_id])

    @property
    def is_active(self):
        return bool(self.active)

    def to_dict(self):
        # password_hash never leaves the server
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role.value,
            'isActive': self.is_active,
            'operatorId': self.operator_id,
            'operatorName': self.operator.name if self.operator else None,
            'routeId': self.route_id,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email}>'


class Route(TimestampMixin, db.Model):
    __tablename__ = 'routes'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    operator_share_percent = db.Column(MONEY, default=Decimal('0'))
    driver_share_percent = db.Column(MONEY, default=Decimal('0'))
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    operators = db.relationship('Operator', backref='route', lazy=True)
    drivers = db.relationship('Driver', backref='route', lazy=True)

    def to_dict(self, include_operators=False, include_count=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'operatorSharePercent': _money(self.operator_share_percent),
            'driverSharePercent': _money(self.driver_share_percent),
            'isActive': self.is_active,
        }
        if include_operators:
            data['operators'] = [o.to_dict() for o in self.operators if o.is_active]
        if include_count:
            data['_count'] = {'operators': len(self.operators), 'drivers': len(self.drivers)}
        return data


class Operator(TimestampMixin, db.Model):
    __tablename__ = 'operators'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, index=True)
    contact_number = db.Column(db.String(30))
    address = db.Column(db.Text)
    share_percent = db.Column(MONEY, default=Decimal('0'))
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    route_id = db.Column(db.Integer, db.ForeignKey('routes.id'), index=True)

    buses = db.relationship('Bus', backref='operator', lazy=True)

    def to_dict(self, include_buses=False):
        data = {
            'id': self.id,
            'name': self.name,
            'contactNumber': self.contact_number,
            'address': self.address,
            'sharePercent': _money(self.share_percent),
            'isActive': self.is_active,
            'routeId': self.route_id,
        }
        if include_buses:
            data['buses'] = [b.to_dict() for b in self.buses if b.is_active]
        return data


class Bus(TimestampMixin, db.Model):
    __tablename__ = 'buses'

    id = db.Column(db.Integer, primary_key=True)
    bus_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    plate_number = db.Column(db.String(20), unique=True)
    model = db.Column(db.String(100))
    capacity = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    operator_id = db.Column(db.Integer, db.ForeignKey('operators.id'), index=True)

    daily_records = db.relationship('DailyRecord', backref='bus', lazy=True)
    maintenance_records = db.relationship('MaintenanceRecord', backref='bus', lazy=True)
    spare_parts = db.relationship('SparePart', backref='bus', lazy=True)
    payables = db.relationship('AccountsPayable', backref='bus', lazy=True)

    def to_dict(self, include_operator=False):
        data = {
            'id': self.id,
            'busNumber': self.bus_number,
            'plateNumber': self.plate_number,
            'model': self.model,
            'capacity': self.capacity,
            'isActive': self.is_active,
            'operatorId': self.operator_id,
        }
        if include_operator:
            data['operator'] = self.operator.to_dict() if self.operator else None
        return data

    def __repr__(self):
        return f'<Bus {self.bus_number}>'


class Driver(TimestampMixin, db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, index=True)
    license_number = db.Column(db.String(50), unique=True)
    contact_number = db.Column(db.String(30))
    address = db.Column(db.Text)
    share_percent = db.Column(MONEY, default=Decimal('0'))
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    route_id = db.Column(db.Integer, db.ForeignKey('routes.id'), index=True)

    daily_records = db.relationship('DailyRecord', backref='driver', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'licenseNumber': self.license_number,
            'contactNumber': self.contact_number,
            'address': self.address,
            'sharePercent': _money(self.share_percent),
            'isActive': self.is_active,
            'routeId': self.route_id,
        }

    def __repr__(self):
        return f'<Driver {self.name}>'


class DailyRecord(TimestampMixin, db.Model):
    __tablename__ = 'daily_records'

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    bus_id = db.Column(db.Integer, db.ForeignKey('buses.id'), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)

    total_collection = db.Column(MONEY, default=Decimal('0'))
    passenger_count = db.Column(db.Integer, default=0)
    trip_count = db.Column(db.Integer, default=0)
    diesel_liters = db.Column(MONEY, default=Decimal('0'))
    diesel_cost = db.Column(MONEY, default=Decimal('0'))
    odometer_start = db.Column(MONEY, default=Decimal('0'))
    odometer_end = db.Column(MONEY, default=Decimal('0'))

    minimum_collection = db.Column(MONEY, default=Decimal('0'))
    excess_collection = db.Column(MONEY, default=Decimal('0'))
    coop_contribution = db.Column(MONEY, default=Decimal('0'))
    other_expenses = db.Column(MONEY, default=Decimal('0'))
    driver_share = db.Column(MONEY, default=Decimal('0'))
    assignee_share = db.Column(MONEY, default=Decimal('0'))
    notes = db.Column(db.Text)

    __table_args__ = (
        UniqueConstraint('bus_id', 'date', name='unique_bus_daily_record'),
        Index('idx_daily_record_driver_date', 'driver_id', 'date'),
    )

    @property
    def distance(self):
        start = self.odometer_start or Decimal('0')
        end = self.odometer_end or Decimal('0')
        return end - start if end > start else Decimal('0')

    def to_dict(self):
        return {
            'id': self.id,
            'date': _iso(self.date),
            'busId': self.bus_id,
            'driverId': self.driver_id,
            'bus': self.bus.to_dict(include_operator=True) if self.bus else None,
            'driver': self.driver.to_dict() if self.driver else None,
            'totalCollection': _money(self.total_collection),
            'passengerCount': self.passenger_count,
            'tripCount': self.trip_count,
            'dieselLiters': _money(self.diesel_liters),
            'dieselCost': _money(self.diesel_cost),
            'odometerStart': _money(self.odometer_start),
            'odometerEnd': _money(self.odometer_end),
            'minimumCollection': _money(self.minimum_collection),
            'excessCollection': _money(self.excess_collection),
            'coopContribution': _money(self.coop_contribution),
            'otherExpenses': _money(self.other_expenses),
            'driverShare': _money(self.driver_share),
            'assigneeShare': _money(self.assignee_share),
            'notes': self.notes,
        }


class MaintenanceRecord(TimestampMixin, db.Model):
    __tablename__ = 'maintenance_records'

    id = db.Column(db.Integer, primary_key=True)
    bus_id = db.Column(db.Integer, db.ForeignKey('buses.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    maintenance_type = db.Column(db.Enum(MaintenanceType), nullable=False, index=True)
    description = db.Column(db.Text)

    spare_parts_cost = db.Column(MONEY, default=Decimal('0'))
    labor_cost = db.Column(MONEY, default=Decimal('0'))
    miscellaneous_cost = db.Column(MONEY, default=Decimal('0'))
    total_cost = db.Column(MONEY, default=Decimal('0'))
    spare_parts_data = db.Column(db.Text)  # JSON

    odometer_reading = db.Column(MONEY)
    service_provider = db.Column(db.String(100))
    mechanic_name = db.Column(db.String(100))
    remarks = db.Column(db.Text)
    next_service_date = db.Column(db.Date)
    next_service_odometer = db.Column(MONEY)
    notes = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'busId': self.bus_id,
            'bus': self.bus.to_dict(include_operator=True) if self.bus else None,
            'date': _iso(self.date),
            'maintenanceType': self.maintenance_type.value,
            'description': self.description,
            'sparePartsCost': _money(self.spare_parts_cost),
            'laborCost': _money(self.labor_cost),
            'miscellaneousCost': _money(self.miscellaneous_cost),
            'totalCost': _money(self.total_cost),
            'sparePartsData': self.spare_parts_data,
            'odometerReading': _money(self.odometer_reading),
            'serviceProvider': self.service_provider,
            'mechanicName': self.mechanic_name,
            'remarks': self.remarks,
            'nextServiceDate': _iso(self.next_service_date),
            'nextServiceOdometer': _money(self.next_service_odometer),
            'notes': self.notes,
        }


class PartTypeConfig(TimestampMixin, db.Model):
    __tablename__ = 'part_type_configs'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    label = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    sort_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'label': self.label,
            'description': self.description,
            'sortOrder': self.sort_order,
            'isActive': self.is_active,
        }


class SparePart(TimestampMixin, db.Model):
    __tablename__ = 'spare_parts'

    id = db.Column(db.Integer, primary_key=True)
    bus_id = db.Column(db.Integer, db.ForeignKey('buses.id'), nullable=False, index=True)
    part_name = db.Column(db.String(100), nullable=False)
    part_type = db.Column(db.String(50), nullable=False, index=True)
    brand = db.Column(db.String(100))
    quantity = db.Column(db.Integer, default=1)
    unit_cost = db.Column(MONEY, default=Decimal('0'))
    total_cost = db.Column(MONEY, default=Decimal('0'))
    purchase_date = db.Column(db.Date, nullable=False, index=True)
    installed_date = db.Column(db.Date)
    supplier = db.Column(db.String(100))
    warranty_expiry = db.Column(db.Date)
    expected_life_days = db.Column(db.Integer)
    notes = db.Column(db.Text)

    def replacement_status(self, today=None):
        """Replacement status from install date and expected life"""
        if not self.installed_date:
            return {'status': 'unknown', 'daysSince': None, 'daysRemaining': None}

        today = today or get_local_date()
        days_since = (today - self.installed_date).days
        if not self.expected_life_days:
            return {'status': 'unknown', 'daysSince': days_since, 'daysRemaining': None}

        days_remaining = self.expected_life_days - days_since
        if days_remaining < 0:
            status = 'overdue'
        elif days_remaining < REPLACEMENT_WARNING_DAYS:
            status = 'warning'
        else:
            status = 'good'
        return {'status': status, 'daysSince': days_since, 'daysRemaining': days_remaining}

    def to_dict(self):
        return {
            'id': self.id,
            'busId': self.bus_id,
            'bus': self.bus.to_dict(include_operator=True) if self.bus else None,
            'partName': self.part_name,
            'partType': self.part_type,
            'brand': self.brand,
            'quantity': self.quantity,
            'unitCost': _money(self.unit_cost),
            'totalCost': _money(self.total_cost),
            'purchaseDate': _iso(self.purchase_date),
            'installedDate': _iso(self.installed_date),
            'supplier': self.supplier,
            'warrantyExpiry': _iso(self.warranty_expiry),
            'expectedLifeDays': self.expected_life_days,
            'replacement': self.replacement_status(),
            'notes': self.notes,
        }


class AccountsPayable(TimestampMixin, db.Model):
    __tablename__ = 'accounts_payable'

    id = db.Column(db.Integer, primary_key=True)
    bus_id = db.Column(db.Integer, db.ForeignKey('buses.id'), nullable=False, index=True)
    category = db.Column(db.Enum(ExpenseCategory), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(MONEY, nullable=False)
    due_date = db.Column(db.Date, index=True)

    # Derived from payments, written only by the ledger
    paid_amount = db.Column(MONEY, nullable=False, default=Decimal('0'))
    is_paid = db.Column(db.Boolean, nullable=False, default=False, index=True)
    paid_date = db.Column(db.Date)

    supplier = db.Column(db.String(100))
    invoice_number = db.Column(db.String(50))
    notes = db.Column(db.Text)
    maintenance_id = db.Column(db.Integer, db.ForeignKey('maintenance_records.id'))
    spare_part_id = db.Column(db.Integer, db.ForeignKey('spare_parts.id'))

    # Optimistic lock for concurrent payment application
    version_id = db.Column(db.Integer, nullable=False)

    payments = db.relationship('Payment', backref='accounts_payable', lazy=True,
                               cascade="all, delete-orphan",
                               order_by='Payment.date_paid.desc()')
    maintenance = db.relationship('MaintenanceRecord')
    spare_part = db.relationship('SparePart')

    __mapper_args__ = {'version_id_col': version_id}

    __table_args__ = (
        Index('idx_payable_paid_due', 'is_paid', 'due_date'),
    )

    @property
    def balance(self):
        return (self.amount or Decimal('0')) - (self.paid_amount or Decimal('0'))

    def is_overdue(self, today: date = None):
        today = today or get_local_date()
        return not self.is_paid and self.due_date is not None and self.due_date < today

    def to_dict(self):
        return {
            'id': self.id,
            'busId': self.bus_id,
            'bus': self.bus.to_dict(include_operator=True) if self.bus else None,
            'category': self.category.value,
            'description': self.description,
            'amount': _money(self.amount),
            'dueDate': _iso(self.due_date),
            'paidAmount': _money(self.paid_amount),
            'balance': _money(self.balance),
            'isPaid': self.is_paid,
            'paidDate': _iso(self.paid_date),
            'supplier': self.supplier,
            'invoiceNumber': self.invoice_number,
            'notes': self.notes,
            'maintenanceId': self.maintenance_id,
            'sparePartId': self.spare_part_id,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<AccountsPayable {self.id} {self.amount}>'


class Payment(TimestampMixin, db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    accounts_payable_id = db.Column(db.Integer,
                                    db.ForeignKey('accounts_payable.id', ondelete='CASCADE'),
                                    nullable=False, index=True)
    amount = db.Column(MONEY, nullable=False)
    date_paid = db.Column(db.Date, nullable=False)
    remarks = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'accountsPayableId': self.accounts_payable_id,
            'amount': _money(self.amount),
            'datePaid': _iso(self.date_paid),
            'remarks': self.remarks,
            'createdAt': _iso(self.created_at),
        }


class Setting(TimestampMixin, db.Model):
    __tablename__ = 'settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'key': self.key,
            'value': self.value,
            'description': self.description,
        }
