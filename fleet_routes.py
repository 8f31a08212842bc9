import json
import logging
from decimal import Decimal
from flask import Blueprint, request
from flask_login import current_user
from models import (db, Bus, Driver, Operator, Route, PartTypeConfig, SparePart,
                    MaintenanceRecord, MaintenanceType, DailyRecord, UserRole)
from auth import api_login_required, roles_required, get_route_filter, get_operator_filter
from services.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from utils.responses import success, json_body, get_or_404, commit_or_duplicate, query_limit
from utils.validators import (parse_decimal, parse_int, parse_date, parse_bool, parse_enum,
                              require_fields, optional_text)

logger = logging.getLogger(__name__)

fleet_bp = Blueprint('fleet', __name__)

DEFAULT_PART_TYPES = [
    ('TIRE', 'Tire', 1),
    ('BATTERY', 'Battery', 2),
    ('BRAKE_PAD', 'Brake Pad', 3),
    ('BRAKE_DISC', 'Brake Disc', 4),
    ('OIL_FILTER', 'Oil Filter', 5),
    ('AIR_FILTER', 'Air Filter', 6),
    ('FUEL_FILTER', 'Fuel Filter', 7),
    ('SPARK_PLUG', 'Spark Plug', 8),
    ('BELT', 'Belt', 9),
    ('HOSE', 'Hose', 10),
    ('LIGHT_BULB', 'Light Bulb', 11),
    ('WIPER', 'Wiper', 12),
    ('MIRROR', 'Mirror', 13),
    ('SEAT', 'Seat', 14),
    ('ENGINE_PART', 'Engine Part', 15),
    ('TRANSMISSION_PART', 'Transmission Part', 16),
    ('SUSPENSION', 'Suspension', 17),
    ('WATER_PUMP', 'Water Pump', 18),
    ('OTHER', 'Other', 99),
]


def active_only_arg():
    return request.args.get('activeOnly') != 'false'


def _set_if_present(record, data, mapping):
    """Copy present request keys onto model attributes through a parser"""
    for key, (attr, parser) in mapping.items():
        if key in data:
            setattr(record, attr, parser(data.get(key)))


# Buses

BUS_FIELDS = {
    'busNumber': ('bus_number', optional_text),
    'plateNumber': ('plate_number', optional_text),
    'model': ('model', optional_text),
    'capacity': ('capacity', lambda v: parse_int(v, 'capacity')),
    'operatorId': ('operator_id', lambda v: parse_int(v, 'operatorId')),
    'isActive': ('is_active', lambda v: parse_bool(v, True)),
}


@fleet_bp.route('/buses', methods=['GET'])
@api_login_required
def list_buses():
    include_operator = request.args.get('includeOperator') == 'true'
    query = Bus.query
    if active_only_arg():
        query = query.filter(Bus.is_active.is_(True))

    operator_scope = get_operator_filter()
    if operator_scope is not None and current_user.role == UserRole.OPERATOR:
        query = query.filter(Bus.operator_id == operator_scope)

    buses = query.order_by(Bus.bus_number).all()
    return success([b.to_dict(include_operator=include_operator) for b in buses])


@fleet_bp.route('/buses', methods=['POST'])
@api_login_required
def create_bus():
    data = json_body()
    require_fields(data, 'busNumber', message='Bus number is required')

    bus = Bus()
    _set_if_present(bus, data, BUS_FIELDS)
    bus.is_active = True
    db.session.add(bus)
    commit_or_duplicate('Bus number or plate number already exists')

    logger.info(f"Bus {bus.bus_number} created by user {current_user.id}")
    return success(bus.to_dict(include_operator=True), 201)


@fleet_bp.route('/buses/<int:bus_id>', methods=['GET'])
@api_login_required
def get_bus(bus_id):
    bus = get_or_404(Bus, bus_id, 'Bus not found')
    data = bus.to_dict(include_operator=True)
    data['maintenanceRecords'] = [
        m.to_dict() for m in sorted(bus.maintenance_records, key=lambda m: m.date, reverse=True)[:10]
    ]
    data['spareParts'] = [
        p.to_dict() for p in sorted(bus.spare_parts, key=lambda p: p.purchase_date, reverse=True)[:10]
    ]
    return success(data)


@fleet_bp.route('/buses/<int:bus_id>', methods=['PUT'])
@api_login_required
def update_bus(bus_id):
    bus = get_or_404(Bus, bus_id, 'Bus not found')
    data = json_body()
    if 'busNumber' in data and not optional_text(data.get('busNumber')):
        raise ValidationError('Bus number is required')
    _set_if_present(bus, data, BUS_FIELDS)
    commit_or_duplicate('Bus number or plate number already exists')
    return success(bus.to_dict(include_operator=True))


@fleet_bp.route('/buses/<int:bus_id>', methods=['DELETE'])
@api_login_required
def delete_bus(bus_id):
    # Soft delete - just mark as inactive
    bus = get_or_404(Bus, bus_id, 'Bus not found')
    bus.is_active = False
    db.session.commit()
    logger.info(f"Bus {bus.bus_number} deactivated by user {current_user.id}")
    return success(bus.to_dict())


@fleet_bp.route('/buses/<int:bus_id>/last-odometer', methods=['GET'])
@api_login_required
def bus_last_odometer(bus_id):
    get_or_404(Bus, bus_id, 'Bus not found')
    last = DailyRecord.query.filter_by(bus_id=bus_id) \
        .order_by(DailyRecord.date.desc()).first()
    return success({
        'lastOdometer': float(last.odometer_end) if last and last.odometer_end is not None else None,
        'lastDate': last.date.isoformat() if last else None,
    })


# Drivers

DRIVER_FIELDS = {
    'name': ('name', optional_text),
    'licenseNumber': ('license_number', optional_text),
    'contactNumber': ('contact_number', optional_text),
    'address': ('address', optional_text),
    'sharePercent': ('share_percent', lambda v: parse_decimal(v, 'sharePercent', Decimal('0'))),
    'routeId': ('route_id', lambda v: parse_int(v, 'routeId')),
    'isActive': ('is_active', lambda v: parse_bool(v, True)),
}


@fleet_bp.route('/drivers', methods=['GET'])
@api_login_required
def list_drivers():
    query = Driver.query
    if active_only_arg():
        query = query.filter(Driver.is_active.is_(True))
    route_scope = get_route_filter()
    if route_scope:
        query = query.filter(Driver.route_id == route_scope)
    return success([d.to_dict() for d in query.order_by(Driver.name).all()])


@fleet_bp.route('/drivers', methods=['POST'])
@api_login_required
def create_driver():
    data = json_body()
    require_fields(data, 'name', message='Driver name is required')

    driver = Driver()
    _set_if_present(driver, data, DRIVER_FIELDS)
    driver.is_active = True
    db.session.add(driver)
    commit_or_duplicate('License number already exists')
    return success(driver.to_dict(), 201)


@fleet_bp.route('/drivers/<int:driver_id>', methods=['GET'])
@api_login_required
def get_driver(driver_id):
    return success(get_or_404(Driver, driver_id, 'Driver not found').to_dict())


@fleet_bp.route('/drivers/<int:driver_id>', methods=['PUT'])
@api_login_required
def update_driver(driver_id):
    driver = get_or_404(Driver, driver_id, 'Driver not found')
    data = json_body()
    if 'name' in data and not optional_text(data.get('name')):
        raise ValidationError('Driver name is required')
    _set_if_present(driver, data, DRIVER_FIELDS)
    commit_or_duplicate('License number already exists')
    return success(driver.to_dict())


@fleet_bp.route('/drivers/<int:driver_id>', methods=['DELETE'])
@api_login_required
def delete_driver(driver_id):
    driver = get_or_404(Driver, driver_id, 'Driver not found')
    driver.is_active = False
    db.session.commit()
    return success(driver.to_dict())


# Operators

OPERATOR_FIELDS = {
    'name': ('name', optional_text),
    'contactNumber': ('contact_number', optional_text),
    'address': ('address', optional_text),
    'sharePercent': ('share_percent', lambda v: parse_decimal(v, 'sharePercent', Decimal('0'))),
    'routeId': ('route_id', lambda v: parse_int(v, 'routeId')),
    'isActive': ('is_active', lambda v: parse_bool(v, True)),
}


@fleet_bp.route('/operators', methods=['GET'])
@api_login_required
def list_operators():
    include_buses = request.args.get('includeBuses') == 'true'
    query = Operator.query
    if active_only_arg():
        query = query.filter(Operator.is_active.is_(True))
    route_scope = get_route_filter()
    if route_scope:
        query = query.filter(Operator.route_id == route_scope)
    operators = query.order_by(Operator.name).all()
    return success([o.to_dict(include_buses=include_buses) for o in operators])


@fleet_bp.route('/operators', methods=['POST'])
@api_login_required
def create_operator():
    data = json_body()
    require_fields(data, 'name', message='Operator name is required')

    operator = Operator()
    _set_if_present(operator, data, OPERATOR_FIELDS)
    operator.is_active = True
    db.session.add(operator)
    db.session.commit()
    return success(operator.to_dict(), 201)


@fleet_bp.route('/operators/<int:operator_id>', methods=['GET'])
@api_login_required
def get_operator(operator_id):
    operator = get_or_404(Operator, operator_id, 'Operator not found')
    return success(operator.to_dict(include_buses=True))


@fleet_bp.route('/operators/<int:operator_id>', methods=['PUT'])
@api_login_required
def update_operator(operator_id):
    operator = get_or_404(Operator, operator_id, 'Operator not found')
    data = json_body()
    if 'name' in data and not optional_text(data.get('name')):
        raise ValidationError('Operator name is required')
    _set_if_present(operator, data, OPERATOR_FIELDS)
    db.session.commit()
    return success(operator.to_dict())


@fleet_bp.route('/operators/<int:operator_id>', methods=['DELETE'])
@api_login_required
def delete_operator(operator_id):
    operator = get_or_404(Operator, operator_id, 'Operator not found')
    operator.is_active = False
    db.session.commit()
    return success(operator.to_dict())


# Routes

ROUTE_FIELDS = {
    'name': ('name', optional_text),
    'description': ('description', optional_text),
    'operatorSharePercent': ('operator_share_percent',
                             lambda v: parse_decimal(v, 'operatorSharePercent', Decimal('0'))),
    'driverSharePercent': ('driver_share_percent',
                           lambda v: parse_decimal(v, 'driverSharePercent', Decimal('0'))),
    'isActive': ('is_active', lambda v: parse_bool(v, True)),
}


def _check_route_access(route_id):
    """ROUTE_ADMIN can only see and edit its own route"""
    route_scope = get_route_filter()
    if route_scope is False:
        raise PermissionDeniedError('Access denied')
    if route_scope is not None and route_scope != route_id:
        raise PermissionDeniedError('Access denied')


@fleet_bp.route('/routes', methods=['GET'])
@api_login_required
def list_routes():
    include_operators = request.args.get('includeOperators') == 'true'
    include_count = request.args.get('includeCount') == 'true'

    route_scope = get_route_filter()
    if route_scope is False:
        raise PermissionDeniedError('Access denied')
    if route_scope is not None:
        route = db.session.get(Route, route_scope)
        routes = [route] if route else []
    else:
        query = Route.query
        if active_only_arg():
            query = query.filter(Route.is_active.is_(True))
        routes = query.order_by(Route.name).all()

    return success([r.to_dict(include_operators=include_operators, include_count=include_count)
                    for r in routes])


@fleet_bp.route('/routes', methods=['POST'])
@roles_required(UserRole.SUPER_ADMIN)
def create_route():
    data = json_body()
    require_fields(data, 'name', message='Route name is required')

    name = optional_text(data.get('name'))
    if Route.query.filter_by(name=name).first():
        raise ValidationError('A route with this name already exists')

    route = Route()
    _set_if_present(route, data, ROUTE_FIELDS)
    route.is_active = True
    db.session.add(route)
    commit_or_duplicate('A route with this name already exists')

    logger.info(f"Route {route.name} created by user {current_user.id}")
    return success(route.to_dict(), 201)


@fleet_bp.route('/routes/<int:route_id>', methods=['GET'])
@api_login_required
def get_route(route_id):
    _check_route_access(route_id)
    route = get_or_404(Route, route_id, 'Route not found')
    return success(route.to_dict(include_operators=True, include_count=True))


@fleet_bp.route('/routes/<int:route_id>', methods=['PUT'])
@roles_required(UserRole.SUPER_ADMIN, UserRole.ROUTE_ADMIN)
def update_route(route_id):
    _check_route_access(route_id)
    route = get_or_404(Route, route_id, 'Route not found')
    data = json_body()

    name = optional_text(data.get('name')) if 'name' in data else None
    if 'name' in data and not name:
        raise ValidationError('Route name is required')
    if name and name != route.name and Route.query.filter_by(name=name).first():
        raise ValidationError('A route with this name already exists')

    _set_if_present(route, data, ROUTE_FIELDS)
    commit_or_duplicate('A route with this name already exists')
    return success(route.to_dict())


@fleet_bp.route('/routes/<int:route_id>', methods=['DELETE'])
@roles_required(UserRole.SUPER_ADMIN)
def delete_route(route_id):
    # Soft delete - set is_active to false
    route = get_or_404(Route, route_id, 'Route not found')
    route.is_active = False
    db.session.commit()
    return success(route.to_dict())


# Part types

def seed_default_part_types():
    """Insert any default part types that are missing"""
    existing = {code for (code,) in db.session.query(PartTypeConfig.code).all()}
    for code, label, sort_order in DEFAULT_PART_TYPES:
        if code in existing:
            continue
        part_type = PartTypeConfig()
        part_type.code = code
        part_type.label = label
        part_type.sort_order = sort_order
        part_type.is_active = True
        db.session.add(part_type)
    db.session.commit()


def normalize_part_type_code(code):
    return '_'.join(str(code).strip().upper().replace('-', ' ').split())


@fleet_bp.route('/part-types', methods=['GET'])
@api_login_required
def list_part_types():
    query = PartTypeConfig.query
    if active_only_arg():
        query = query.filter(PartTypeConfig.is_active.is_(True))
    if request.args.get('seedIfEmpty') == 'true' and PartTypeConfig.query.count() == 0:
        seed_default_part_types()
    part_types = query.order_by(PartTypeConfig.sort_order, PartTypeConfig.label).all()
    return success([p.to_dict() for p in part_types])


@fleet_bp.route('/part-types', methods=['POST'])
@api_login_required
def create_part_type():
    data = json_body()
    require_fields(data, 'code', 'label', message='Code and label are required')

    code = normalize_part_type_code(data['code'])
    if PartTypeConfig.query.filter_by(code=code).first():
        raise ValidationError('A part type with this code already exists')

    part_type = PartTypeConfig()
    part_type.code = code
    part_type.label = optional_text(data['label'])
    part_type.description = optional_text(data.get('description'))
    part_type.sort_order = parse_int(data.get('sortOrder'), 'sortOrder', 0)
    part_type.is_active = True
    db.session.add(part_type)
    commit_or_duplicate('A part type with this code already exists')
    return success(part_type.to_dict(), 201)


@fleet_bp.route('/part-types/<int:part_type_id>', methods=['PUT'])
@api_login_required
def update_part_type(part_type_id):
    part_type = get_or_404(PartTypeConfig, part_type_id, 'Part type not found')
    data = json_body()
    _set_if_present(part_type, data, {
        'label': ('label', optional_text),
        'description': ('description', optional_text),
        'sortOrder': ('sort_order', lambda v: parse_int(v, 'sortOrder', 0)),
        'isActive': ('is_active', lambda v: parse_bool(v, True)),
    })
    if not part_type.label:
        raise ValidationError('Label is required')
    db.session.commit()
    return success(part_type.to_dict())


@fleet_bp.route('/part-types/<int:part_type_id>', methods=['DELETE'])
@api_login_required
def delete_part_type(part_type_id):
    part_type = get_or_404(PartTypeConfig, part_type_id, 'Part type not found')
    part_type.is_active = False
    db.session.commit()
    return success(part_type.to_dict())


# Spare parts

def _apply_spare_part(part, data):
    _set_if_present(part, data, {
        'busId': ('bus_id', lambda v: parse_int(v, 'busId')),
        'partName': ('part_name', optional_text),
        'partType': ('part_type', lambda v: normalize_part_type_code(v) if v else None),
        'brand': ('brand', optional_text),
        'quantity': ('quantity', lambda v: parse_int(v, 'quantity', 1)),
        'unitCost': ('unit_cost', lambda v: parse_decimal(v, 'unitCost', Decimal('0'))),
        'purchaseDate': ('purchase_date', lambda v: parse_date(v, 'purchaseDate')),
        'installedDate': ('installed_date', lambda v: parse_date(v, 'installedDate')),
        'supplier': ('supplier', optional_text),
        'warrantyExpiry': ('warranty_expiry', lambda v: parse_date(v, 'warrantyExpiry')),
        'expectedLifeDays': ('expected_life_days', lambda v: parse_int(v, 'expectedLifeDays')),
        'notes': ('notes', optional_text),
    })
    if part.quantity is None:
        part.quantity = 1
    if part.unit_cost is None:
        part.unit_cost = Decimal('0')
    part.total_cost = part.quantity * part.unit_cost


@fleet_bp.route('/spare-parts', methods=['GET'])
@api_login_required
def list_spare_parts():
    query = SparePart.query
    bus_id = parse_int(request.args.get('busId'), 'busId')
    part_type = request.args.get('type')
    start_date = parse_date(request.args.get('startDate'), 'startDate')
    end_date = parse_date(request.args.get('endDate'), 'endDate')

    if bus_id:
        query = query.filter(SparePart.bus_id == bus_id)
    if part_type:
        query = query.filter(SparePart.part_type == normalize_part_type_code(part_type))
    if start_date:
        query = query.filter(SparePart.purchase_date >= start_date)
    if end_date:
        query = query.filter(SparePart.purchase_date <= end_date)

    parts = query.order_by(SparePart.purchase_date.desc()).limit(query_limit(100)).all()
    return success([p.to_dict() for p in parts])


@fleet_bp.route('/spare-parts', methods=['POST'])
@api_login_required
def create_spare_part():
    data = json_body()
    require_fields(data, 'busId', 'partName', 'partType', 'purchaseDate',
                   message='Bus, part name, part type, and purchase date are required')

    part = SparePart()
    _apply_spare_part(part, data)
    get_or_404(Bus, part.bus_id, 'Bus not found')
    db.session.add(part)
    db.session.commit()
    return success(part.to_dict(), 201)


@fleet_bp.route('/spare-parts/<int:part_id>', methods=['GET'])
@api_login_required
def get_spare_part(part_id):
    return success(get_or_404(SparePart, part_id, 'Spare part not found').to_dict())


@fleet_bp.route('/spare-parts/<int:part_id>', methods=['PUT'])
@api_login_required
def update_spare_part(part_id):
    part = get_or_404(SparePart, part_id, 'Spare part not found')
    _apply_spare_part(part, json_body())
    db.session.commit()
    return success(part.to_dict())


@fleet_bp.route('/spare-parts/<int:part_id>', methods=['DELETE'])
@api_login_required
def delete_spare_part(part_id):
    part = get_or_404(SparePart, part_id, 'Spare part not found')
    db.session.delete(part)
    db.session.commit()
    return success(message='Spare part deleted')


# Maintenance

def _apply_maintenance(record, data):
    _set_if_present(record, data, {
        'busId': ('bus_id', lambda v: parse_int(v, 'busId')),
        'date': ('date', lambda v: parse_date(v, 'date')),
        'maintenanceType': ('maintenance_type', lambda v: parse_enum(MaintenanceType, v, 'maintenanceType')),
        'description': ('description', optional_text),
        'sparePartsCost': ('spare_parts_cost', lambda v: parse_decimal(v, 'sparePartsCost', Decimal('0'))),
        'laborCost': ('labor_cost', lambda v: parse_decimal(v, 'laborCost', Decimal('0'))),
        'miscellaneousCost': ('miscellaneous_cost',
                              lambda v: parse_decimal(v, 'miscellaneousCost', Decimal('0'))),
        'odometerReading': ('odometer_reading', lambda v: parse_decimal(v, 'odometerReading')),
        'serviceProvider': ('service_provider', optional_text),
        'mechanicName': ('mechanic_name', optional_text),
        'remarks': ('remarks', optional_text),
        'nextServiceDate': ('next_service_date', lambda v: parse_date(v, 'nextServiceDate')),
        'nextServiceOdometer': ('next_service_odometer', lambda v: parse_decimal(v, 'nextServiceOdometer')),
        'notes': ('notes', optional_text),
    })
    if 'sparePartsData' in data:
        parts_data = data.get('sparePartsData')
        record.spare_parts_data = json.dumps(parts_data) if parts_data is not None else None

    # Total defaults to the sum of the cost components
    total = parse_decimal(data.get('totalCost'), 'totalCost')
    if total is None:
        total = ((record.spare_parts_cost or Decimal('0')) + (record.labor_cost or Decimal('0'))
                 + (record.miscellaneous_cost or Decimal('0')))
    record.total_cost = total


@fleet_bp.route('/maintenance', methods=['GET'])
@api_login_required
def list_maintenance():
    query = MaintenanceRecord.query

    # Filter by operator if not super admin
    operator_scope = get_operator_filter()
    if operator_scope:
        query = query.join(Bus).filter(Bus.operator_id == operator_scope)

    bus_id = parse_int(request.args.get('busId'), 'busId')
    maintenance_type = parse_enum(MaintenanceType, request.args.get('type'), 'type')
    start_date = parse_date(request.args.get('startDate'), 'startDate')
    end_date = parse_date(request.args.get('endDate'), 'endDate')

    if bus_id:
        query = query.filter(MaintenanceRecord.bus_id == bus_id)
    if maintenance_type:
        query = query.filter(MaintenanceRecord.maintenance_type == maintenance_type)
    if start_date:
        query = query.filter(MaintenanceRecord.date >= start_date)
    if end_date:
        query = query.filter(MaintenanceRecord.date <= end_date)

    records = query.order_by(MaintenanceRecord.date.desc()).limit(query_limit(100)).all()
    return success([r.to_dict() for r in records])


@fleet_bp.route('/maintenance', methods=['POST'])
@api_login_required
def create_maintenance():
    data = json_body()
    require_fields(data, 'busId', 'date', 'maintenanceType',
                   message='Bus, date, and maintenance type are required')

    record = MaintenanceRecord()
    _apply_maintenance(record, data)
    get_or_404(Bus, record.bus_id, 'Bus not found')
    db.session.add(record)
    db.session.commit()

    logger.info(f"Maintenance {record.maintenance_type.value} recorded for bus {record.bus_id}")
    return success(record.to_dict(), 201)


@fleet_bp.route('/maintenance/<int:record_id>', methods=['GET'])
@api_login_required
def get_maintenance(record_id):
    return success(get_or_404(MaintenanceRecord, record_id, 'Maintenance record not found').to_dict())


@fleet_bp.route('/maintenance/<int:record_id>', methods=['PUT'])
@api_login_required
def update_maintenance(record_id):
    record = get_or_404(MaintenanceRecord, record_id, 'Maintenance record not found')
    _apply_maintenance(record, json_body())
    db.session.commit()
    return success(record.to_dict())


@fleet_bp.route('/maintenance/<int:record_id>', methods=['DELETE'])
@api_login_required
def delete_maintenance(record_id):
    record = get_or_404(MaintenanceRecord, record_id, 'Maintenance record not found')
    db.session.delete(record)
    db.session.commit()
    return success(message='Maintenance record deleted')


# Daily records

DAILY_RECORD_FIELDS = {
    'date': ('date', lambda v: parse_date(v, 'date')),
    'busId': ('bus_id', lambda v: parse_int(v, 'busId')),
    'driverId': ('driver_id', lambda v: parse_int(v, 'driverId')),
    'passengerCount': ('passenger_count', lambda v: parse_int(v, 'passengerCount', 0)),
    'tripCount': ('trip_count', lambda v: parse_int(v, 'tripCount', 0)),
    'notes': ('notes', optional_text),
}

DAILY_RECORD_AMOUNTS = {
    'totalCollection': 'total_collection',
    'dieselLiters': 'diesel_liters',
    'dieselCost': 'diesel_cost',
    'odometerStart': 'odometer_start',
    'odometerEnd': 'odometer_end',
    'minimumCollection': 'minimum_collection',
    'excessCollection': 'excess_collection',
    'coopContribution': 'coop_contribution',
    'otherExpenses': 'other_expenses',
    'driverShare': 'driver_share',
    'assigneeShare': 'assignee_share',
}


def _apply_daily_record(record, data, defaults=False):
    _set_if_present(record, data, DAILY_RECORD_FIELDS)
    for key, attr in DAILY_RECORD_AMOUNTS.items():
        if key in data:
            setattr(record, attr, parse_decimal(data.get(key), key, Decimal('0')))
        elif defaults:
            setattr(record, attr, Decimal('0'))


@fleet_bp.route('/daily-records', methods=['GET'])
@api_login_required
def list_daily_records():
    query = DailyRecord.query
    bus_id = parse_int(request.args.get('busId'), 'busId')
    driver_id = parse_int(request.args.get('driverId'), 'driverId')
    start_date = parse_date(request.args.get('startDate'), 'startDate')
    end_date = parse_date(request.args.get('endDate'), 'endDate')

    if bus_id:
        query = query.filter(DailyRecord.bus_id == bus_id)
    if driver_id:
        query = query.filter(DailyRecord.driver_id == driver_id)
    if start_date:
        query = query.filter(DailyRecord.date >= start_date)
    if end_date:
        query = query.filter(DailyRecord.date <= end_date)

    records = query.order_by(DailyRecord.date.desc()).limit(query_limit(50)).all()
    return success([r.to_dict() for r in records])


@fleet_bp.route('/daily-records', methods=['POST'])
@api_login_required
def create_daily_record():
    data = json_body()
    require_fields(data, 'date', 'busId', 'driverId', message='Date, bus, and driver are required')

    record = DailyRecord()
    _apply_daily_record(record, data, defaults=True)
    if db.session.get(Bus, record.bus_id) is None or db.session.get(Driver, record.driver_id) is None:
        raise NotFoundError('Bus or driver not found')

    db.session.add(record)
    commit_or_duplicate('A record for this bus on this date already exists')
    return success(record.to_dict(), 201)


@fleet_bp.route('/daily-records/<int:record_id>', methods=['GET'])
@api_login_required
def get_daily_record(record_id):
    return success(get_or_404(DailyRecord, record_id, 'Daily record not found').to_dict())


@fleet_bp.route('/daily-records/<int:record_id>', methods=['PUT'])
@api_login_required
def update_daily_record(record_id):
    record = get_or_404(DailyRecord, record_id, 'Daily record not found')
    _apply_daily_record(record, json_body())
    commit_or_duplicate('A record for this bus on this date already exists')
    return success(record.to_dict())


@fleet_bp.route('/daily-records/<int:record_id>', methods=['DELETE'])
@api_login_required
def delete_daily_record(record_id):
    record = get_or_404(DailyRecord, record_id, 'Daily record not found')
    db.session.delete(record)
    db.session.commit()
    return success(message='Daily record deleted')
