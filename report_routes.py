from flask import Blueprint, request
from auth import api_login_required
from services.reporting_service import ReportingService
from utils.responses import success
from utils.validators import parse_date, parse_int

reports_bp = Blueprint('reports', __name__)

reporting_service = ReportingService()


def _date_range():
    return (parse_date(request.args.get('startDate'), 'startDate'),
            parse_date(request.args.get('endDate'), 'endDate'))


@reports_bp.route('/day-analysis')
@api_login_required
def day_analysis():
    start_date, end_date = _date_range()
    return success(reporting_service.get_day_analysis(start_date, end_date))


@reports_bp.route('/diesel-consumption')
@api_login_required
def diesel_consumption():
    start_date, end_date = _date_range()
    bus_id = parse_int(request.args.get('busId'), 'busId')
    return success(reporting_service.get_diesel_consumption(start_date, end_date, bus_id))


@reports_bp.route('/driver-performance')
@api_login_required
def driver_performance():
    start_date, end_date = _date_range()
    return success(reporting_service.get_driver_performance(start_date, end_date))


@reports_bp.route('/summary')
@api_login_required
def summary():
    start_date, end_date = _date_range()
    return success(reporting_service.get_summary(start_date, end_date))


@reports_bp.route('/bus-performance')
@api_login_required
def bus_performance():
    start_date, end_date = _date_range()
    return success(reporting_service.get_bus_performance(start_date, end_date))


@reports_bp.route('/anomaly-detection')
@api_login_required
def anomaly_detection():
    start_date, end_date = _date_range()
    return success(reporting_service.get_anomaly_detection(start_date, end_date))
