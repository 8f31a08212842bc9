"""
Integration tests for the reports endpoints
"""

from datetime import date
from decimal import Decimal

import pytest

from tests.conftest import DailyRecordFactory


class TestReportsAPI:

    @pytest.mark.parametrize('path', [
        '/api/reports/day-analysis',
        '/api/reports/diesel-consumption',
        '/api/reports/driver-performance',
        '/api/reports/summary',
        '/api/reports/bus-performance',
        '/api/reports/anomaly-detection',
    ])
    def test_reports_with_no_data(self, admin_client, path):
        response = admin_client.get(path)

        assert response.status_code == 200
        assert response.get_json()['success'] is True

    def test_day_analysis_range(self, admin_client, bus):
        DailyRecordFactory(bus=bus, date=date(2024, 1, 1), total_collection=Decimal('8000'))
        DailyRecordFactory(bus=bus, date=date(2024, 3, 1), total_collection=Decimal('6000'))

        data = admin_client.get(
            '/api/reports/day-analysis?startDate=2024-01-01&endDate=2024-01-31'
        ).get_json()['data']

        assert data['summary']['totalRecords'] == 1
        assert data['summary']['bestDay'] == 'Monday'
        assert data['summary']['bestDayAverage'] == 8000.0

    def test_diesel_consumption_bus_filter(self, admin_client, bus):
        DailyRecordFactory(bus=bus)
        DailyRecordFactory()

        data = admin_client.get(f'/api/reports/diesel-consumption?busId={bus.id}').get_json()['data']

        assert len(data['byBus']) == 2
        assert len(data['dailyChart']) == 1

    def test_invalid_date(self, admin_client):
        response = admin_client.get('/api/reports/summary?startDate=2024-13-01')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid startDate, expected YYYY-MM-DD'

    def test_bus_performance(self, admin_client, bus):
        DailyRecordFactory(bus=bus, date=date(2024, 1, 1))
        DailyRecordFactory(bus=bus, date=date(2024, 3, 1))

        data = admin_client.get(
            '/api/reports/bus-performance?startDate=2024-01-01&endDate=2024-01-31'
        ).get_json()['data']

        assert data['buses'][0]['busNumber'] == bus.bus_number
        assert data['buses'][0]['totalDays'] == 1
        assert data['topPerformers']['byCollection'][0]['rank'] == 1

    def test_anomaly_detection(self, admin_client, bus):
        DailyRecordFactory(bus=bus, date=date(2024, 1, 3), total_collection=Decimal('4000'))

        data = admin_client.get('/api/reports/anomaly-detection').get_json()['data']

        assert data['dailyAnalysis'][0]['isSlowDay'] is True
        assert data['dailyAnalysis'][0]['records'][0]['isBelowMinimum'] is True
        assert data['driverSummary'][0]['belowMinimumCount'] == 1
        assert data['summary']['suspensionThreshold'] == 3

    def test_new_reports_require_login(self, client):
        assert client.get('/api/reports/bus-performance').status_code == 401
        assert client.get('/api/reports/anomaly-detection').status_code == 401
