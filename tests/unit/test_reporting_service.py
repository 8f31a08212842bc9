"""
Unit tests for reporting aggregations
"""

from datetime import date
from decimal import Decimal

import pytest

from models import ExpenseCategory
from services.reporting_service import ReportingService, group_totals, with_averages, safe_divide
from services.settings_service import SettingsService
from tests.conftest import (AccountsPayableFactory, BusFactory, DailyRecordFactory, DriverFactory,
                            MaintenanceRecordFactory, SparePartFactory)


class TestAggregationHelpers:

    def test_safe_divide_zero_denominator(self):
        assert safe_divide(100, 0) == 0.0
        assert safe_divide(Decimal('0'), Decimal('0')) == 0.0
        assert safe_divide(10, 4) == 2.5

    def test_group_totals_sums_per_group(self):
        samples = [
            {'day': 'mon', 'collection': Decimal('100'), 'trips': 2},
            {'day': 'mon', 'collection': Decimal('300'), 'trips': 4},
            {'day': 'tue', 'collection': None, 'trips': 1},
        ]

        grouped = group_totals(samples, 'day', ['collection', 'trips'])

        assert grouped['mon'] == {'count': 2, 'collection': 400.0, 'trips': 6.0}
        assert grouped['tue'] == {'count': 1, 'collection': 0.0, 'trips': 1.0}

    def test_averages_of_empty_group_are_zero(self):
        result = with_averages({'count': 0}, ['collection', 'trips'])

        assert result['average_collection'] == 0.0
        assert result['average_trips'] == 0.0

    def test_averages(self):
        result = with_averages({'count': 4, 'collection': 1000.0}, ['collection'])
        assert result['average_collection'] == 250.0


class TestDayAnalysis:

    def test_empty_range_is_all_zero(self, db_session):
        result = ReportingService().get_day_analysis()

        assert [d['dayName'] for d in result['dayAnalysis']][0] == 'Monday'
        assert len(result['dayAnalysis']) == 7
        assert all(d['averageCollection'] == 0.0 for d in result['dayAnalysis'])
        assert result['summary']['totalRecords'] == 0

    def test_groups_by_weekday(self, db_session, bus):
        # 2024-01-01 and 2024-01-08 are Mondays, 2024-01-02 a Tuesday
        DailyRecordFactory(bus=bus, date=date(2024, 1, 1), total_collection=Decimal('8000'))
        DailyRecordFactory(bus=bus, date=date(2024, 1, 8), total_collection=Decimal('6000'))
        DailyRecordFactory(bus=bus, date=date(2024, 1, 2), total_collection=Decimal('9000'))

        result = ReportingService().get_day_analysis(date(2024, 1, 1), date(2024, 1, 31))
        by_name = {d['dayName']: d for d in result['dayAnalysis']}

        assert by_name['Monday']['totalRecords'] == 2
        assert by_name['Monday']['totalCollection'] == 14000.0
        assert by_name['Monday']['averageCollection'] == 7000.0
        assert by_name['Monday']['dayOfWeek'] == 1
        assert by_name['Sunday']['dayOfWeek'] == 0
        assert by_name['Sunday']['averageCollection'] == 0.0
        assert result['summary']['bestDay'] == 'Tuesday'
        assert result['summary']['totalRecords'] == 3

    def test_date_filter(self, db_session, bus):
        DailyRecordFactory(bus=bus, date=date(2024, 1, 1))
        DailyRecordFactory(bus=bus, date=date(2024, 2, 1))

        result = ReportingService().get_day_analysis(date(2024, 2, 1), date(2024, 2, 29))

        assert result['summary']['totalRecords'] == 1


class TestDieselConsumption:

    def test_bus_without_records_has_zero_efficiency(self, db_session):
        BusFactory()

        result = ReportingService().get_diesel_consumption()

        row = result['byBus'][0]
        assert row['totalRecords'] == 0
        assert row['kmPerLiter'] == 0.0
        assert row['costPerKm'] == 0.0
        assert row['averageLitersPerDay'] == 0.0
        assert result['busChart'] == []
        assert result['totals']['overallKmPerLiter'] == 0.0

    def test_efficiency_per_bus(self, db_session, bus):
        DailyRecordFactory(bus=bus, diesel_liters=Decimal('50'), diesel_cost=Decimal('3000'),
                           odometer_start=Decimal('1000'), odometer_end=Decimal('1200'),
                           total_collection=Decimal('10000'))
        DailyRecordFactory(bus=bus, diesel_liters=Decimal('30'), diesel_cost=Decimal('1800'),
                           odometer_start=Decimal('1200'), odometer_end=Decimal('1320'),
                           total_collection=Decimal('8000'))

        result = ReportingService().get_diesel_consumption()

        row = next(r for r in result['byBus'] if r['busId'] == bus.id)
        assert row['totalDieselLiters'] == 80.0
        assert row['totalDistance'] == 320.0
        assert row['kmPerLiter'] == pytest.approx(4.0)
        assert row['costPerKm'] == pytest.approx(15.0)
        assert row['dieselCostPercentage'] == pytest.approx(26.6667, rel=1e-4)
        assert len(result['dailyChart']) == 2
        assert result['totals']['averageCostPerLiter'] == pytest.approx(60.0)

    def test_odometer_rollback_counts_as_no_distance(self, db_session, bus):
        DailyRecordFactory(bus=bus, odometer_start=Decimal('500'), odometer_end=Decimal('400'))

        row = ReportingService().get_diesel_consumption()['byBus'][0]

        assert row['totalDistance'] == 0.0
        assert row['kmPerLiter'] == 0.0


class TestDriverPerformance:

    def test_ranked_by_total_collection(self, db_session, bus):
        low = DriverFactory(name='Low Earner')
        high = DriverFactory(name='High Earner')
        idle = DriverFactory(name='Idle Driver')
        DailyRecordFactory(bus=bus, driver=low, total_collection=Decimal('5000'), trip_count=5)
        DailyRecordFactory(bus=bus, driver=high, total_collection=Decimal('9000'), trip_count=9)
        DailyRecordFactory(bus=bus, driver=high, total_collection=Decimal('7000'), trip_count=7)

        performance = ReportingService().get_driver_performance()

        assert [p['driverName'] for p in performance] == ['High Earner', 'Low Earner', 'Idle Driver']
        assert [p['rank'] for p in performance] == [1, 2, 3]
        assert performance[0]['averageCollection'] == 8000.0
        assert performance[0]['collectionPerTrip'] == 1000.0
        idle_row = performance[2]
        assert idle_row['driverId'] == idle.id
        assert idle_row['totalDays'] == 0
        assert idle_row['averageCollection'] == 0.0
        assert idle_row['averageTripsPerDay'] == 0.0


class TestSummaries:

    def test_summary_totals(self, db_session, bus):
        DailyRecordFactory(bus=bus, total_collection=Decimal('8000'), date=date(2024, 1, 3))
        DailyRecordFactory(bus=bus, total_collection=Decimal('6000'), date=date(2024, 1, 4))
        MaintenanceRecordFactory(bus=bus, total_cost=Decimal('1500'), date=date(2024, 1, 5))
        SparePartFactory(bus=bus, total_cost=Decimal('9000'), purchase_date=date(2024, 1, 6))

        summary = ReportingService().get_summary(date(2024, 1, 1), date(2024, 1, 31))

        assert summary['totalRecords'] == 2
        assert summary['averageCollection'] == 7000.0
        assert summary['totalMaintenanceCost'] == 1500.0
        assert summary['totalSparePartsCost'] == 9000.0
        assert summary['activeBuses'] == 1

    def test_summary_without_records(self, db_session):
        summary = ReportingService().get_summary()
        assert summary['totalRecords'] == 0
        assert summary['averageCollection'] == 0.0

    def test_payables_summary(self, db_session, bus):
        today = date(2024, 3, 1)
        AccountsPayableFactory(bus=bus, amount=Decimal('1000'), due_date=date(2024, 2, 1))
        AccountsPayableFactory(bus=bus, amount=Decimal('500'), due_date=date(2024, 4, 1),
                               category=ExpenseCategory.LABOR)
        AccountsPayableFactory(bus=bus, amount=Decimal('300'), paid_amount=Decimal('300'),
                               is_paid=True, due_date=date(2024, 1, 1))

        summary = ReportingService().get_payables_summary(today=today)

        assert summary['totalUnpaid'] == 1500.0
        assert summary['unpaidCount'] == 2
        assert summary['totalPaid'] == 300.0
        assert summary['paidCount'] == 1
        assert summary['overdueAmount'] == 1000.0
        assert summary['overdueCount'] == 1
        assert summary['byCategory'] == [
            {'category': 'LABOR', 'amount': 500.0, 'count': 1},
            {'category': 'SPARE_PARTS', 'amount': 1000.0, 'count': 1},
        ]


class TestBusPerformance:

    def test_profitability_and_ranking(self, db_session, bus):
        idle = BusFactory(bus_number='000')
        DailyRecordFactory(bus=bus, date=date(2024, 1, 2))
        DailyRecordFactory(bus=bus, date=date(2024, 1, 3))
        MaintenanceRecordFactory(bus=bus, total_cost=Decimal('1000'), date=date(2024, 1, 5))

        result = ReportingService().get_bus_performance()

        assert [b['busId'] for b in result['buses']] == [bus.id, idle.id]
        row = result['buses'][0]
        assert row['rank'] == 1
        assert row['operatorName'] == bus.operator.name
        assert row['totalDays'] == 2
        assert row['totalCollection'] == 16000.0
        assert row['averageCollection'] == 8000.0
        assert row['totalDistance'] == 400.0
        assert row['kmPerLiter'] == pytest.approx(4.0)
        assert row['totalMaintenanceCost'] == 1000.0
        assert row['totalExpenses'] == 7000.0
        assert row['netIncome'] == 7200.0
        assert row['profitMargin'] == pytest.approx(45.0)
        assert row['collectionPerKm'] == pytest.approx(40.0)

    def test_bus_without_records_is_zero_guarded(self, db_session, bus):
        row = ReportingService().get_bus_performance()['buses'][0]

        assert row['totalDays'] == 0
        assert row['averageCollection'] == 0.0
        assert row['kmPerLiter'] == 0.0
        assert row['profitMargin'] == 0.0
        assert row['collectionPerKm'] == 0.0

    def test_top_performers(self, db_session, bus):
        efficient = BusFactory()
        DailyRecordFactory(bus=bus, total_collection=Decimal('9000'))
        DailyRecordFactory(bus=efficient, total_collection=Decimal('7000'),
                           diesel_liters=Decimal('20'))
        BusFactory()

        top = ReportingService().get_bus_performance()['topPerformers']

        assert top['byCollection'][0]['busId'] == bus.id
        assert [b['busId'] for b in top['byEfficiency']] == [efficient.id, bus.id]
        assert len(top['byProfit']) == 3

    def test_maintenance_outside_range_is_ignored(self, db_session, bus):
        DailyRecordFactory(bus=bus, date=date(2024, 2, 10))
        MaintenanceRecordFactory(bus=bus, total_cost=Decimal('900'), date=date(2024, 1, 5))

        row = ReportingService().get_bus_performance(date(2024, 2, 1), date(2024, 2, 29))['buses'][0]

        assert row['totalMaintenanceCost'] == 0.0
        assert row['totalDays'] == 1


class TestAnomalyDetection:

    @pytest.fixture
    def fleet_days(self, db_session):
        """
        2024-01-03 (Wednesday): fleet average 8000, the third driver collects
        4000 with a high diesel ratio. 2024-01-07 (Sunday): the fleet averages
        3000, a slow day.
        """
        buses = [BusFactory() for _ in range(3)]
        drivers = [DriverFactory(name=name) for name in ('Ana', 'Ben', 'Carlo')]
        wednesday, sunday = date(2024, 1, 3), date(2024, 1, 7)
        for bus, driver, collection in zip(buses, drivers, ['10000', '10000', '4000']):
            DailyRecordFactory(bus=bus, driver=driver, date=wednesday,
                               total_collection=Decimal(collection), diesel_cost=Decimal('2000'))
        DailyRecordFactory(bus=buses[0], driver=drivers[0], date=sunday,
                           total_collection=Decimal('5000'), diesel_cost=Decimal('1000'))
        DailyRecordFactory(bus=buses[2], driver=drivers[2], date=sunday,
                           total_collection=Decimal('1000'), diesel_cost=Decimal('1000'),
                           diesel_liters=Decimal('0'))

        settings = SettingsService()
        settings.save_setting('sunday_minimum_collection', '5000')
        settings.save_setting('suspension_threshold', '2')
        return drivers

    def test_daily_flags(self, fleet_days):
        result = ReportingService().get_anomaly_detection()

        sunday, wednesday = result['dailyAnalysis']
        assert sunday['date'] == '2024-01-07'
        assert sunday['isSlowDay'] is True
        assert sunday['fleetAvgCollection'] == 3000.0
        assert [r['driverName'] for r in sunday['records']] == ['Carlo', 'Ana']
        assert not any(r['isSuspicious'] for r in sunday['records'])
        assert [r['isBelowMinimum'] for r in sunday['records']] == [True, False]
        assert sunday['records'][0]['kmPerLiter'] is None

        assert wednesday['isSlowDay'] is False
        assert wednesday['busCount'] == 3
        assert wednesday['fleetAvgCollection'] == 8000.0
        assert wednesday['fleetAvgDieselRatio'] == pytest.approx(0.3)
        lowest = wednesday['records'][0]
        assert lowest['driverName'] == 'Carlo'
        assert lowest['deviationPercent'] == pytest.approx(-50.0)
        assert lowest['dieselRatio'] == pytest.approx(0.5)
        assert lowest['isSuspicious'] is True
        assert lowest['kmPerLiter'] == pytest.approx(4.0)
        assert [r['isSuspicious'] for r in wednesday['records'][1:]] == [False, False]

    def test_driver_summary(self, fleet_days):
        result = ReportingService().get_anomaly_detection()

        carlo = result['driverSummary'][0]
        assert carlo['driverId'] == fleet_days[2].id
        assert carlo['totalDays'] == 2
        assert carlo['belowMinimumCount'] == 2
        assert carlo['suspiciousDaysCount'] == 1
        assert carlo['qualifiesForSuspension'] is True
        assert [d['date'] for d in carlo['worstDays']] == ['2024-01-07', '2024-01-03']
        assert carlo['worstDays'][0]['fleetAvg'] == 3000.0
        assert all(not d['qualifiesForSuspension'] for d in result['driverSummary'][1:])

        assert result['summary'] == {
            'totalRecords': 5,
            'belowMinimumRecords': 2,
            'suspiciousRecords': 1,
            'driversAtRisk': 1,
            'suspensionThreshold': 2,
        }

    def test_date_range(self, fleet_days):
        result = ReportingService().get_anomaly_detection(date(2024, 1, 1), date(2024, 1, 5))

        assert [d['date'] for d in result['dailyAnalysis']] == ['2024-01-03']
        assert result['summary']['belowMinimumRecords'] == 1

    def test_no_records(self, db_session):
        result = ReportingService().get_anomaly_detection()

        assert result['dailyAnalysis'] == []
        assert result['driverSummary'] == []
        assert result['summary']['totalRecords'] == 0
        assert result['summary']['suspensionThreshold'] == 3
