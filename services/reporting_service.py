"""
Reporting Service

Dashboard and analytics aggregations over daily records and payables:
day-of-week analysis, diesel consumption, driver and bus performance,
anomaly detection and the accounts-payable summary. All averages are
zero-guarded: a group with no samples averages to 0.
"""

from typing import Optional, Dict, Any, List, Iterable
import logging
from collections import defaultdict
from datetime import date
from sqlalchemy import func
from models import (db, DailyRecord, Bus, Driver, AccountsPayable, MaintenanceRecord,
                    SparePart)
from timezone_utils import get_local_date
from .settings_service import (SettingsService, MINIMUM_COLLECTION, SUNDAY_MINIMUM_COLLECTION,
                               SUSPENSION_THRESHOLD)

logger = logging.getLogger(__name__)

# Monday first, matching date.weekday()
DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def _num(value) -> float:
    return float(value) if value is not None else 0.0


def safe_divide(numerator, denominator) -> float:
    """numerator / denominator, or 0 when the denominator is zero"""
    return float(numerator) / float(denominator) if denominator else 0.0


def group_totals(samples: Iterable[Dict[str, Any]], key: str, fields: List[str]) -> Dict[Any, Dict[str, float]]:
    """
    Sum numeric fields per group.

    Args:
        samples: Mappings holding the group key and the numeric fields
        key: Name of the grouping field
        fields: Numeric fields to total

    Returns:
        {group: {'count': n, field: total, ...}}
    """
    groups = defaultdict(lambda: dict({'count': 0}, **{f: 0.0 for f in fields}))
    for sample in samples:
        group = groups[sample[key]]
        group['count'] += 1
        for field in fields:
            group[field] += _num(sample.get(field))
    return dict(groups)


def with_averages(totals: Dict[str, float], fields: List[str]) -> Dict[str, float]:
    """Add average_<field> for each field, zero-guarded on the sample count"""
    result = dict(totals)
    for field in fields:
        result[f'average_{field}'] = safe_divide(totals.get(field, 0.0), totals.get('count', 0))
    return result


class ReportingService:
    """Service class for reporting and analytics operations"""

    def _daily_records(self, start_date: Optional[date], end_date: Optional[date],
                       bus_id: Optional[int] = None, driver_id: Optional[int] = None) -> List[DailyRecord]:
        query = DailyRecord.query
        if start_date:
            query = query.filter(DailyRecord.date >= start_date)
        if end_date:
            query = query.filter(DailyRecord.date <= end_date)
        if bus_id:
            query = query.filter(DailyRecord.bus_id == bus_id)
        if driver_id:
            query = query.filter(DailyRecord.driver_id == driver_id)
        return query.order_by(DailyRecord.date).all()

    def get_day_analysis(self, start_date: Optional[date] = None,
                         end_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Collection, trips, passengers and diesel grouped by day of week.

        Returns:
            dict with 'dayAnalysis' (Monday..Sunday) and a best/worst 'summary'
        """
        records = self._daily_records(start_date, end_date)
        fields = ['collection', 'trips', 'passengers', 'diesel_cost', 'driver_share', 'assignee_share']
        samples = [
            {
                'weekday': r.date.weekday(),
                'collection': r.total_collection,
                'trips': r.trip_count,
                'passengers': r.passenger_count,
                'diesel_cost': r.diesel_cost,
                'driver_share': r.driver_share,
                'assignee_share': r.assignee_share,
            }
            for r in records
        ]
        grouped = group_totals(samples, 'weekday', fields)

        day_analysis = []
        for weekday, day_name in enumerate(DAY_NAMES):
            totals = with_averages(grouped.get(weekday, {'count': 0}), fields)
            day_analysis.append({
                'dayOfWeek': (weekday + 1) % 7,  # 0 = Sunday
                'dayName': day_name,
                'totalRecords': totals['count'],
                'totalCollection': totals.get('collection', 0.0),
                'averageCollection': totals['average_collection'],
                'totalTrips': totals.get('trips', 0.0),
                'averageTrips': totals['average_trips'],
                'totalPassengers': totals.get('passengers', 0.0),
                'averagePassengers': totals['average_passengers'],
                'totalDieselCost': totals.get('diesel_cost', 0.0),
                'averageDieselCost': totals['average_diesel_cost'],
                'totalDriverShare': totals.get('driver_share', 0.0),
                'totalAssigneeShare': totals.get('assignee_share', 0.0),
            })

        # Stable sort keeps Monday-first order among ties
        ranked = sorted(day_analysis, key=lambda d: d['averageCollection'], reverse=True)
        best, worst = ranked[0], ranked[-1]

        return {
            'dayAnalysis': day_analysis,
            'summary': {
                'bestDay': best['dayName'],
                'bestDayAverage': best['averageCollection'],
                'worstDay': worst['dayName'],
                'worstDayAverage': worst['averageCollection'],
                'totalRecords': len(records),
            },
        }

    def get_diesel_consumption(self, start_date: Optional[date] = None,
                               end_date: Optional[date] = None,
                               bus_id: Optional[int] = None) -> Dict[str, Any]:
        """Diesel liters, cost and efficiency per active bus plus daily totals"""
        buses = Bus.query.filter_by(is_active=True).order_by(Bus.bus_number).all()
        records = self._daily_records(start_date, end_date)
        records_by_bus = defaultdict(list)
        for record in records:
            records_by_bus[record.bus_id].append(record)

        by_bus = []
        for bus in buses:
            bus_records = records_by_bus.get(bus.id, [])
            total_liters = sum(_num(r.diesel_liters) for r in bus_records)
            total_cost = sum(_num(r.diesel_cost) for r in bus_records)
            total_collection = sum(_num(r.total_collection) for r in bus_records)
            total_distance = sum(_num(r.distance) for r in bus_records)
            count = len(bus_records)

            by_bus.append({
                'busId': bus.id,
                'busNumber': bus.bus_number,
                'plateNumber': bus.plate_number,
                'totalRecords': count,
                'totalDieselLiters': total_liters,
                'totalDieselCost': total_cost,
                'totalCollection': total_collection,
                'totalDistance': total_distance,
                'kmPerLiter': safe_divide(total_distance, total_liters),
                'costPerKm': safe_divide(total_cost, total_distance),
                'averageLitersPerDay': safe_divide(total_liters, count),
                'averageCostPerDay': safe_divide(total_cost, count),
                'dieselCostPercentage': safe_divide(total_cost, total_collection) * 100,
            })

        chart_records = [r for r in records if not bus_id or r.bus_id == bus_id]
        daily = group_totals(
            ({'date': r.date, 'liters': r.diesel_liters, 'cost': r.diesel_cost} for r in chart_records),
            'date', ['liters', 'cost'],
        )
        daily_chart = [
            {'date': day.isoformat(), 'totalLiters': daily[day]['liters'], 'totalCost': daily[day]['cost']}
            for day in sorted(daily)
        ]

        bus_chart = [
            {
                'busNumber': f"Bus #{b['busNumber']}",
                'totalLiters': b['totalDieselLiters'],
                'totalCost': b['totalDieselCost'],
                'kmPerLiter': b['kmPerLiter'],
            }
            for b in by_bus if b['totalDieselLiters'] > 0
        ]

        totals = {
            'totalLiters': sum(b['totalDieselLiters'] for b in by_bus),
            'totalCost': sum(b['totalDieselCost'] for b in by_bus),
            'totalDistance': sum(b['totalDistance'] for b in by_bus),
            'totalRecords': sum(b['totalRecords'] for b in by_bus),
        }
        totals['overallKmPerLiter'] = safe_divide(totals['totalDistance'], totals['totalLiters'])
        totals['averageCostPerLiter'] = safe_divide(totals['totalCost'], totals['totalLiters'])

        return {'byBus': by_bus, 'dailyChart': daily_chart, 'busChart': bus_chart, 'totals': totals}

    def get_driver_performance(self, start_date: Optional[date] = None,
                               end_date: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Per-driver totals and per-day averages, ranked by total collection.

        Args:
            start_date: Inclusive lower bound on record date
            end_date: Inclusive upper bound on record date

        Returns:
            List of driver performance rows with a 1-based 'rank'
        """
        drivers = Driver.query.filter_by(is_active=True).order_by(Driver.name).all()
        records_by_driver = defaultdict(list)
        for record in self._daily_records(start_date, end_date):
            records_by_driver[record.driver_id].append(record)

        performance = []
        for driver in drivers:
            records = records_by_driver.get(driver.id, [])
            days = len(records)
            total_collection = sum(_num(r.total_collection) for r in records)
            total_share = sum(_num(r.driver_share) for r in records)
            total_trips = sum(r.trip_count or 0 for r in records)
            total_passengers = sum(r.passenger_count or 0 for r in records)

            performance.append({
                'driverId': driver.id,
                'driverName': driver.name,
                'totalDays': days,
                'totalCollection': total_collection,
                'averageCollection': safe_divide(total_collection, days),
                'totalDriverShare': total_share,
                'averageDriverShare': safe_divide(total_share, days),
                'totalTrips': total_trips,
                'averageTripsPerDay': safe_divide(total_trips, days),
                'totalPassengers': total_passengers,
                'averagePassengersPerDay': safe_divide(total_passengers, days),
                'totalDieselLiters': sum(_num(r.diesel_liters) for r in records),
                'totalDieselCost': sum(_num(r.diesel_cost) for r in records),
                'collectionPerTrip': safe_divide(total_collection, total_trips),
            })

        performance.sort(key=lambda d: d['totalCollection'], reverse=True)
        for rank, row in enumerate(performance, start=1):
            row['rank'] = rank
        return performance

    def get_summary(self, start_date: Optional[date] = None,
                    end_date: Optional[date] = None) -> Dict[str, Any]:
        """Headline totals for the dashboard"""
        records = self._daily_records(start_date, end_date)
        days = len(records)
        total_collection = sum(_num(r.total_collection) for r in records)

        maintenance_query = db.session.query(func.coalesce(func.sum(MaintenanceRecord.total_cost), 0))
        parts_query = db.session.query(func.coalesce(func.sum(SparePart.total_cost), 0))
        if start_date:
            maintenance_query = maintenance_query.filter(MaintenanceRecord.date >= start_date)
            parts_query = parts_query.filter(SparePart.purchase_date >= start_date)
        if end_date:
            maintenance_query = maintenance_query.filter(MaintenanceRecord.date <= end_date)
            parts_query = parts_query.filter(SparePart.purchase_date <= end_date)

        return {
            'totalRecords': days,
            'totalCollection': total_collection,
            'averageCollection': safe_divide(total_collection, days),
            'totalDieselCost': sum(_num(r.diesel_cost) for r in records),
            'totalDriverShare': sum(_num(r.driver_share) for r in records),
            'totalAssigneeShare': sum(_num(r.assignee_share) for r in records),
            'totalCoopContribution': sum(_num(r.coop_contribution) for r in records),
            'totalMaintenanceCost': _num(maintenance_query.scalar()),
            'totalSparePartsCost': _num(parts_query.scalar()),
            'activeBuses': Bus.query.filter_by(is_active=True).count(),
            'activeDrivers': Driver.query.filter_by(is_active=True).count(),
        }

    def get_bus_performance(self, start_date: Optional[date] = None,
                            end_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Per-bus collection, costs and profitability, ranked by total collection.

        Args:
            start_date: Inclusive lower bound on record and maintenance date
            end_date: Inclusive upper bound on record and maintenance date

        Returns:
            dict with the ranked 'buses' and the top five 'topPerformers'
            by collection, fuel efficiency and net income
        """
        fields = ['collection', 'assignee_share', 'driver_share', 'trips', 'passengers',
                  'diesel_liters', 'diesel_cost', 'coop_contribution', 'other_expenses', 'distance']
        per_bus = group_totals(
            (
                {
                    'bus_id': r.bus_id,
                    'collection': r.total_collection,
                    'assignee_share': r.assignee_share,
                    'driver_share': r.driver_share,
                    'trips': r.trip_count,
                    'passengers': r.passenger_count,
                    'diesel_liters': r.diesel_liters,
                    'diesel_cost': r.diesel_cost,
                    'coop_contribution': r.coop_contribution,
                    'other_expenses': r.other_expenses,
                    'distance': r.distance,
                }
                for r in self._daily_records(start_date, end_date)
            ),
            'bus_id', fields,
        )

        maintenance_query = db.session.query(
            MaintenanceRecord.bus_id, func.coalesce(func.sum(MaintenanceRecord.total_cost), 0)
        )
        if start_date:
            maintenance_query = maintenance_query.filter(MaintenanceRecord.date >= start_date)
        if end_date:
            maintenance_query = maintenance_query.filter(MaintenanceRecord.date <= end_date)
        maintenance_by_bus = {
            bus_id: _num(total) for bus_id, total in maintenance_query.group_by(MaintenanceRecord.bus_id)
        }

        no_records = dict({'count': 0}, **dict.fromkeys(fields, 0.0))
        buses = []
        for bus in Bus.query.filter_by(is_active=True).order_by(Bus.bus_number).all():
            totals = per_bus.get(bus.id, no_records)
            days = totals['count']
            maintenance_cost = maintenance_by_bus.get(bus.id, 0.0)
            total_expenses = (totals['diesel_cost'] + totals['coop_contribution']
                              + totals['other_expenses'] + maintenance_cost)
            net_income = (totals['collection'] - total_expenses
                          - totals['assignee_share'] - totals['driver_share'])

            buses.append({
                'busId': bus.id,
                'busNumber': bus.bus_number,
                'plateNumber': bus.plate_number,
                'operatorName': bus.operator.name if bus.operator else 'N/A',
                'totalDays': days,
                'totalCollection': totals['collection'],
                'averageCollection': safe_divide(totals['collection'], days),
                'totalAssigneeShare': totals['assignee_share'],
                'totalDriverShare': totals['driver_share'],
                'totalTrips': totals['trips'],
                'averageTripsPerDay': safe_divide(totals['trips'], days),
                'totalPassengers': totals['passengers'],
                'averagePassengersPerDay': safe_divide(totals['passengers'], days),
                'totalDieselLiters': totals['diesel_liters'],
                'totalDieselCost': totals['diesel_cost'],
                'totalDistance': totals['distance'],
                'kmPerLiter': safe_divide(totals['distance'], totals['diesel_liters']),
                'totalMaintenanceCost': maintenance_cost,
                'totalExpenses': total_expenses,
                'netIncome': net_income,
                'profitMargin': safe_divide(net_income, totals['collection']) * 100,
                'collectionPerKm': safe_divide(totals['collection'], totals['distance']),
            })

        buses.sort(key=lambda b: b['totalCollection'], reverse=True)
        for rank, row in enumerate(buses, start=1):
            row['rank'] = rank

        return {
            'buses': buses,
            'topPerformers': {
                'byCollection': buses[:5],
                'byEfficiency': sorted((b for b in buses if b['kmPerLiter'] > 0),
                                       key=lambda b: b['kmPerLiter'], reverse=True)[:5],
                'byProfit': sorted(buses, key=lambda b: b['netIncome'], reverse=True)[:5],
            },
        }

    def get_anomaly_detection(self, start_date: Optional[date] = None,
                              end_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Flag collections that fall short against the fleet on the same day.

        A record is below minimum when its collection is under the day's
        minimum (Sunday has its own). It is suspicious when it is more than
        20% under the fleet average while its diesel-to-collection ratio is
        more than 1.2 times the fleet's, unless the whole fleet averaged under
        the minimum that day. Drivers with at least suspension_threshold
        below-minimum days qualify for suspension.
        """
        settings = SettingsService()
        weekday_minimum = _num(settings.get_decimal(MINIMUM_COLLECTION))
        sunday_minimum = _num(settings.get_decimal(SUNDAY_MINIMUM_COLLECTION))
        suspension_threshold = int(settings.get_decimal(SUSPENSION_THRESHOLD))

        records = self._daily_records(start_date, end_date)
        records_by_date = defaultdict(list)
        for record in records:
            records_by_date[record.date].append(record)
        daily_totals = group_totals(
            ({'date': r.date, 'collection': r.total_collection, 'diesel_cost': r.diesel_cost} for r in records),
            'date', ['collection', 'diesel_cost'],
        )

        daily_analysis = []
        driver_days = defaultdict(list)
        driver_names = {}
        for day in sorted(records_by_date, reverse=True):
            totals = with_averages(daily_totals[day], ['collection', 'diesel_cost'])
            fleet_avg_collection = totals['average_collection']
            minimum = sunday_minimum if day.weekday() == 6 else weekday_minimum
            is_slow_day = fleet_avg_collection < minimum

            ratios = [safe_divide(r.diesel_cost, r.total_collection) for r in records_by_date[day]]
            positive_ratios = [ratio for ratio in ratios if ratio > 0]
            fleet_avg_ratio = safe_divide(sum(positive_ratios), len(positive_ratios))

            analysed = []
            for record, ratio in zip(records_by_date[day], ratios):
                collection = _num(record.total_collection)
                liters = _num(record.diesel_liters)
                distance = _num(record.distance)
                deviation = safe_divide(collection - fleet_avg_collection, fleet_avg_collection) * 100
                analysed.append({
                    'busNumber': record.bus.bus_number,
                    'driverId': record.driver_id,
                    'driverName': record.driver.name,
                    'collection': collection,
                    'dieselCost': _num(record.diesel_cost),
                    'dieselRatio': ratio,
                    'deviationPercent': deviation,
                    'isBelowMinimum': collection < minimum,
                    'isSuspicious': (not is_slow_day and deviation < -20
                                     and ratio > fleet_avg_ratio * 1.2),
                    'kmPerLiter': distance / liters if distance > 0 and liters > 0 else None,
                })
            analysed.sort(key=lambda r: r['collection'])

            daily_analysis.append({
                'date': day.isoformat(),
                'fleetAvgCollection': fleet_avg_collection,
                'fleetAvgDieselCost': totals['average_diesel_cost'],
                'fleetAvgDieselRatio': fleet_avg_ratio,
                'busCount': totals['count'],
                'isSlowDay': is_slow_day,
                'records': analysed,
            })

            for row in analysed:
                driver_names[row['driverId']] = row['driverName']
                driver_days[row['driverId']].append(dict(row, date=day.isoformat(),
                                                         fleetAvg=fleet_avg_collection))

        driver_summary = []
        for driver_id, days in driver_days.items():
            below_minimum = sum(1 for d in days if d['isBelowMinimum'])
            worst = sorted(days, key=lambda d: d['deviationPercent'])[:3]
            driver_summary.append({
                'driverId': driver_id,
                'driverName': driver_names[driver_id],
                'totalDays': len(days),
                'belowMinimumCount': below_minimum,
                'suspiciousDaysCount': sum(1 for d in days if d['isSuspicious']),
                'avgDeviation': safe_divide(sum(d['deviationPercent'] for d in days), len(days)),
                'avgDieselRatio': safe_divide(sum(d['dieselRatio'] for d in days), len(days)),
                'qualifiesForSuspension': below_minimum >= suspension_threshold,
                'worstDays': [
                    {'date': d['date'], 'collection': d['collection'],
                     'fleetAvg': d['fleetAvg'], 'deviation': d['deviationPercent']}
                    for d in worst
                ],
            })
        driver_summary.sort(key=lambda d: d['belowMinimumCount'], reverse=True)

        all_rows = [row for day in daily_analysis for row in day['records']]
        return {
            'dailyAnalysis': daily_analysis,
            'driverSummary': driver_summary,
            'summary': {
                'totalRecords': len(records),
                'belowMinimumRecords': sum(1 for r in all_rows if r['isBelowMinimum']),
                'suspiciousRecords': sum(1 for r in all_rows if r['isSuspicious']),
                'driversAtRisk': sum(1 for d in driver_summary if d['qualifiesForSuspension']),
                'suspensionThreshold': suspension_threshold,
            },
        }

    def get_payables_summary(self, bus_id: Optional[int] = None,
                             today: Optional[date] = None) -> Dict[str, Any]:
        """Unpaid, paid and overdue totals, plus unpaid amounts per category"""
        today = today or get_local_date()
        query = AccountsPayable.query
        if bus_id:
            query = query.filter(AccountsPayable.bus_id == bus_id)
        payables = query.all()

        unpaid = [p for p in payables if not p.is_paid]
        paid = [p for p in payables if p.is_paid]
        overdue = [p for p in unpaid if p.is_overdue(today)]

        by_category = group_totals(
            ({'category': p.category.value, 'amount': p.amount} for p in unpaid),
            'category', ['amount'],
        )

        return {
            'totalUnpaid': sum(_num(p.amount) for p in unpaid),
            'unpaidCount': len(unpaid),
            'totalPaid': sum(_num(p.paid_amount) for p in paid),
            'paidCount': len(paid),
            'overdueAmount': sum(_num(p.amount) for p in overdue),
            'overdueCount': len(overdue),
            'byCategory': [
                {'category': category, 'amount': totals['amount'], 'count': totals['count']}
                for category, totals in sorted(by_category.items())
            ],
        }
