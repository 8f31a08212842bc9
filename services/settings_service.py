"""
Settings Service

Key/value application settings with built-in defaults, and the daily
collection share computation that uses them.
"""

from typing import Dict, Any, List, Optional
import logging
from dataclasses import dataclass
from decimal import Decimal
from models import db, Setting
from utils.validators import parse_decimal
from .transaction_helper import TransactionHelper
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

MINIMUM_COLLECTION = 'minimum_collection'
DEFAULT_COOP_CONTRIBUTION = 'default_coop_contribution'
DEFAULT_DRIVER_SHARE_PERCENT = 'default_driver_share_percent'
DEFAULT_ASSIGNEE_SHARE_PERCENT = 'default_assignee_share_percent'
SUNDAY_MINIMUM_COLLECTION = 'sunday_minimum_collection'
SUSPENSION_THRESHOLD = 'suspension_threshold'

DEFAULT_SETTINGS = {
    MINIMUM_COLLECTION: '6500',
    DEFAULT_COOP_CONTRIBUTION: '0',
    DEFAULT_DRIVER_SHARE_PERCENT: '0',
    DEFAULT_ASSIGNEE_SHARE_PERCENT: '0',
    SUNDAY_MINIMUM_COLLECTION: '6500',
    SUSPENSION_THRESHOLD: '3',
}


@dataclass
class DailyComputation:
    total_collection: Decimal
    minimum_collection: Decimal
    excess_collection: Decimal
    diesel_cost: Decimal
    coop_contribution: Decimal
    other_expenses: Decimal
    assignee_share: Decimal
    driver_share: Decimal
    net_income: Decimal

    def to_dict(self):
        return {
            'totalCollection': float(self.total_collection),
            'minimumCollection': float(self.minimum_collection),
            'excessCollection': float(self.excess_collection),
            'dieselCost': float(self.diesel_cost),
            'coopContribution': float(self.coop_contribution),
            'otherExpenses': float(self.other_expenses),
            'assigneeShare': float(self.assignee_share),
            'driverShare': float(self.driver_share),
            'netIncome': float(self.net_income),
        }


def calculate_shares(total_collection: Decimal, diesel_cost: Decimal, coop_contribution: Decimal,
                     other_expenses: Decimal, minimum_collection: Decimal,
                     assignee_share_percent: Decimal, driver_share_percent: Decimal) -> DailyComputation:
    """Split a day's collection after diesel, co-op and other expenses"""
    excess = max(Decimal('0'), total_collection - minimum_collection)
    net_after_expenses = total_collection - diesel_cost - coop_contribution - other_expenses

    assignee_share = net_after_expenses * assignee_share_percent / 100
    driver_share = net_after_expenses * driver_share_percent / 100

    return DailyComputation(
        total_collection=total_collection,
        minimum_collection=minimum_collection,
        excess_collection=excess,
        diesel_cost=diesel_cost,
        coop_contribution=coop_contribution,
        other_expenses=other_expenses,
        assignee_share=assignee_share,
        driver_share=driver_share,
        net_income=net_after_expenses - assignee_share - driver_share,
    )


class SettingsService:
    """Service class for application settings"""

    def get_settings(self) -> Dict[str, str]:
        """All settings, with defaults filled in for keys never saved"""
        settings = dict(DEFAULT_SETTINGS)
        for setting in Setting.query.all():
            settings[setting.key] = setting.value
        return settings

    def get_decimal(self, key: str) -> Decimal:
        value = self.get_settings().get(key, DEFAULT_SETTINGS.get(key, '0'))
        return parse_decimal(value, key, default=Decimal('0'))

    def _upsert(self, key: str, value: Any, description: Optional[str] = None) -> Setting:
        setting = Setting.query.filter_by(key=key).first()
        if setting is None:
            setting = Setting()
            setting.key = key
            db.session.add(setting)
        setting.value = str(value)
        if description is not None:
            setting.description = description
        return setting

    @TransactionHelper.with_transaction
    def save_setting(self, key: str, value: Any, description: Optional[str] = None) -> Setting:
        if not key or value is None:
            raise ValidationError("Key and value are required")
        if key not in DEFAULT_SETTINGS:
            raise ValidationError("Invalid setting key")
        setting = self._upsert(key, value, description)
        logger.info(f"Setting {key} updated to {value}")
        return setting

    @TransactionHelper.with_transaction
    def save_settings(self, updates: List[Dict[str, Any]]) -> List[Setting]:
        """Bulk upsert; unknown keys are skipped"""
        saved = []
        for update in updates or []:
            key = update.get('key')
            if key not in DEFAULT_SETTINGS or update.get('value') is None:
                logger.debug(f"Skipping unknown setting {key}")
                continue
            saved.append(self._upsert(key, update['value'], update.get('description')))
        return saved

    def compute_daily_shares(self, data: Dict[str, Any]) -> DailyComputation:
        """calculate_shares with any missing input taken from settings"""
        def value_or_setting(field, key):
            value = parse_decimal(data.get(field), field)
            return value if value is not None else self.get_decimal(key)

        return calculate_shares(
            total_collection=parse_decimal(data.get('totalCollection'), 'totalCollection', Decimal('0')),
            diesel_cost=parse_decimal(data.get('dieselCost'), 'dieselCost', Decimal('0')),
            coop_contribution=value_or_setting('coopContribution', DEFAULT_COOP_CONTRIBUTION),
            other_expenses=parse_decimal(data.get('otherExpenses'), 'otherExpenses', Decimal('0')),
            minimum_collection=value_or_setting('minimumCollection', MINIMUM_COLLECTION),
            assignee_share_percent=value_or_setting('assigneeSharePercent', DEFAULT_ASSIGNEE_SHARE_PERCENT),
            driver_share_percent=value_or_setting('driverSharePercent', DEFAULT_DRIVER_SHARE_PERCENT),
        )
