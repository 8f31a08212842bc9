import os
from datetime import datetime, date
import pytz

DEFAULT_TIMEZONE = 'Asia/Manila'


def get_app_timezone():
    """Timezone the fleet operates in (APP_TIMEZONE, default Asia/Manila)"""
    try:
        return pytz.timezone(os.environ.get('APP_TIMEZONE', DEFAULT_TIMEZONE))
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(DEFAULT_TIMEZONE)


def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return datetime.now(get_app_timezone()).replace(tzinfo=None)


def get_local_date() -> date:
    return get_local_time_naive().date()
