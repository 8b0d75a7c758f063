import os
from datetime import datetime
import pytz


def get_app_timezone():
    """Timezone used for 'today' and stored timestamps (APP_TIMEZONE, default Europe/London)"""
    return pytz.timezone(os.environ.get('APP_TIMEZONE', 'Europe/London'))


def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return datetime.now(get_app_timezone()).replace(tzinfo=None)


def get_local_date():
    """Today's date in the application timezone"""
    return datetime.now(get_app_timezone()).date()
