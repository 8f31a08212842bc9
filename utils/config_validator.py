"""
Startup configuration validation
Reports missing or unsafe environment settings without stopping the app
"""
import os
import logging
from typing import List, Tuple
import pytz

logger = logging.getLogger(__name__)


def validate_flask_config() -> Tuple[bool, List[str]]:
    """
    Validate Flask configuration for production.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    session_secret = os.getenv('SESSION_SECRET')
    if not session_secret:
        issues.append("Missing SESSION_SECRET environment variable")
    elif len(session_secret) < 32:
        issues.append("SESSION_SECRET should be at least 32 characters for security")

    debug_mode = os.getenv('DEBUG', 'False').lower()
    if debug_mode in ('true', '1', 'yes'):
        issues.append("DEBUG mode is enabled - should be disabled in production")

    return len(issues) == 0, issues


def validate_database_config() -> Tuple[bool, List[str]]:
    issues = []
    database_url = os.getenv('DATABASE_URL', '')
    if not database_url:
        issues.append("DATABASE_URL not set, using local SQLite database")
    elif not database_url.startswith(('postgres://', 'postgresql://', 'postgresql+psycopg2://', 'sqlite://')):
        issues.append("DATABASE_URL must be a PostgreSQL or SQLite URL")
    return len(issues) == 0, issues


def validate_app_config() -> Tuple[bool, List[str]]:
    issues = []

    timezone_name = os.getenv('APP_TIMEZONE')
    if timezone_name and timezone_name not in pytz.all_timezones_set:
        issues.append(f"Unknown APP_TIMEZONE '{timezone_name}', falling back to Asia/Manila")

    if os.getenv('DEMO_SEED', 'false').lower() == 'true' and not os.getenv('ADMIN_INITIAL_PASSWORD'):
        issues.append("DEMO_SEED is enabled but ADMIN_INITIAL_PASSWORD is not set, no admin will be created")

    return len(issues) == 0, issues


def validate_configuration() -> Tuple[bool, List[str]]:
    """
    Run every configuration check.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    all_issues = []
    for check in (validate_flask_config, validate_database_config, validate_app_config):
        _, issues = check()
        all_issues.extend(issues)

    if all_issues:
        logger.debug(f"Configuration check found {len(all_issues)} issue(s)")
    return len(all_issues) == 0, all_issues
