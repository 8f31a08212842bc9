"""
Request value parsing shared by the API blueprints and services.

Parsers return None for blank input and raise ValidationError for input that
is present but malformed.
"""
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from services.exceptions import ValidationError

# Matches models.MONEY
MONEY_PRECISION = 14
MONEY_SCALE = 4


def is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def parse_decimal(value, field='value', default=None):
    """Parse a fixed-point amount, rejecting NaN and infinity"""
    if is_blank(value):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}")
    try:
        # str() first so floats keep their printed value, not their binary one
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}")
    if not result.is_finite():
        raise ValidationError(f"Invalid {field}")
    return result


def parse_positive_decimal(value, field='amount'):
    """A required amount above zero that fits a Numeric(14, 4) money column"""
    result = parse_decimal(value, field)
    if result is None:
        raise ValidationError(f"{field} is required")
    if result <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if result.normalize().as_tuple().exponent < -MONEY_SCALE:
        raise ValidationError(f"{field} must have at most {MONEY_SCALE} decimal places")
    if result.adjusted() >= MONEY_PRECISION - MONEY_SCALE:
        raise ValidationError(f"{field} must be less than {10 ** (MONEY_PRECISION - MONEY_SCALE):,}")
    return result


def parse_int(value, field='value', default=None):
    if is_blank(value):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid {field}")


def parse_date(value, field='date', default=None):
    """Accept YYYY-MM-DD or a full ISO timestamp"""
    if is_blank(value):
        return default
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"Invalid {field}, expected YYYY-MM-DD")


def parse_bool(value, default=None):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_enum(enum_cls, value, field):
    if is_blank(value):
        return None
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        choices = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}, expected one of: {choices}")


def require_fields(data, *fields, message=None):
    """Raise ValidationError naming the missing fields, if any"""
    missing = [f for f in fields if is_blank(data.get(f))]
    if missing:
        raise ValidationError(message or f"{', '.join(missing)} required")


def optional_text(value):
    if is_blank(value):
        return None
    return str(value).strip()
