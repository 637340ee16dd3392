"""
Input validation helpers.

Each helper returns the normalized value or raises ValidationError with a
message suitable for the client.
"""

import re
from datetime import date

from app.errors import ValidationError

EMAIL_MAX_LENGTH = 254
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
UNIVERSITY_NAME_MIN_LENGTH = 2
UNIVERSITY_NAME_MAX_LENGTH = 100
MIN_YEAR = 1
MAX_YEAR = 9999

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PASSWORD_SPECIAL_PATTERN = re.compile(r'[!@#$%^&*(),.?":{}|<>_\-+=\[\]\\/~`\';]')


def text_value(value, field):
    """Return ``value`` as a string (None becomes ''); reject other JSON types."""
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    return value


def is_valid_email(value):
    if not value or len(value) > EMAIL_MAX_LENGTH:
        return False
    return bool(EMAIL_PATTERN.match(value))


def validate_email(value, field='email'):
    value = text_value(value, field).strip().lower()
    if not value:
        raise ValidationError(f"{field} is required.")
    if not is_valid_email(value):
        raise ValidationError("Invalid email format.")
    return value


def validate_optional_email(value):
    """Return a normalized e-mail, or None when blank."""
    value = text_value(value, 'email').strip()
    if not value:
        return None
    if not is_valid_email(value):
        raise ValidationError("Invalid email format.")
    return value


def password_errors(password):
    """Return a list of unmet password rules (empty when the password is acceptable)."""
    errors = []
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"at least {PASSWORD_MIN_LENGTH} characters")
        password = password or ''
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r'[A-Z]', password):
        errors.append("an uppercase letter")
    if not re.search(r'[a-z]', password):
        errors.append("a lowercase letter")
    if not re.search(r'[0-9]', password):
        errors.append("a digit")
    if not PASSWORD_SPECIAL_PATTERN.search(password):
        errors.append("a special character")
    return errors


def validate_password(password):
    text_value(password, 'password')
    errors = password_errors(password)
    if errors:
        raise ValidationError("Password must contain " + ", ".join(errors) + ".")
    return password


def validate_university_name(value):
    value = text_value(value, 'name').strip()
    if not value:
        raise ValidationError("University name is required.")
    if len(value) < UNIVERSITY_NAME_MIN_LENGTH:
        raise ValidationError(f"University name must be at least {UNIVERSITY_NAME_MIN_LENGTH} characters.")
    if len(value) > UNIVERSITY_NAME_MAX_LENGTH:
        raise ValidationError(f"University name must be at most {UNIVERSITY_NAME_MAX_LENGTH} characters.")
    return value


def require_text(data, field, max_length=255):
    """Return the trimmed string ``data[field]`` or raise when missing/too long."""
    value = data.get(field)
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required.")
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters.")
    return value


def optional_text(data, field, max_length=255):
    value = data.get(field)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters.")
    return value or None


def parse_enum(enum_cls, value, field):
    try:
        return enum_cls.from_string(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}. Allowed values: {allowed}.")


def parse_date(value, field):
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError(f"{field} is required.")
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format.")


def parse_int(value, field, required=True):
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required.")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.")


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_year(value, default):
    """Return a calendar year from a query value, ``default`` when omitted."""
    year = parse_int(value, 'year', required=False)
    if year is None:
        return default
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}.")
    return year
