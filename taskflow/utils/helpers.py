"""Shared helpers for services: lookup, input parsing, field validation, commit.

get_or_404:        primary-key lookup raising NotFoundError
parse_datetime:    ISO-8601 date/datetime → aware UTC datetime
FieldErrors:       collects {field, message, value} entries, raises once
commit_or_raise:   commit the session, mapping IntegrityError → ConflictError
"""
import logging
import re
from datetime import date, datetime, time, timezone

from taskflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from taskflow.models import db

logger = logging.getLogger(__name__)

HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    try:
        pk = int(pk)
    except (TypeError, ValueError):
        raise NotFoundError(label, pk) from None
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(label, pk)
    return obj


def parse_datetime(value):
    """Parse an ISO date or datetime string to an aware UTC datetime.

    Returns None for empty input; raises ValueError on anything unparseable.
    A trailing ``Z`` is accepted. Naive values are taken as UTC.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = datetime.combine(date.fromisoformat(text), time.min)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_bool(value, default=None):
    """Loose boolean: accepts bools and the usual query-string spellings."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return default


class FieldErrors:
    """Accumulates field-level validation failures.

    Usage::

        errors = FieldErrors()
        title = errors.string(data, "title", required=True, max_len=200)
        errors.raise_if_any()
    """

    def __init__(self):
        self.items: list[dict] = []

    def __bool__(self):
        return bool(self.items)

    def add(self, field, message, value=None):
        self.items.append({"field": field, "message": message, "value": value})

    def raise_if_any(self, message="Validation failed"):
        if self.items:
            raise ValidationError(message, errors=self.items)

    def string(self, data, field, *, label=None, required=False, min_len=0, max_len=None):
        label = label or field
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self.add(field, f"{label} is required", value)
            return None
        if not isinstance(value, str):
            self.add(field, f"{label} must be a string", value)
            return None
        value = value.strip()
        if min_len and len(value) < min_len:
            self.add(field, f"{label} must be at least {min_len} characters", value)
        if max_len and len(value) > max_len:
            self.add(field, f"{label} cannot exceed {max_len} characters", value)
        return value

    def choice(self, data, field, choices, *, label=None, required=False):
        label = label or field
        value = data.get(field)
        if value is None or value == "":
            if required:
                self.add(field, f"{label} is required", value)
            return None
        if value not in choices:
            self.add(field, f"Invalid {label}", value)
            return None
        return value

    def number(self, data, field, *, label=None, minimum=0):
        label = label or field
        value = data.get(field)
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            self.add(field, f"{label} must be a number", value)
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            self.add(field, f"{label} must be a number", value)
            return None
        if minimum is not None and number < minimum:
            self.add(field, f"{label} must be a positive number", value)
            return None
        return number

    def integer(self, data, field, *, label=None, minimum=None):
        label = label or field
        value = data.get(field)
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            self.add(field, f"{label} must be an integer", value)
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            self.add(field, f"{label} must be an integer", value)
            return None
        if minimum is not None and number < minimum:
            self.add(field, f"{label} must be at least {minimum}", value)
            return None
        return number

    def identifier(self, data, field, *, label=None, required=False):
        label = label or field
        value = data.get(field)
        if value is None or value == "":
            if required:
                self.add(field, f"{label} is required", value)
            return None
        if isinstance(value, dict):
            value = value.get("id")
        if isinstance(value, bool):
            self.add(field, f"Invalid {label}", value)
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            self.add(field, f"Invalid {label}", value)
            return None
        if number < 1:
            self.add(field, f"Invalid {label}", value)
            return None
        return number

    def when(self, data, field, *, label=None):
        label = label or field
        value = data.get(field)
        try:
            return parse_datetime(value)
        except (TypeError, ValueError):
            self.add(field, f"Invalid {label} format", value)
            return None

    def string_list(self, data, field, *, label=None, max_len=None):
        label = label or field
        value = data.get(field)
        if value is None:
            return None
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.add(field, f"{label} must be an array of strings", value)
            return None
        cleaned = [v.strip() for v in value if v.strip()]
        if max_len and any(len(v) > max_len for v in cleaned):
            self.add(field, f"Each {label} entry cannot exceed {max_len} characters", value)
            return None
        return cleaned

    def boolean(self, data, field, *, label=None):
        label = label or field
        value = data.get(field)
        if value is None:
            return None
        parsed = parse_bool(value)
        if parsed is None:
            self.add(field, f"{label} must be a boolean", value)
        return parsed


def commit_or_raise(resource="Record"):
    """Commit the current session.

    IntegrityError → ConflictError (duplicate / constraint violation).
    Anything else is rolled back and re-raised for the app-level handler.
    """
    from sqlalchemy.exc import IntegrityError

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s): %s", resource, exc.orig)
        raise ConflictError(f"{resource} already exists or violates a constraint",
                            resource=resource) from exc
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit (%s)", resource)
        raise
