# office_api/common/validate.py
"""
Small request-body checker.

Each call validates one field, stores the cleaned value and collects a
per-field message list; `done()` raises ValidationError (422) when any
field failed. With ``partial=True`` a field is only checked when it is
present in the body, which is how PUT endpoints behave.
"""
from __future__ import annotations

import re
from datetime import datetime, date, time
from decimal import Decimal, InvalidOperation

from office_api.common.errors import ValidationError
from office_api.extensions import db

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%Y/%m/%d")


def parse_date(val):
    if not val:
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    # tolerate full ISO timestamps from the mobile client
    if "T" in s:
        s = s.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            pass
    return None


def parse_time(val):
    if not val:
        return None
    if isinstance(val, time):
        return val
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(str(val).strip(), fmt).time()
        except ValueError:
            pass
    return None


def to_decimal(val):
    if val is None or val == "":
        return None
    try:
        d = Decimal(str(val))
    except (InvalidOperation, ValueError):
        return None
    # NaN and Infinity parse as Decimal but cannot be stored or compared
    return d if d.is_finite() else None


def as_bool(val):
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    s = str(val).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return None


def _label(field):
    return field.replace("_", " ")


class Checker:
    def __init__(self, data: dict | None, partial: bool = False):
        self.data = data if isinstance(data, dict) else {}
        self.partial = partial
        self.errors: dict[str, list[str]] = {}
        self.clean: dict = {}

    # ---------- internals ----------
    def error(self, field, msg):
        self.errors.setdefault(field, []).append(msg)

    def _present(self, field):
        v = self.data.get(field)
        return v is not None and not (isinstance(v, str) and v.strip() == "")

    def _skip(self, field, required):
        """True when the field is absent and that is acceptable."""
        if self._present(field):
            return False
        if self.partial and field not in self.data:
            return True
        if required:
            self.error(field, f"The {_label(field)} field is required.")
            return True
        if field in self.data:
            self.clean[field] = None
        return True

    # ---------- field rules ----------
    def string(self, field, required=False, max_len=None, strip=True):
        if self._skip(field, required):
            return self
        v = str(self.data[field])
        if strip:
            v = v.strip()
        if max_len and len(v) > max_len:
            self.error(field, f"The {_label(field)} may not be greater than {max_len} characters.")
        else:
            self.clean[field] = v
        return self

    def email(self, field, required=False):
        if self._skip(field, required):
            return self
        v = str(self.data[field]).strip().lower()
        if not _EMAIL_RE.match(v):
            self.error(field, f"The {_label(field)} must be a valid email address.")
        else:
            self.clean[field] = v
        return self

    def number(self, field, required=False, min_value=None, max_value=None, digits=12, places=2):
        """`digits`/`places` mirror the Numeric(precision, scale) column the value lands in."""
        if self._skip(field, required):
            return self
        v = to_decimal(self.data[field])
        if v is None:
            self.error(field, f"The {_label(field)} must be a number.")
        elif min_value is not None and v < Decimal(str(min_value)):
            self.error(field, f"The {_label(field)} must be at least {min_value}.")
        elif max_value is not None and v > Decimal(str(max_value)):
            self.error(field, f"The {_label(field)} may not be greater than {max_value}.")
        elif abs(v) >= Decimal(10) ** (digits - places):
            self.error(field, f"The {_label(field)} is too large.")
        elif v != v.quantize(Decimal(1).scaleb(-places)):
            self.error(field, f"The {_label(field)} may not have more than {places} decimal places.")
        else:
            self.clean[field] = v
        return self

    def integer(self, field, required=False, min_value=None, max_value=None):
        if self._skip(field, required):
            return self
        try:
            v = int(self.data[field])
        except (TypeError, ValueError):
            self.error(field, f"The {_label(field)} must be an integer.")
            return self
        if min_value is not None and v < min_value:
            self.error(field, f"The {_label(field)} must be at least {min_value}.")
        elif max_value is not None and v > max_value:
            self.error(field, f"The {_label(field)} may not be greater than {max_value}.")
        else:
            self.clean[field] = v
        return self

    def choice(self, field, options, required=False):
        if self._skip(field, required):
            return self
        v = self.data[field]
        if v not in options:
            self.error(field, f"The selected {_label(field)} is invalid.")
        else:
            self.clean[field] = v
        return self

    def date(self, field, required=False, not_after=None):
        if self._skip(field, required):
            return self
        v = parse_date(self.data[field])
        if v is None:
            self.error(field, f"The {_label(field)} is not a valid date.")
        elif not_after is not None and v > not_after:
            self.error(field, f"The {_label(field)} must be a date before or equal to {not_after.isoformat()}.")
        else:
            self.clean[field] = v
        return self

    def time(self, field, required=False):
        if self._skip(field, required):
            return self
        v = parse_time(self.data[field])
        if v is None:
            self.error(field, f"The {_label(field)} does not match the format H:i.")
        else:
            self.clean[field] = v
        return self

    def boolean(self, field, required=False):
        if self._skip(field, required):
            return self
        v = as_bool(self.data[field])
        if v is None:
            self.error(field, f"The {_label(field)} field must be true or false.")
        else:
            self.clean[field] = v
        return self

    def exists(self, field, model, required=False):
        """Integer id that must resolve to a row of `model`."""
        if self._skip(field, required):
            return self
        try:
            pk = int(self.data[field])
        except (TypeError, ValueError):
            self.error(field, f"The selected {_label(field)} is invalid.")
            return self
        row = db.session.get(model, pk)
        if row is None or getattr(row, "deleted_at", None) is not None:
            self.error(field, f"The selected {_label(field)} is invalid.")
        else:
            self.clean[field] = pk
        return self

    def id_list(self, field, model, required=False):
        if self._skip(field, required):
            return self
        raw = self.data[field]
        if not isinstance(raw, (list, tuple)):
            raw = [raw]
        out = []
        for item in raw:
            try:
                pk = int(item)
            except (TypeError, ValueError):
                self.error(field, f"The selected {_label(field)} is invalid.")
                return self
            if db.session.get(model, pk) is None:
                self.error(field, f"The selected {_label(field)} is invalid.")
                return self
            if pk not in out:
                out.append(pk)
        self.clean[field] = out
        return self

    def confirmed(self, field):
        if self._present(field) and self.data.get(field) != self.data.get(f"{field}_confirmation"):
            self.error(field, f"The {_label(field)} confirmation does not match.")
        return self

    def min_length(self, field, n):
        v = self.data.get(field)
        if self._present(field) and len(str(v)) < n:
            self.error(field, f"The {_label(field)} must be at least {n} characters.")
        return self

    def done(self) -> dict:
        if self.errors:
            raise ValidationError(self.errors)
        return self.clean
