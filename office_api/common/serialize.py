# office_api/common/serialize.py
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def money(v) -> float:
    if v is None:
        return 0.0
    return float(Decimal(str(v)).quantize(CENT, rounding=ROUND_HALF_UP))


def iso(v):
    if v is None:
        return None
    if isinstance(v, time):
        return v.strftime("%H:%M")
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return str(v)


def columns(obj, *skip):
    """Plain dict of a model's columns, JSON friendly. Used for activity-log snapshots."""
    out = {}
    for col in obj.__table__.columns:
        if col.key in skip:
            continue
        v = getattr(obj, col.key)
        if isinstance(v, Decimal):
            v = money(v)
        elif isinstance(v, (date, datetime, time)):
            v = iso(v)
        out[col.key] = v
    return out


def rupees(v) -> str:
    """Display form used in notification text, e.g. ``Rs. 1,250.00``."""
    return f"Rs. {money(v):,.2f}"
