import calendar
from datetime import date, datetime, time

from office_api.models.attendance import Attendance
from office_api.models.setting import Setting

STANDARD_WORKING_DAYS = 22  # used as the monthly-report denominator


def day_start(on: date) -> datetime:
    raw = Setting.get("attendance_start_time", "08:00")
    try:
        t = datetime.strptime(raw, "%H:%M").time()
    except (TypeError, ValueError):
        t = time(8, 0)
    return datetime.combine(on, t)


def grace_minutes() -> int:
    try:
        return int(Setting.get("grace_period_minutes", 15))
    except (TypeError, ValueError):
        return 15


def late_info(on: date, now: datetime | None = None):
    """
    (is_late, late_minutes) for a check-in at `now` on attendance date `on`.
    Only same-day check-ins can be late; a back-dated entry never is.
    """
    now = now or datetime.now()
    if on != now.date():
        return False, 0
    start = day_start(on)
    if now <= start:
        return False, 0
    minutes = int((now - start).total_seconds() // 60)
    if minutes > grace_minutes():
        return True, minutes
    return False, 0


def minutes_since_start(on: date, now: datetime | None = None) -> int:
    now = now or datetime.now()
    return max(0, int((now - day_start(on)).total_seconds() // 60))


def month_to_date_percentage(employee_id: int, on: date) -> float:
    """Present days from the 1st to `on`, over the day of month, as a percentage."""
    first = on.replace(day=1)
    present = (
        Attendance.query.filter(
            Attendance.employee_id == employee_id,
            Attendance.attendance_date >= first,
            Attendance.attendance_date <= on,
            Attendance.status == "present",
        ).count()
    )
    return round(present / on.day * 100, 1) if on.day else 0.0


def month_bounds(year: int, month: int):
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def status_mark(row: Attendance | None) -> str:
    if row is None:
        return "-"
    if row.status == "present":
        return "P"
    if row.status == "absent":
        return "A"
    if row.status == "late":
        return "L"
    # pending/approved/rejected are leave-request states, not a mark for the day
    return "-"


def notification_text(status: str, shift_type: str, name: str, on: date, percentage: float):
    shift = (shift_type or "day").capitalize()
    when = on.strftime("%d %b, %Y")
    if status == "absent":
        title = f"Marked Absent ({shift} Shift)"
        body = f"{name} was marked absent on {when}."
    elif status == "late":
        title = f"Late Check-in ({shift} Shift)"
        body = f"{name} checked in late on {when}."
    else:
        title = f"Checked In ({shift} Shift)"
        body = f"{name} is present on {when}."
    return title, f"{body}\nMonthly attendance: {percentage}%"
