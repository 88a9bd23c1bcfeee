from datetime import datetime, date
from office_api.extensions import db

SHIFT_TYPES = ("day", "night", "both")
CHECK_IN_STATUSES = ("present", "absent", "late")
ATTENDANCE_STATUSES = ("pending", "approved", "rejected", "present", "absent", "late")
# statuses that count as a day worked
PRESENT_STATUSES = ("present", "late")


class Attendance(db.Model):
    __tablename__ = "attendance"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    attendance_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    shift_type = db.Column(db.String(10), nullable=False, default="day")

    check_in_time  = db.Column(db.Time, nullable=True)
    check_out_time = db.Column(db.Time, nullable=True)
    is_late      = db.Column(db.Boolean, nullable=False, default=False)
    late_minutes = db.Column(db.Integer, nullable=False, default=0)

    leave_type   = db.Column(db.String(20), nullable=True, default="none")  # none/sick/personal/casual/absent
    leave_reason = db.Column(db.Text, nullable=True)
    approved_by  = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="present")
    notes  = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "attendance_date", "shift_type", name="uq_attendance_emp_date_shift"),
    )

    employee = db.relationship("Employee", foreign_keys=[employee_id], lazy="joined")

    @property
    def worked_hours(self) -> float:
        if not self.check_in_time or not self.check_out_time:
            return 0.0
        start = datetime.combine(self.attendance_date, self.check_in_time)
        end = datetime.combine(self.attendance_date, self.check_out_time)
        secs = (end - start).total_seconds()
        if secs < 0:  # night shift crossing midnight
            secs += 24 * 3600
        return round(secs / 3600.0, 2)

    @property
    def counts_present(self) -> bool:
        if self.status in PRESENT_STATUSES:
            return True
        return self.check_in_time is not None and self.status != "absent"
