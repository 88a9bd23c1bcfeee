from datetime import datetime
from decimal import Decimal
import uuid

from office_api.extensions import db


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

    employee_code = db.Column(db.String(32), unique=True, nullable=False)
    full_name     = db.Column(db.String(255), nullable=False)
    email         = db.Column(db.String(255), unique=True, nullable=False)
    mobile_number = db.Column(db.String(20), nullable=True)
    role          = db.Column(db.String(50), nullable=False, default="Staff")   # job title, not an RBAC role

    salary_type             = db.Column(db.String(20), nullable=False, default="Fixed")  # Fixed | Share Profit
    monthly_salary          = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    profit_share_percentage = db.Column(db.Numeric(5, 2), nullable=True)

    profile_photo = db.Column(db.String(255), nullable=True)
    address       = db.Column(db.Text, nullable=True)
    bank_name           = db.Column(db.String(120), nullable=True)
    bank_account_number = db.Column(db.String(50), nullable=True)
    bank_ifsc_code      = db.Column(db.String(20), nullable=True)

    join_date = db.Column(db.Date, nullable=True)
    status    = db.Column(db.String(16), nullable=False, default="active")  # active/inactive/suspended

    attendance_mode = db.Column(db.String(20), nullable=False, default="direct_status")  # direct_status/time_based
    preferred_shift = db.Column(db.String(10), nullable=False, default="day")            # day/night/both

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index("ix_emp_status", "status"),
    )

    user = db.relationship("User", backref=db.backref("employee", uselist=False), lazy="joined")

    @staticmethod
    def generate_code() -> str:
        return "EMP-" + uuid.uuid4().hex[:8].upper()

    @classmethod
    def alive(cls):
        return cls.query.filter(cls.deleted_at.is_(None))

    def restore(self):
        """Bring a soft-deleted record back, e.g. when the same person is re-added or signs up again."""
        self.deleted_at = None
        self.status = "active"

    @property
    def current_float_balance(self) -> Decimal:
        """new_balance of this employee's latest ledger row, 0 when there is none."""
        from office_api.models.finance import FloatLedger  # late import to avoid circulars
        last = (
            FloatLedger.query.filter_by(employee_id=self.id)
            .order_by(FloatLedger.id.desc())
            .first()
        )
        return Decimal(last.new_balance) if last else Decimal("0")

    def brief(self):
        return {"id": self.id, "employee_code": self.employee_code, "full_name": self.full_name}
