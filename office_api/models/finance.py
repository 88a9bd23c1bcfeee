from datetime import datetime, date
from office_api.extensions import db

LEDGER_TYPES = ("add", "deduct")

EXPENSE_TYPES = ("personal", "institute")
PAID_FROM = ("personal_money", "institute_float")

INCOME_TYPES = ("salary", "course_fee", "personal_work", "other")
SOURCE_TYPES = ("institute", "personal_project")
PAYMENT_METHODS = ("cash", "bank_transfer", "online", "cheque")


class FloatLedger(db.Model):
    """
    Running cash-custody balance per employee.

    Rows of one employee form a chain ordered by id: each row's
    previous_balance is the new_balance of the row before it.
    """
    __tablename__ = "float_ledgers"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = db.Column(db.String(10), nullable=False)  # add | deduct
    amount           = db.Column(db.Numeric(12, 2), nullable=False)
    previous_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    new_balance      = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # income | expense | expense_reversal | transfer_in | transfer_out
    reference_type = db.Column(db.String(30), nullable=True)
    reference_id   = db.Column(db.Integer, nullable=True)
    description    = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    date       = db.Column(db.Date, nullable=False, default=date.today)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_float_ledger_ref", "reference_type", "reference_id"),
    )

    employee = db.relationship("Employee", lazy="joined")


class Income(db.Model):
    __tablename__ = "incomes"

    id = db.Column(db.Integer, primary_key=True)
    employee_id    = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    income_type    = db.Column(db.String(30), nullable=False)
    source_type    = db.Column(db.String(30), nullable=False, default="institute")
    contributor_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    held_by_id     = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    payment_method = db.Column(db.String(20), nullable=False, default="cash")

    amount       = db.Column(db.Numeric(12, 2), nullable=False)
    income_date  = db.Column(db.Date, nullable=False)
    category     = db.Column(db.String(100), nullable=False)
    description  = db.Column(db.Text, nullable=True)
    receipt_path = db.Column(db.String(255), nullable=True)

    status       = db.Column(db.String(20), nullable=False, default="confirmed")  # pending|confirmed|rejected
    confirmed_by = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    created_by   = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes        = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    employee    = db.relationship("Employee", foreign_keys=[employee_id], lazy="joined")
    contributor = db.relationship("Employee", foreign_keys=[contributor_id])
    holder      = db.relationship("Employee", foreign_keys=[held_by_id])


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    employee_id  = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    expense_type = db.Column(db.String(20), nullable=False)  # personal | institute
    amount       = db.Column(db.Numeric(12, 2), nullable=False)
    category     = db.Column(db.String(100), nullable=False)
    description  = db.Column(db.Text, nullable=True)
    bill_photo_path = db.Column(db.String(255), nullable=True)
    expense_date = db.Column(db.Date, nullable=False)

    paid_from       = db.Column(db.String(20), nullable=False, default="personal_money")
    float_holder_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    status        = db.Column(db.String(20), nullable=False, default="pending")  # pending|approved|rejected
    approved_by   = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    approval_date = db.Column(db.DateTime, nullable=True)
    # pending|reimbursed|not_applicable
    reimbursement_status = db.Column(db.String(20), nullable=False, default="not_applicable")
    reimbursement_date   = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes      = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    employee     = db.relationship("Employee", foreign_keys=[employee_id], lazy="joined")
    float_holder = db.relationship("Employee", foreign_keys=[float_holder_id])
    approver     = db.relationship("Employee", foreign_keys=[approved_by])

    @property
    def uses_float(self) -> bool:
        return self.paid_from == "institute_float"


class CashTransfer(db.Model):
    __tablename__ = "cash_transfers"

    id = db.Column(db.Integer, primary_key=True)
    sender_id   = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    amount        = db.Column(db.Numeric(12, 2), nullable=False)
    transfer_date = db.Column(db.Date, nullable=False)
    notes         = db.Column(db.Text, nullable=True)
    created_by    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("sender_id <> receiver_id", name="ck_transfer_distinct_parties"),
    )

    sender   = db.relationship("Employee", foreign_keys=[sender_id], lazy="joined")
    receiver = db.relationship("Employee", foreign_keys=[receiver_id], lazy="joined")
