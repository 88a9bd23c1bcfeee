from datetime import datetime, date
import uuid

from office_api.extensions import db

TASK_PRIORITIES = ("low", "medium", "high")
TASK_STATUSES = ("new", "assigned", "in_progress", "completed", "cancelled", "late")
# statuses that no longer count as open work
CLOSED_TASK_STATUSES = ("completed", "cancelled")
ASSIGNMENT_STATUSES = ("pending", "accepted", "rejected")
VERIFICATION_STATUSES = ("pending", "approved", "rejected")


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    task_code   = db.Column(db.String(32), unique=True, nullable=False)
    title       = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority    = db.Column(db.String(10), nullable=False, default="medium")
    category    = db.Column(db.String(100), nullable=False)
    status      = db.Column(db.String(20), nullable=False, default="new")

    budget_required  = db.Column(db.Numeric(12, 2), nullable=True)
    budget_used      = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    materials_needed = db.Column(db.Text, nullable=True)
    documents_needed = db.Column(db.Text, nullable=True)

    start_date     = db.Column(db.Date, nullable=True)
    deadline       = db.Column(db.Date, nullable=False)
    completed_date = db.Column(db.DateTime, nullable=True)
    created_by     = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    creator = db.relationship("Employee", foreign_keys=[created_by])
    assignments = db.relationship(
        "TaskAssignment",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TaskAssignment.id",
    )

    @staticmethod
    def generate_code() -> str:
        return "TASK-" + uuid.uuid4().hex[:8].upper()

    @classmethod
    def alive(cls):
        return cls.query.filter(cls.deleted_at.is_(None))

    @property
    def is_overdue(self) -> bool:
        return (
            self.deadline is not None
            and self.deadline < date.today()
            and self.status not in CLOSED_TASK_STATUSES
        )

    @property
    def progress(self) -> int:
        live = [a for a in self.assignments if a.assignment_status != "rejected"]
        if not live:
            return 0
        return round(sum(a.progress_percentage or 0 for a in live) / len(live))

    def assignee_ids(self):
        return [a.assigned_to for a in self.assignments]


class TaskAssignment(db.Model):
    __tablename__ = "task_assignments"

    id = db.Column(db.Integer, primary_key=True)
    task_id     = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    assignment_status = db.Column(db.String(20), nullable=False, default="pending")
    response_date     = db.Column(db.DateTime, nullable=True)

    progress_percentage      = db.Column(db.Integer, nullable=False, default=0)
    actual_start_date        = db.Column(db.DateTime, nullable=True)
    expected_completion_date = db.Column(db.Date, nullable=True)
    estimated_hours = db.Column(db.Numeric(6, 2), nullable=True)
    actual_hours    = db.Column(db.Numeric(6, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("task_id", "assigned_to", name="uq_task_assignee"),
    )

    task     = db.relationship("Task", back_populates="assignments")
    assignee = db.relationship("Employee", foreign_keys=[assigned_to], lazy="joined")
    assigner = db.relationship("Employee", foreign_keys=[assigned_by])


class SelfLoggedWork(db.Model):
    __tablename__ = "self_logged_works"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    work_title  = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    time_spent_hours = db.Column(db.Numeric(5, 2), nullable=False)
    work_date   = db.Column(db.Date, nullable=False)
    attachment_path = db.Column(db.String(255), nullable=True)

    verification_status = db.Column(db.String(20), nullable=False, default="pending")
    verified_by         = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    verification_notes  = db.Column(db.Text, nullable=True)
    verified_at         = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", foreign_keys=[employee_id], lazy="joined")
    verifier = db.relationship("Employee", foreign_keys=[verified_by])
