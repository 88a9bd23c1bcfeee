"""
Demo data for a fresh database: a handful of staff with logins, an office
float top-up held by the first manager, one cash hand-over and a task.
Safe to run repeatedly; existing rows are reused.
"""
from datetime import date, timedelta
from decimal import Decimal

from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.finance import Income, CashTransfer
from office_api.models.security import DEFAULT_ROLES, ensure_role, grant_role
from office_api.models.task import Task, TaskAssignment
from office_api.models.user import User
from office_api.services import float_ledger

DEMO_PASSWORD = "password123"

# (full name, email, job title, rbac role, monthly salary)
DEMO_STAFF = [
    ("Aarav Sharma", "aarav.manager@office.local", "Manager", "manager", "45000"),
    ("Diya Verma", "diya.staff@office.local", "Accountant", "staff", "28000"),
    ("Ishaan Nair", "ishaan.staff@office.local", "Field Officer", "staff", "22000"),
]

TOPUP_AMOUNT = Decimal("10000.00")
TRANSFER_AMOUNT = Decimal("2500.00")


def get_or_create_staff(full_name, email, title, role, salary):
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, full_name=full_name, status="active")
        user.set_password(DEMO_PASSWORD)
        db.session.add(user)
        db.session.flush()
    grant_role(user, role)

    emp = Employee.query.filter_by(email=email).first()
    if emp is None:
        emp = Employee(
            user_id=user.id,
            employee_code=Employee.generate_code(),
            full_name=full_name,
            email=email,
            role=title,
            monthly_salary=Decimal(salary),
            join_date=date.today() - timedelta(days=90),
        )
        db.session.add(emp)
        db.session.flush()
    return emp


def seed_demo_data() -> dict:
    for code in DEFAULT_ROLES:
        ensure_role(code)

    staff = [get_or_create_staff(*row) for row in DEMO_STAFF]
    manager, accountant, field = staff
    today = date.today()

    incomes = 0
    if not Income.query.filter_by(held_by_id=manager.id, category="Float Top-up").first():
        topup = Income(
            employee_id=manager.id,
            income_type="other",
            source_type="institute",
            held_by_id=manager.id,
            payment_method="cash",
            amount=TOPUP_AMOUNT,
            income_date=today,
            category="Float Top-up",
            description="Opening office float",
            status="confirmed",
            confirmed_by=manager.id,
            created_by=manager.user_id,
        )
        db.session.add(topup)
        db.session.flush()
        float_ledger.record(manager.id, "add", topup.amount, reference_type="income", reference_id=topup.id,
                            description=f"Income Received: {topup.description}",
                            created_by=manager.user_id, on_date=today)
        incomes = 1

    transfers = 0
    if not CashTransfer.query.filter_by(sender_id=manager.id, receiver_id=field.id).first():
        t = CashTransfer(sender_id=manager.id, receiver_id=field.id, amount=TRANSFER_AMOUNT,
                         transfer_date=today, notes="Petty cash for site visit", created_by=manager.user_id)
        db.session.add(t)
        db.session.flush()
        float_ledger.record(manager.id, "deduct", t.amount, reference_type="transfer_out", reference_id=t.id,
                            description=f"Transfer to {field.full_name}", created_by=manager.user_id,
                            on_date=today)
        float_ledger.record(field.id, "add", t.amount, reference_type="transfer_in", reference_id=t.id,
                            description=f"Transfer from {manager.full_name}", created_by=manager.user_id,
                            on_date=today)
        transfers = 1

    tasks = 0
    if not Task.query.filter_by(title="Reconcile monthly receipts").first():
        task = Task(
            task_code=Task.generate_code(),
            title="Reconcile monthly receipts",
            description="Match bill photos against the expense register.",
            priority="medium",
            category="Accounts",
            status="assigned",
            deadline=today + timedelta(days=7),
            created_by=manager.id,
        )
        db.session.add(task)
        db.session.flush()
        db.session.add(TaskAssignment(task_id=task.id, assigned_to=accountant.id, assigned_by=manager.id,
                                      assignment_status="pending"))
        tasks = 1

    db.session.commit()
    return {"staff": len(staff), "incomes": incomes, "transfers": transfers, "tasks": tasks}
