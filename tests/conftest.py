import os
from datetime import date

import pytest
from flask_jwt_extended import create_access_token

from office_api import create_app
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.security import DEFAULT_ROLES, ensure_role, grant_role
from office_api.models.setting import Setting
from office_api.models.user import User


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["EXPO_PUSH_ENABLED"] = "0"
    os.environ["MAIL_SUPPRESS_SEND"] = "1"
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def app(tmp_path):
    app = _mk_app()
    app.config["UPLOAD_DIR"] = str(tmp_path / "uploads")
    with app.app_context():
        db.create_all()
        for code in DEFAULT_ROLES:
            ensure_role(code)
        Setting.seed_defaults()
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def make_staff(name, email, role="staff", title="Staff"):
    user = User(email=email, full_name=name, status="active")
    user.set_password("secret123")
    db.session.add(user); db.session.flush()
    grant_role(user, role)
    emp = Employee(user_id=user.id, employee_code=Employee.generate_code(), full_name=name,
                   email=email, role=title, join_date=date.today())
    db.session.add(emp); db.session.commit()
    return user, emp


def bearer(user):
    token = create_access_token(identity=str(user.id), additional_claims={"roles": user.role_codes()})
    return {"Authorization": f"Bearer {token}"}


def fresh(model, pk):
    """Row as the database has it now, not as the test's identity map remembers it."""
    db.session.expire_all()
    return db.session.get(model, pk)


@pytest.fixture()
def manager(app):
    return make_staff("Mira Kapoor", "mira@test.local", role="manager", title="Manager")


@pytest.fixture()
def staff(app):
    return make_staff("Ravi Iyer", "ravi@test.local")


@pytest.fixture()
def other_staff(app):
    return make_staff("Neha Rao", "neha@test.local")
