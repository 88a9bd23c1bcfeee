# office_api/common/auth.py
from __future__ import annotations

from functools import wraps

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from office_api.common.http import fail
from office_api.extensions import db
from office_api.models.user import User
from office_api.models.employee import Employee
from office_api.models.security import MANAGEMENT_ROLES


# ---------- caller resolution ----------

def current_user() -> User | None:
    uid = get_jwt_identity()
    if uid is None or not str(uid).isdigit():
        return None
    return db.session.get(User, int(uid))


def current_employee() -> Employee | None:
    """
    Employee linked to the caller: by user_id first, else by matching email,
    in which case the link is stored.
    """
    user = current_user()
    if user is None:
        return None
    emp = Employee.alive().filter_by(user_id=user.id).first()
    if emp is None and user.email:
        emp = Employee.alive().filter(Employee.email == user.email.lower()).first()
        if emp is not None and emp.user_id is None:
            emp.user_id = user.id
            db.session.flush()
    return emp


def caller_roles() -> set:
    claims = get_jwt() or {}
    roles = set(claims.get("roles") or [])
    if not roles:
        user = current_user()
        roles = set(user.role_codes()) if user else set()
    return roles


def is_management() -> bool:
    return bool(caller_roles() & set(MANAGEMENT_ROLES))


# ---------- decorators ----------

def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            if current_user() is None:
                return fail("Unauthorized", status=401)
            roles = caller_roles()
            if "admin" in roles or any(r in roles for r in codes):
                return fn(*args, **kwargs)
            return fail("Forbidden", status=403)
        return inner
    return outer


def requires_management(fn):
    return requires_roles(*MANAGEMENT_ROLES)(fn)
