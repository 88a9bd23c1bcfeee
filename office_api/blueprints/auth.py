from datetime import date, datetime

from flask import Blueprint, current_app, request
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required, get_jwt,
)

from office_api.blueprints.employees import employee_row
from office_api.common.auth import current_user
from office_api.common.http import ok, fail
from office_api.common.validate import Checker
from office_api.extensions import db
from office_api.models.employee import Employee
from office_api.models.security import grant_role
from office_api.models.setting import Setting
from office_api.models.user import User, Otp, TokenBlocklist
from office_api.services.activity import log_activity
from office_api.services.mailer import send_template

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

OTP_REGISTRATION = "registration"
OTP_RESET = "reset_password"
MIN_PASSWORD = 8


def _body():
    data = request.get_json(silent=True, force=True)
    return data if isinstance(data, dict) else {}


def _user_payload(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": u.role_codes(),
        "has_push_token": bool(u.push_token),
    }


def _tokens(u: User):
    roles = u.role_codes()
    add_claims = {"roles": roles, "email": u.email, "name": u.full_name}
    access = create_access_token(identity=str(u.id), additional_claims=add_claims)
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": roles})
    return access, refresh


def _session_payload(u: User, emp: Employee | None):
    access, refresh = _tokens(u)
    return {
        "user": _user_payload(u),
        "employee": employee_row(emp) if emp else None,
        "access": access,
        "refresh": refresh,
    }


def _ensure_employee(user: User, **defaults) -> Employee:
    """
    Employee linked to `user`. An unlinked employee with the same email is
    linked (and restored when it was soft-deleted); otherwise a minimal
    Staff profile is created.
    """
    emp = Employee.alive().filter_by(user_id=user.id).first()
    if emp:
        return emp
    emp = Employee.query.filter(Employee.email == user.email.lower()).first()
    if emp:
        if emp.deleted_at is not None:
            emp.restore()
        emp.user_id = user.id
        for k, v in defaults.items():
            if v is not None:
                setattr(emp, k, v)
        db.session.flush()
        return emp
    emp = Employee(
        user_id=user.id,
        employee_code=Employee.generate_code(),
        full_name=defaults.pop("full_name", None) or user.full_name,
        email=user.email.lower(),
        role=defaults.pop("role", None) or "Staff",
        monthly_salary=defaults.pop("monthly_salary", None) or 0,
        status="active",
        join_date=date.today(),
        **{k: v for k, v in defaults.items() if v is not None},
    )
    db.session.add(emp)
    db.session.flush()
    return emp


def _issue_otp(email: str, type_: str):
    ttl = current_app.config.get("OTP_TTL_MINUTES", 10)
    otp = Otp.issue(email, type_, ttl)
    db.session.commit()
    send_template(email, "otp", otp=otp.code, minutes=ttl)
    return otp


# ---------- public ----------

@bp.post("/send-registration-otp")
def send_registration_otp():
    clean = Checker(_body()).email("email", required=True).done()
    if User.query.filter_by(email=clean["email"]).first():
        return fail("Validation failed", 422, errors={"email": ["The email has already been taken."]})
    _issue_otp(clean["email"], OTP_REGISTRATION)
    return ok(None, message="OTP sent successfully to your email.")


@bp.post("/register")
def register():
    data = _body()
    chk = (
        Checker(data)
        .email("email", required=True)
        .string("password", required=True, strip=False)
        .min_length("password", MIN_PASSWORD)
        .confirmed("password")
        .string("full_name", required=True, max_len=255)
        .string("mobile_number", required=True, max_len=20)
        .string("role", required=True, max_len=50)
        .number("monthly_salary", required=True, min_value=0)
        .string("otp", required=True, max_len=6)
    )
    if chk.clean.get("email") and User.query.filter_by(email=chk.clean["email"]).first():
        chk.error("email", "The email has already been taken.")
    clean = chk.done()

    if not Otp.consume(clean["email"], OTP_REGISTRATION, clean["otp"]):
        db.session.rollback()
        return fail("Invalid or expired OTP.", 400)

    user = User(email=clean["email"], full_name=clean["full_name"], status="active",
                email_verified_at=datetime.utcnow())
    user.set_password(clean["password"])
    db.session.add(user)
    db.session.flush()
    grant_role(user, "staff")
    emp = _ensure_employee(
        user,
        full_name=clean["full_name"],
        mobile_number=clean["mobile_number"],
        role=clean["role"],
        monthly_salary=clean["monthly_salary"],
    )
    db.session.commit()

    log_activity("create", "employee", emp.id, new_values={"name": emp.full_name, "role": emp.role},
                 entity_code=emp.employee_code, actor_id=emp.id)
    send_template(user.email, "registered", institute=Setting.get("institute_name", "Institute Pro"),
                  name=emp.full_name, code=emp.employee_code, email=user.email)
    return ok(_session_payload(user, emp), 201, message="User registered successfully")


@bp.post("/login")
def login():
    clean = Checker(_body()).email("email", required=True).string("password", required=True, strip=False).done()
    u = User.query.filter_by(email=clean["email"]).first()
    if not u or not u.check_password(clean["password"]):
        return fail("Invalid credentials", 401)
    if u.status != "active":
        return fail("Account is not active", 403)

    emp = _ensure_employee(u)
    db.session.commit()
    log_activity("login", "auth", u.id, new_values={"ip": request.remote_addr}, actor_id=emp.id)
    return ok(_session_payload(u, emp), message="Login successful")


@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    u = current_user()
    if not u:
        return fail("User not found", 404)
    access, _ = _tokens(u)
    return ok({"access": access})


@bp.post("/forgot-password")
def forgot_password():
    clean = Checker(_body()).email("email", required=True).done()
    if not User.query.filter_by(email=clean["email"]).first():
        return fail("Validation failed", 422, errors={"email": ["The selected email is invalid."]})
    _issue_otp(clean["email"], OTP_RESET)
    return ok(None, message="OTP sent successfully to your email.")


@bp.post("/reset-password")
def reset_password():
    clean = (
        Checker(_body())
        .email("email", required=True)
        .string("otp", required=True, max_len=6)
        .string("password", required=True, strip=False)
        .min_length("password", MIN_PASSWORD)
        .confirmed("password")
        .done()
    )
    user = User.query.filter_by(email=clean["email"]).first()
    if not user:
        return fail("Validation failed", 422, errors={"email": ["The selected email is invalid."]})
    if not Otp.consume(clean["email"], OTP_RESET, clean["otp"]):
        db.session.rollback()
        return fail("Invalid or expired OTP.", 400)
    user.set_password(clean["password"])
    db.session.commit()
    return ok(None, message="Password reset successfully. You can now login.")


@bp.post("/google-callback")
def google_callback():
    data = _body()
    clean = (
        Checker(data)
        .email("email", required=True)
        .string("google_id", required=True)
        .string("full_name", required=True, max_len=255)
        .done()
    )
    user = User.query.filter_by(email=clean["email"]).first()
    if not user:
        user = User(email=clean["email"], full_name=clean["full_name"], status="active",
                    google_id=clean["google_id"], email_verified_at=datetime.utcnow())
        user.set_password(User.random_password(32))
        db.session.add(user)
        db.session.flush()
        grant_role(user, "staff")
    elif not user.google_id:
        user.google_id = clean["google_id"]
    emp = _ensure_employee(user, full_name=clean["full_name"], mobile_number=data.get("mobile_number"))
    db.session.commit()
    return ok(_session_payload(user, emp), message="Google login successful")


# ---------- authenticated ----------

@bp.post("/logout")
@jwt_required()
def logout():
    u = current_user()
    db.session.add(TokenBlocklist(jti=get_jwt()["jti"], user_id=u.id if u else None))
    db.session.commit()
    if u:
        log_activity("logout", "auth", u.id)
    return ok(None, message="Successfully logged out")


@bp.get("/user")
@jwt_required()
def get_user():
    u = current_user()
    if not u:
        return fail("User not authenticated", 401)
    emp = _ensure_employee(u)
    db.session.commit()
    return ok({"user": _user_payload(u), "employee": employee_row(emp, with_balance=True)})


@bp.post("/update-profile")
@jwt_required()
def update_profile():
    u = current_user()
    if not u:
        return fail("User not found", 404)
    emp = Employee.alive().filter_by(user_id=u.id).first()
    if not emp:
        return fail("Employee record not found", 404)

    chk = (
        Checker(_body())
        .string("full_name", required=True, max_len=255)
        .email("email", required=True)
        .string("mobile_number", required=True, max_len=20)
        .string("address", max_len=500)
        .string("profile_photo", max_len=255)
    )
    email = chk.clean.get("email")
    if email and User.query.filter(User.email == email, User.id != u.id).first():
        chk.error("email", "The email has already been taken.")
    clean = chk.done()

    u.full_name = clean["full_name"]
    u.email = clean["email"]
    emp.full_name = clean["full_name"]
    emp.email = clean["email"]
    emp.mobile_number = clean["mobile_number"]
    if "address" in clean:
        emp.address = clean["address"]
    if clean.get("profile_photo"):
        emp.profile_photo = clean["profile_photo"]
    db.session.commit()

    log_activity("update", "profile", u.id, new_values={"fields": sorted(clean.keys())})
    return ok({"user": _user_payload(u), "employee": employee_row(emp)}, message="Profile updated successfully")


@bp.post("/change-password")
@jwt_required()
def change_password():
    clean = (
        Checker(_body())
        .string("current_password", required=True, strip=False)
        .string("new_password", required=True, strip=False)
        .min_length("new_password", MIN_PASSWORD)
        .confirmed("new_password")
        .done()
    )
    u = current_user()
    if not u.check_password(clean["current_password"]):
        return fail("Current password does not match", 400)
    u.set_password(clean["new_password"])
    db.session.commit()
    log_activity("change_password", "auth", u.id)
    return ok(None, message="Password changed successfully")
