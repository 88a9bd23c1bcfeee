from datetime import datetime, timedelta
import secrets

from werkzeug.security import generate_password_hash, check_password_hash

from office_api.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True)
    email         = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name     = db.Column(db.String(255), nullable=False)
    status        = db.Column(db.String(20), default="active")
    google_id     = db.Column(db.String(255), nullable=True)
    push_token    = db.Column(db.String(255), nullable=True)  # last registered Expo token
    email_verified_at = db.Column(db.DateTime, nullable=True)
    created_at    = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at    = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # --- helpers ---
    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    def role_codes(self):
        return sorted({ur.role.code for ur in self.user_roles if ur.role is not None})

    @staticmethod
    def random_password(length: int = 12) -> str:
        return secrets.token_urlsafe(length)[:length]


class Otp(db.Model):
    """One-time codes for registration and password reset, one live row per (email, type)."""
    __tablename__ = "otps"

    id         = db.Column(db.Integer, primary_key=True)
    email      = db.Column(db.String(255), nullable=False, index=True)
    type       = db.Column(db.String(30), nullable=False, default="registration")  # registration|reset_password
    code       = db.Column(db.String(10), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("email", "type", name="uq_otp_email_type"),
    )

    @staticmethod
    def new_code() -> str:
        return f"{secrets.randbelow(900000) + 100000}"

    @classmethod
    def issue(cls, email: str, type_: str, ttl_minutes: int = 10) -> "Otp":
        row = cls.query.filter_by(email=email, type=type_).first()
        if not row:
            row = cls(email=email, type=type_)
            db.session.add(row)
        row.code = cls.new_code()
        row.expires_at = datetime.utcnow() + timedelta(minutes=ttl_minutes)
        return row

    @classmethod
    def consume(cls, email: str, type_: str, code: str) -> bool:
        """Delete and return True when `code` is the live OTP for (email, type)."""
        row = cls.query.filter_by(email=email, type=type_).first()
        if not row or str(code or "").strip() != row.code or row.expires_at < datetime.utcnow():
            return False
        db.session.delete(row)
        return True


class TokenBlocklist(db.Model):
    __tablename__ = "token_blocklist"

    id         = db.Column(db.Integer, primary_key=True)
    jti        = db.Column(db.String(64), nullable=False, unique=True, index=True)
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class ExpoToken(db.Model):
    __tablename__ = "expo_tokens"

    id           = db.Column(db.Integer, primary_key=True)
    user_id      = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    value        = db.Column(db.String(255), nullable=False, unique=True)
    device_model = db.Column(db.String(120), nullable=True)
    created_at   = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at   = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User", backref=db.backref("expo_tokens", cascade="all, delete-orphan", passive_deletes=True))
