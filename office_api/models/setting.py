import json
from datetime import datetime

from office_api.extensions import db

DEFAULT_SETTINGS = (
    ("institute_name", "Institute Pro", "general"),
    ("currency", "INR", "general"),
    ("attendance_start_time", "08:00", "attendance"),
    ("attendance_end_time", "16:00", "attendance"),
    ("grace_period_minutes", "15", "attendance"),
    ("weekend_days", json.dumps(["Sunday"]), "attendance"),
)


class Setting(db.Model):
    __tablename__ = "settings"

    id    = db.Column(db.Integer, primary_key=True)
    key   = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=True)
    group = db.Column(db.String(50), nullable=False, default="general")
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get(cls, key: str, default=None):
        row = cls.query.filter_by(key=key).first()
        if row is None or row.value is None:
            return default
        return row.value

    @classmethod
    def seed_defaults(cls) -> int:
        added = 0
        for key, value, group in DEFAULT_SETTINGS:
            if cls.query.filter_by(key=key).first() is None:
                db.session.add(cls(key=key, value=value, group=group))
                added += 1
        return added
