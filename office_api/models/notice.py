from datetime import datetime, date
from office_api.extensions import db

NOTICE_TYPES = ("general", "urgent", "event", "holiday")


class Notice(db.Model):
    __tablename__ = "notices"

    id = db.Column(db.Integer, primary_key=True)
    title   = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    type    = db.Column(db.String(20), nullable=False, default="general")
    is_important = db.Column(db.Boolean, nullable=False, default=False)
    audience = db.Column(db.String(50), nullable=False, default="all")
    date     = db.Column(db.Date, nullable=False, default=date.today)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    author = db.relationship("User")


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title   = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type    = db.Column(db.String(30), nullable=False, default="system")
    reference_type = db.Column(db.String(50), nullable=True)
    reference_id   = db.Column(db.Integer, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
    )
