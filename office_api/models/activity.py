from datetime import datetime
from office_api.extensions import db


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id    = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True, index=True)
    action_type = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id   = db.Column(db.Integer, nullable=True)
    entity_code = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    old_values  = db.Column(db.JSON, nullable=True)
    new_values  = db.Column(db.JSON, nullable=True)
    ip_address  = db.Column(db.String(64), nullable=True)
    user_agent  = db.Column(db.String(512), nullable=True)
    device_info = db.Column(db.String(255), nullable=True)
    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        db.Index("ix_activity_entity", "entity_type", "entity_id"),
    )

    actor = db.relationship("Employee", lazy="joined")
