"""
Push (Expo) and in-app notifications.

These are side effects: every function here logs failures and returns,
so callers invoke them after their own commit.
"""
import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from office_api.extensions import db
from office_api.models.notice import Notification
from office_api.models.security import Role, UserRole
from office_api.models.user import ExpoToken, User

CHUNK = 100  # Expo accepts at most 100 messages per request


def _chunks(items, n=CHUNK):
    for i in range(0, len(items), n):
        yield items[i:i + n]


def push(tokens, title: str, body: str, data: dict | None = None) -> int:
    """POST to the Expo push API in chunks; returns how many tokens were accepted."""
    tokens = [t for t in dict.fromkeys(tokens or []) if t]
    if not tokens:
        current_app.logger.info("expo push: no tokens")
        return 0
    if not current_app.config.get("EXPO_PUSH_ENABLED", True):
        current_app.logger.info("expo push disabled: %d tokens, title=%r", len(tokens), title)
        return 0

    url = current_app.config["EXPO_PUSH_URL"]
    sent = 0
    for chunk in _chunks(tokens):
        payload = {
            "to": chunk,
            "title": title,
            "body": body,
            "sound": "default",
            "data": data or {},
        }
        try:
            resp = requests.post(url, json=payload, timeout=10)
        except requests.RequestException as e:
            current_app.logger.error("expo push exception: %s", e)
            continue
        if resp.status_code >= 400:
            current_app.logger.error("expo push failed (%s): %s", resp.status_code, resp.text[:500])
            continue
        sent += len(chunk)
        current_app.logger.info("expo push sent count: %d", len(chunk))
    return sent


def _default_recipient_id():
    uid = current_app.config.get("ADMIN_USER_ID")
    if uid:
        return int(uid)
    row = (
        db.session.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(Role.code == "admin")
        .order_by(UserRole.user_id.asc())
        .first()
    )
    return row[0] if row else None


def store(user_id, title, message, type_="system", reference_type=None, reference_id=None):
    """Persist one in-app notification and commit it."""
    if user_id is None:
        return None
    try:
        n = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type_ or "system",
            reference_type=reference_type,
            reference_id=reference_id,
        )
        db.session.add(n)
        db.session.commit()
        return n
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error("db notification error: %s", e)
        return None


def send_notification(title: str, message: str, type_: str, user_id=None):
    """Broadcast a push to every registered device and keep an in-app copy for `user_id` (default: admin)."""
    tokens = [t for (t,) in db.session.query(ExpoToken.value).all()]
    push(tokens, title, message, {"type": type_})
    return store(user_id or _default_recipient_id(), title, message, type_)


def notify_user(user: User | None, title: str, message: str, type_: str = "system",
                reference_type=None, reference_id=None, data: dict | None = None):
    """In-app notification plus a push to this user's own devices."""
    if user is None:
        return None
    tokens = [t.value for t in user.expo_tokens]
    if user.push_token and user.push_token not in tokens:
        tokens.append(user.push_token)
    push(tokens, title, message, dict({"type": type_}, **(data or {})))
    return store(user.id, title, message, type_, reference_type, reference_id)
