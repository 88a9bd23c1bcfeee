"""Outbound transactional mail over SMTP."""
import smtplib
from email.message import EmailMessage

from flask import current_app

TEMPLATES = {
    "welcome": (
        "Welcome to {institute}",
        "Hello {name},\n\n"
        "An account has been created for you.\n"
        "Employee code: {code}\n"
        "Login email: {email}\n"
        "Temporary password: {password}\n\n"
        "Please change your password after the first login.",
    ),
    "registered": (
        "Welcome to {institute}",
        "Hello {name},\n\n"
        "Your registration is complete.\n"
        "Employee code: {code}\n"
        "Login email: {email}",
    ),
    "otp": (
        "Your verification code",
        "Your one-time code is {otp}. It expires in {minutes} minutes.",
    ),
    "task_assigned": (
        "New task assigned: {title}",
        "Hello {name},\n\n"
        "You have been assigned task {code}: {title}.\n"
        "Priority: {priority}\nDeadline: {deadline}",
    ),
    "expense_status": (
        "Expense {status}",
        "Hello {name},\n\n"
        "Your expense of {amount} for {category} dated {date} was {status}.",
    ),
}


def render(template: str, **ctx):
    subject, body = TEMPLATES[template]
    return subject.format(**ctx), body.format(**ctx)


def send_mail(to: str, subject: str, body: str) -> bool:
    """
    Send one plain-text message. Returns False (and logs) on failure.
    With MAIL_SUPPRESS_SEND set the message is only logged.
    """
    cfg = current_app.config
    if not to:
        return False
    if cfg.get("MAIL_SUPPRESS_SEND"):
        current_app.logger.info("mail suppressed: to=%s subject=%r", to, subject)
        return True

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = cfg.get("MAIL_DEFAULT_SENDER")
    msg["To"] = to
    msg.set_content(body)

    try:
        with smtplib.SMTP(cfg.get("MAIL_SERVER"), int(cfg.get("MAIL_PORT", 587)), timeout=10) as smtp:
            if cfg.get("MAIL_USE_TLS"):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME"):
                smtp.login(cfg.get("MAIL_USERNAME"), cfg.get("MAIL_PASSWORD") or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error("mail to %s failed: %s", to, e)
        return False
    current_app.logger.info("mail sent: to=%s subject=%r", to, subject)
    return True


def send_template(to: str, template: str, **ctx) -> bool:
    subject, body = render(template, **ctx)
    return send_mail(to, subject, body)
