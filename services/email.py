import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task

logger = logging.getLogger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Queue an email on Celery, sending it inline when the broker is unreachable.
    Returns immediately when the task is queued.
    """
    try:
        send_email_task.delay(to_email, subject, body)
        logger.debug("Email task queued for %s", to_email)
        return
    except Exception as e:
        logger.warning("Celery not available, sending email directly: %s", e)

    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send it through send_email."""
    body = render_template(template_path, {"app_name": settings.APP_NAME, "app_url": settings.APP_BASE_URL, **context})
    send_email(to_email, subject, body)


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    if not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured; email to %s (%s) not sent", to_email, subject)
        return

    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
        msg["To"] = to_email
        msg.set_content(body)

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls()
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)

        logger.info("Email sent to %s", to_email)
    except (smtplib.SMTPException, OSError):
        logger.exception("Email sending failed for %s (%s)", to_email, subject)
