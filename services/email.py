import os
import smtplib
from email.message import EmailMessage
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape
import structlog

from core.config import settings

logger = structlog.get_logger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml", "txt"]),
)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Send one message over SMTP. Returns False when sending was skipped."""
    # Only skip email sending with placeholder credentials
    if settings.TESTING or not settings.SMTP_PASSWORD or settings.SMTP_PASSWORD == "your-gmail-app-password":
        logger.info("email_skipped", to=to_email, subject=subject)
        return False

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

    logger.info("email_sent", to=to_email, subject=subject)
    return True


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> bool:
    """Render a template and send it."""
    body = render_template(template_path, context)
    return send_email(to_email, subject, body)
