import logging
import smtplib

from flask import current_app, render_template
from flask_mail import BadHeaderError, Mail, Message

mail = Mail()


def send_mail(subject, recipients, template, **context):
    """Render an email template and send it. Returns False when delivery failed."""
    msg = Message(
        subject=subject,
        recipients=recipients,
        html=render_template(template, **context),
        sender=current_app.config.get('MAIL_DEFAULT_SENDER'),
    )
    try:
        mail.send(msg)
        return True
    except (BadHeaderError, smtplib.SMTPException, OSError):
        logging.exception(f"Failed to send email '{subject}' to {', '.join(recipients)}")
        return False
