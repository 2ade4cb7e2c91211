# harvests/services/email_service.py
# SMTP transport for all outgoing notification email.

import smtplib
from email.message import EmailMessage
from flask import current_app
from harvests.config import Config


def _send_email(app, msg):
    """
    Sends an email synchronously. The request waits for the SMTP round trip.
    """
    with app.app_context():
        try:
            smtp = smtplib.SMTP(
                current_app.config['MAIL_SERVER'],
                current_app.config['MAIL_PORT']
            )
            smtp.starttls()
            smtp.login(
                current_app.config['MAIL_USERNAME'],
                current_app.config['MAIL_PASSWORD']
            )
            smtp.send_message(msg)
            smtp.quit()

            current_app.logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")

        except Exception as e:
            current_app.logger.error(f"Error sending email to {msg['To']}: {str(e)}")
            raise  # Re-raise so caller knows it failed


def email_configured():
    try:
        Config.validate_email_config(current_app.config)
        return True
    except ValueError as e:
        current_app.logger.warning(f"Email configuration error: {e}")
        return False


def send_email(to_addresses, subject, body_text):
    """
    Sends a plain-text email.

    Returns:
        bool: True if sent, False if skipped because mail is not configured
    """
    if not email_configured():
        return False

    app = current_app._get_current_object()

    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = app.config['MAIL_USERNAME']

    if isinstance(to_addresses, list):
        msg['To'] = ', '.join(to_addresses)
    else:
        msg['To'] = to_addresses

    msg.set_content(body_text)

    _send_email(app, msg)
    return True
