"""
Transactional email over SMTP.

All senders are synchronous and meant to run as background tasks; when
EMAIL_ENABLED is off they log and return without connecting.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Union

from app import config

logger = logging.getLogger(__name__)


def _layout(title: str, body: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #1e3a8a;">{title}</h2>
      {body}
      <p style="color: #6b7280; font-size: 12px;">NyayBooker - Legal consultations made simple</p>
    </div>
    """


def send_email(to: Union[str, list[str]], subject: str, html_content: str) -> bool:
    recipients = [to] if isinstance(to, str) else to

    if not config.EMAIL_ENABLED:
        logger.info(f"Email disabled, not sending '{subject}' to {recipients}")
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.EMAIL_FROM
    msg["To"] = ", ".join(recipients)
    msg.attach(MIMEText(html_content, "html"))

    if config.SMTP_PORT == 465:
        server = smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, context=ssl.create_default_context(), timeout=30)
    else:
        server = smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30)
        server.starttls(context=ssl.create_default_context())

    try:
        if config.SMTP_USER:
            server.login(config.SMTP_USER, config.SMTP_PASSWORD)
        server.sendmail(config.EMAIL_FROM.split("<")[-1].rstrip(">"), recipients, msg.as_string())
    finally:
        server.quit()

    logger.info(f"Email '{subject}' sent to {recipients}")
    return True


def send_in_background(sender, *args, **kwargs):
    """Run one of the senders below as a background task; SMTP failures are logged."""
    try:
        sender(*args, **kwargs)
    except Exception as e:
        logger.error(f"Failed to send email via {sender.__name__}: {e}")


def send_verification_email(to: str, name: str, token: str) -> bool:
    link = f"{config.FRONTEND_URL}/verify-email?token={token}"
    body = f"""
      <p>Hi {name},</p>
      <p>Please confirm your email address to activate your NyayBooker account.</p>
      <p><a href="{link}">Verify Email</a></p>
      <p>This link expires in 24 hours.</p>
    """
    return send_email(to, "Verify Your Email - NyayBooker", _layout("Verify your email", body))


def send_password_reset_email(to: str, name: str, token: str) -> bool:
    link = f"{config.FRONTEND_URL}/reset-password?token={token}"
    body = f"""
      <p>Hi {name},</p>
      <p>We received a request to reset your password.</p>
      <p><a href="{link}">Reset Password</a></p>
      <p>This link expires in 1 hour. If you did not request this, ignore this email.</p>
    """
    return send_email(to, "Reset Your Password - NyayBooker", _layout("Reset your password", body))


def send_booking_confirmation_email(to: str, name: str, booking_number: str, lawyer_name: str,
                                    scheduled_date: str, scheduled_time: str, duration: int) -> bool:
    body = f"""
      <p>Hi {name},</p>
      <p>Your consultation with <strong>{lawyer_name}</strong> is booked.</p>
      <ul>
        <li>Booking: {booking_number}</li>
        <li>Date: {scheduled_date}</li>
        <li>Time: {scheduled_time}</li>
        <li>Duration: {duration} minutes</li>
      </ul>
    """
    return send_email(to, f"Booking Confirmed - {booking_number} | NyayBooker", _layout("Booking confirmed", body))


def send_booking_cancellation_email(to: str, name: str, booking_number: str, reason: str = None) -> bool:
    body = f"""
      <p>Hi {name},</p>
      <p>Booking <strong>{booking_number}</strong> has been cancelled.</p>
      <p>Reason: {reason or "Not specified"}</p>
    """
    return send_email(to, f"Booking Cancelled - {booking_number} | NyayBooker", _layout("Booking cancelled", body))
