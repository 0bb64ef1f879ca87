import logging
from flask import current_app
from flask_mailman import EmailMessage

logger = logging.getLogger(__name__)

PORTAL_NAME = "ORII Research Portal"


def _wrap(heading, body_html):
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #2c3e50; text-align: center;">{PORTAL_NAME}</h2>
        <div style="background-color: #f8f9fa; padding: 20px; border-radius: 5px;">
            <h3 style="color: #2c3e50;">{heading}</h3>
            {body_html}
        </div>
        <p style="color: #7f8c8d; font-size: 12px; text-align: center; margin-top: 20px;">
            This is an automated message, please do not reply.
        </p>
    </div>
    """


def send_email(to_email, subject, html_content):
    """Send one HTML email. Returns False instead of raising when delivery fails."""
    try:
        email = EmailMessage(
            subject=subject,
            body=html_content,
            from_email=current_app.config.get('DEFAULT_SENDER'),
            to=[to_email]
        )
        email.content_subtype = "html"
        email.send()
        logger.info(f"Email '{subject}' sent to {to_email}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def send_welcome_email(user):
    body = f"""
        <p>Hello {user.first_name},</p>
        <p>Thank you for registering with the {PORTAL_NAME}. Your account is pending
        review by an administrator. You will receive another email once it has been approved.</p>
    """
    return send_email(user.email, f"Welcome to the {PORTAL_NAME}", _wrap("Registration received", body))


def send_approval_email(user):
    login_url = f"{current_app.config.get('FRONTEND_URL')}/login"
    body = f"""
        <p>Hello {user.first_name},</p>
        <p>Your account has been approved. You can now sign in and use the portal.</p>
        <p style="text-align: center;"><a href="{login_url}">Sign in</a></p>
    """
    return send_email(user.email, "Your account has been approved", _wrap("Account approved", body))


def send_rejection_email(user, reason=None):
    reason_html = f"<p><strong>Reason:</strong> {reason}</p>" if reason else ""
    body = f"""
        <p>Hello {user.first_name},</p>
        <p>We are sorry to inform you that your registration could not be approved.</p>
        {reason_html}
        <p>If you believe this is a mistake, please reach out through the contact page.</p>
    """
    return send_email(user.email, "Update on your registration", _wrap("Registration not approved", body))


def send_contact_response(contact):
    body = f"""
        <p>Hello {contact.name},</p>
        <p>Thank you for contacting us about "<em>{contact.subject}</em>".</p>
        <div style="background-color: #ffffff; padding: 15px; border-radius: 5px; margin: 20px 0;">
            <p style="margin: 0;">{contact.response_message}</p>
        </div>
    """
    return send_email(contact.email, f"Re: {contact.subject}", _wrap("Response to your inquiry", body))


def send_event_reminder(user, event, reminder_type):
    lead = reminder_type.replace('_', ' ')
    where = event.virtual_link if event.venue_type == 'virtual' else (event.venue_name or 'See event details')
    body = f"""
        <p>Hello {user.first_name},</p>
        <p>This is a reminder that <strong>{event.title}</strong> starts in {lead}.</p>
        <p><strong>Date:</strong> {event.start_date.isoformat()} {event.start_time or ''} ({event.timezone})<br>
        <strong>Venue:</strong> {where}</p>
    """
    return send_email(user.email, f"Reminder: {event.title}", _wrap("Event reminder", body))


def send_application_confirmation(application, job):
    body = f"""
        <p>Hello {application.full_name},</p>
        <p>We have received your application for <strong>{job.title}</strong>
        ({job.department}). Our team will review it and get back to you.</p>
        <p>Application reference: {application.application_id}</p>
    """
    return send_email(application.email, f"Application received: {job.title}",
                      _wrap("Application received", body))
