import logging

import requests

from .constants import BREVO_SEND_URL

logger = logging.getLogger(__name__)


def send_email(settings, to_email: str, subject: str, html: str):
    """Send a transactional email through Brevo.

    Returns a ``(sent, error)`` tuple; never raises.
    """
    # In non-stage/prod environments, log the mail so links can be followed locally
    if not settings.is_production:
        logger.info("[DEV] Mail to %s: %s\n%s", to_email, subject, html)

    if not settings.brevo_key:
        return False, 'BREVO_KEY not configured on server'
    payload = {
        'to': [{'email': to_email}],
        'sender': {'name': 'Prevue.AI', 'email': settings.mail_sender},
        'subject': subject,
        'htmlContent': html,
    }
    headers = {
        'accept': 'application/json',
        'content-type': 'application/json',
        'api-key': settings.brevo_key,
    }
    try:
        resp = requests.post(BREVO_SEND_URL, headers=headers, json=payload, timeout=20)
        if 200 <= resp.status_code < 300:
            return True, None
        return False, f'Brevo error {resp.status_code}: {resp.text[:200]}'
    except requests.RequestException as e:
        return False, str(e)


def send_password_reset_email(settings, to_email: str, reset_link: str, minutes: int):
    html = (
        "<h3>Password Reset Request</h3>"
        "<p>Click the link below to reset your password:</p>"
        f'<a href="{reset_link}">{reset_link}</a>'
        f"<p>This link will expire in {minutes} minutes.</p>"
    )
    return send_email(settings, to_email, 'Reset your password', html)


def send_interview_invitation(settings, schedule, invite_link: str):
    when = schedule.scheduled_at.strftime('%d %b %Y, %H:%M UTC')
    notes = f"<p><strong>Notes:</strong> {schedule.notes}</p>" if schedule.notes else ""
    html = (
        f"<p>Hi {schedule.candidate_name},</p>"
        f"<p>You have been invited to a {schedule.mode} interview for the "
        f"<strong>{schedule.role}</strong> role ({schedule.difficulty}).</p>"
        f"<p><strong>Scheduled for:</strong> {when}</p>"
        f"{notes}"
        f'<p>Join here: <a href="{invite_link}">{invite_link}</a></p>'
        f"<p>The link stays valid for {settings.invite_expiry_hours} hours after the scheduled time.</p>"
    )
    return send_email(settings, schedule.candidate_email, 'Your interview invitation', html)
