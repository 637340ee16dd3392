"""
Outbound e-mail notifications.

Mail is sent through the Resend HTTP API. Without RESEND_API_KEY the
service runs in log-only mode: messages are logged and reported as sent so
development and test environments never fail on e-mail.
"""

from dataclasses import dataclass
from typing import List, Optional

import requests
from flask import current_app, render_template_string

RESEND_API_URL = 'https://api.resend.com/emails'
REQUEST_TIMEOUT_SECONDS = 10
DEV_MODE_MESSAGE_ID = 'dev-mode-skipped'


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def send_email(to: List[str], subject: str, html: str) -> EmailResult:
    """Send one HTML e-mail. Never raises; failures are logged and returned."""
    api_key = current_app.config.get('RESEND_API_KEY')
    sender = current_app.config.get('EMAIL_FROM')

    if not api_key:
        current_app.logger.info(f"E-mail not sent (no RESEND_API_KEY): to={to} subject={subject!r}")
        return EmailResult(success=True, message_id=DEV_MODE_MESSAGE_ID)

    try:
        response = requests.post(
            RESEND_API_URL,
            headers={'Authorization': f'Bearer {api_key}'},
            json={'from': sender, 'to': to, 'subject': subject, 'html': html},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        current_app.logger.exception(f"E-mail provider request failed: {e}")
        return EmailResult(success=False, error='Email provider unavailable.')

    if response.status_code >= 400:
        current_app.logger.error(
            f"E-mail provider rejected message ({response.status_code}): {response.text[:500]}"
        )
        return EmailResult(success=False, error='Email provider rejected the message.')

    try:
        message_id = response.json().get('id')
    except ValueError:
        message_id = None
    current_app.logger.info(f"E-mail sent to {to}: {message_id}")
    return EmailResult(success=True, message_id=message_id)


ABSENCE_NOTICE_TEMPLATE = """\
<div style="font-family: sans-serif; max-width: 600px;">
  <h2>Absence notice</h2>
  <p>The following student was recorded as absent.</p>
  <table style="border-collapse: collapse;">
    <tr><th align="left">Student</th><td>{{ student.name }}</td></tr>
    <tr><th align="left">Student number</th><td>{{ student.student_no }}</td></tr>
    <tr><th align="left">University</th><td>{{ university.name }}</td></tr>
    <tr><th align="left">Date</th><td>{{ absence.absence_date.isoformat() }}</td></tr>
    <tr><th align="left">Reason</th><td>{{ absence.reason.label }}</td></tr>
    {% if absence.note %}<tr><th align="left">Note</th><td>{{ absence.note }}</td></tr>{% endif %}
  </table>
  <p style="color: #666; font-size: 12px;">This message was sent automatically by the FRISK portal.</p>
</div>
"""


def send_absence_notification(absence) -> EmailResult:
    """
    E-mail every contact of the student's university about an absence.

    Returns a failed EmailResult (without sending) when the university has
    no contacts.
    """
    student = absence.student
    university = student.university
    recipients = [c.email for c in university.contacts]
    if not recipients:
        current_app.logger.warning(f"No contacts for university {university.id}; absence {absence.id} not notified")
        return EmailResult(success=False, error='No contacts registered for this university.')

    subject = f"[Absence notice] {student.name} - {absence.absence_date.isoformat()}"
    html = render_template_string(
        ABSENCE_NOTICE_TEMPLATE,
        student=student,
        university=university,
        absence=absence,
    )
    return send_email(recipients, subject, html)
