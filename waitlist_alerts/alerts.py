"""
Alert Sending module for Waitlist Alerts.

Builds the match alert email for a unit and delivers it to the agent
responsible for the matching entries. Supports SendGrid and SMTP.

Delivery problems never raise out of this module: every send returns a
SendResult, and the caller decides what a failure means.
"""

import html
import smtplib
import logging
from datetime import date
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Optional

import sendgrid
from sendgrid.helpers.mail import Mail, Email, To

from .config import (
    AgentDirectory,
    EmailConfig,
    UNASSIGNED_AGENT,
    get_agent_directory,
    get_app_config,
    get_email_config,
)
from .models import Contact, MatchedEntry, SendResult, UnitRecord

logger = logging.getLogger(__name__)


# =============================================================================
# EMAIL TEMPLATES
# =============================================================================

ALERT_EMAIL_SUBJECT = "Match Alert: {unit_label} - {count} {people} waiting"

ALERT_EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">
    <h2 style="color: #333;">Waitlist Match Alert</h2>
    <p>A unit has become available with <strong>{count}</strong> matching waitlist {entries_word}:</p>

    <div style="background: #f0f9ff; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #2563eb;">
        <h3 style="margin-top: 0; color: #2563eb;">{unit_label}</h3>
        <p style="margin: 5px 0;"><strong>Type:</strong> {unit_type}</p>
        <p style="margin: 5px 0;"><strong>Rent:</strong> {rent}/month</p>
        <p style="margin: 5px 0;"><strong>Available:</strong> {available}</p>
    </div>

    <h3 style="color: #333; margin-top: 30px;">People to Contact (Priority Order):</h3>
    <p style="color: #666; font-size: 14px;">Internal Transfers are listed first per the "Transfer First" policy.</p>

    <table style="width: 100%; border-collapse: collapse; margin-top: 15px;">
        <thead>
            <tr style="background: #f5f5f5;">
                <th style="padding: 12px 8px; text-align: left;">#</th>
                <th style="padding: 12px 8px; text-align: left;">Name</th>
                <th style="padding: 12px 8px; text-align: left;">Email</th>
                <th style="padding: 12px 8px; text-align: left;">Phone</th>
                <th style="padding: 12px 8px; text-align: left;">Budget</th>
                <th style="padding: 12px 8px; text-align: left;">Move-in</th>
            </tr>
        </thead>
        <tbody>
            {contact_rows}
        </tbody>
    </table>

    <p style="color: #666; font-size: 12px; margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee;">
        This is an automated notification from the Waitlist Manager system.{app_link}
    </p>
</div>
"""

CONTACT_ROW_HTML = """
<tr style="border-bottom: 1px solid #eee;">
    <td style="padding: 12px 8px;">{position}</td>
    <td style="padding: 12px 8px;">
        <strong>{name}</strong>
        <span style="background: {badge_color}; color: white; padding: 2px 8px; border-radius: 4px; font-size: 11px; margin-left: 8px;">{badge}</span>
    </td>
    <td style="padding: 12px 8px;">{email}</td>
    <td style="padding: 12px 8px;">{phone}</td>
    <td style="padding: 12px 8px;">{budget}</td>
    <td style="padding: 12px 8px;">{move_in}{flex_note}</td>
</tr>
"""

FLEX_NOTE_HTML = (
    '<div style="background: #fef3c7; color: #92400e; padding: 4px 8px; '
    'border-radius: 4px; font-size: 11px; margin-top: 4px;">{note}</div>'
)

ALERT_EMAIL_TEXT = """
WAITLIST MATCH ALERT: {unit_label}

Type: {unit_type}
Rent: {rent}/month
Available: {available}

People to contact (priority order, transfers first):
{contact_lines}
---
Waitlist Manager
"""


def _format_date(value: Optional[str]) -> str:
    if not value:
        return ""
    value = str(value)
    try:
        return date.fromisoformat(value[:10]).strftime("%m/%d/%Y")
    except ValueError:
        return value


def _format_money(amount: float) -> str:
    return f"${amount:,.0f}"


def _move_in_display(contact: Contact) -> str:
    start = _format_date(contact.move_in_date) or "N/A"
    if contact.move_in_date_end:
        return f"{start} - {_format_date(contact.move_in_date_end)}"
    return start


def _available_display(unit: UnitRecord) -> str:
    shown = _format_date(unit.available_date)
    if not shown or shown.lower() in ("now", "available"):
        return "Now"
    return shown


def render_alert(unit: UnitRecord, contacts: list[Contact], app_url: str = "") -> tuple[str, str, str]:
    """
    Render the alert email for a unit.

    Args:
        unit: The available unit
        contacts: People to contact, already in priority order
        app_url: Optional link to the waitlist app

    Returns:
        Tuple of (subject, html, text)
    """
    esc = html.escape
    count = len(contacts)

    rows = []
    lines = []
    for position, contact in enumerate(contacts, start=1):
        budget = _format_money(contact.budget) if contact.budget > 0 else "Any"
        badge = "Transfer" if contact.is_transfer else "Prospect"
        rows.append(CONTACT_ROW_HTML.format(
            position=position,
            name=esc(contact.name or "N/A"),
            badge_color="#2563eb" if contact.is_transfer else "#6b7280",
            badge=badge,
            email=esc(contact.email or "N/A"),
            phone=esc(contact.phone or "N/A"),
            budget=budget,
            move_in=esc(_move_in_display(contact)),
            flex_note=FLEX_NOTE_HTML.format(note=esc(contact.note)) if contact.note else "",
        ))
        line = (
            f"{position}. {contact.name or 'N/A'} [{badge}] "
            f"{contact.email or 'N/A'} / {contact.phone or 'N/A'} - "
            f"budget {budget}, move-in {_move_in_display(contact)}"
        )
        if contact.note:
            line += f" ({contact.note})"
        lines.append(line)

    template_vars = {
        "unit_label": unit.label,
        "unit_type": unit.unit_type,
        "rent": _format_money(unit.rent_price),
        "available": _available_display(unit),
        "count": count,
        "people": "person" if count == 1 else "people",
        "entries_word": "entry" if count == 1 else "entries",
    }

    subject = ALERT_EMAIL_SUBJECT.format(**template_vars)
    app_link = f'<br/><a href="{esc(app_url)}/waitlist" style="color: #2563eb;">Open Waitlist Manager</a>' if app_url else ""
    html_body = ALERT_EMAIL_HTML.format(
        **{k: esc(str(v)) for k, v in template_vars.items()},
        contact_rows="".join(rows),
        app_link=app_link,
    )
    text_body = ALERT_EMAIL_TEXT.format(**template_vars, contact_lines="\n".join(lines))
    return subject, html_body, text_body


# =============================================================================
# EMAIL CLIENT
# =============================================================================

class EmailClient:
    """
    Transactional email capability.

    Usage:
        client = EmailClient()
        result = client.send("agent@example.com", "Subject", "<p>html</p>")
    """

    def __init__(self, config: Optional[EmailConfig] = None):
        self.config = config or get_email_config()

    def send(self, to_email: str, subject: str, html_content: str, text_content: str = "") -> SendResult:
        """
        Send one message.

        Returns:
            SendResult with the provider message id, or the error text
        """
        try:
            if self.config.provider == "smtp":
                message_id = self._send_via_smtp(to_email, subject, html_content, text_content)
            else:
                message_id = self._send_via_sendgrid(to_email, subject, html_content, text_content)
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return SendResult(error=str(e) or e.__class__.__name__, to_email=to_email)

        return SendResult(message_id=message_id, to_email=to_email)

    def _send_via_smtp(self, to_email: str, subject: str, html_content: str, text_content: str) -> str:
        """Send email via SMTP."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.sender
        msg["To"] = to_email
        msg["Message-ID"] = make_msgid(domain=self.config.from_email.split("@")[-1])

        if text_content:
            msg.attach(MIMEText(text_content, "plain"))
        msg.attach(MIMEText(html_content, "html"))

        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port) as server:
            server.starttls()
            if self.config.smtp_user and self.config.smtp_password:
                server.login(self.config.smtp_user, self.config.smtp_password)
            server.send_message(msg)

        return msg["Message-ID"]

    def _send_via_sendgrid(self, to_email: str, subject: str, html_content: str, text_content: str) -> Optional[str]:
        """Send email via SendGrid API."""
        sg = sendgrid.SendGridAPIClient(api_key=self.config.sendgrid_api_key)

        message = Mail(
            from_email=Email(self.config.from_email, self.config.from_name),
            to_emails=To(to_email),
            subject=subject,
            html_content=html_content,
            plain_text_content=text_content or None,
        )

        response = sg.send(message)

        if response.status_code not in (200, 201, 202):
            raise RuntimeError(f"SendGrid error: {response.status_code}")

        return response.headers.get("X-Message-Id")


# =============================================================================
# ALERT SENDER CLASS
# =============================================================================

class AlertSender:
    """
    Sends unit match alerts to leasing agents.

    Usage:
        sender = AlertSender()
        result = sender.send("Jane Agent", unit, ranked_entries)
    """

    def __init__(
        self,
        email_client: Optional[EmailClient] = None,
        directory: Optional[AgentDirectory] = None,
    ):
        """Initialize the alert sender."""
        self.email_client = email_client or EmailClient()
        self.directory = directory or get_agent_directory()
        self.app_url = get_app_config().app_url

    def send(self, agent: str, unit: UnitRecord, ranked_entries: list[MatchedEntry]) -> SendResult:
        """
        Send the automatic alert for one (unit, agent) group.

        The agent must have a configured address; there is no fallback here.

        Args:
            agent: Assigned agent name
            unit: The available unit
            ranked_entries: Matching entries in priority order

        Returns:
            SendResult (error set if the agent is unknown or delivery failed)
        """
        to_email = self.directory.resolve(agent)
        if not to_email:
            logger.warning(f"No email address configured for agent {agent!r}")
            return SendResult(error=f"No email address configured for agent {agent}")

        contacts = [Contact.from_entry(m) for m in ranked_entries]
        return self._deliver(to_email, unit, contacts, agent)

    def send_manual(self, unit: UnitRecord, agent: Optional[str], contacts: list[Contact]) -> SendResult:
        """
        Send an alert requested from the UI for a single unit.

        Unassigned or unknown agents go to the leasing inbox.
        """
        to_email = self.directory.resolve_with_fallback(agent)
        if not to_email:
            return SendResult(error="No leasing fallback address configured")
        return self._deliver(to_email, unit, contacts, agent or UNASSIGNED_AGENT)

    def _deliver(self, to_email: str, unit: UnitRecord, contacts: list[Contact], agent: str) -> SendResult:
        subject, html_body, text_body = render_alert(unit, contacts, self.app_url)
        result = self.email_client.send(to_email, subject, html_body, text_body)

        if result.ok:
            logger.info(f"Sent alert for {unit.label} to {agent} ({to_email}), {len(contacts)} contacts")
        else:
            logger.error(f"Alert for {unit.label} to {agent} failed: {result.error}")
        return result
