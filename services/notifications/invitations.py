"""
Meeting invitations: ICS calendar payloads and SMTP delivery.
"""
import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional

from shared.config import Settings, get_settings
from shared.schemas import Meeting

logger = logging.getLogger(__name__)

ICS_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
ICS_UID_DOMAIN = "timely.app"
DEFAULT_ORGANIZER_EMAIL = "noreply@timely.app"


def escape_ics_text(value: str) -> str:
    """Escape a TEXT property value (RFC 5545 section 3.3.11)."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _ics_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(ICS_DATE_FORMAT)


def build_ics(
    meeting: Meeting,
    organizer_name: str,
    organizer_email: str = DEFAULT_ORGANIZER_EMAIL,
    now: Optional[datetime] = None,
) -> str:
    """
    Build a single-event iCalendar request for the meeting.

    Args:
        meeting: Meeting to describe
        organizer_name: Display name of the organizer
        organizer_email: Organizer mailbox used in the ORGANIZER property
        now: DTSTAMP value; the current time when omitted

    Returns:
        CRLF-terminated iCalendar text
    """
    stamp = now or datetime.now(timezone.utc)
    organizer_cn = organizer_name.replace('"', "")
    description = (
        f"Meeting type: {meeting.meeting_type}\n"
        f"Platform: {meeting.platform.value}\n"
        f"Organizer: {organizer_name}"
    )
    if meeting.meeting_url:
        description += f"\nJoin: {meeting.meeting_url}"
    if meeting.password:
        description += f"\nPasscode: {meeting.password}"
    if meeting.dial_in_number:
        description += f"\nDial-in: {meeting.dial_in_number}"

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Timely//Timely App//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:REQUEST",
        "BEGIN:VEVENT",
        f"UID:{meeting.id}@{ICS_UID_DOMAIN}",
        f"DTSTAMP:{_ics_datetime(stamp)}",
        f'ORGANIZER;CN="{organizer_cn}":mailto:{organizer_email}',
        f"DTSTART:{_ics_datetime(meeting.date)}",
        f"DTEND:{_ics_datetime(meeting.end_time)}",
        f"SUMMARY:{escape_ics_text(meeting.title)}",
        f"DESCRIPTION:{escape_ics_text(description)}",
        f"LOCATION:{escape_ics_text(meeting.meeting_url or meeting.platform.value)}",
    ]
    for email in meeting.participant_emails:
        lines.append(f"ATTENDEE;ROLE=REQ-PARTICIPANT;RSVP=TRUE:mailto:{email}")
    lines += [
        "STATUS:CONFIRMED",
        "SEQUENCE:0",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


def build_invitation_text(meeting: Meeting, organizer_name: str) -> str:
    """Plain-text invitation body."""
    lines = [
        "Hello!",
        "",
        f"{organizer_name} invites you to a meeting.",
        "",
        f"Title: {meeting.title}",
        f"Date: {meeting.date.astimezone(timezone.utc).strftime('%A, %d %B %Y %H:%M')} UTC",
        f"Duration: {meeting.duration} minutes",
        f"Platform: {meeting.platform.value}",
        f"Meeting type: {meeting.meeting_type}",
    ]
    if meeting.meeting_url:
        lines.append(f"Join: {meeting.meeting_url}")
    if meeting.password:
        lines.append(f"Passcode: {meeting.password}")
    if meeting.dial_in_number:
        lines.append(f"Dial-in: {meeting.dial_in_number}")
    lines += ["", "This meeting was organized with Timely."]
    return "\n".join(lines)


@dataclass
class InvitationReport:
    """Outcome of an invitation run."""

    sent: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed


class InvitationService:
    """Emails meeting invitations with an ICS attachment via SMTP."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        if not self.settings.smtp_configured:
            logger.warning("SMTP settings not fully configured")

    @property
    def from_email(self) -> str:
        return self.settings.invitation_from_email or self.settings.smtp_username or DEFAULT_ORGANIZER_EMAIL

    def build_message(self, meeting: Meeting, to_email: str, organizer_name: str) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = f"Meeting invitation: {meeting.title}"
        msg.attach(MIMEText(build_invitation_text(meeting, organizer_name), "plain", "utf-8"))

        ics = build_ics(meeting, organizer_name, organizer_email=self.from_email)
        attachment = MIMEBase("text", "calendar", method="REQUEST", charset="utf-8")
        attachment.set_payload(ics.encode("utf-8"))
        encoders.encode_base64(attachment)
        attachment.add_header("Content-Disposition", "attachment", filename="meeting.ics")
        msg.attach(attachment)
        return msg

    def _send_all(self, meeting: Meeting, organizer_name: str) -> InvitationReport:
        report = InvitationReport()
        server = smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=self.settings.http_timeout_seconds)
        try:
            server.starttls()
            server.login(self.settings.smtp_username, self.settings.smtp_password)
            for email in meeting.participant_emails:
                msg = self.build_message(meeting, email, organizer_name)
                try:
                    server.sendmail(self.from_email, [email], msg.as_string())
                    report.sent.append(email)
                    logger.info(f"Sent invitation for meeting {meeting.id} to {email}")
                except smtplib.SMTPException as e:
                    logger.error(f"SMTP error sending invitation to {email}: {e}")
                    report.failed[email] = f"SMTP error: {e}"
        finally:
            server.quit()
        return report

    async def send_invitations(
        self, meeting: Meeting, organizer_name: Optional[str] = None
    ) -> InvitationReport:
        """
        Send one invitation per participant.

        Failures are collected per recipient in the returned report.
        """
        organizer_name = organizer_name or self.settings.organizer_name
        if not meeting.participant_emails:
            return InvitationReport()

        if not self.settings.smtp_configured:
            message = (
                "SMTP settings not configured. Please configure SMTP_HOST, SMTP_PORT, "
                "SMTP_USERNAME, and SMTP_PASSWORD."
            )
            logger.warning(f"Not sending invitations for meeting {meeting.id}: SMTP not configured")
            return InvitationReport(failed={email: message for email in meeting.participant_emails})

        try:
            # smtplib blocks; run the whole session off the event loop
            return await asyncio.to_thread(self._send_all, meeting, organizer_name)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication error: {e}")
            reason = f"SMTP authentication failed: {e}"
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error: {e}")
            reason = f"SMTP error: {e}"
        return InvitationReport(failed={email: reason for email in meeting.participant_emails})
