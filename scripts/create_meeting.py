#!/usr/bin/env python3
"""
Create a meeting end to end: sign in, compose a draft, create the
conferencing link, save the meeting and email the invitations.

Example:
    python scripts/create_meeting.py --email me@example.com --password secret \
        --title Sync --start 2025-01-10T09:00:00Z --duration 30 \
        --platform "Google Meet" --participant p@example.com
"""
import argparse
import asyncio
import getpass
import logging
import os
import sys
from datetime import datetime

# Add the parent directory to the path so we can import shared modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.config import get_settings
from shared.errors import TimelyError
from shared.schemas import MeetingPlatform
from services.timely.app import TimelyApp

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format=settings.log_format,
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Timely meeting with a conferencing link")
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--password", help="Account password (prompted when omitted)")
    parser.add_argument("--title", required=True, help="Meeting title")
    parser.add_argument("--start", required=True, help="Start time, ISO-8601 (e.g. 2025-01-10T09:00:00Z)")
    parser.add_argument("--duration", type=int, default=30, help="Duration in minutes")
    parser.add_argument(
        "--platform",
        default=MeetingPlatform.GOOGLE_MEET.value,
        help="Google Meet, Zoom, Microsoft Teams or In Person",
    )
    parser.add_argument("--participant", action="append", default=[], help="Participant email (repeatable)")
    parser.add_argument("--meeting-type", default="", help="Meeting type label")
    parser.add_argument("--no-invitations", action="store_true", help="Do not email participants")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    start_time = datetime.fromisoformat(args.start.replace("Z", "+00:00"))
    password = args.password or getpass.getpass("Password: ")

    timely = TimelyApp(settings)
    await timely.start()
    try:
        await timely.auth.sign_in(args.email, password)
        draft = timely.new_draft(
            title=args.title,
            start_time=start_time,
            duration=args.duration,
            platform=MeetingPlatform(args.platform),
            participants=args.participant,
            meeting_type=args.meeting_type,
        )

        link = await timely.create_link(draft.id)
        if not link.success:
            logger.error(f"Could not create the meeting link: {link.error_message}")
            return 1
        if link.meeting_url:
            logger.info(f"Meeting link: {link.meeting_url}{' (sandbox)' if link.sandbox else ''}")

        outcome = await timely.schedule_meeting(draft.id, send_invitations=not args.no_invitations)
        logger.info(f"Saved meeting {outcome.meeting.id} on {outcome.meeting.date.isoformat()}")
        for email in outcome.invitations.sent:
            logger.info(f"Invitation sent to {email}")
        for email, reason in outcome.invitations.failed.items():
            logger.warning(f"Invitation to {email} failed: {reason}")
        return 0
    except TimelyError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        await timely.close()


def main(argv=None) -> int:
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
