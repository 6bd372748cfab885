#!/usr/bin/env python3
"""
Launch Notification Script
Emails every verified, subscribed waitlist member that the product is live

Usage:
    python scripts/send_launch_notification.py [--dry-run]
"""

import argparse
import asyncio

from app.features.waitlist.services.launch import send_launch_notifications
from app.features.waitlist.services.repository import WaitlistRepository
from app.platform.config import settings
from app.platform.db.session import SessionLocal
from app.platform.services.email import EmailDispatcher


async def main(dry_run: bool) -> int:
    dispatcher = EmailDispatcher.from_settings(settings)
    if not dispatcher.is_configured() and not dry_run:
        print("❌ No email providers configured, aborting")
        return 1

    async with SessionLocal() as db:
        summary = await send_launch_notifications(
            WaitlistRepository(db), dispatcher, settings, dry_run=dry_run
        )

    label = "would be sent" if dry_run else "sent"
    print(f"✅ {summary.sent} launch notifications {label}, {summary.failed} failed")
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Send the launch notification to the waitlist")
    parser.add_argument("--dry-run", action="store_true", help="Count recipients without sending")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.dry_run)))
