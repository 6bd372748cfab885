from dataclasses import dataclass

from app.features.waitlist.services.repository import WaitlistRepository
from app.features.waitlist.utils.crypto import decrypt_email
from app.features.waitlist.utils.emailer import send_launch_notification
from app.platform.logger import get_logger
from app.platform.services.email import EmailDispatcher

logger = get_logger("waitlist_launch")


@dataclass
class LaunchSummary:
    sent: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed


async def send_launch_notifications(
    repository: WaitlistRepository,
    dispatcher: EmailDispatcher,
    settings,
    dry_run: bool = False,
) -> LaunchSummary:
    """
    Send the launch email to every verified signup that has not unsubscribed.

    A row that cannot be decrypted is counted as failed and skipped, so one
    bad record never stops the rest of the run.
    """
    summary = LaunchSummary()
    async for signup in repository.iter_verified_active():
        try:
            email = decrypt_email(signup.email, settings.ENCRYPTION_KEY)
        except ValueError as e:
            summary.failed += 1
            logger.error(f"Launch notification skipped for signup {signup.id}: {e}")
            continue

        if dry_run:
            summary.sent += 1
            continue

        result = await send_launch_notification(dispatcher, settings, email, signup.unsubscribe_token)
        if result.success:
            summary.sent += 1
        else:
            summary.failed += 1
            logger.error(f"Launch notification failed for signup {signup.id}: {result.error}")

    logger.info(f"Launch notifications finished: {summary.sent} sent, {summary.failed} failed")
    return summary
