from datetime import datetime, timezone
from typing import Optional

from app.features.waitlist.services.email_templates import (
    EmailType,
    WaitlistEmailData,
    render_email_template,
)
from app.platform.services.email import EmailDispatcher, EmailMessage, EmailResult


async def _send_waitlist_email(
    dispatcher: EmailDispatcher,
    settings,
    email_type: EmailType,
    data: WaitlistEmailData,
) -> EmailResult:
    rendered = render_email_template(email_type, data, settings.PUBLIC_URL, settings.APP_NAME)
    metadata = {"type": email_type.value, "timestamp": datetime.now(timezone.utc).isoformat()}
    if data.waitlist_position is not None:
        metadata["waitlist_position"] = data.waitlist_position

    return await dispatcher.send(
        EmailMessage(
            to=data.email,
            from_address=dispatcher.from_address,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            tags=rendered.tags,
            metadata=metadata,
        )
    )


async def send_verification_email(
    dispatcher: EmailDispatcher,
    settings,
    email: str,
    verification_token: str,
    unsubscribe_token: str,
) -> EmailResult:
    data = WaitlistEmailData(
        email=email,
        verification_token=verification_token,
        unsubscribe_token=unsubscribe_token,
    )
    return await _send_waitlist_email(dispatcher, settings, EmailType.VERIFICATION, data)


async def send_welcome_email(
    dispatcher: EmailDispatcher,
    settings,
    email: str,
    unsubscribe_token: str,
    waitlist_position: Optional[int] = None,
) -> EmailResult:
    data = WaitlistEmailData(
        email=email,
        unsubscribe_token=unsubscribe_token,
        waitlist_position=waitlist_position,
    )
    return await _send_waitlist_email(dispatcher, settings, EmailType.WELCOME, data)


async def send_launch_notification(
    dispatcher: EmailDispatcher, settings, email: str, unsubscribe_token: str
) -> EmailResult:
    data = WaitlistEmailData(email=email, unsubscribe_token=unsubscribe_token)
    return await _send_waitlist_email(dispatcher, settings, EmailType.LAUNCH_NOTIFICATION, data)
