from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

template_dir = Path(__file__).resolve().parent.parent / "template"

env = Environment(
    loader=FileSystemLoader(str(template_dir)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


class EmailType(str, Enum):
    VERIFICATION = "verification"
    WELCOME = "welcome"
    LAUNCH_NOTIFICATION = "launch_notification"


@dataclass
class WaitlistEmailData:
    email: str
    unsubscribe_token: str
    verification_token: Optional[str] = None
    waitlist_position: Optional[int] = None


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str
    tags: List[str]


EMAIL_TEMPLATES = {
    EmailType.VERIFICATION: {
        "subject": "Verify Your Email - Welcome to {app_name}!",
        "tags": ["verification", "waitlist"],
    },
    EmailType.WELCOME: {
        "subject": "Welcome to {app_name} - You're In!",
        "tags": ["welcome", "waitlist", "verified"],
    },
    EmailType.LAUNCH_NOTIFICATION: {
        "subject": "{app_name} is Now Live - Your Early Access Awaits",
        "tags": ["launch", "early-access"],
    },
}


def render_email_template(
    email_type: EmailType, data: WaitlistEmailData, base_url: str, app_name: str
) -> RenderedEmail:
    config = EMAIL_TEMPLATES[email_type]
    base_url = base_url.rstrip("/")
    context = {
        "app_name": app_name,
        "email": data.email,
        "waitlist_position": data.waitlist_position,
        "verify_url": f"{base_url}/api/waitlist/verify?token={data.verification_token}",
        "unsubscribe_url": f"{base_url}/api/waitlist/unsubscribe?token={data.unsubscribe_token}",
        "privacy_url": f"{base_url}/privacy-policy",
        "home_url": base_url,
    }
    return RenderedEmail(
        subject=config["subject"].format(app_name=app_name),
        html=env.get_template(f"{email_type.value}.html").render(**context),
        text=env.get_template(f"{email_type.value}.txt").render(**context),
        tags=list(config["tags"]),
    )
