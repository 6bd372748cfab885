import smtplib
import ssl
from dataclasses import asdict, dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict, List, Optional, Protocol

import requests
from fastapi.concurrency import run_in_threadpool
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Category, CustomArg, Email, Mail, To

from app.platform.logger import get_logger, sanitize_for_logs

# Initialize Logger
logger = get_logger("email_service")


@dataclass
class EmailMessage:
    to: str
    from_address: str
    subject: str
    html: str
    text: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmailResult:
    success: bool
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class EmailProvider(Protocol):
    name: str

    def is_configured(self) -> bool:
        ...

    def send(self, message: EmailMessage) -> EmailResult:
        ...

    def test_connection(self) -> bool:
        ...


class MailgunProvider:
    name = "mailgun"

    def __init__(self, api_key: str, domain: str, base_url: str, timeout: int = 30):
        self.api_key = api_key
        self.domain = domain
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key and self.domain)

    def send(self, message: EmailMessage) -> EmailResult:
        data: Dict[str, Any] = {
            "from": message.from_address,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            data["text"] = message.text
        if message.tags:
            data["o:tag"] = message.tags
        for key, value in message.metadata.items():
            data[f"v:{key}"] = str(value)

        response = requests.post(
            f"{self.base_url}/{self.domain}/messages",
            auth=("api", self.api_key),
            data=data,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return EmailResult(success=True, provider=self.name, message_id=response.json().get("id"))

    def test_connection(self) -> bool:
        response = requests.get(
            f"{self.base_url}/domains/{self.domain}",
            auth=("api", self.api_key),
            timeout=self.timeout,
        )
        return response.ok


class SendGridProvider:
    name = "sendgrid"

    def __init__(self, api_key: str, timeout: int = 30):
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> SendGridAPIClient:
        client = SendGridAPIClient(self.api_key)
        client.client.timeout = self.timeout
        return client

    def send(self, message: EmailMessage) -> EmailResult:
        mail = Mail(
            from_email=Email(message.from_address),
            to_emails=To(message.to),
            subject=message.subject,
            plain_text_content=message.text,
            html_content=message.html,
        )
        for tag in message.tags:
            mail.add_category(Category(tag))
        for key, value in message.metadata.items():
            mail.add_custom_arg(CustomArg(key, str(value)))

        response = self._client().send(mail)
        return EmailResult(
            success=True,
            provider=self.name,
            message_id=response.headers.get("X-Message-Id", "unknown"),
        )

    def test_connection(self) -> bool:
        response = self._client().client.scopes.get()
        return 200 <= response.status_code < 300


class RelayProvider:
    """HTTP email relay service (POST JSON, X-API-Key auth)."""

    name = "relay"

    def __init__(self, url: str, api_key: str, timeout: int = 30):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)

    def send(self, message: EmailMessage) -> EmailResult:
        payload = {
            "to_email": message.to,
            "subject": message.subject,
            "body": message.html,
            "from_address": message.from_address,
        }
        headers = {"X-API-Key": self.api_key, "Content-Type": "application/json"}

        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            return EmailResult(success=False, provider=self.name, error="Email relay service timeout")
        except requests.exceptions.RequestException as e:
            if getattr(e, "response", None) is not None:
                logger.error(f"Relay response status: {e.response.status_code}")
            return EmailResult(success=False, provider=self.name, error=f"Email relay service error: {e}")

        result = response.json()
        return EmailResult(success=True, provider=self.name, message_id=result.get("id"))

    def test_connection(self) -> bool:
        try:
            response = requests.head(self.url, timeout=self.timeout)
        except requests.exceptions.RequestException:
            return False
        return response.status_code < 500


class SmtpProvider:
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        encryption: str = "tls",
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.encryption = encryption
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.ehlo()
            if str(self.encryption).upper() in ["TLS", "TRUE"]:
                server.starttls()
                server.ehlo()
        server.login(self.username, self.password)
        return server

    def send(self, message: EmailMessage) -> EmailResult:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = message.from_address
        msg["To"] = message.to
        if message.text:
            msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))

        with self._connect() as server:
            server.sendmail(message.from_address, message.to, msg.as_string())
        return EmailResult(success=True, provider=self.name)

    def test_connection(self) -> bool:
        try:
            with self._connect():
                return True
        except (smtplib.SMTPException, OSError):
            return False


class EmailDispatcher:
    """
    Tries each configured provider in order and stops at the first success.

    Sending never raises: a failed dispatch comes back as EmailResult with
    success=False so callers can log it and carry on.
    """

    def __init__(self, providers: List[EmailProvider], from_address: str):
        self.providers = providers
        self.from_address = from_address

    @classmethod
    def from_settings(cls, settings) -> "EmailDispatcher":
        timeout = settings.EMAIL_PROVIDER_TIMEOUT
        candidates: List[EmailProvider] = [
            MailgunProvider(
                settings.MAILGUN_API_KEY, settings.MAILGUN_DOMAIN, settings.MAILGUN_BASE_URL, timeout
            ),
            SendGridProvider(settings.SENDGRID_API_KEY, timeout),
            RelayProvider(settings.EMAIL_RELAY_URL, settings.EMAIL_RELAY_API_KEY, timeout),
            SmtpProvider(
                settings.MAIL_HOST,
                settings.MAIL_PORT,
                settings.MAIL_USERNAME,
                settings.MAIL_PASSWORD,
                settings.MAIL_ENCRYPTION,
                timeout,
            ),
        ]
        providers = [provider for provider in candidates if provider.is_configured()]
        if not providers:
            logger.warning("No email providers configured - emails will not be sent")
        return cls(providers, formataddr((settings.MAIL_FROM_NAME, settings.MAIL_FROM_ADDRESS)))

    def is_configured(self) -> bool:
        return bool(self.providers)

    async def send(self, message: EmailMessage) -> EmailResult:
        if not self.providers:
            logger.warning(
                f"No email providers configured. Email would be sent: "
                f"{sanitize_for_logs({'to_email': message.to, 'subject': message.subject})}"
            )
            return EmailResult(success=False, provider="none", error="No providers configured")

        for provider in self.providers:
            try:
                if not provider.is_configured():
                    continue
                result = await run_in_threadpool(provider.send, message)
            except Exception as e:
                logger.error(f"Email provider {provider.name} error: {e}")
                continue

            if result.success:
                logger.info(f"Email sent via {result.provider}: {sanitize_for_logs(message.to)}")
                return result
            logger.warning(f"Email provider {result.provider} failed: {result.error}")

        return EmailResult(success=False, provider="fallback", error="All providers failed")

    async def test_connection(self) -> dict:
        working = []
        for provider in self.providers:
            try:
                connected = provider.is_configured() and await run_in_threadpool(
                    provider.test_connection
                )
            except Exception as e:
                logger.warning(f"Connection test for {provider.name} failed: {e}")
                connected = False
            if connected:
                working.append(provider.name)
        return {"configured": bool(working), "providers": working}
