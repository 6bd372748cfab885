from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from uuid6 import uuid7

from app.features.waitlist.models.waitlist import WaitlistSignup
from app.features.waitlist.schemas.waitlist import (
    TokenIn,
    WaitlistIn,
    WaitlistOut,
    WaitlistStatsResponse,
)
from app.features.waitlist.services.bot_filter import (
    detect_bot,
    sanitize_user_agent,
    validate_honeypot,
)
from app.features.waitlist.services.repository import WaitlistRepository
from app.features.waitlist.services.stats import build_waitlist_stats
from app.features.waitlist.services.validation import validate_email_advanced, validate_structure
from app.features.waitlist.utils.crypto import (
    decrypt_email,
    encrypt_email,
    generate_unsubscribe_token,
    generate_verification_token,
    hash_email,
    is_verification_token_fresh,
    normalize_email,
)
from app.features.waitlist.utils.emailer import send_verification_email, send_welcome_email
from app.platform.config import SignupPolicy
from app.platform.exceptions import (
    ConstraintViolation,
    DuplicateActive,
    EmailNotFound,
    InvalidDomain,
    InvalidEmail,
    InvalidPayload,
    PreviouslyUnsubscribed,
    StorageUnavailable,
    TokenInvalid,
    TokenNotFound,
    WaitlistError,
)
from app.platform.logger import get_logger, sanitize_for_logs
from app.platform.response import api_body
from app.platform.services.email import EmailDispatcher, EmailResult

logger = get_logger("waitlist")

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."


@dataclass
class RequestContext:
    headers: Mapping[str, str] = field(default_factory=dict)
    user_agent: str = ""
    ip_address: Optional[str] = None
    debug_bypass: bool = False


@dataclass
class SubmissionOutcome:
    status_code: int
    body: dict


@dataclass
class TokenOutcome:
    message: str
    email: str
    waitlist_position: Optional[int] = None


class WaitlistService:
    """
    Runs the waitlist submission pipeline and the follow-up actions
    (verify, unsubscribe, resend) on top of the repository and the email
    dispatcher.

    Rate limiting happens before this service is reached (see
    RateLimitMiddleware). Email delivery failures are logged and never
    change the outcome of a request once the signup is persisted.
    """

    def __init__(self, repository: WaitlistRepository, dispatcher: EmailDispatcher, settings):
        self.repository = repository
        self.dispatcher = dispatcher
        self.settings = settings

    @property
    def policy(self) -> SignupPolicy:
        return SignupPolicy(self.settings.SIGNUP_POLICY)

    # ── Submission ─────────────────────────────

    async def submit(self, payload: Any, context: RequestContext) -> SubmissionOutcome:
        try:
            return await self._submit(payload, context)
        except WaitlistError as e:
            return SubmissionOutcome(
                e.status_code,
                api_body(
                    success=False,
                    error=e.error,
                    message=e.message,
                    suggestions=getattr(e, "suggestions", None),
                ),
            )
        except Exception:
            safe_payload = sanitize_for_logs(payload) if isinstance(payload, dict) else None
            logger.exception(f"Waitlist submission error: {safe_payload}")
            return SubmissionOutcome(
                500,
                api_body(success=False, error="Internal server error", message=GENERIC_ERROR_MESSAGE),
            )

    async def _submit(self, payload: Any, context: RequestContext) -> SubmissionOutcome:
        if not isinstance(payload, dict):
            raise InvalidPayload("Request body must be a JSON object")

        if (
            not context.debug_bypass
            and "website" in payload
            and not validate_honeypot(payload["website"])
        ):
            logger.info(f"Honeypot triggered for submission: {sanitize_for_logs(payload)}")
            email = payload.get("email")
            return await self._silent_success(
                normalize_email(email) if isinstance(email, str) else "", []
            )

        submission = validate_structure(payload)

        check = validate_email_advanced(submission.email, self.settings.REJECT_TYPO_DOMAINS)
        if not check.valid:
            error_cls = InvalidDomain if "Disposable" in (check.reason or "") else InvalidEmail
            raise error_cls(check.reason, suggestions=check.suggestions)

        if not context.debug_bypass and detect_bot(context.user_agent, context.headers):
            logger.info(
                "Bot detected for submission: "
                f"{sanitize_for_logs({'email': submission.email, 'user_agent': context.user_agent})}"
            )
            return await self._silent_success(submission.email, check.suggestions)

        email_hash = hash_email(submission.email)
        existing = await self.repository.find_by_hash(email_hash)
        if existing is not None:
            return await self._handle_existing(existing, submission.email, check.suggestions)

        try:
            return await self._create(submission, email_hash, context, check.suggestions)
        except ConstraintViolation:
            # Another request inserted the same email between our lookup and insert
            logger.info("Concurrent signup detected, answering from the stored record")
            existing = await self.repository.find_by_hash(email_hash)
            if existing is None:
                raise
            return await self._handle_existing(existing, submission.email, check.suggestions)

    async def _silent_success(self, email: str, suggestions: List[str]) -> SubmissionOutcome:
        # Same status and body shape as a fresh signup; nothing is stored or sent
        verify_now = self.policy is SignupPolicy.VERIFY_IMMEDIATELY
        position = await self.repository.count_verified_active() + 1 if verify_now else None
        return SubmissionOutcome(
            201,
            api_body(
                success=True,
                message=self._created_message(verify_now),
                data=WaitlistOut(
                    id=str(uuid7()),
                    email=email,
                    verification_required=not verify_now,
                    waitlist_position=position,
                    suggestions=suggestions or None,
                ),
            ),
        )

    @staticmethod
    def _created_message(verify_now: bool) -> str:
        if verify_now:
            return "Thanks for joining! You're on the waitlist."
        return "Thanks for joining! Please check your email to verify your subscription."

    async def _handle_existing(
        self, existing: WaitlistSignup, email: str, suggestions: List[str]
    ) -> SubmissionOutcome:
        if existing.unsubscribed:
            raise PreviouslyUnsubscribed(
                "This email has been unsubscribed. Please contact support to re-subscribe."
            )

        if self.policy is SignupPolicy.VERIFY_IMMEDIATELY:
            raise DuplicateActive("This email is already on the waitlist.")

        if existing.verified:
            return SubmissionOutcome(
                200,
                api_body(
                    success=True,
                    message="You are already on our waitlist!",
                    data=WaitlistOut(id=existing.id, email=email, verification_required=False),
                ),
            )

        token = generate_verification_token()
        await self.repository.update_verification_token(existing.id, token)
        result = await send_verification_email(
            self.dispatcher, self.settings, email, token, existing.unsubscribe_token
        )
        self._log_email_failure("verification", result)

        return SubmissionOutcome(
            200,
            api_body(
                success=True,
                message="Verification email sent! Please check your inbox.",
                data=WaitlistOut(
                    id=existing.id,
                    email=email,
                    verification_required=True,
                    suggestions=suggestions or None,
                ),
                email_debug=self._email_debug(result),
            ),
        )

    async def _create(
        self,
        submission: WaitlistIn,
        email_hash: str,
        context: RequestContext,
        suggestions: List[str],
    ) -> SubmissionOutcome:
        verify_now = self.policy is SignupPolicy.VERIFY_IMMEDIATELY
        now = datetime.now(timezone.utc)
        verification_token = None if verify_now else generate_verification_token()
        unsubscribe_token = generate_unsubscribe_token()

        signup = await self.repository.insert(
            email=encrypt_email(submission.email, self.settings.ENCRYPTION_KEY),
            email_hash=email_hash,
            verified=verify_now,
            verified_at=now if verify_now else None,
            verification_token=verification_token,
            verification_sent_at=None if verify_now else now,
            unsubscribe_token=unsubscribe_token,
            source=submission.source or "direct",
            referrer=submission.referrer,
            user_agent=sanitize_user_agent(context.user_agent),
            ip_address=context.ip_address[:45] if context.ip_address else None,
            utm_source=submission.utm_source,
            utm_medium=submission.utm_medium,
            utm_campaign=submission.utm_campaign,
            utm_term=submission.utm_term,
            utm_content=submission.utm_content,
            ab_test_variant=submission.ab_test_variant,
            metadata_=submission.metadata or {},
        )

        position = None
        if verify_now:
            position = await self.repository.count_verified_active()
            result = await send_welcome_email(
                self.dispatcher, self.settings, submission.email, unsubscribe_token, position
            )
            self._log_email_failure("welcome", result)
        else:
            result = await send_verification_email(
                self.dispatcher, self.settings, submission.email, verification_token, unsubscribe_token
            )
            self._log_email_failure("verification", result)

        logger.info(
            "Waitlist submission successful: "
            f"{sanitize_for_logs({'id': signup.id, 'source': signup.source, 'utm_campaign': signup.utm_campaign})}"
        )

        return SubmissionOutcome(
            201,
            api_body(
                success=True,
                message=self._created_message(verify_now),
                data=WaitlistOut(
                    id=signup.id,
                    email=submission.email,
                    verification_required=not verify_now,
                    waitlist_position=position,
                    suggestions=suggestions or None,
                ),
                email_debug=self._email_debug(result),
            ),
        )

    def _log_email_failure(self, kind: str, result: EmailResult) -> None:
        if not result.success:
            logger.error(f"Failed to send {kind} email: {result.error}")

    def _email_debug(self, result: EmailResult) -> Optional[dict]:
        return result.to_dict() if self.settings.EMAIL_DEBUG else None

    # ── Token flows ─────────────────────────────

    async def verify(self, token: Any) -> TokenOutcome:
        try:
            token = TokenIn.model_validate({"token": token}).token
        except ValidationError:
            raise TokenInvalid("Invalid verification token")

        if not is_verification_token_fresh(token, self.settings.VERIFICATION_TOKEN_MAX_AGE_HOURS):
            raise TokenInvalid("Verification token has expired. Please request a new one.")

        signup = await self.repository.find_by_verification_token(token)
        if signup is None:
            logger.info(f"Verification token not found: {sanitize_for_logs({'token': token})}")
            raise TokenNotFound("Invalid or expired verification token")

        email = decrypt_email(signup.email, self.settings.ENCRYPTION_KEY)
        if signup.verified:
            return TokenOutcome("Email already verified. Welcome to the waitlist!", email)

        if signup.unsubscribed:
            raise TokenInvalid("This email has been unsubscribed and cannot be verified.")

        if not await self.repository.mark_verified(signup.id):
            # A concurrent click on the same link got there first
            return TokenOutcome("Email already verified. Welcome to the waitlist!", email)
        position = await self.repository.count_verified_active()

        result = await send_welcome_email(
            self.dispatcher, self.settings, email, signup.unsubscribe_token, position
        )
        self._log_email_failure("welcome", result)

        logger.info(
            "Email verification successful: "
            f"{sanitize_for_logs({'id': signup.id, 'email': email, 'waitlist_position': position})}"
        )
        return TokenOutcome(
            f"Email verified successfully! Welcome to the {self.settings.APP_NAME} waitlist.",
            email,
            position,
        )

    async def unsubscribe(self, token: Any) -> TokenOutcome:
        try:
            token = TokenIn.model_validate({"token": token}).token
        except ValidationError:
            raise TokenInvalid("Invalid unsubscribe token")

        signup = await self.repository.find_by_unsubscribe_token(token)
        if signup is None:
            logger.info(f"Unsubscribe token not found: {sanitize_for_logs({'token': token})}")
            raise TokenNotFound("Invalid unsubscribe token")

        email = decrypt_email(signup.email, self.settings.ENCRYPTION_KEY)
        if signup.unsubscribed:
            return TokenOutcome("You have already been unsubscribed from our mailing list.", email)

        await self.repository.mark_unsubscribed(signup.id)
        logger.info(
            f"Email unsubscribed successfully: {sanitize_for_logs({'id': signup.id, 'email': email})}"
        )
        return TokenOutcome("You have been successfully unsubscribed from our mailing list.", email)

    async def resend_verification(self, email: Any) -> EmailResult:
        if not isinstance(email, str) or not email.strip():
            raise InvalidPayload("Email required", error="Email required")

        email = normalize_email(email)
        signup = await self.repository.find_by_hash(hash_email(email))
        if signup is None:
            raise EmailNotFound()
        if signup.unsubscribed:
            raise PreviouslyUnsubscribed("This email has been unsubscribed.")
        if signup.verified:
            raise InvalidPayload("This email is already verified.", error="Email already verified")

        token = generate_verification_token()
        await self.repository.update_verification_token(signup.id, token)
        result = await send_verification_email(
            self.dispatcher, self.settings, email, token, signup.unsubscribe_token
        )
        self._log_email_failure("verification", result)
        return result

    # ── Reporting ─────────────────────────────

    async def public_count(self) -> int:
        try:
            return await self.repository.count_verified_active()
        except Exception:
            # Public display must keep working when the store is down
            logger.exception("Error getting waitlist count, serving fallback")
            return self.settings.PUBLIC_COUNT_FALLBACK

    async def stats(self) -> WaitlistStatsResponse:
        try:
            rows = await self.repository.stats_base()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching waitlist statistics: {e}")
            raise StorageUnavailable(GENERIC_ERROR_MESSAGE) from e
        return build_waitlist_stats(rows)

    async def is_store_reachable(self) -> bool:
        try:
            await self.repository.ping()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Waitlist store unreachable: {e}")
            return False
        return True
