import logging
from typing import Optional

import pydantic

from signup.base.exception import ExpiredOrInvalidError, InvalidRequestError, ValidationError
from signup.base.models import MailingListContact, PendingSubscription, Settings, SubscribeResult
from signup.repositories.pending_repository import PendingStore
from signup.services.email_service import EmailService
from signup.services.mailing_list_service import MailingListService
from signup.services.token_service import TokenService
from signup.utils.str import mask_token

logger = logging.getLogger(__name__)

PENDING_EMAIL_PREFIX = "pending_email:"

CONFIRMATION_SENT = "Confirmation email sent! Please check your inbox to confirm your subscription."
ALREADY_PENDING = "A confirmation email has already been sent. Please check your inbox."


def pending_email_key(email: str) -> str:
    return f"{PENDING_EMAIL_PREFIX}{email.strip().lower()}"


class SubscriptionService:
    """
    Double opt-in workflow.

    `subscribe` parks a PendingSubscription under a fresh token plus an
    email-derived pointer to that token, then mails the confirmation link.
    `confirm` consumes the token exactly once, hands the contact to the
    mailing list and drops the pointer whatever the provider answered.
    """

    def __init__(self,
        store: PendingStore,
        token_service: TokenService,
        email_service: EmailService,
        mailing_list_service: MailingListService,
        settings: Settings,
    ):
        self.store = store
        self.tokens = token_service
        self.email_service = email_service
        self.mailing_list = mailing_list_service
        self.base_url = settings.base_url.rstrip("/")
        self.ttl_seconds = settings.pending_ttl_seconds
        self.audience_lists = {name.upper(): list_id for name, list_id in settings.audience_lists.items()}

    def confirmation_url(self, token: str) -> str:
        return f"{self.base_url}/confirm?code={token}"

    async def subscribe(self,
        email: Optional[str],
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> SubscribeResult:
        email = (email or "").strip()
        if not email:
            raise ValidationError(field="email", message="Email is required")

        email_key = pending_email_key(email)
        if await self.store.get(email_key):
            logger.info("Confirmation already pending for %s", email)
            return SubscribeResult(message=ALREADY_PENDING, already_pending=True)

        token = self.tokens.generate_confirmation_token()
        record = PendingSubscription(
            email=email,
            firstName=first_name or None,
            lastName=last_name or None,
            audience=audience or None,
        )
        # Primary record first; it is the authoritative half of the pair.
        await self.store.put(token, record.model_dump_json(), self.ttl_seconds)
        if not await self.store.put_if_absent(email_key, token, self.ttl_seconds):
            await self.store.delete(token)
            logger.info("Lost pending claim for %s to a concurrent request", email)
            return SubscribeResult(message=ALREADY_PENDING, already_pending=True)
        logger.info("Issued confirmation token %s for %s", mask_token(token), email)

        # A rejected send leaves the attempt pending so a retry hits the dedup path.
        await self.email_service.send_confirmation_email(
            email=email,
            confirmation_url=self.confirmation_url(token),
            name=record.name,
        )
        return SubscribeResult(message=CONFIRMATION_SENT)

    def resolve_list_id(self, audience: Optional[str]) -> Optional[str]:
        """Mailing list for `audience`, or None for the default contacts endpoint"""
        if not audience:
            return None
        list_id = self.audience_lists.get(audience.strip().upper())
        if list_id is None:
            logger.warning("No mailing list configured for audience %r, using the default list", audience)
        return list_id

    async def confirm(self, token: Optional[str]) -> PendingSubscription:
        if not token:
            raise InvalidRequestError("Missing confirmation code")

        # Pointer keys share the keyspace with tokens and are never valid codes.
        if token.startswith(PENDING_EMAIL_PREFIX):
            logger.warning("Rejected confirmation code shaped like a pending-email key")
            raise ExpiredOrInvalidError()

        raw = await self.store.pop(token)
        if raw is None:
            logger.info("Confirmation token %s is expired or unknown", mask_token(token))
            raise ExpiredOrInvalidError()
        try:
            record = PendingSubscription.model_validate_json(raw)
        except pydantic.ValidationError:
            logger.error("Unreadable pending record under token %s", mask_token(token))
            raise ExpiredOrInvalidError()

        try:
            await self.mailing_list.upsert_contact(
                MailingListContact(
                    email=record.email,
                    firstName=record.firstName,
                    lastName=record.lastName,
                ),
                list_id=self.resolve_list_id(record.audience),
            )
        finally:
            await self._release_email_key(record.email, token)

        logger.info("Confirmed subscription for %s (pending since %s)", record.email, record.created_at.isoformat())
        return record

    async def _release_email_key(self, email: str, token: str):
        # Leave the pointer alone if it already belongs to a newer attempt.
        await self.store.delete_if(pending_email_key(email), token)


def new_subscription_service(
    store: PendingStore,
    token_service: TokenService,
    email_service: EmailService,
    mailing_list_service: MailingListService,
    settings: Settings,
) -> SubscriptionService:
    return SubscriptionService(store, token_service, email_service, mailing_list_service, settings)
