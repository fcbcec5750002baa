import logging

from signup.base.exception import ForbiddenError, ValidationError
from signup.base.models import ContactSubmission
from signup.services.captcha_service import CaptchaService
from signup.services.email_service import EmailService

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "message")


class ContactService:
    def __init__(self, captcha_service: CaptchaService, email_service: EmailService):
        self.captcha = captcha_service
        self.email_service = email_service

    async def submit(self, submission: ContactSubmission) -> bool:
        """
        Forward a contact submission by email.
        Returns False when the honeypot caught a bot; the caller answers as if
        it had been accepted.
        """
        if (submission.website or "").strip():
            logger.info("Honeypot triggered from %s, dropping submission", submission.metadata.ip or "unknown")
            return False

        if not submission.captcha_token:
            raise ValidationError(field="cf-turnstile-response", message="Captcha response is required")
        if not await self.captcha.verify(submission.captcha_token, remote_ip=submission.metadata.ip):
            raise ForbiddenError("Captcha verification failed")

        for field in REQUIRED_FIELDS:
            value = getattr(submission, field)
            if not value or not value.strip():
                raise ValidationError(field=field, message=f"{field.capitalize()} is required")

        await self.email_service.send_contact_email(submission)
        logger.info("Forwarded contact submission from %s", submission.email)
        return True


def new_contact_service(captcha_service: CaptchaService, email_service: EmailService) -> ContactService:
    return ContactService(captcha_service, email_service)
