import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from mailjet_rest import Client

from content.email_content import get_random_confirm_banner, get_random_contact_subject
from signup.base.exception import ProviderError
from signup.base.models import ContactSubmission, Settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"


def response_detail(response) -> Any:
    """Best-effort JSON body of a provider response, falling back to text"""
    try:
        return response.json()
    except ValueError:
        return getattr(response, "text", None)


class EmailService:
    def __init__(self, settings: Settings, mailjet: Optional[Client] = None):
        self.settings = settings
        self.mailjet = mailjet or Client(
            auth=(settings.mailjet_api_key, settings.mailjet_secret_key),
            version="v3.1",
        )
        self.env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )

    async def _send(self, message: dict, kind: str):
        data = {"Messages": [message]}
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, partial(self.mailjet.send.create, data=data))
        if response.status_code >= 400:
            detail = response_detail(response)
            logger.error("Mailjet rejected %s email (%s): %s", kind, response.status_code, detail)
            raise ProviderError(
                message=f"Failed to send {kind} email",
                status_code=response.status_code,
                detail=detail,
            )
        logger.info("Mailjet accepted %s email", kind)
        return response

    async def send_confirmation_email(self,
        email: str,
        confirmation_url: str,
        name: Optional[str] = None,
    ):
        """Send the double opt-in link"""
        template = self.env.get_template("confirm-email.html")
        html_content = template.render(
            name=name or "there",
            base_url=self.settings.base_url,
            banner_text=get_random_confirm_banner(),
            confirmation_url=confirmation_url,
        )
        message = {
            "From": {"Email": self.settings.confirm_sender_email, "Name": self.settings.confirm_sender_name},
            "To": [{"Email": email, "Name": name or email}],
            "Subject": "Please confirm your subscription",
            "HTMLPart": html_content,
            "TextPart": (
                f"Hi {name or 'there'},\n\n"
                "Please confirm your subscription by opening the link below:\n\n"
                f"{confirmation_url}\n\n"
                "The link is valid for 24 hours. If you didn't sign up, you can safely ignore this email.\n"
            ),
        }
        return await self._send(message, "confirmation")

    async def send_contact_email(self, submission: ContactSubmission):
        """Forward a contact form submission to the site owner"""
        template = self.env.get_template("contact-email.html")
        html_content = template.render(submission=submission, metadata=submission.metadata)
        meta = submission.metadata
        text_lines = [
            f"Name: {submission.name}",
            f"Email: {submission.email}",
            "",
            submission.message or "",
            "",
            "---",
            f"IP: {meta.ip or 'unknown'}",
            f"Location: {', '.join(p for p in (meta.city, meta.region, meta.country) if p) or 'unknown'}",
            f"User agent: {meta.user_agent or 'unknown'}",
            f"Referer: {meta.referer or 'unknown'}",
        ]
        message = {
            "From": {"Email": self.settings.contact_sender_email, "Name": self.settings.contact_sender_name},
            "To": [{"Email": self.settings.contact_recipient_email}],
            "ReplyTo": {"Email": submission.email, "Name": submission.name},
            "Subject": f"{get_random_contact_subject()}: {submission.name}",
            "HTMLPart": html_content,
            "TextPart": "\n".join(text_lines),
        }
        return await self._send(message, "contact")


def new_email_service(settings: Settings) -> EmailService:
    """EmailService factory"""
    return EmailService(settings)
