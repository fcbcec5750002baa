import asyncio
import logging
from functools import partial
from typing import Optional

from mailjet_rest import Client

from signup.base.exception import ProviderError
from signup.base.models import MailingListContact, Settings
from signup.services.email_service import response_detail

logger = logging.getLogger(__name__)


def contact_name(contact: MailingListContact) -> str:
    return " ".join(part for part in (contact.firstName, contact.lastName) if part)


class MailingListService:
    """
    Upserts contacts at Mailjet.

    With a list id the contact is added through `contactslist/{id}/managecontact`
    (`addforce` re-subscribes a previously unsubscribed address). Without one it
    lands in the account's contacts, updating the existing contact if Mailjet
    reports it already exists.
    """

    def __init__(self, settings: Settings, mailjet: Optional[Client] = None):
        self.mailjet = mailjet or Client(
            auth=(settings.mailjet_api_key, settings.mailjet_secret_key),
            version="v3",
        )

    async def _call(self, fn, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, **kwargs))

    async def upsert_contact(self, contact: MailingListContact, list_id: Optional[str] = None):
        name = contact_name(contact)
        if list_id:
            data = {
                "Email": contact.email,
                "Action": "unsub" if contact.unsubscribed else "addforce",
            }
            if name:
                data["Name"] = name
            response = await self._call(self.mailjet.contactslist_managecontact.create, id=list_id, data=data)
        else:
            data = {"Email": contact.email, "IsExcludedFromCampaigns": contact.unsubscribed}
            if name:
                data["Name"] = name
            response = await self._call(self.mailjet.contact.create, data=data)
            if response.status_code == 400 and "already exists" in str(response_detail(response)).lower():
                update = {key: value for key, value in data.items() if key != "Email"}
                response = await self._call(self.mailjet.contact.update, id=contact.email, data=update)

        if response.status_code >= 400:
            detail = response_detail(response)
            logger.error("Mailjet rejected contact upsert (list=%s, %s): %s", list_id or "default", response.status_code, detail)
            raise ProviderError(
                message="Failed to add contact to mailing list",
                status_code=response.status_code,
                detail=detail,
            )
        return response_detail(response)


def new_mailing_list_service(settings: Settings) -> MailingListService:
    return MailingListService(settings)
