from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class PendingSubscription(BaseModel):
    """Record stored under a confirmation token until it is confirmed or lapses"""
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    audience: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    @property
    def name(self) -> Optional[str]:
        parts = [part for part in (self.firstName, self.lastName) if part]
        return " ".join(parts) or None


class MailingListContact(BaseModel):
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    unsubscribed: bool = False


class RequestMetadata(BaseModel):
    """Network/geo attributes of the inbound request, as seen at the edge"""
    ip: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


class ContactSubmission(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    website: Optional[str] = None
    captcha_token: Optional[str] = None
    metadata: RequestMetadata = Field(default_factory=RequestMetadata)


class SubscribeResult(BaseModel):
    message: str
    already_pending: bool = False


class Settings(BaseModel):
    base_url: str
    mongo_uri: Optional[str] = None
    database_name: str = "signup"
    mailjet_api_key: str
    mailjet_secret_key: str
    turnstile_secret_key: str
    confirm_sender_email: str
    confirm_sender_name: str = "Newsletter"
    contact_sender_email: str
    contact_sender_name: str = "Contact Form"
    contact_recipient_email: str
    audience_lists: dict[str, str] = Field(default_factory=dict)
    pending_ttl_seconds: int = 86400
