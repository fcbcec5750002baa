from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from app import app, get_contact_service, get_subscription_service
from signup.base.exception import ProviderError
from signup.base.models import ContactSubmission, MailingListContact, Settings
from signup.services.contact_service import ContactService
from signup.services.subscription_service import SubscriptionService
from signup.services.token_service import TokenService

# --- Test doubles ---


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class MemoryStore:
    """In-memory PendingStore that honours TTLs against an injected clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.clock():
            del self.data[key]
            return None
        return value

    def live_keys(self) -> set[str]:
        return {key for key in list(self.data) if self._live(key) is not None}

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self.data[key] = (value, self.clock() + ttl_seconds)

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        if self._live(key) is not None:
            return False
        self.data[key] = (value, self.clock() + ttl_seconds)
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def pop(self, key: str) -> Optional[str]:
        value = self._live(key)
        self.data.pop(key, None)
        return value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def delete_if(self, key: str, value: str) -> bool:
        if key in self.data and self.data[key][0] == value:
            del self.data[key]
            return True
        return False


class SequenceTokenService(TokenService):
    def __init__(self):
        super().__init__()
        self.issued = 0

    def generate_confirmation_token(self) -> str:
        self.issued += 1
        return f"tok{self.issued}"


class FakeEmailService:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.confirmations: list[dict] = []
        self.contacts: list[ContactSubmission] = []

    async def send_confirmation_email(self, email: str, confirmation_url: str, name: Optional[str] = None):
        if self.fail:
            raise ProviderError(message="Failed to send confirmation email", status_code=401, detail={"ErrorMessage": "bad key"})
        self.confirmations.append({"email": email, "confirmation_url": confirmation_url, "name": name})

    async def send_contact_email(self, submission: ContactSubmission):
        if self.fail:
            raise ProviderError(message="Failed to send contact email", status_code=401, detail={"ErrorMessage": "bad key"})
        self.contacts.append(submission)


class FakeMailingListService:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[MailingListContact, Optional[str]]] = []

    async def upsert_contact(self, contact: MailingListContact, list_id: Optional[str] = None):
        self.calls.append((contact, list_id))
        if self.fail:
            raise ProviderError(message="Failed to add contact to mailing list", status_code=422, detail={"ErrorMessage": "rejected"})
        return {"Count": 1}


class FakeCaptchaService:
    def __init__(self, verdict: bool = True):
        self.verdict = verdict
        self.calls: list[tuple[str, Optional[str]]] = []

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        self.calls.append((token, remote_ip))
        return self.verdict


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {}
        self.text = str(self.payload)

    def json(self):
        return self.payload


class FakeEndpoint:
    def __init__(self, responses: Optional[list[FakeResponse]] = None):
        self.responses = list(responses or [])
        self.calls: list[tuple[str, dict]] = []

    def _next(self) -> FakeResponse:
        return self.responses.pop(0) if self.responses else FakeResponse()

    def create(self, **kwargs):
        self.calls.append(("create", kwargs))
        return self._next()

    def update(self, **kwargs):
        self.calls.append(("update", kwargs))
        return self._next()


class FakeMailjet:
    """Stands in for mailjet_rest.Client; endpoints are attributes like the real one"""

    def __init__(self):
        self.send = FakeEndpoint()
        self.contact = FakeEndpoint()
        self.contactslist_managecontact = FakeEndpoint()


# --- Fixtures ---


@pytest.fixture
def settings() -> Settings:
    return Settings(
        base_url="https://signup.example.com/",
        mongo_uri="mongodb://localhost:27017",
        mailjet_api_key="mj_key",
        mailjet_secret_key="mj_secret",
        turnstile_secret_key="ts_secret",
        confirm_sender_email="newsletter@example.com",
        contact_sender_email="contact@example.com",
        contact_recipient_email="owner@example.com",
        audience_lists={"NEWSLETTER": "1001", "PRODUCT": "2002"},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock)


@pytest.fixture
def tokens() -> SequenceTokenService:
    return SequenceTokenService()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def mailing_list() -> FakeMailingListService:
    return FakeMailingListService()


@pytest.fixture
def captcha() -> FakeCaptchaService:
    return FakeCaptchaService()


@pytest.fixture
def subscription_service(store, tokens, email_service, mailing_list, settings) -> SubscriptionService:
    return SubscriptionService(store, tokens, email_service, mailing_list, settings)


@pytest.fixture
def contact_service(captcha, email_service) -> ContactService:
    return ContactService(captcha, email_service)


@pytest.fixture
def client(subscription_service, contact_service):
    app.dependency_overrides[get_subscription_service] = lambda: subscription_service
    app.dependency_overrides[get_contact_service] = lambda: contact_service
    yield TestClient(app)
    app.dependency_overrides.clear()
