import asyncio
from datetime import datetime, timezone

import pytest
from pymongo.errors import DuplicateKeyError

from signup.base.exception import DatabaseConnectionError
from signup.clients.mongo_client import MongoClient
from signup.handlers.env_handler import EnvHandler
from signup.repositories.pending_repository import PendingRepository
from signup.services.token_service import TokenService
from signup.utils.str import parse_env_var_to_dict, parse_env_var_to_list

REQUIRED_ENV = {
    "BASE_URL": "https://signup.example.com/",
    "MONGO_URI": "mongodb://localhost:27017",
    "MAILJET_API_KEY": "k",
    "MAILJET_SECRET_KEY": "s",
    "TURNSTILE_SECRET_KEY": "t",
    "CONFIRM_SENDER_EMAIL": "newsletter@example.com",
    "CONTACT_SENDER_EMAIL": "contact@example.com",
    "CONTACT_RECIPIENT_EMAIL": "owner@example.com",
}


def test_parse_list():
    assert parse_env_var_to_list(" a | b ||c ") == ["a", "b", "c"]
    assert parse_env_var_to_list("") == []


def test_parse_dict_uppercases_names():
    assert parse_env_var_to_dict("newsletter=1001|Product = 2002|broken|=3") == {
        "NEWSLETTER": "1001",
        "PRODUCT": "2002",
    }


def test_settings_from_environment(monkeypatch):
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("AUDIENCE_LISTS", "newsletter=1001")
    monkeypatch.setenv("PENDING_TTL_SECONDS", "3600")

    settings = EnvHandler().settings()

    assert settings.base_url == "https://signup.example.com"
    assert settings.audience_lists == {"NEWSLETTER": "1001"}
    assert settings.pending_ttl_seconds == 3600
    assert settings.confirm_sender_name == "Newsletter"
    assert "node_env" not in settings.model_dump()


def test_settings_missing_variable(monkeypatch):
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("TURNSTILE_SECRET_KEY")

    with pytest.raises(KeyError, match="TURNSTILE_SECRET_KEY"):
        EnvHandler().settings()


def test_tokens_are_url_safe_and_distinct():
    service = TokenService()
    tokens = {service.generate_confirmation_token() for _ in range(200)}

    assert len(tokens) == 200
    assert all(token.replace("-", "").replace("_", "").isalnum() for token in tokens)


class DeleteResult:
    def __init__(self, deleted_count: int):
        self.deleted_count = deleted_count


class FakeCollection:
    def __init__(self, duplicate: bool = False):
        self.duplicate = duplicate
        self.calls = []

    async def update_one(self, filter, update, upsert=False):
        self.calls.append(("update_one", filter, update, upsert))
        if self.duplicate:
            raise DuplicateKeyError("E11000 duplicate key error")

    async def find_one(self, filter):
        self.calls.append(("find_one", filter))
        return {"_id": filter["_id"], "value": "tok1"}

    async def find_one_and_delete(self, filter):
        self.calls.append(("find_one_and_delete", filter))
        return None

    async def delete_one(self, filter):
        self.calls.append(("delete_one", filter))
        return DeleteResult(deleted_count=0 if self.duplicate else 1)


def test_put_if_absent_claims_free_key():
    collection = FakeCollection()

    assert asyncio.run(PendingRepository(collection).put_if_absent("pending_email:a@b.com", "tok1", 60)) is True
    _, filter, update, upsert = collection.calls[0]
    assert upsert is True
    assert filter["_id"] == "pending_email:a@b.com"
    assert "$lte" in filter["expiresAt"]
    assert update["$set"]["value"] == "tok1"
    assert update["$set"]["expiresAt"] > datetime.now(timezone.utc)


def test_put_if_absent_reports_live_key():
    collection = FakeCollection(duplicate=True)

    assert asyncio.run(PendingRepository(collection).put_if_absent("pending_email:a@b.com", "tok1", 60)) is False


def test_reads_filter_out_expired_entries():
    collection = FakeCollection()
    repository = PendingRepository(collection)

    assert asyncio.run(repository.get("pending_email:a@b.com")) == "tok1"
    assert asyncio.run(repository.pop("tok1")) is None
    for call in collection.calls:
        assert "$gt" in call[1]["expiresAt"]


def test_delete_if_matches_on_value():
    collection = FakeCollection()

    assert asyncio.run(PendingRepository(collection).delete_if("pending_email:a@b.com", "tok1")) is True
    assert collection.calls == [("delete_one", {"_id": "pending_email:a@b.com", "value": "tok1"})]


def test_delete_if_reports_mismatch():
    assert asyncio.run(PendingRepository(FakeCollection(duplicate=True)).delete_if("pending_email:a@b.com", "tok1")) is False


class UnreachableDatabase:
    async def command(self, name):
        raise ConnectionError("connection refused")


class UnreachableMotor:
    def get_database(self, name):
        return UnreachableDatabase()


def test_ping_failure_raises_connection_error():
    mongo = MongoClient("mongodb://localhost:27017", "signup")
    mongo.client = UnreachableMotor()

    with pytest.raises(DatabaseConnectionError) as exc:
        asyncio.run(mongo.ping())
    assert "connection refused" in str(exc.value)
