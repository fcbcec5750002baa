import typing as t
import os
from functools import lru_cache
from dotenv import load_dotenv
from signup.base.models import Settings
from signup.utils.str import parse_env_var_to_list, parse_env_var_to_dict

dotenv_path = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), ".env")
load_dotenv(dotenv_path=dotenv_path)

class EnvHandler:
    def __init__(self):
        """Add new variables to `settings()` below"""
        self.cors = {
            "allow_origins": parse_env_var_to_list(self.get("ALLOW_ORIGINS", "*")),
            "allow_headers": parse_env_var_to_list(self.get("ALLOW_HEADERS", "Content-Type")),
        }

    def settings(self) -> Settings:
        return Settings(
            base_url=self.get("BASE_URL").rstrip("/"),
            mongo_uri=self.get("MONGO_URI"),
            database_name=self.get("DATABASE_NAME", "signup"),
            mailjet_api_key=self.get("MAILJET_API_KEY"),
            mailjet_secret_key=self.get("MAILJET_SECRET_KEY"),
            turnstile_secret_key=self.get("TURNSTILE_SECRET_KEY"),
            confirm_sender_email=self.get("CONFIRM_SENDER_EMAIL"),
            confirm_sender_name=self.get("CONFIRM_SENDER_NAME", "Newsletter"),
            contact_sender_email=self.get("CONTACT_SENDER_EMAIL"),
            contact_sender_name=self.get("CONTACT_SENDER_NAME", "Contact Form"),
            contact_recipient_email=self.get("CONTACT_RECIPIENT_EMAIL"),
            audience_lists=parse_env_var_to_dict(self.get("AUDIENCE_LISTS", "")),
            pending_ttl_seconds=self.get("PENDING_TTL_SECONDS", 86400, cast=int),
        )

    def get(self, key: str, default: t.Union[t.Any, None] = None, cast: t.Union[type, None] = None) -> t.Any:
        """
        Read `key` from the environment (after `.env` has been loaded).
        Falls back to `default`; with neither set, a KeyError names the missing
        variable so misconfiguration fails at settings load, not mid-request.
        `cast` converts the raw string, e.g. `int` for PENDING_TTL_SECONDS.
        """
        value = os.getenv(key, default)
        if value is None:
            raise KeyError(f"Missing required environment variable: {key}")
        if cast:
            try:
                value = cast(value)
            except ValueError as e:
                raise ValueError(f"Error casting environment variable {key} to {cast}: {e}")

        return value

env = EnvHandler()

@lru_cache
def load_settings() -> Settings:
    return env.settings()
