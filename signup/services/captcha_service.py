import logging
from typing import Optional

import httpx

from signup.base.exception import ProviderError
from signup.base.models import Settings

logger = logging.getLogger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


class CaptchaService:
    def __init__(self,
        secret_key: str,
        verify_url: str = TURNSTILE_VERIFY_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        self.transport = transport

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        """Ask Turnstile whether `token` is a valid challenge response"""
        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.verify_url, data=form)
                response.raise_for_status()
                outcome = response.json()
        except httpx.HTTPError as e:
            logger.error("Turnstile verification failed: %s", e)
            raise ProviderError(message="Captcha verification unavailable", detail=str(e)) from e

        if not outcome.get("success"):
            logger.info("Turnstile rejected token: %s", outcome.get("error-codes"))
            return False
        return True


def new_captcha_service(settings: Settings) -> CaptchaService:
    return CaptchaService(settings.turnstile_secret_key)
