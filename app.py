import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI, Depends, Form, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates

from content.email_content import get_random_confirmed_banner
from signup.base.exception import (
    ExpiredOrInvalidError,
    ForbiddenError,
    InternalError,
    InvalidRequestError,
    ProviderError,
    ValidationError,
)
from signup.base.models import ContactSubmission, RequestMetadata
from signup.clients.mongo_client import MongoClient
from signup.handlers.env_handler import env, load_settings
from signup.repositories.pending_repository import PendingRepository
from signup.services.captcha_service import CaptchaService, new_captcha_service
from signup.services.contact_service import ContactService, new_contact_service
from signup.services.email_service import TEMPLATES_DIR, EmailService, new_email_service
from signup.services.mailing_list_service import MailingListService, new_mailing_list_service
from signup.services.subscription_service import SubscriptionService, new_subscription_service
from signup.services.token_service import TokenService, new_token_service

logging.basicConfig(
    level=env.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("signup")

PENDING_COLLECTION = "pending_subscriptions"
ALLOW_ORIGINS = env.cors["allow_origins"]
ALLOW_HEADERS = env.cors["allow_headers"]
ALLOW_METHODS = ["GET", "POST", "OPTIONS"]

GENERIC_CONFIRM_ERROR = "We couldn't complete your subscription right now. Please try again later."
GENERIC_CONTACT_ERROR = "Failed to send message. Please try again later."

@lru_cache
def get_token_service() -> TokenService:
    return new_token_service()

@lru_cache
def get_email_service() -> EmailService:
    return new_email_service(load_settings())

@lru_cache
def get_mailing_list_service() -> MailingListService:
    return new_mailing_list_service(load_settings())

@lru_cache
def get_captcha_service() -> CaptchaService:
    return new_captcha_service(load_settings())

def get_pending_repository(request: Request) -> PendingRepository:
    return PendingRepository(request.app.state.db[PENDING_COLLECTION])

def get_subscription_service(
    store: PendingRepository = Depends(get_pending_repository),
    token_service: TokenService = Depends(get_token_service),
    email_service: EmailService = Depends(get_email_service),
    mailing_list_service: MailingListService = Depends(get_mailing_list_service),
) -> SubscriptionService:
    return new_subscription_service(store, token_service, email_service, mailing_list_service, load_settings())

def get_contact_service(
    captcha_service: CaptchaService = Depends(get_captcha_service),
    email_service: EmailService = Depends(get_email_service),
) -> ContactService:
    return new_contact_service(captcha_service, email_service)

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    mongo_client = MongoClient(settings.mongo_uri, settings.database_name)
    app.state.db = await mongo_client.ping()
    await PendingRepository(app.state.db[PENDING_COLLECTION]).ensure_indexes()
    yield
    await mongo_client.close()


app = FastAPI(title="Signup API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_headers=ALLOW_HEADERS,
    allow_methods=ALLOW_METHODS,
)

# https://fastapi.tiangolo.com/advanced/templates/
templates = Jinja2Templates(directory=TEMPLATES_DIR)


def request_metadata(request: Request) -> RequestMetadata:
    """Network/geo context from the edge headers, falling back to the socket peer"""
    headers = request.headers
    forwarded = headers.get("x-forwarded-for", "").split(",")[0].strip()
    ip = headers.get("cf-connecting-ip") or forwarded or (request.client.host if request.client else None)
    return RequestMetadata(
        ip=ip,
        country=headers.get("cf-ipcountry"),
        city=headers.get("cf-ipcity"),
        region=headers.get("cf-region"),
        user_agent=headers.get("user-agent"),
        referer=headers.get("referer"),
    )


def render_confirm_error(request: Request, message: str, status_code: int) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "confirm-error.html",
        {"message": message},
        status_code=status_code,
    )


def allowed_origin(origin: Optional[str]) -> str:
    if not ALLOW_ORIGINS or "*" in ALLOW_ORIGINS:
        return "*"
    if origin in ALLOW_ORIGINS:
        return origin
    return ALLOW_ORIGINS[0]


# Registered after CORSMiddleware, so it runs first and answers every OPTIONS itself.
@app.middleware("http")
async def preflight(request: Request, call_next):
    if request.method != "OPTIONS":
        return await call_next(request)
    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={
            "Access-Control-Allow-Origin": allowed_origin(request.headers.get("origin")),
            "Access-Control-Allow-Methods": ", ".join(ALLOW_METHODS),
            "Access-Control-Allow-Headers": ", ".join(ALLOW_HEADERS),
        },
    )

@app.get("/", response_class=PlainTextResponse)
async def root_endpoint():
    return "Signup API: POST /subscribe, GET /confirm, POST /contact"

@app.post("/subscribe")
async def subscribe(
    email: Optional[str] = Form(None),
    first_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    audience: Optional[str] = Form(None),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Start a double opt-in: store a pending subscription and mail the link.
    A second request for an address that is still pending succeeds without
    issuing another token.
    """
    try:
        result = await subscription_service.subscribe(
            email=email,
            first_name=first_name,
            last_name=last_name,
            audience=audience,
        )
    except ValidationError as e:
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})
    except ProviderError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": e.detail or e.message},
        )
    except Exception:
        logger.exception("Unexpected error in /subscribe")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": InternalError().message},
        )
    return JSONResponse(content={"success": True, "message": result.message})

@app.get("/confirm", response_class=HTMLResponse)
async def confirm(
    request: Request,
    code: Optional[str] = Query(None),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Consume a confirmation code and add the contact to its mailing list"""
    try:
        record = await subscription_service.confirm(code)
    except (InvalidRequestError, ExpiredOrInvalidError) as e:
        return render_confirm_error(request, e.message, e.status_code)
    except ProviderError as e:
        return render_confirm_error(request, GENERIC_CONFIRM_ERROR, e.status_code)
    except Exception:
        logger.exception("Unexpected error in /confirm")
        return render_confirm_error(request, GENERIC_CONFIRM_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return templates.TemplateResponse(
        request,
        "confirmed.html",
        {"banner_text": get_random_confirmed_banner(), "name": record.firstName},
    )

@app.post("/contact")
async def contact(
    request: Request,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    website: Optional[str] = Form(None),
    captcha_token: Optional[str] = Form(None, alias="cf-turnstile-response"),
    contact_service: ContactService = Depends(get_contact_service),
):
    submission = ContactSubmission(
        name=name,
        email=email,
        message=message,
        website=website,
        captcha_token=captcha_token,
        metadata=request_metadata(request),
    )
    try:
        await contact_service.submit(submission)
    except (ValidationError, ForbiddenError) as e:
        return PlainTextResponse(e.message, status_code=e.status_code)
    except ProviderError:
        return PlainTextResponse(GENERIC_CONTACT_ERROR, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception:
        logger.exception("Unexpected error in /contact")
        return PlainTextResponse(GENERIC_CONTACT_ERROR, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def method_not_allowed(path: str):
    return PlainTextResponse("Method not allowed", status_code=status.HTTP_405_METHOD_NOT_ALLOWED)
